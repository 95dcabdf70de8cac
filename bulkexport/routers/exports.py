# bulkexport/routers/exports.py
import asyncio
import logging
import threading
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from bson import json_util
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from bulkexport.core.errors import ExportError
from bulkexport.engine.context import ExportOptions
from bulkexport.engine.facade import export_collection
from bulkexport.infra.mongo_client import get_mongo
from bulkexport.infra.s3_client import get_s3

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/exports", tags=["exports"])

_DISCONNECT_POLL_SECONDS = 0.5


class ExportRequest(BaseModel):
    """Request model voor een collectie-export"""
    collection: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)
    database: Optional[str] = None
    bucket: Optional[str] = None
    filter: Dict[str, Any] = Field(default_factory=dict)
    chunk_size_bytes: Optional[int] = Field(None, gt=0)
    max_concurrency: Optional[int] = Field(None, gt=0, le=64)
    batch_size: Optional[int] = Field(None, gt=0)


class ExportResponse(BaseModel):
    ok: bool = True
    location: str
    bucket: str
    key: str
    etag: Optional[str] = None
    parts: int
    records: int
    bytes: int
    skipped: int
    trace_id: str


def mongo_client_dependency():
    return get_mongo()


def s3_dependency():
    return get_s3()


def _parse_filter(raw: Dict[str, Any]) -> Dict[str, Any]:
    # Extended JSON in het filter ({"$oid": ...}, {"$date": ...}) naar BSON types
    return json_util.loads(json_util.dumps(raw)) if raw else {}


async def _cancel_on_disconnect(request: Request, cancel: threading.Event) -> None:
    # client weg -> export afbreken (499)
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.warning("client disconnected; cancelling export")
            cancel.set()
            return
        await asyncio.sleep(_DISCONNECT_POLL_SECONDS)


@router.post("", response_model=ExportResponse)
async def create_export(
    body: ExportRequest,
    request: Request,
    mongo=Depends(mongo_client_dependency),
    s3=Depends(s3_dependency),
):
    """
    Exporteer een volledige collectie (optioneel gefilterd) naar één S3 object.

    Returns:
        Locatie van het gecommitte object plus tellers.
    """
    cancel = threading.Event()
    try:
        options = ExportOptions.from_settings(
            chunk_size_bytes=body.chunk_size_bytes,
            max_concurrency=body.max_concurrency,
            batch_size=body.batch_size,
            cancel_event=cancel,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"ok": False, "error": {"code": "invalid_options", "message": str(e)}})

    watcher = asyncio.create_task(_cancel_on_disconnect(request, cancel))
    try:
        result = await run_in_threadpool(
            export_collection,
            body.collection,
            body.key,
            database=body.database,
            bucket=body.bucket,
            filter=_parse_filter(body.filter),
            options=options,
            mongo_client=mongo,
            s3=s3,
        )
    except ExportError as e:
        logger.error("export %s -> %s failed: %s", body.collection, body.key, e)
        raise HTTPException(status_code=e.http_status, detail={"ok": False, "error": e.to_dict()})
    except RuntimeError as e:
        # o.a. ontbrekende S3_BUCKET
        raise HTTPException(status_code=500, detail={"ok": False, "error": {"code": "config_error", "message": str(e)}})
    finally:
        cancel.set()
        watcher.cancel()

    return ExportResponse(
        location=result.location,
        bucket=result.bucket,
        key=result.key,
        etag=result.etag,
        parts=result.parts,
        records=result.records,
        bytes=result.bytes,
        skipped=result.skipped,
        trace_id=result.trace_id,
    )
