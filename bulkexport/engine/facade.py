# bulkexport/engine/facade.py
from __future__ import annotations
from dataclasses import replace
from pathlib import Path
import mimetypes
from typing import Any, Dict, Optional, Union

from bulkexport.aws.multipart import MultipartSession
from bulkexport.infra.mongo_client import get_collection
from bulkexport.infra.s3_client import get_bucket, get_s3
from bulkexport.sources.base import RecordSource
from bulkexport.sources.file import FileSource
from bulkexport.sources.mongo import MongoSource
from .context import ExportOptions, ExportResult
from .coordinator import ExportCoordinator
from .serializer import PassthroughSerializer


def run_export(
    source: RecordSource,
    bucket: str,
    key: str,
    options: Optional[ExportOptions] = None,
    *,
    filter: Optional[Dict[str, Any]] = None,
    s3=None,
    serializer=None,
) -> ExportResult:
    options = options or ExportOptions.from_settings()
    session = MultipartSession(s3 or get_s3(), bucket, key, content_type=options.content_type)
    coordinator = ExportCoordinator(source, session, options, filter=filter, serializer=serializer)
    return coordinator.run()


def export_to_object(
    source: RecordSource,
    bucket: str,
    key: str,
    options: Optional[ExportOptions] = None,
    *,
    filter: Optional[Dict[str, Any]] = None,
    s3=None,
) -> str:
    """
    Export every record the source yields for `filter` into one object.
    Returns the committed location (`s3://bucket/key`) or raises an ExportError.
    """
    return run_export(source, bucket, key, options, filter=filter, s3=s3).location


def export_collection(
    collection: str,
    key: str,
    *,
    database: Optional[str] = None,
    bucket: Optional[str] = None,
    filter: Optional[Dict[str, Any]] = None,
    options: Optional[ExportOptions] = None,
    mongo_client=None,
    s3=None,
) -> ExportResult:
    """Mongo collection -> S3 with settings as defaults."""
    coll = get_collection(collection, database, client=mongo_client)
    return run_export(
        MongoSource(coll),
        bucket or get_bucket(),
        key,
        options,
        filter=filter,
        s3=s3,
    )


def upload_file(
    path: Union[str, Path],
    bucket: str,
    key: str,
    options: Optional[ExportOptions] = None,
    *,
    content_type: Optional[str] = None,
    s3=None,
) -> ExportResult:
    """
    Local file -> S3 over the same multipart pipeline, one chunk per part.

    The object gets `content_type`, else the type guessed from the file name,
    else application/octet-stream; never the NDJSON type of the export options.
    """
    if content_type is None:
        content_type, _ = mimetypes.guess_type(str(path))
    options = replace(
        options or ExportOptions.from_settings(),
        content_type=content_type or "application/octet-stream",
    )
    source = FileSource(path, options.chunk_size_bytes)
    return run_export(source, bucket, key, options, s3=s3, serializer=PassthroughSerializer())
