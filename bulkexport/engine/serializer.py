# bulkexport/engine/serializer.py
from __future__ import annotations
from collections.abc import Mapping
from typing import Any

from bson import json_util
from bson.errors import BSONError
from bson.json_util import CANONICAL_JSON_OPTIONS, RELAXED_JSON_OPTIONS

from bulkexport.core.errors import SerializationError

_JSON_OPTIONS = {
    "canonical": CANONICAL_JSON_OPTIONS,
    "relaxed": RELAXED_JSON_OPTIONS,
}

LINE_SEPARATOR = b"\n"


class LineSerializer:
    """
    Encodes one document as one line of MongoDB Extended JSON.

    Canonical mode is lossless: ObjectId, dates, Decimal128, int64 and
    non-finite doubles keep their BSON type (`{"$oid": ...}`,
    `{"$numberLong": ...}`, ...). json.dumps without indent never emits a raw
    newline, so every record is exactly one line and concatenating the lines
    in source order gives valid NDJSON.
    """

    def __init__(self, mode: str = "canonical"):
        try:
            self._options = _JSON_OPTIONS[mode]
        except KeyError:
            raise ValueError(f"Unknown json mode '{mode}'. Supported: {sorted(_JSON_OPTIONS)}")
        self.mode = mode

    def serialize(self, record: Any) -> bytes:
        if not isinstance(record, Mapping):
            raise SerializationError(
                f"record must be a document (mapping), got {type(record).__name__}"
            )
        try:
            text = json_util.dumps(record, json_options=self._options)
        except (TypeError, ValueError, OverflowError, BSONError) as e:
            raise SerializationError(
                f"record {_record_id(record)!r} cannot be encoded: {e}",
                cause=e,
                record_id=_record_id(record),
            ) from e
        return text.encode("utf-8") + LINE_SEPARATOR


class PassthroughSerializer:
    """For byte chunks that are already encoded (file uploads)."""

    mode = "raw"

    def serialize(self, record: Any) -> bytes:
        if not isinstance(record, (bytes, bytearray, memoryview)):
            raise SerializationError(f"expected bytes, got {type(record).__name__}")
        return bytes(record)


def _record_id(record: Mapping) -> Any:
    rid = record.get("_id")
    return str(rid) if rid is not None else None
