# bulkexport/engine/context.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional
import threading
import uuid

from bulkexport.core.settings import Settings, settings as _settings

DEFAULT_CHUNK_SIZE_BYTES = 1024 * 1024  # 1 MiB
DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_BATCH_SIZE = 1000

# S3 weigert niet-laatste parts kleiner dan 5 MiB bij complete_multipart_upload
S3_MIN_PART_SIZE = 5 * 1024 * 1024
S3_MAX_PARTS = 10_000

JSON_MODES = ("canonical", "relaxed")


class PartState(str, Enum):
    PENDING = "PENDING"
    UPLOADING = "UPLOADING"
    UPLOADED = "UPLOADED"
    FAILED = "FAILED"


class SessionState(str, Enum):
    CREATED = "CREATED"
    INITIATED = "INITIATED"
    UPLOADING = "UPLOADING"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"


class ExportState(str, Enum):
    IDLE = "IDLE"
    INITIATING = "INITIATING"
    STREAMING = "STREAMING"
    FINALIZING = "FINALIZING"
    DONE = "DONE"
    ABORTED = "ABORTED"


@dataclass
class Part:
    """One numbered slot of the multipart upload. `payload` is never mutated."""

    part_number: int
    payload: bytes
    state: PartState = PartState.PENDING

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class UploadResult:
    part_number: int
    etag: str


@dataclass
class ExportOptions:
    chunk_size_bytes: int = DEFAULT_CHUNK_SIZE_BYTES
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    batch_size: int = DEFAULT_BATCH_SIZE
    skip_malformed: bool = False
    part_retry_attempts: int = 1  # 1 = no retry
    json_mode: str = "canonical"
    content_type: str = "application/x-ndjson"
    cancel_event: Optional[threading.Event] = None
    on_part_dispatched: Optional[Callable[[Part], None]] = None

    def __post_init__(self) -> None:
        if self.chunk_size_bytes <= 0:
            raise ValueError("chunk_size_bytes must be > 0")
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if self.part_retry_attempts < 1:
            raise ValueError("part_retry_attempts must be >= 1")
        if self.json_mode not in JSON_MODES:
            raise ValueError(f"json_mode must be one of {JSON_MODES}, got {self.json_mode!r}")

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None, **overrides: Any) -> "ExportOptions":
        s = s or _settings
        values: dict[str, Any] = {
            "chunk_size_bytes": s.export_chunk_size_bytes,
            "max_concurrency": s.export_max_concurrency,
            "batch_size": s.export_batch_size,
            "skip_malformed": s.export_skip_malformed,
            "part_retry_attempts": s.export_part_retry_attempts,
            "json_mode": s.export_json_mode,
            "content_type": s.export_content_type,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass
class ExportResult:
    location: str
    bucket: str
    key: str
    etag: Optional[str] = None
    parts: int = 0
    records: int = 0
    bytes: int = 0
    skipped: int = 0
    trace_id: str = field(default_factory=lambda: str(uuid.uuid4()))
