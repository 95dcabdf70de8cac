# bulkexport/core/errors.py
from __future__ import annotations
from typing import Any, Dict, Optional


class ExportError(Exception):
    """
    Basis voor alle export-fouten.
    `http_status` en `code` worden door de API-laag gebruikt; de pipeline zelf
    kijkt alleen naar het type.
    """

    http_status: int = 500
    code: str = "export_failed"

    def __init__(self, message: str = "", *, cause: Optional[BaseException] = None):
        super().__init__(message or self.code)
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "type": type(self).__name__,
            "code": self.code,
            "message": str(self),
        }
        if self.cause is not None:
            body["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return body


class SourceReadError(ExportError):
    """Cursor or backing store failed while reading records."""

    http_status = 502
    code = "source_read_failed"


class SerializationError(ExportError):
    """A record cannot be encoded as a canonical JSON line."""

    http_status = 422
    code = "serialization_failed"

    def __init__(
        self,
        message: str = "",
        *,
        cause: Optional[BaseException] = None,
        record_id: Any = None,
    ):
        super().__init__(message, cause=cause)
        self.record_id = record_id


class PartUploadError(ExportError):
    """Transport or backend failure during a single part upload."""

    http_status = 502
    code = "part_upload_failed"

    def __init__(self, part_number: int, cause: Optional[BaseException] = None):
        super().__init__(f"upload of part {part_number} failed: {cause}", cause=cause)
        self.part_number = part_number

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["part_number"] = self.part_number
        return body


class CompletionError(ExportError):
    """Backend rejected the final assembly of the multipart upload."""

    http_status = 502
    code = "completion_failed"


class BackendUnavailable(ExportError):
    http_status = 503
    code = "backend_unavailable"


class InvalidTarget(ExportError):
    """Bucket/key rejected by the backend when the upload is initiated."""

    http_status = 400
    code = "invalid_target"


class Cancelled(ExportError):
    # 499 = nginx "client closed request"
    http_status = 499
    code = "cancelled"


class SessionClosedError(ExportError):
    """Operation attempted on a session that already completed or aborted."""

    http_status = 409
    code = "session_closed"
