# bulkexport/aws/s3_errors.py
import logging
from typing import Optional

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ParamValidationError,
    ReadTimeoutError,
)

from bulkexport.core.errors import BackendUnavailable, ExportError, InvalidTarget

logger = logging.getLogger(__name__)

# bucket/key problemen: opnieuw proberen heeft geen zin
_INVALID_TARGET_CODES = {
    "NoSuchBucket",
    "InvalidBucketName",
    "AccessDenied",
    "AllAccessDisabled",
    "KeyTooLongError",
    "InvalidArgument",
    "InvalidRequest",
    "SignatureDoesNotMatch",
}
_RETRY_CODES = {
    "SlowDown", "Throttling", "RequestTimeout",
    "InternalError", "ServiceUnavailable", "InternalServerError",
}


def error_code(exc: BaseException) -> Optional[str]:
    if isinstance(exc, ClientError):
        return (exc.response.get("Error", {}) or {}).get("Code")
    return None


def http_status(exc: BaseException) -> Optional[int]:
    if isinstance(exc, ClientError):
        status = (exc.response.get("ResponseMetadata", {}) or {}).get("HTTPStatusCode")
        return int(status) if status is not None else None
    return None


def is_retryable_s3(exc: BaseException) -> bool:
    # Netwerk/endpoint timeouts
    if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return True
    if isinstance(exc, ClientError):
        if error_code(exc) in _RETRY_CODES:
            return True
        status = http_status(exc)
        if status is not None and 500 <= status < 600:
            return True
    return False


def classify_initiate_error(exc: BaseException, bucket: str, key: str) -> ExportError:
    """Map a create_multipart_upload failure onto InvalidTarget / BackendUnavailable."""
    code = error_code(exc)
    if isinstance(exc, ParamValidationError):
        # lokaal door botocore afgewezen, bv. lege of te lange key
        return InvalidTarget(f"s3://{bucket}/{key} rejected: {exc}", cause=exc)
    if isinstance(exc, ClientError) and not is_retryable_s3(exc):
        status = http_status(exc)
        if code in _INVALID_TARGET_CODES or (status is not None and 400 <= status < 500):
            err = InvalidTarget(f"s3://{bucket}/{key} rejected by backend ({code})", cause=exc)
            if code == "NoSuchBucket":
                err.http_status = 404
            elif code in {"AccessDenied", "AllAccessDisabled", "SignatureDoesNotMatch"}:
                err.http_status = 403
            return err
    if isinstance(exc, (ClientError, BotoCoreError)):
        return BackendUnavailable(f"S3 unavailable while initiating s3://{bucket}/{key} ({code or type(exc).__name__})", cause=exc)
    return BackendUnavailable(f"unexpected error while initiating s3://{bucket}/{key}: {exc}", cause=exc)


def describe(exc: BaseException) -> str:
    code = error_code(exc)
    if code:
        return f"{code} (http={http_status(exc)})"
    return type(exc).__name__
