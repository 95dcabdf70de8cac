# bulkexport/aws/multipart.py
import logging
import threading
from typing import Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from bulkexport.aws.s3_errors import classify_initiate_error, describe
from bulkexport.core.errors import CompletionError, PartUploadError, SessionClosedError
from bulkexport.engine.context import Part, PartState, SessionState, UploadResult

logger = logging.getLogger(__name__)

_CLOSED = (SessionState.COMPLETED, SessionState.ABORTED)


class MultipartSession:
    """
    Eén S3 multipart-upload transactie.

    State gaat alleen vooruit: CREATED -> INITIATED -> UPLOADING ->
    COMPLETED | ABORTED. Na COMPLETED/ABORTED wordt niets meer geaccepteerd,
    behalve abort() (idempotent). `results` wordt vanuit meerdere upload
    threads gevuld en zit daarom achter een lock.
    """

    def __init__(self, s3, bucket: str, key: str, *, content_type: Optional[str] = None):
        if not bucket or not bucket.strip():
            raise ValueError("bucket cannot be empty")
        if not key or not key.strip():
            raise ValueError("key cannot be empty")
        self._s3 = s3
        self.bucket = bucket
        self.key = key
        self.content_type = content_type
        self.upload_id: Optional[str] = None
        self.etag: Optional[str] = None
        self.state = SessionState.CREATED
        self._results: Dict[int, str] = {}
        self._lock = threading.Lock()
        self.abort_calls = 0

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    @property
    def results(self) -> Dict[int, str]:
        with self._lock:
            return dict(self._results)

    def sorted_results(self) -> List[UploadResult]:
        with self._lock:
            return [UploadResult(n, self._results[n]) for n in sorted(self._results)]

    # --- initiate -----------------------------------------------------------
    def initiate(self) -> str:
        with self._lock:
            if self.state is not SessionState.CREATED:
                raise SessionClosedError(f"cannot initiate session in state {self.state.value}")

        extra = {}
        if self.content_type:
            extra["ContentType"] = self.content_type
        try:
            resp = self._s3.create_multipart_upload(Bucket=self.bucket, Key=self.key, **extra)
        except (BotoCoreError, ClientError) as e:
            logger.error("create_multipart_upload failed %s: %s", self.location, describe(e))
            raise classify_initiate_error(e, self.bucket, self.key) from e

        with self._lock:
            self.upload_id = resp["UploadId"]
            self.state = SessionState.INITIATED
        logger.info("multipart upload initiated %s upload_id=%s", self.location, self.upload_id)
        return self.upload_id

    # --- upload_part --------------------------------------------------------
    def upload_part(self, part: Part) -> UploadResult:
        """Upload één part. Geen retry hier; dat is beleid van de coordinator."""
        with self._lock:
            self._require_open("upload_part")
            self.state = SessionState.UPLOADING
        part.state = PartState.UPLOADING

        try:
            resp = self._s3.upload_part(
                Bucket=self.bucket,
                Key=self.key,
                UploadId=self.upload_id,
                PartNumber=part.part_number,
                Body=part.payload,
            )
            etag = resp["ETag"]
        except Exception as e:
            part.state = PartState.FAILED
            logger.warning("upload_part failed part=%d %s: %s", part.part_number, self.location, describe(e))
            raise PartUploadError(part.part_number, e) from e

        with self._lock:
            self._results[part.part_number] = etag
        part.state = PartState.UPLOADED
        return UploadResult(part.part_number, etag)

    # --- complete -----------------------------------------------------------
    def complete(self, results: Optional[Iterable[UploadResult]] = None) -> str:
        with self._lock:
            self._require_open("complete")
            if results is None:
                ordered = [UploadResult(n, self._results[n]) for n in sorted(self._results)]
            else:
                ordered = sorted(results, key=lambda r: r.part_number)

        if not ordered:
            raise CompletionError(f"no parts uploaded for {self.location}")

        # S3 verwacht ETags exact zoals ontvangen, oplopend op PartNumber
        parts = [{"ETag": r.etag, "PartNumber": r.part_number} for r in ordered]
        try:
            resp = self._s3.complete_multipart_upload(
                Bucket=self.bucket,
                Key=self.key,
                UploadId=self.upload_id,
                MultipartUpload={"Parts": parts},
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("complete_multipart_upload failed %s: %s", self.location, describe(e))
            raise CompletionError(f"backend rejected assembly of {self.location}: {describe(e)}", cause=e) from e

        with self._lock:
            self.state = SessionState.COMPLETED
        self.etag = (resp or {}).get("ETag")
        logger.info("multipart upload completed %s parts=%d", self.location, len(parts))
        return self.location

    # --- abort --------------------------------------------------------------
    def abort(self) -> None:
        """
        Best-effort en idempotent. Fouten worden gelogd, niet doorgegooid:
        een mislukte abort mag de oorspronkelijke fout niet maskeren.
        """
        with self._lock:
            self.abort_calls += 1
            if self.state in _CLOSED:
                return
            upload_id = self.upload_id
            self.state = SessionState.ABORTED

        if upload_id is None:
            return
        try:
            self._s3.abort_multipart_upload(Bucket=self.bucket, Key=self.key, UploadId=upload_id)
            logger.info("multipart upload aborted %s upload_id=%s", self.location, upload_id)
        except Exception as e:
            logger.error("abort_multipart_upload failed %s upload_id=%s: %s", self.location, upload_id, describe(e))

    def put_empty(self) -> str:
        """Lege export: S3 kan geen multipart upload zonder parts voltooien."""
        extra = {"ContentType": self.content_type} if self.content_type else {}
        try:
            resp = self._s3.put_object(Bucket=self.bucket, Key=self.key, Body=b"", **extra)
        except (BotoCoreError, ClientError) as e:
            raise CompletionError(f"writing empty object {self.location} failed: {describe(e)}", cause=e) from e
        self.etag = (resp or {}).get("ETag")
        return self.location

    def _require_open(self, op: str) -> None:
        if self.state in _CLOSED:
            raise SessionClosedError(f"{op} on {self.state.value.lower()} session {self.location}")
        if self.state is SessionState.CREATED:
            raise SessionClosedError(f"{op} before initiate on {self.location}")
