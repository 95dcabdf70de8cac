# bulkexport/engine/coordinator.py
from __future__ import annotations
from typing import Any, Dict, List, Optional
import threading
import time

from bulkexport.aws.multipart import MultipartSession
from bulkexport.aws.s3_errors import is_retryable_s3
from bulkexport.core.errors import (
    Cancelled,
    CompletionError,
    ExportError,
    PartUploadError,
    SerializationError,
    SourceReadError,
)
from bulkexport.core.logging_config import logger
from bulkexport.infra.retry import retry_on
from bulkexport.observability import metrics
from bulkexport.sources.base import BatchCursor, RecordSource
from .context import (
    S3_MAX_PARTS,
    S3_MIN_PART_SIZE,
    ExportOptions,
    ExportResult,
    ExportState,
    Part,
    PartState,
    UploadResult,
)
from .part_builder import PartBuilder
from .pool import BoundedWorkerPool
from .serializer import LineSerializer

_TRANSITIONS = {
    ExportState.IDLE: {ExportState.INITIATING},
    ExportState.INITIATING: {ExportState.STREAMING, ExportState.ABORTED},
    ExportState.STREAMING: {ExportState.FINALIZING, ExportState.ABORTED},
    ExportState.FINALIZING: {ExportState.DONE, ExportState.ABORTED},
    ExportState.DONE: set(),
    ExportState.ABORTED: set(),
}


def _is_transient_part_error(exc: Exception) -> bool:
    return isinstance(exc, PartUploadError) and exc.cause is not None and is_retryable_s3(exc.cause)


class ExportCoordinator:
    """
    Drives one export: cursor -> serializer -> part builder -> worker pool ->
    multipart session.

    IDLE -> INITIATING -> STREAMING -> FINALIZING -> DONE | ABORTED

    Once the session is initiated it always ends COMPLETED or ABORTED. Any
    failure (source, serialization, part upload, completion, cancellation)
    cancels the pool, waits for in-flight uploads, aborts the session and
    re-raises the original error.
    """

    def __init__(
        self,
        source: RecordSource,
        session: MultipartSession,
        options: Optional[ExportOptions] = None,
        *,
        filter: Optional[Dict[str, Any]] = None,
        serializer=None,
    ):
        self.source = source
        self.session = session
        self.options = options or ExportOptions.from_settings()
        self.filter = filter
        self.serializer = serializer or LineSerializer(self.options.json_mode)
        self.state = ExportState.IDLE

        self.records = 0
        self.skipped = 0
        self.bytes = 0
        self.parts_dispatched = 0

        self._failure: Optional[BaseException] = None
        self._failure_lock = threading.Lock()
        self._log = logger.bind(bucket=session.bucket, key=session.key)

    # ------------------------------------------------------------------
    def run(self) -> ExportResult:
        if self.state is not ExportState.IDLE:
            raise RuntimeError(f"coordinator already ran (state={self.state.value})")
        started = time.monotonic()

        self._transition(ExportState.INITIATING)
        if self.options.chunk_size_bytes <= S3_MIN_PART_SIZE:
            self._log.warning(
                "chunk_below_s3_minimum",
                chunk_size_bytes=self.options.chunk_size_bytes,
                s3_min_part_size=S3_MIN_PART_SIZE,
            )
        try:
            upload_id = self.session.initiate()
        except BaseException:
            # niets aangemaakt, dus ook niets te aborten
            self._transition(ExportState.ABORTED)
            metrics.exports_counter.labels(result="error").inc()
            raise

        self._log.info(
            "export_started",
            upload_id=upload_id,
            chunk_size_bytes=self.options.chunk_size_bytes,
            max_concurrency=self.options.max_concurrency,
            batch_size=self.options.batch_size,
        )

        pool = BoundedWorkerPool(
            self.options.max_concurrency,
            cancel_event=self.options.cancel_event,
            on_refused=self._on_part_refused,
        )
        try:
            self._transition(ExportState.STREAMING)
            self._stream(pool)
            pool.drain()
            self._raise_if_failed()
            self._check_cancelled()

            self._transition(ExportState.FINALIZING)
            location = self._finalize()
        except BaseException as exc:
            pool.cancel()
            pool.drain()
            self._abort(exc)
            raise
        finally:
            pool.shutdown()

        self._transition(ExportState.DONE)
        elapsed = time.monotonic() - started
        metrics.exports_counter.labels(result="success").inc()
        metrics.export_duration_hist.observe(elapsed)
        self._log.info(
            "export_completed",
            location=location,
            parts=self.parts_dispatched,
            records=self.records,
            bytes=self.bytes,
            skipped=self.skipped,
            seconds=round(elapsed, 3),
        )
        return ExportResult(
            location=location,
            bucket=self.session.bucket,
            key=self.session.key,
            etag=self.session.etag,
            parts=self.parts_dispatched,
            records=self.records,
            bytes=self.bytes,
            skipped=self.skipped,
        )

    # ------------------------------------------------------------------
    def _stream(self, pool: BoundedWorkerPool) -> None:
        cursor = self._open_cursor()
        builder = PartBuilder(self.options.chunk_size_bytes)
        try:
            while True:
                self._check_cancelled()
                self._raise_if_failed()
                batch = self._read(cursor)
                if batch is None:
                    break
                for record in batch:
                    line = self._serialize(record)
                    if line is None:
                        continue
                    part = builder.add(line)
                    if part is not None:
                        self._dispatch(pool, part)
            last = builder.finish()
            if last is not None:
                self._dispatch(pool, last)
        finally:
            cursor.close()

    def _open_cursor(self) -> BatchCursor:
        try:
            return self.source.open(self.filter, self.options.batch_size)
        except ExportError:
            raise
        except Exception as e:
            raise SourceReadError(f"opening source failed: {e}", cause=e) from e

    def _read(self, cursor: BatchCursor) -> Optional[List[Any]]:
        try:
            return cursor.next_batch()
        except ExportError:
            raise
        except Exception as e:
            raise SourceReadError(f"reading source failed: {e}", cause=e) from e

    def _serialize(self, record: Any) -> Optional[bytes]:
        try:
            line = self.serializer.serialize(record)
        except SerializationError as e:
            if not self.options.skip_malformed:
                raise
            self.skipped += 1
            self._log.warning("record_skipped", record_id=e.record_id, error=str(e))
            return None
        self.records += 1
        self.bytes += len(line)
        return line

    def _dispatch(self, pool: BoundedWorkerPool, part: Part) -> None:
        self._check_cancelled()
        self._raise_if_failed()
        if part.part_number > S3_MAX_PARTS:
            raise ExportError(
                f"part {part.part_number} exceeds the S3 limit of {S3_MAX_PARTS} parts; "
                "increase chunk_size_bytes"
            )

        # geen referentie naar de future houden: de payload moet na upload vrij kunnen
        pool.submit(self._upload, part)
        self.parts_dispatched += 1
        self._log.debug("part_dispatched", part_number=part.part_number, size=part.size)
        if self.options.on_part_dispatched is not None:
            self.options.on_part_dispatched(part)

    def _upload(self, part: Part) -> UploadResult:
        # draait in een worker; de fout staat in _failure voordat drain() terugkomt
        try:
            result = self._upload_with_policy(part)
        except BaseException as exc:
            self._record_failure(exc)
            raise
        metrics.parts_counter.inc()
        metrics.part_size_hist.observe(part.size)
        self._log.debug("part_uploaded", part_number=part.part_number, size=part.size)
        return result

    def _upload_with_policy(self, part: Part) -> UploadResult:
        if self.options.part_retry_attempts == 1:
            return self.session.upload_part(part)

        def _on_retry(attempt: int, exc: Exception, sleep_s: float) -> None:
            self._log.warning(
                "part_retry", part_number=part.part_number, attempt=attempt,
                sleep_s=round(sleep_s, 2), error=str(exc),
            )

        return retry_on(
            lambda: self.session.upload_part(part),
            attempts=self.options.part_retry_attempts,
            is_retryable=_is_transient_part_error,
            on_retry=_on_retry,
            should_stop=self._stopping,
        )

    def _on_part_refused(self, part: Part) -> None:
        part.state = PartState.FAILED
        self._log.debug("part_refused", part_number=part.part_number)

    def _record_failure(self, exc: BaseException) -> None:
        with self._failure_lock:
            if self._failure is None:
                self._failure = exc

    def _stopping(self) -> bool:
        return self.options.is_cancelled() or self._failure is not None

    def _raise_if_failed(self) -> None:
        with self._failure_lock:
            exc = self._failure
        if exc is not None:
            raise exc

    def _check_cancelled(self) -> None:
        if self.options.is_cancelled():
            raise Cancelled("export cancelled by caller")

    # ------------------------------------------------------------------
    def _finalize(self) -> str:
        if self.parts_dispatched == 0:
            # lege bron: multipart zonder parts kan niet voltooid worden
            self.session.abort()
            return self.session.put_empty()

        results = self.session.sorted_results()
        if [r.part_number for r in results] != list(range(1, self.parts_dispatched + 1)):
            raise CompletionError(
                f"expected parts 1..{self.parts_dispatched}, have {[r.part_number for r in results]}"
            )
        return self.session.complete(results)

    def _abort(self, exc: BaseException) -> None:
        self._transition(ExportState.ABORTED)
        cancelled = isinstance(exc, Cancelled)
        self._log.error(
            "export_aborted",
            error_type=type(exc).__name__,
            error=str(exc),
            part_number=getattr(exc, "part_number", None),
            parts_dispatched=self.parts_dispatched,
            records=self.records,
        )
        self.session.abort()
        metrics.aborts_counter.inc()
        metrics.exports_counter.labels(result="cancelled" if cancelled else "error").inc()

    def _transition(self, target: ExportState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid export transition {self.state.value} -> {target.value}")
        self.state = target
