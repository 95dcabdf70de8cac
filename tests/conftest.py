import os
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")  # moto/boto3 willen credentials zien
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

import threading
import time
from typing import Any, Callable, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError

from bulkexport.engine.serializer import LineSerializer


def client_error(code: str, status: int = 400, op: str = "UploadPart") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"simulated {code}"},
            "ResponseMetadata": {"HTTPStatusCode": status, "RequestId": "req-1"},
        },
        op,
    )


def wait_until(pred: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.005)
    return False


class FakeS3:
    """
    Recording stand-in for a boto3 S3 client (multipart subset).

    - fail_on[n]: exception (always) or list of exceptions (one per attempt)
      raised by upload_part for part n
    - hooks[n]: called at the start of upload_part for part n
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.calls: List[tuple] = []
        self.parts: Dict[int, bytes] = {}
        self.upload_order: List[int] = []
        self.fail_on: Dict[int, Any] = {}
        self.hooks: Dict[int, Callable[[], None]] = {}
        self.create_error: Optional[Exception] = None
        self.complete_error: Optional[Exception] = None
        self.abort_error: Optional[Exception] = None
        self.completed_parts: Optional[List[dict]] = None
        self.objects: Dict[str, bytes] = {}

    def _record(self, op: str, **kwargs) -> None:
        with self.lock:
            self.calls.append((op, kwargs))

    def count(self, op: str) -> int:
        with self.lock:
            return sum(1 for name, _ in self.calls if name == op)

    def create_multipart_upload(self, Bucket, Key, **kwargs):
        self._record("create_multipart_upload", Bucket=Bucket, Key=Key, **kwargs)
        if self.create_error:
            raise self.create_error
        return {"UploadId": "upload-1", "Bucket": Bucket, "Key": Key}

    def upload_part(self, Bucket, Key, UploadId, PartNumber, Body):
        self._record("upload_part", PartNumber=PartNumber, size=len(Body))
        hook = self.hooks.get(PartNumber)
        if hook:
            hook()
        err = self.fail_on.get(PartNumber)
        if isinstance(err, list):
            if err:
                raise err.pop(0)
        elif err is not None:
            raise err
        with self.lock:
            self.parts[PartNumber] = bytes(Body)
            self.upload_order.append(PartNumber)
        return {"ETag": f'"etag-{PartNumber}"'}

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        self._record("complete_multipart_upload", Parts=MultipartUpload["Parts"])
        if self.complete_error:
            raise self.complete_error
        parts = MultipartUpload["Parts"]
        self.completed_parts = parts
        self.objects[Key] = b"".join(self.parts[p["PartNumber"]] for p in parts)
        return {"ETag": '"final-etag"', "Location": f"https://{Bucket}.s3.amazonaws.com/{Key}"}

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self._record("abort_multipart_upload", UploadId=UploadId)
        if self.abort_error:
            raise self.abort_error
        return {}

    def put_object(self, Bucket, Key, Body, **kwargs):
        self._record("put_object", Key=Key, size=len(Body))
        self.objects[Key] = bytes(Body)
        return {"ETag": '"empty-etag"'}


class CountingCursor:
    def __init__(self, owner: "BatchListSource"):
        self._owner = owner
        self._i = 0

    def next_batch(self):
        self._owner.reads += 1
        if self._owner.fail_at is not None and self._owner.reads == self._owner.fail_at:
            raise self._owner.error
        if self._i >= len(self._owner.batches):
            return None
        batch = self._owner.batches[self._i]
        self._i += 1
        return list(batch)

    def close(self):
        self._owner.closed = True


class BatchListSource:
    """Source with explicit batches; counts next_batch calls."""

    def __init__(self, batches, *, fail_at: Optional[int] = None, error: Optional[Exception] = None):
        self.batches = batches
        self.reads = 0
        self.closed = False
        self.fail_at = fail_at
        self.error = error or ConnectionError("cursor lost")
        self.opened_with = None

    def open(self, filter, batch_size):
        self.opened_with = (filter, batch_size)
        return CountingCursor(self)


def make_records(n: int, start: int = 0, payload: int = 20) -> List[dict]:
    # vaste breedte zodat elke regel even lang is
    return [{"_id": f"{i:06d}", "v": "x" * payload} for i in range(start, start + n)]


def ndjson(records) -> bytes:
    s = LineSerializer()
    return b"".join(s.serialize(r) for r in records)


def line_len(payload: int = 20) -> int:
    return len(LineSerializer().serialize(make_records(1, payload=payload)[0]))


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()
