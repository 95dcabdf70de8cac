import pytest
from botocore.exceptions import EndpointConnectionError, ParamValidationError

from bulkexport.aws import s3_errors
from bulkexport.core.errors import (
    BackendUnavailable,
    Cancelled,
    InvalidTarget,
    PartUploadError,
    SerializationError,
)
from bulkexport.infra import retry

from conftest import client_error


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    slept = []
    monkeypatch.setattr(retry.time, "sleep", slept.append)
    return slept


# -------------------------
# retry_on
# -------------------------
def test_retry_succeeds_after_transient_failures(no_sleep):
    calls = {"n": 0}

    def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise ConnectionError("reset")
        return "ok"

    assert retry.retry_on(flaky, attempts=3) == "ok"
    assert calls["n"] == 3
    assert len(no_sleep) == 2


def test_retry_gives_up_with_last_error():
    def always():
        raise TimeoutError("still down")

    with pytest.raises(TimeoutError):
        retry.retry_on(always, attempts=2)


def test_non_retryable_propagates_immediately(no_sleep):
    calls = {"n": 0}

    def bad():
        calls["n"] += 1
        raise ValueError("permanent")

    with pytest.raises(ValueError):
        retry.retry_on(bad, attempts=5, is_retryable=lambda e: not isinstance(e, ValueError))
    assert calls["n"] == 1
    assert no_sleep == []


def test_should_stop_ends_retry_loop():
    calls = {"n": 0}

    def down():
        calls["n"] += 1
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        retry.retry_on(down, attempts=10, should_stop=lambda: True)
    assert calls["n"] == 1


def test_backoff_doubles_and_is_capped():
    assert 0.2 <= retry.backoff_delay(1) <= 0.25
    assert 0.4 <= retry.backoff_delay(2) <= 0.5
    for attempt in range(1, 12):
        assert 0 < retry.backoff_delay(attempt, cap=1.0) <= 1.25


def test_retry_reports_each_retry_and_stops_when_told(no_sleep):
    seen = []
    calls = {"n": 0}

    def down():
        calls["n"] += 1
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        retry.retry_on(
            down,
            attempts=10,
            on_retry=lambda attempt, exc, s: seen.append(attempt),
            should_stop=lambda: calls["n"] >= 3,
        )
    assert calls["n"] == 3
    assert seen == [1, 2]
    assert len(no_sleep) == 2


def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        retry.retry_on(lambda: None, attempts=0)


# -------------------------
# S3 classificatie
# -------------------------
@pytest.mark.parametrize(
    "exc,retryable",
    [
        (client_error("SlowDown", 503), True),
        (client_error("InternalError", 500), True),
        (client_error("RequestTimeout", 400), True),
        (client_error("AccessDenied", 403), False),
        (client_error("NoSuchUpload", 404), False),
        (EndpointConnectionError(endpoint_url="https://s3.example"), True),
        (ValueError("x"), False),
    ],
)
def test_is_retryable_s3(exc, retryable):
    assert s3_errors.is_retryable_s3(exc) is retryable


def test_classify_missing_bucket():
    err = s3_errors.classify_initiate_error(client_error("NoSuchBucket", 404), "b", "k")
    assert isinstance(err, InvalidTarget)
    assert err.http_status == 404
    assert err.code == "invalid_target"


def test_classify_access_denied_is_forbidden():
    err = s3_errors.classify_initiate_error(client_error("AccessDenied", 403), "b", "k")
    assert isinstance(err, InvalidTarget)
    assert err.http_status == 403


def test_classify_rejected_parameters_is_invalid_target():
    err = s3_errors.classify_initiate_error(ParamValidationError(report="Invalid length for parameter Key"), "b", "")
    assert isinstance(err, InvalidTarget)


def test_classify_outage_is_backend_unavailable():
    err = s3_errors.classify_initiate_error(client_error("ServiceUnavailable", 503), "b", "k")
    assert isinstance(err, BackendUnavailable)
    assert err.http_status == 503


def test_describe():
    assert s3_errors.describe(client_error("SlowDown", 503)) == "SlowDown (http=503)"
    assert s3_errors.describe(ValueError()) == "ValueError"


# -------------------------
# Error payloads
# -------------------------
def test_part_upload_error_payload():
    cause = client_error("InternalError", 500)
    err = PartUploadError(7, cause)
    payload = err.to_dict()
    assert payload["part_number"] == 7
    assert payload["code"] == err.code
    assert err.cause is cause


def test_error_statuses():
    assert Cancelled().http_status == 499
    assert SerializationError("bad", record_id="x").record_id == "x"
