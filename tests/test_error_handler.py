"""
Tests for error classification and detail extraction.
"""
import httpx
import pytest

from placeprep_client.error_handler import (
    NETWORK,
    SERVER,
    UNAUTHORIZED_RECOVERABLE,
    UNAUTHORIZED_TERMINAL,
    UNKNOWN,
    NetworkError,
    RefreshRejectedError,
    ServerError,
    SessionExpiredError,
    classify_error,
    extract_error_detail,
    format_detail,
    is_transport_failure,
    mask_credential,
)


def _status_error(status):
    request = httpx.Request("GET", "http://testserver/api/dashboard")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError("error", request=request, response=response)


class TestClassifyError:
    @pytest.mark.parametrize(
        "error, kind",
        [
            (SessionExpiredError(), UNAUTHORIZED_TERMINAL),
            (RefreshRejectedError("rejected", status_code=401), UNAUTHORIZED_TERMINAL),
            (NetworkError("down"), NETWORK),
            (ServerError("boom", status_code=500), SERVER),
            (_status_error(401), UNAUTHORIZED_RECOVERABLE),
            (_status_error(404), SERVER),
            (httpx.ReadTimeout("slow"), NETWORK),
            (RuntimeError("?"), UNKNOWN),
        ],
    )
    def test_kinds(self, error, kind):
        assert classify_error(error) == kind

    def test_session_expired_defaults_to_401(self):
        assert SessionExpiredError().status_code == 401


class TestTransportFailure:
    def test_network_and_5xx_are_transport_failures(self):
        assert is_transport_failure(NetworkError("down"))
        assert is_transport_failure(ServerError("boom", status_code=503))

    def test_4xx_and_rejections_are_not(self):
        assert not is_transport_failure(ServerError("bad", status_code=422))
        assert not is_transport_failure(RefreshRejectedError("no", status_code=401))


class TestErrorDetail:
    def test_fastapi_detail(self):
        response = httpx.Response(400, json={"detail": "Email already registered"})
        assert extract_error_detail(response) == "Email already registered"

    def test_json_without_detail(self):
        response = httpx.Response(400, json={"error": "bad"})
        assert extract_error_detail(response) == {"error": "bad"}

    def test_plain_text_is_truncated(self):
        response = httpx.Response(502, text="x" * 1000)
        assert extract_error_detail(response) == "x" * 300

    def test_empty_body(self):
        assert extract_error_detail(httpx.Response(500)) is None

    def test_format_validation_errors(self):
        detail = [
            {"loc": ["body", "email"], "msg": "value is not a valid email address"},
            {"loc": ["body", "password"], "msg": "field required"},
        ]
        assert format_detail(detail) == "value is not a valid email address; field required"

    def test_format_none(self):
        assert format_detail(None) == ""


class TestMaskCredential:
    @pytest.mark.parametrize(
        "token, masked",
        [(None, "<none>"), ("", "<none>"), ("abc", "***"), ("eyJhbGciOi.abcdef", "...abcdef")],
    )
    def test_masking(self, token, masked):
        assert mask_credential(token) == masked
