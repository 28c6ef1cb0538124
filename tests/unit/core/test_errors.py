"""Unit tests for error parsing and network error classification."""

import httpx
import pytest

from pocketbase_client.core.errors import (
    DEFAULT_ERROR_MESSAGE,
    ApiError,
    DNSResolutionError,
    NetworkConnectionError,
    NetworkTimeoutError,
    SSLCertificateError,
)
from pocketbase_client.core.network_error_handler import (
    NetworkErrorHandler,
    UserGuidance,
)


class TestApiErrorFromResponse:
    """Test building ApiError from PocketBase error bodies."""

    def test_standard_error_body(self):
        body = {
            "status": 400,
            "message": "Failed to create record.",
            "data": {
                "title": {"code": "validation_required", "message": "Missing required value."}
            },
        }
        error = ApiError.from_response(400, body, url="http://pb.test/api/x")

        assert error.status == 400
        assert error.message == "Failed to create record."
        assert error.field_errors == {"title": "Missing required value."}
        assert error.url == "http://pb.test/api/x"
        assert error.response is body

    def test_bare_error_string_sets_code_and_message(self):
        error = ApiError.from_response(409, {"error": "conflict"})
        assert error.code == "conflict"
        assert error.message == "conflict"

    def test_nested_error_object(self):
        body = {"error": {"status": 404, "code": "not_found", "message": "Missing."}}
        error = ApiError.from_response(0, body)
        assert error.status == 404
        assert error.code == "not_found"
        assert error.message == "Missing."

    def test_missing_fields_stay_unset(self):
        error = ApiError.from_response(500, {})
        assert error.message == DEFAULT_ERROR_MESSAGE
        assert error.code is None
        assert error.field_errors == {}

    def test_text_body_becomes_message(self):
        error = ApiError.from_response(502, "  Bad Gateway \n")
        assert error.message == "Bad Gateway"

    def test_field_error_without_message_falls_back_to_code(self):
        error = ApiError.from_response(400, {"data": {"email": {"code": "invalid_email"}}})
        assert error.field_errors == {"email": "invalid_email"}

    def test_status_from_body_used_only_when_missing(self):
        assert ApiError.from_response(0, {"status": 403}).status == 403
        assert ApiError.from_response(401, {"status": 403}).status == 401

    def test_str_includes_field_errors(self):
        error = ApiError(400, "Invalid.", field_errors={"name": "Too short."})
        assert str(error) == "400: Invalid. (name: Too short.)"

    def test_is_auth_failure(self):
        assert ApiError(401).is_auth_failure
        assert not ApiError(403).is_auth_failure


class TestNetworkErrorHandler:
    """Test classification of httpx exceptions."""

    @pytest.fixture
    def handler(self):
        return NetworkErrorHandler()

    def test_connect_timeout(self, handler):
        error = handler.classify(httpx.ConnectTimeout("timed out"))
        assert isinstance(error, NetworkTimeoutError)
        assert "Connection timed out" in str(error)

    def test_read_timeout(self, handler):
        error = handler.classify(httpx.ReadTimeout("timed out"))
        assert isinstance(error, NetworkTimeoutError)
        assert "Request timed out" in str(error)

    @pytest.mark.parametrize(
        "message",
        [
            "[Errno -2] Name or service not known",
            "Temporary failure in name resolution",
            "getaddrinfo failed",
        ],
    )
    def test_dns_failures(self, handler, message):
        assert isinstance(handler.classify(httpx.ConnectError(message)), DNSResolutionError)

    def test_ssl_failure(self, handler):
        error = handler.classify(
            httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed")
        )
        assert isinstance(error, SSLCertificateError)

    def test_connection_refused(self, handler):
        error = handler.classify(httpx.ConnectError("[Errno 111] Connection refused"))
        assert type(error) is NetworkConnectionError
        assert "Cannot connect to server" in str(error)

    def test_protocol_error(self, handler):
        error = handler.classify(httpx.RemoteProtocolError("Server disconnected"))
        assert isinstance(error, NetworkConnectionError)
        assert "Malformed response" in str(error)

    def test_unknown_error(self, handler):
        error = handler.classify(RuntimeError("boom"))
        assert isinstance(error, NetworkConnectionError)
        assert "Unknown network error" in str(error)

    def test_guidance_is_attached(self, handler):
        error = handler.classify(httpx.ConnectError("Connection refused"))
        assert "Network Connection Error" in error.user_guidance
        assert "Troubleshooting Steps" in error.user_guidance


class TestUserGuidance:
    def test_format_for_console_numbers_steps(self):
        guidance = UserGuidance(
            error_type="Test Error",
            troubleshooting_steps=["first", "second"],
            additional_notes=["note"],
        )
        text = guidance.format_for_console()
        assert "1. first" in text
        assert "2. second" in text
        assert "• note" in text

    def test_notes_section_omitted_when_empty(self):
        text = UserGuidance("Test Error", ["only"]).format_for_console()
        assert "Additional Notes" not in text
