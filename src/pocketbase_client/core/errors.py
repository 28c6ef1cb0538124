"""Error taxonomy for the PocketBase client.

Every public operation either returns its payload or raises one of the
exceptions below. ``AuthExpiredError`` is an internal signal used by the
request pipeline and is always resolved before control returns to callers.
"""

from typing import Any, Dict, Mapping, Optional

DEFAULT_ERROR_MESSAGE = "Something went wrong."


class PocketBaseError(Exception):
    """Base exception for all client errors."""

    pass


class ValidationError(PocketBaseError):
    """Raised for invalid input detected before any network call."""

    pass


class NetworkError(PocketBaseError):
    """Raised when the transport fails before a response is received."""

    def __init__(self, message: str, user_guidance: Optional[str] = None):
        super().__init__(message)
        self.user_guidance = user_guidance or ""


class NetworkConnectionError(NetworkError):
    """Connection refused, reset or otherwise unreachable."""

    pass


class NetworkTimeoutError(NetworkError):
    """Connect, read, write or pool timeout."""

    pass


class DNSResolutionError(NetworkError):
    """Server hostname could not be resolved."""

    pass


class SSLCertificateError(NetworkError):
    """TLS handshake or certificate verification failed."""

    pass


class DecodeError(PocketBaseError):
    """Raised when a response body does not match the expected shape."""

    def __init__(self, message: str, body: Any = None):
        super().__init__(message)
        self.body = body


class ApiError(PocketBaseError):
    """Structured error returned by the server for a non-2xx response.

    Attributes:
        status: HTTP status (0 when the server did not report one)
        code: Machine readable error code, if provided
        message: Human readable message
        field_errors: Mapping of field name to validation message
        url: Request URL the error belongs to, if known
        response: Raw decoded error body
    """

    def __init__(
        self,
        status: int,
        message: str = DEFAULT_ERROR_MESSAGE,
        code: Optional[str] = None,
        field_errors: Optional[Mapping[str, str]] = None,
        url: Optional[str] = None,
        response: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.field_errors: Dict[str, str] = dict(field_errors or {})
        self.url = url
        self.response = response

    def __str__(self) -> str:
        base = f"{self.status}: {self.message}"
        if self.field_errors:
            details = ", ".join(f"{k}: {v}" for k, v in self.field_errors.items())
            base = f"{base} ({details})"
        return base

    def __repr__(self) -> str:
        return (
            f"ApiError(status={self.status!r}, code={self.code!r}, "
            f"message={self.message!r}, field_errors={self.field_errors!r})"
        )

    @property
    def is_auth_failure(self) -> bool:
        return self.status == 401

    @classmethod
    def from_response(
        cls, status: int, body: Any, url: Optional[str] = None
    ) -> "ApiError":
        """Build an ApiError from a decoded PocketBase error body.

        PocketBase errors look like
        ``{"status": 400, "message": "...", "data": {"title": {"code": "...",
        "message": "..."}}}``. Bare ``{"error": "..."}`` payloads are also
        accepted. Fields missing from the body stay unset.

        Args:
            status: HTTP status of the response (or sub-response)
            body: Decoded JSON body, or raw text, or None
            url: Request URL

        Returns:
            ApiError instance
        """
        message = DEFAULT_ERROR_MESSAGE
        code: Optional[str] = None
        field_errors: Dict[str, str] = {}

        if isinstance(body, dict):
            if isinstance(body.get("message"), str) and body["message"]:
                message = body["message"]
            elif isinstance(body.get("error"), str) and body["error"]:
                message = body["error"]
                code = body["error"]
            elif isinstance(body.get("error"), dict):
                nested = body["error"]
                if isinstance(nested.get("message"), str) and nested["message"]:
                    message = nested["message"]
                if isinstance(nested.get("code"), str):
                    code = nested["code"]
                if not status and isinstance(nested.get("status"), int):
                    status = nested["status"]

            if isinstance(body.get("code"), str):
                code = body["code"]

            data = body.get("data")
            if isinstance(data, dict):
                for field_name, detail in data.items():
                    if isinstance(detail, dict):
                        field_errors[field_name] = str(
                            detail.get("message") or detail.get("code") or ""
                        )
                    elif detail is not None:
                        field_errors[field_name] = str(detail)

            if not status and isinstance(body.get("status"), int):
                status = body["status"]
        elif isinstance(body, str) and body.strip():
            message = body.strip()

        return cls(
            status=status,
            message=message,
            code=code,
            field_errors=field_errors,
            url=url,
            response=body,
        )


class AuthExpiredError(PocketBaseError):
    """Internal signal: the server rejected the attached credential."""

    def __init__(self, api_error: ApiError, token: str):
        super().__init__(str(api_error))
        self.api_error = api_error
        self.token = token
