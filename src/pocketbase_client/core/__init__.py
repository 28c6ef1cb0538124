"""Request, session and batch engine of the PocketBase client."""

from .auth_session import AuthSession, AuthState
from .auth_stores import (
    AsyncAuthStore,
    AuthStore,
    EncryptedFileAuthStore,
    FileAuthStore,
    MemoryAuthStore,
)
from .batch import (
    Batch,
    BatchEngine,
    BatchItemResult,
    BatchMethod,
    BatchResult,
    SubOperation,
)
from .credential import Credential
from .errors import (
    ApiError,
    DecodeError,
    DNSResolutionError,
    NetworkConnectionError,
    NetworkError,
    NetworkTimeoutError,
    PocketBaseError,
    SSLCertificateError,
    ValidationError,
)
from .formdata import FileUpload
from .pipeline import RequestPipeline
from .query import (
    And,
    Direction,
    Field,
    Operator,
    Or,
    Predicate,
    QuerySpec,
    RawFilter,
    SortField,
    bind_filter,
    escape_filter_value,
    render,
    unescape_filter_value,
)
from .transport import HttpxTransport, Transport, TransportRequest, TransportResponse

__all__ = [
    "And",
    "ApiError",
    "AsyncAuthStore",
    "AuthSession",
    "AuthState",
    "AuthStore",
    "Batch",
    "BatchEngine",
    "BatchItemResult",
    "BatchMethod",
    "BatchResult",
    "Credential",
    "DNSResolutionError",
    "DecodeError",
    "Direction",
    "EncryptedFileAuthStore",
    "Field",
    "FileAuthStore",
    "FileUpload",
    "HttpxTransport",
    "MemoryAuthStore",
    "NetworkConnectionError",
    "NetworkError",
    "NetworkTimeoutError",
    "Operator",
    "Or",
    "PocketBaseError",
    "Predicate",
    "QuerySpec",
    "RawFilter",
    "RequestPipeline",
    "SSLCertificateError",
    "SortField",
    "SubOperation",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "ValidationError",
    "bind_filter",
    "escape_filter_value",
    "render",
    "unescape_filter_value",
]
