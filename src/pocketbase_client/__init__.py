"""
PocketBase Client - async Python client for the PocketBase API.

Typed access to records, auth, files and admin endpoints, built on a
request pipeline with single-flight credential refresh, an escaping query
builder and an order-preserving batch engine.
"""

__version__ = "0.3.0"

from .client import PocketBaseClient
from .config import ClientConfig, load_config
from .core.batch import BatchMethod, BatchResult, SubOperation
from .core.errors import (
    ApiError,
    DecodeError,
    NetworkError,
    PocketBaseError,
    ValidationError,
)
from .core.formdata import FileUpload
from .core.query import And, Field, Or, QuerySpec, SortField
from .models import ListResult, RecordModel

__all__ = [
    "And",
    "ApiError",
    "BatchMethod",
    "BatchResult",
    "ClientConfig",
    "DecodeError",
    "Field",
    "FileUpload",
    "ListResult",
    "NetworkError",
    "Or",
    "PocketBaseClient",
    "PocketBaseError",
    "QuerySpec",
    "RecordModel",
    "SortField",
    "SubOperation",
    "ValidationError",
    "load_config",
]
