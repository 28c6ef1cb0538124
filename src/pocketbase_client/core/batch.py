"""Batch (transactional) record operations.

A batch bundles create, update, delete and upsert operations against any
number of collections into one ``POST /api/batch`` call. The server applies
them atomically; the client keeps their order and maps the single response
array back to one result per operation.

Example:
    batch = client.create_batch()
    batch.collection("posts").create({"title": "hello"})
    batch.collection("comments").delete("c1")
    results = await batch.send()
    for item in results:
        if not item.is_success:
            print(item.index, item.error)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from ..models import RecordModel
from .errors import ApiError, DecodeError, ValidationError
from .pipeline import RequestPipeline

logger = logging.getLogger(__name__)

BATCH_PATH = "/api/batch"
# PocketBase's default batch.maxRequests setting
DEFAULT_MAX_BATCH_SIZE = 50


class BatchMethod(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    UPSERT = "upsert"


_HTTP_METHODS = {
    BatchMethod.CREATE: "POST",
    BatchMethod.UPSERT: "PUT",
    BatchMethod.UPDATE: "PATCH",
    BatchMethod.DELETE: "DELETE",
}


@dataclass(frozen=True)
class SubOperation:
    """One operation inside a batch.

    UPDATE and DELETE target an existing record and need ``record_id``;
    CREATE and UPSERT carry any id in ``body``.
    """

    method: BatchMethod
    collection: str
    record_id: Optional[str] = None
    body: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.method, BatchMethod):
            try:
                object.__setattr__(self, "method", BatchMethod(self.method))
            except ValueError:
                raise ValidationError(f"Unknown batch method: {self.method!r}") from None
        if not isinstance(self.collection, str) or not self.collection.strip():
            raise ValidationError("Batch operation needs a collection name")
        if self.method in (BatchMethod.UPDATE, BatchMethod.DELETE):
            if not self.record_id:
                raise ValidationError(f"{self.method.value} operation needs a record id")
        elif self.record_id is not None:
            raise ValidationError(
                f"{self.method.value} operation takes the record id in its body"
            )
        # own copy so later caller mutation cannot change the operation
        object.__setattr__(self, "body", dict(self.body or {}))

    @property
    def http_method(self) -> str:
        return _HTTP_METHODS[self.method]

    @property
    def url(self) -> str:
        url = f"/api/collections/{quote(self.collection, safe='')}/records"
        if self.record_id:
            url += f"/{quote(self.record_id, safe='')}"
        return url

    def to_wire(self) -> Dict[str, Any]:
        wire: Dict[str, Any] = {"method": self.http_method, "url": self.url}
        if self.method is not BatchMethod.DELETE:
            wire["body"] = dict(self.body)
        return wire


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of one sub-operation, at the same index as its input."""

    index: int
    operation: SubOperation
    status: int
    record: Optional[RecordModel] = None
    error: Optional[ApiError] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    def unwrap(self) -> Optional[RecordModel]:
        """Return the record, raising the stored ApiError on failure."""
        if self.error is not None:
            raise self.error
        return self.record


class BatchResult(Sequence[BatchItemResult]):
    """Immutable ordered results, one per submitted operation."""

    def __init__(self, items: Iterable[BatchItemResult]):
        self._items: Tuple[BatchItemResult, ...] = tuple(items)

    def __getitem__(self, index):
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[BatchItemResult]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"BatchResult({len(self.succeeded)} ok, {len(self.failures)} failed)"

    @property
    def succeeded(self) -> List[BatchItemResult]:
        return [item for item in self._items if item.is_success]

    @property
    def failures(self) -> List[BatchItemResult]:
        return [item for item in self._items if not item.is_success]

    @property
    def all_succeeded(self) -> bool:
        return not self.failures


def _is_status_envelope(entry: Any) -> bool:
    return (
        isinstance(entry, dict)
        and _is_status(entry.get("status"))
        and set(entry) <= {"status", "body"}
    )


def _is_status(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_error_object(entry: Any) -> bool:
    """PocketBase error body: ``{status, message, data}`` with a 4xx/5xx status."""
    return (
        isinstance(entry, dict)
        and _is_status(entry.get("status"))
        and entry["status"] >= 400
        and ("message" in entry or "data" in entry)
    )


def _to_record(payload: Any, index: int) -> Optional[RecordModel]:
    if payload is None or payload == {}:
        return None
    if not isinstance(payload, dict):
        raise DecodeError(f"Batch entry {index} is not a record object", body=payload)
    if not payload.get("id"):
        raise DecodeError(f"Batch entry {index} is a record without an id", body=payload)
    try:
        return RecordModel.model_validate(payload)
    except PydanticValidationError as e:
        raise DecodeError(f"Batch entry {index} is not a valid record: {e}", body=payload) from e


def demultiplex(operations: Sequence[SubOperation], response: Any) -> BatchResult:
    """Map a batch response array onto the submitted operations.

    Accepted entry shapes:
      - ``{"status": int, "body": ...}``; status >= 400 is a failure
      - ``{"status": int, "message": ..., "data": ...}`` error object; a failure
      - ``{"error": ...}``; always a failure
      - a record object with an ``id``, or null/empty for deletes; a success

    Raises:
        DecodeError: If the response is not an array of the right length, or
            a success entry is not a record
    """
    if not isinstance(response, list):
        raise DecodeError("Batch response is not an array", body=response)
    if len(response) != len(operations):
        raise DecodeError(
            f"Batch response has {len(response)} entries for {len(operations)} operations",
            body=response,
        )

    items = []
    for index, (operation, entry) in enumerate(zip(operations, response)):
        if _is_status_envelope(entry):
            status = entry["status"]
            payload = entry.get("body")
            if status >= 400:
                error = ApiError.from_response(status, payload, url=operation.url)
                items.append(BatchItemResult(index, operation, status, error=error))
            else:
                record = _to_record(payload, index)
                items.append(BatchItemResult(index, operation, status, record=record))
        elif _is_error_object(entry):
            error = ApiError.from_response(entry["status"], entry, url=operation.url)
            items.append(BatchItemResult(index, operation, error.status, error=error))
        elif isinstance(entry, dict) and "error" in entry:
            error = ApiError.from_response(0, entry, url=operation.url)
            items.append(BatchItemResult(index, operation, error.status, error=error))
        else:
            record = _to_record(entry, index)
            status = 204 if record is None else 200
            items.append(BatchItemResult(index, operation, status, record=record))
    return BatchResult(items)


class BatchEngine:
    """Submits ordered sub-operations as one pipeline call."""

    def __init__(self, pipeline: RequestPipeline, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE):
        self.pipeline = pipeline
        self.max_batch_size = max_batch_size

    def validate(self, operations: Sequence[Any]) -> None:
        """Reject batches the server would refuse anyway.

        Raises:
            ValidationError: Empty, oversized or containing non-operations
        """
        if not operations:
            raise ValidationError("Batch must contain at least one operation")
        if self.max_batch_size and len(operations) > self.max_batch_size:
            raise ValidationError(
                f"Batch has {len(operations)} operations, limit is {self.max_batch_size}"
            )
        for index, operation in enumerate(operations):
            if not isinstance(operation, SubOperation):
                raise ValidationError(
                    f"Batch entry {index} is not a SubOperation: {type(operation).__name__}"
                )

    async def submit(self, operations: Iterable[SubOperation]) -> BatchResult:
        """Send the operations in order and return per-operation results.

        Raises:
            ValidationError: Before any network call, for invalid input
            NetworkError: Transport failure
            ApiError: The batch request as a whole was rejected
            DecodeError: Response could not be matched to the operations
        """
        ops = tuple(operations)
        self.validate(ops)

        body = {"requests": [op.to_wire() for op in ops]}
        logger.debug(f"Submitting batch of {len(ops)} operations")
        response = await self.pipeline.execute("POST", BATCH_PATH, body=body)

        result = demultiplex(ops, response)
        if result.failures:
            logger.info(f"Batch finished with {len(result.failures)} failed operations")
        return result


class SubBatch:
    """Queues operations for one collection into the parent batch."""

    def __init__(self, batch: "Batch", collection: str):
        self._batch = batch
        self.collection = collection

    def create(self, body: Mapping[str, Any]) -> "SubBatch":
        self._batch.add(SubOperation(BatchMethod.CREATE, self.collection, body=body))
        return self

    def upsert(self, body: Mapping[str, Any]) -> "SubBatch":
        self._batch.add(SubOperation(BatchMethod.UPSERT, self.collection, body=body))
        return self

    def update(self, record_id: str, body: Mapping[str, Any]) -> "SubBatch":
        self._batch.add(
            SubOperation(BatchMethod.UPDATE, self.collection, record_id=record_id, body=body)
        )
        return self

    def delete(self, record_id: str) -> "SubBatch":
        self._batch.add(SubOperation(BatchMethod.DELETE, self.collection, record_id=record_id))
        return self


class Batch:
    """Builder collecting operations across collections in call order."""

    def __init__(self, engine: BatchEngine):
        self._engine = engine
        self._operations: List[SubOperation] = []

    def collection(self, name: str) -> SubBatch:
        return SubBatch(self, name)

    def add(self, operation: SubOperation) -> "Batch":
        self._operations.append(operation)
        return self

    @property
    def operations(self) -> Tuple[SubOperation, ...]:
        return tuple(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    async def send(self) -> BatchResult:
        return await self._engine.submit(self._operations)
