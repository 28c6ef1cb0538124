"""Base class for API services.

Services are thin: they build paths and bodies and hand everything to the
shared RequestPipeline, so auth decoration, error mapping and the
refresh-and-retry behaviour are identical for every endpoint.
"""

from typing import Any, Mapping, Optional
from urllib.parse import quote

from ..core.pipeline import QueryLike, RequestPipeline


def encode_segment(value: str) -> str:
    """Percent-encode a single path segment."""
    return quote(value, safe="")


class BaseService:
    """Common plumbing shared by all services."""

    def __init__(self, pipeline: RequestPipeline):
        self.pipeline = pipeline

    async def _send(
        self,
        method: str,
        path: str,
        *,
        query: QueryLike = None,
        body: Any = None,
        requires_auth: bool = True,
        headers: Optional[Mapping[str, str]] = None,
        response_model: Any = None,
    ) -> Any:
        return await self.pipeline.execute(
            method,
            path,
            query=query,
            body=body,
            requires_auth=requires_auth,
            headers=headers,
            response_model=response_model,
        )
