"""Request logs (superusers only)."""

from typing import List, Optional

from ..core.query import QuerySpec
from ..models import HourlyStats, ListResult, LogModel
from .base_service import BaseService, encode_segment
from .crud_service import DEFAULT_PER_PAGE


class LogService(BaseService):
    async def get_list(
        self,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        query: Optional[QuerySpec] = None,
    ) -> ListResult[LogModel]:
        spec = (query or QuerySpec()).replace(page=page, per_page=per_page)
        return await self._send(
            "GET", "/api/logs", query=spec, response_model=ListResult[LogModel]
        )

    async def get_one(self, log_id: str) -> LogModel:
        return await self._send(
            "GET", f"/api/logs/{encode_segment(log_id)}", response_model=LogModel
        )

    async def get_stats(self, query: Optional[QuerySpec] = None) -> List[HourlyStats]:
        """Hourly request counts, optionally narrowed by a filter."""
        return await self._send(
            "GET", "/api/logs/stats", query=query, response_model=List[HourlyStats]
        )
