"""Health check endpoint."""

from ..models import HealthCheck
from .base_service import BaseService


class HealthService(BaseService):
    async def check(self) -> HealthCheck:
        return await self._send("GET", "/api/health", response_model=HealthCheck)
