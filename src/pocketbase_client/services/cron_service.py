"""Cron job listing and manual runs (superusers only)."""

from typing import List

from ..models import CronJob
from .base_service import BaseService, encode_segment


class CronService(BaseService):
    async def get_full_list(self) -> List[CronJob]:
        return await self._send("GET", "/api/crons", response_model=List[CronJob])

    async def run(self, job_id: str) -> bool:
        await self._send("POST", f"/api/crons/{encode_segment(job_id)}")
        return True
