"""Backup management (superusers only)."""

from typing import List

from ..core.formdata import FileUpload
from ..models import BackupFileInfo
from .base_service import BaseService, encode_segment


class BackupService(BaseService):
    async def get_full_list(self) -> List[BackupFileInfo]:
        return await self._send(
            "GET", "/api/backups", response_model=List[BackupFileInfo]
        )

    async def create(self, basename: str = "") -> bool:
        """Start a new backup; an empty name lets the server pick one."""
        await self._send("POST", "/api/backups", body={"name": basename})
        return True

    async def upload(self, file: FileUpload) -> bool:
        """Upload an existing backup zip, sent as multipart form data."""
        await self._send("POST", "/api/backups/upload", body={"file": file})
        return True

    async def delete(self, key: str) -> bool:
        await self._send("DELETE", f"/api/backups/{encode_segment(key)}")
        return True

    async def restore(self, key: str) -> bool:
        await self._send("POST", f"/api/backups/{encode_segment(key)}/restore")
        return True

    def get_download_url(self, file_token: str, key: str) -> str:
        """Absolute download URL; ``file_token`` comes from FileService.get_token."""
        return self.pipeline.build_url(
            f"/api/backups/{encode_segment(key)}", {"token": file_token}
        )
