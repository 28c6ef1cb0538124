"""Record file URLs and protected file tokens."""

from typing import Dict, Optional

from ..models import FileToken, RecordModel
from .base_service import BaseService, encode_segment


class FileService(BaseService):
    def get_url(
        self,
        record: RecordModel,
        filename: str,
        thumb: Optional[str] = None,
        download: bool = False,
        file_token: Optional[str] = None,
    ) -> str:
        """Build the absolute URL of a file attached to ``record``.

        Returns an empty string when the record has no id or collection, or
        when ``filename`` is empty.
        """
        collection = record.collection_id or record.collection_name
        if not filename or not record.id or not collection:
            return ""

        path = (
            f"/api/files/{encode_segment(collection)}/"
            f"{encode_segment(record.id)}/{encode_segment(filename)}"
        )
        params: Dict[str, str] = {}
        if thumb:
            params["thumb"] = thumb
        if download:
            params["download"] = "true"
        if file_token:
            params["token"] = file_token
        return self.pipeline.build_url(path, params)

    async def get_token(self) -> str:
        """Request a short-lived token for protected files."""
        response = await self._send("POST", "/api/files/token", response_model=FileToken)
        return response.token
