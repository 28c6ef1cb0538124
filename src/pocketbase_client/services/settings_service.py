"""Application settings (superusers only)."""

from typing import Any, Dict, Mapping, Optional

from .base_service import BaseService


class SettingsService(BaseService):
    async def get_all(self) -> Dict[str, Any]:
        return await self._send("GET", "/api/settings", response_model=Dict[str, Any])

    async def update(self, body: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._send(
            "PATCH", "/api/settings", body=dict(body), response_model=Dict[str, Any]
        )

    async def test_s3(self, filesystem: str = "storage") -> bool:
        """Test the S3 connection of ``storage`` or ``backups``."""
        await self._send(
            "POST", "/api/settings/test/s3", body={"filesystem": filesystem}
        )
        return True

    async def test_email(
        self, to_email: str, template: str, collection: Optional[str] = None
    ) -> bool:
        """Send a test email using one of the auth email templates."""
        body: Dict[str, Any] = {"email": to_email, "template": template}
        if collection:
            body["collection"] = collection
        await self._send("POST", "/api/settings/test/email", body=body)
        return True

    async def generate_apple_client_secret(
        self,
        client_id: str,
        team_id: str,
        key_id: str,
        private_key: str,
        duration: int,
    ) -> Dict[str, Any]:
        return await self._send(
            "POST",
            "/api/settings/apple/generate-client-secret",
            body={
                "clientId": client_id,
                "teamId": team_id,
                "keyId": key_id,
                "privateKey": private_key,
                "duration": duration,
            },
            response_model=Dict[str, Any],
        )
