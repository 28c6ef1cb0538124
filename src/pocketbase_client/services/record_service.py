"""Record service: CRUD plus auth flows for one collection.

Auth methods that return ``{token, record}`` install the new credential in
the client's auth session. Updating or deleting the record the session is
authenticated as keeps the session in sync.
"""

import logging
from typing import Any, Mapping, Optional

from ..core.auth_session import AUTHORIZATION_HEADER, AuthSession
from ..core.credential import Credential
from ..core.pipeline import RequestPipeline
from ..core.query import QuerySpec
from ..models import (
    SUPERUSERS_COLLECTION,
    AuthMethodsList,
    AuthResponse,
    OTPResponse,
    RecordModel,
)
from .base_service import encode_segment
from .crud_service import CrudService

logger = logging.getLogger(__name__)


class RecordService(CrudService[RecordModel]):
    """Records of a single collection, addressed by id or name."""

    model = RecordModel

    def __init__(
        self,
        pipeline: RequestPipeline,
        session: AuthSession,
        collection_id_or_name: str,
    ):
        super().__init__(pipeline)
        self.session = session
        self.collection_id_or_name = collection_id_or_name

    @property
    def base_collection_path(self) -> str:
        return f"/api/collections/{encode_segment(self.collection_id_or_name)}"

    @property
    def base_crud_path(self) -> str:
        return f"{self.base_collection_path}/records"

    @property
    def is_superusers(self) -> bool:
        return self.collection_id_or_name == SUPERUSERS_COLLECTION

    def _is_session_record(self, record_id: str) -> bool:
        record = self.session.record
        return (
            record is not None
            and record.id == record_id
            and self.collection_id_or_name
            in (record.collection_id, record.collection_name)
        )

    async def update(
        self,
        item_id: str,
        body: Mapping[str, Any],
        query: Optional[QuerySpec] = None,
    ) -> RecordModel:
        item = await super().update(item_id, body, query)
        if self._is_session_record(item.id):
            token = self.session.token
            if token:
                logger.debug("Updated record is the session record, refreshing snapshot")
                self.session.save(token, item)
        return item

    async def delete(self, item_id: str) -> bool:
        await super().delete(item_id)
        if self._is_session_record(item_id):
            logger.info("Deleted record is the session record, clearing session")
            self.session.clear()
        return True

    # Auth handlers

    def _install(self, response: AuthResponse) -> AuthResponse:
        self.session.save(response.token, response.record)
        return response

    async def list_auth_methods(self) -> AuthMethodsList:
        return await self._send(
            "GET",
            f"{self.base_collection_path}/auth-methods",
            requires_auth=False,
            response_model=AuthMethodsList,
        )

    async def auth_with_password(
        self,
        identity: str,
        password: str,
        query: Optional[QuerySpec] = None,
    ) -> AuthResponse:
        """Authenticate with identity (email or username) and password."""
        response = await self._send(
            "POST",
            f"{self.base_collection_path}/auth-with-password",
            query=query,
            body={"identity": identity, "password": password},
            requires_auth=False,
            response_model=AuthResponse,
        )
        logger.info(f"Authenticated as {response.record.id} in {self.collection_id_or_name}")
        return self._install(response)

    async def auth_refresh(self, query: Optional[QuerySpec] = None) -> AuthResponse:
        """Exchange the held token for a fresh one.

        The held token is sent even when the session is marked expired, so
        this can serve as a refresh handler.
        """
        token = self.session.token
        headers = {AUTHORIZATION_HEADER: token} if token else None
        response = await self.pipeline.execute(
            "POST",
            f"{self.base_collection_path}/auth-refresh",
            query=query,
            requires_auth=False,
            headers=headers,
            response_model=AuthResponse,
            allow_refresh=False,
        )
        return self._install(response)

    async def request_otp(self, email: str) -> OTPResponse:
        return await self._send(
            "POST",
            f"{self.base_collection_path}/request-otp",
            body={"email": email},
            requires_auth=False,
            response_model=OTPResponse,
        )

    async def auth_with_otp(
        self, otp_id: str, password: str, query: Optional[QuerySpec] = None
    ) -> AuthResponse:
        response = await self._send(
            "POST",
            f"{self.base_collection_path}/auth-with-otp",
            query=query,
            body={"otpId": otp_id, "password": password},
            requires_auth=False,
            response_model=AuthResponse,
        )
        return self._install(response)

    async def impersonate(self, record_id: str, duration: int = 0) -> AuthResponse:
        """Issue a token for another record (superusers only).

        The current session is left untouched; the caller decides where the
        returned credential goes.
        """
        return await self._send(
            "POST",
            f"{self.base_collection_path}/impersonate/{encode_segment(record_id)}",
            body={"duration": duration},
            response_model=AuthResponse,
        )

    async def request_password_reset(self, email: str) -> bool:
        await self._send(
            "POST",
            f"{self.base_collection_path}/request-password-reset",
            body={"email": email},
            requires_auth=False,
        )
        return True

    async def confirm_password_reset(
        self, reset_token: str, password: str, password_confirm: str
    ) -> bool:
        await self._send(
            "POST",
            f"{self.base_collection_path}/confirm-password-reset",
            body={
                "token": reset_token,
                "password": password,
                "passwordConfirm": password_confirm,
            },
            requires_auth=False,
        )
        return True

    async def request_verification(self, email: str) -> bool:
        await self._send(
            "POST",
            f"{self.base_collection_path}/request-verification",
            body={"email": email},
            requires_auth=False,
        )
        return True

    async def confirm_verification(self, verification_token: str) -> bool:
        await self._send(
            "POST",
            f"{self.base_collection_path}/confirm-verification",
            body={"token": verification_token},
            requires_auth=False,
        )
        return True

    async def request_email_change(self, new_email: str) -> bool:
        await self._send(
            "POST",
            f"{self.base_collection_path}/request-email-change",
            body={"newEmail": new_email},
        )
        return True

    async def confirm_email_change(self, change_token: str, password: str) -> bool:
        await self._send(
            "POST",
            f"{self.base_collection_path}/confirm-email-change",
            body={"token": change_token, "password": password},
            requires_auth=False,
        )
        return True


def password_refresh_handler(
    records: RecordService, identity: str, password: str
):
    """Build a refresh handler that re-authenticates with a password.

    Example:
        users = client.collection("users")
        client.set_refresh_handler(password_refresh_handler(users, "a@b.c", "secret"))
    """

    async def _handler(session: AuthSession) -> Optional[Credential]:
        await records.auth_with_password(identity, password)
        return session.credential

    return _handler


def token_refresh_handler(records: RecordService):
    """Build a refresh handler that calls ``auth-refresh`` with the held token."""

    async def _handler(session: AuthSession) -> Optional[Credential]:
        await records.auth_refresh()
        return session.credential

    return _handler
