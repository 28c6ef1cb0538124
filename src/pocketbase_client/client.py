"""PocketBase client facade.

Wires one AuthSession, one Transport and one RequestPipeline together and
exposes the services built on top of them.

Example:
    async with PocketBaseClient("http://127.0.0.1:8090") as pb:
        await pb.collection("users").auth_with_password("a@b.c", "secret")
        page = await pb.collection("posts").get_list(
            1, 20, QuerySpec(filter=Field("published").eq(True), sort=("-created",))
        )
"""

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .config import DEFAULT_BASE_URL, ClientConfig, load_config
from .core.auth_session import AuthSession, RefreshHandler
from .core.auth_stores import AuthStore, EncryptedFileAuthStore, FileAuthStore, MemoryAuthStore
from .core.batch import Batch, BatchEngine
from .core.pipeline import QueryLike, RequestPipeline
from .core.query import bind_filter
from .core.transport import HttpxTransport, Transport
from .services.backup_service import BackupService
from .services.collection_service import CollectionService
from .services.cron_service import CronService
from .services.file_service import FileService
from .services.health_service import HealthService
from .services.log_service import LogService
from .services.record_service import (
    RecordService,
    password_refresh_handler,
    token_refresh_handler,
)
from .services.settings_service import SettingsService

logger = logging.getLogger(__name__)


def store_from_config(config: ClientConfig) -> AuthStore:
    """Pick the auth store matching ``auth_file``/``encrypt_auth_file``."""
    if not config.auth_file:
        return MemoryAuthStore()
    path = Path(config.auth_file).expanduser()
    if config.encrypt_auth_file:
        return EncryptedFileAuthStore(path)
    return FileAuthStore(path)


class PocketBaseClient:
    """Entry point for talking to one PocketBase server."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        config: Optional[ClientConfig] = None,
        auth_store: Optional[AuthStore] = None,
        transport: Optional[Transport] = None,
        refresh_handler: Optional[RefreshHandler] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Server address; overrides ``config.base_url``
            config: Full configuration (defaults used when omitted)
            auth_store: Credential persistence; derived from config if None
            transport: Transport to use; an HttpxTransport if None
            refresh_handler: Called once to refresh a rejected credential
        """
        if config is None:
            config = ClientConfig(base_url=base_url or DEFAULT_BASE_URL)
        elif base_url:
            config = dataclasses.replace(config, base_url=base_url)
        self.config = config

        self.auth = AuthSession(auth_store or store_from_config(config))
        if self.auth.restore():
            logger.debug("Restored persisted session")

        self.transport = transport or HttpxTransport(
            timeout=config.timeout, verify=config.verify_ssl
        )
        self.pipeline = RequestPipeline(
            config.base_url,
            self.auth,
            self.transport,
            lang=config.lang,
            refresh_handler=refresh_handler,
        )
        self.batch_engine = BatchEngine(self.pipeline, config.max_batch_size)

        self._record_services: Dict[str, RecordService] = {}
        self.collections = CollectionService(self.pipeline)
        self.files = FileService(self.pipeline)
        self.health = HealthService(self.pipeline)
        self.settings = SettingsService(self.pipeline)
        self.logs = LogService(self.pipeline)
        self.backups = BackupService(self.pipeline)
        self.crons = CronService(self.pipeline)

    @classmethod
    def from_config(
        cls, config_path: Optional[str] = None, use_env: bool = True, **kwargs: Any
    ) -> "PocketBaseClient":
        """Build a client from a config file and POCKETBASE_* variables."""
        return cls(config=load_config(config_path, use_env), **kwargs)

    @property
    def base_url(self) -> str:
        return self.config.base_url

    def collection(self, id_or_name: str) -> RecordService:
        """Return the (cached) record service for a collection."""
        if id_or_name not in self._record_services:
            self._record_services[id_or_name] = RecordService(
                self.pipeline, self.auth, id_or_name
            )
        return self._record_services[id_or_name]

    def create_batch(self) -> Batch:
        return Batch(self.batch_engine)

    def filter(self, raw: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """Bind ``{:name}`` placeholders in a raw filter expression."""
        return bind_filter(raw, params)

    def build_url(self, path: str, query: QueryLike = None) -> str:
        return self.pipeline.build_url(path, query)

    def set_refresh_handler(self, handler: Optional[RefreshHandler]) -> None:
        self.pipeline.refresh_handler = handler

    def use_password_refresh(self, collection: str, identity: str, password: str) -> None:
        """Re-authenticate with a password whenever the token is rejected."""
        self.set_refresh_handler(
            password_refresh_handler(self.collection(collection), identity, password)
        )

    def use_token_refresh(self, collection: str) -> None:
        """Call ``auth-refresh`` with the held token whenever it is rejected."""
        self.set_refresh_handler(token_refresh_handler(self.collection(collection)))

    async def send(
        self,
        path: str,
        method: str = "GET",
        *,
        query: QueryLike = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        requires_auth: bool = True,
        response_model: Any = None,
    ) -> Any:
        """Call an arbitrary route (for example a custom server endpoint)."""
        return await self.pipeline.execute(
            method,
            path,
            query=query,
            body=body,
            requires_auth=requires_auth,
            headers=headers,
            response_model=response_model,
        )

    async def impersonate(
        self, collection: str, record_id: str, duration: int = 0
    ) -> "PocketBaseClient":
        """Return a new memory-only client authenticated as another record."""
        response = await self.collection(collection).impersonate(record_id, duration)
        impersonated = PocketBaseClient(
            config=dataclasses.replace(self.config, auth_file=None),
            auth_store=MemoryAuthStore(),
        )
        impersonated.auth.save(response.token, response.record)
        return impersonated

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "PocketBaseClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
