"""Persistence backends for the auth session.

The session works with any object implementing ``AuthStore``. Provided are
an in-memory no-op store, a plain JSON file store, a Fernet-encrypted file
store and an async store handing serialized state to caller coroutines.
File stores write atomically (temp file plus ``os.replace``) with owner-only
permissions.
"""

import asyncio
import json
import logging
import os
import tempfile
from collections import deque
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from .credential import Credential

logger = logging.getLogger(__name__)

DEFAULT_AUTH_FILENAME = ".pocketbase_auth"


class AuthStore:
    """Interface for credential persistence."""

    def load(self) -> Optional[Credential]:
        raise NotImplementedError

    def save(self, credential: Credential) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryAuthStore(AuthStore):
    """No-op store; the session keeps the credential in memory only."""

    def load(self) -> Optional[Credential]:
        return None

    def save(self, credential: Credential) -> None:
        pass

    def clear(self) -> None:
        pass


def _atomic_write(path: Path, data: bytes) -> None:
    """Write bytes via temp file + rename with 0600 permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_fd, temp_path = tempfile.mkstemp(suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(temp_fd, "wb") as f:
            f.write(data)
        os.chmod(temp_path, 0o600)
        os.replace(temp_path, path)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


class FileAuthStore(AuthStore):
    """Stores ``{"token": ..., "record": ...}`` as JSON in a file."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path) if path else Path.cwd() / DEFAULT_AUTH_FILENAME

    def _serialize(self, payload: Dict[str, Any]) -> bytes:
        return json.dumps(payload, indent=2).encode("utf-8")

    def _deserialize(self, data: bytes) -> Dict[str, Any]:
        payload = json.loads(data.decode("utf-8"))
        if not isinstance(payload, dict):
            raise ValueError("auth file does not contain an object")
        return payload

    def load(self) -> Optional[Credential]:
        """Load the stored credential, or None if absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            payload = self._deserialize(self.path.read_bytes())
            return Credential.from_dict(payload)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable auth file {self.path}: {e}")
            return None

    def save(self, credential: Credential) -> None:
        _atomic_write(self.path, self._serialize(credential.to_dict()))
        logger.debug(f"Saved credential to {self.path}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug(f"Removed auth file {self.path}")


class EncryptedFileAuthStore(FileAuthStore):
    """File store encrypting its contents with Fernet.

    The key lives next to the auth file (``<auth file>.key``) unless given
    explicitly, and is generated on first save.
    """

    def __init__(
        self,
        path: Union[str, Path, None] = None,
        key_path: Union[str, Path, None] = None,
    ):
        super().__init__(path)
        self.key_path = (
            Path(key_path) if key_path else self.path.with_name(self.path.name + ".key")
        )

    def _get_key(self, create: bool) -> bytes:
        if self.key_path.exists():
            return self.key_path.read_bytes()
        if not create:
            raise ValueError(f"Encryption key not found: {self.key_path}")
        key = Fernet.generate_key()
        _atomic_write(self.key_path, key)
        return key

    def _serialize(self, payload: Dict[str, Any]) -> bytes:
        fernet = Fernet(self._get_key(create=True))
        return fernet.encrypt(super()._serialize(payload))

    def _deserialize(self, data: bytes) -> Dict[str, Any]:
        fernet = Fernet(self._get_key(create=False))
        try:
            decrypted = fernet.decrypt(data)
        except InvalidToken as e:
            raise ValueError("Failed to decrypt auth file") from e
        return super()._deserialize(decrypted)

    def clear(self) -> None:
        super().clear()
        if self.key_path.exists():
            self.key_path.unlink()


AsyncSaveFunc = Callable[[str], Awaitable[None]]
AsyncClearFunc = Callable[[], Awaitable[None]]


class AsyncAuthStore(AuthStore):
    """Store persisting through caller-supplied coroutines.

    ``save`` and ``clear`` stay synchronous for the session; the writes they
    produce run in call order on the event loop, one at a time. Failures of
    ``save_func``/``clear_func`` are logged, never raised to the session.

    Args:
        save_func: Receives the JSON serialized ``{token, record}`` state
        clear_func: Called on clear; defaults to ``save_func("")``
        initial: Previously serialized state returned by ``load``
    """

    def __init__(
        self,
        save_func: AsyncSaveFunc,
        clear_func: Optional[AsyncClearFunc] = None,
        initial: Optional[str] = None,
    ):
        self.save_func = save_func
        self.clear_func = clear_func
        self.initial = initial
        self._queue: Deque[Callable[[], Awaitable[None]]] = deque()
        self._worker: Optional["asyncio.Task[None]"] = None

    def load(self) -> Optional[Credential]:
        if not self.initial:
            return None
        try:
            payload = json.loads(self.initial)
            if not isinstance(payload, dict):
                raise ValueError("serialized state is not an object")
            return Credential.from_dict(payload)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable initial auth state: {e}")
            return None

    def save(self, credential: Credential) -> None:
        serialized = json.dumps(credential.to_dict())
        self._enqueue(lambda: self.save_func(serialized))

    def clear(self) -> None:
        if self.clear_func is not None:
            self._enqueue(self.clear_func)
        else:
            self._enqueue(lambda: self.save_func(""))

    @property
    def pending(self) -> int:
        return len(self._queue)

    def _enqueue(self, job: Callable[[], Awaitable[None]]) -> None:
        self._queue.append(job)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop yet; the next flush() drains the queue
            return
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._queue:
            job = self._queue.popleft()
            try:
                await job()
            except Exception as e:
                logger.warning(f"Async auth store write failed: {e}")

    async def flush(self) -> None:
        """Wait until every queued write has run."""
        while True:
            if self._worker is None or self._worker.done():
                if not self._queue:
                    return
                self._worker = asyncio.get_running_loop().create_task(self._drain())
            await self._worker
