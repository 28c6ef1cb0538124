"""
Shared pytest fixtures for PocketBase client tests.

Provides token minting, sample records and ready-to-use clients wired to
pytest-httpx so no test talks to a real server.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import jwt as jose_jwt
import pytest
import pytest_asyncio

from pocketbase_client.client import PocketBaseClient
from pocketbase_client.core.auth_stores import MemoryAuthStore

BASE_URL = "http://pb.test"
# HS256 wants at least 32 bytes of key material
TEST_SECRET = "pocketbase-client-test-secret-0123456789"


@pytest.fixture
def base_url() -> str:
    return BASE_URL


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory minting PocketBase-shaped JWTs.

    ``expires_in`` is in seconds; pass None for a token without ``exp``.
    """

    def _make(
        expires_in: Optional[int] = 3600,
        record_id: str = "u1",
        collection_id: str = "_pb_users_auth_",
        token_type: str = "auth",
        **claims: Any,
    ) -> str:
        payload: Dict[str, Any] = {
            "id": record_id,
            "collectionId": collection_id,
            "type": token_type,
            "refreshable": True,
        }
        if expires_in is not None:
            payload["exp"] = int(
                (datetime.now(timezone.utc) + timedelta(seconds=expires_in)).timestamp()
            )
        payload.update(claims)
        return jose_jwt.encode(payload, TEST_SECRET, algorithm="HS256")

    return _make


@pytest.fixture
def user_record() -> Dict[str, Any]:
    return {
        "id": "u1",
        "collectionId": "_pb_users_auth_",
        "collectionName": "users",
        "email": "jane@example.com",
        "name": "Jane",
        "verified": True,
    }


@pytest_asyncio.fixture
async def client():
    """Client with an in-memory auth store."""
    pb = PocketBaseClient(BASE_URL, auth_store=MemoryAuthStore())
    yield pb
    await pb.close()
