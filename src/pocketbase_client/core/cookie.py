"""Auth state as an HTTP cookie.

Lets a server-side app hand the session to a browser and read it back: the
cookie value is the URL-encoded JSON ``{token, record}`` and it expires
together with the token.
"""

import json
import logging
from datetime import datetime, timezone
from http.cookies import CookieError, SimpleCookie
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote

from .credential import Credential

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_KEY = "pb_auth"
# browsers drop cookies above this size
MAX_COOKIE_BYTES = 4096
MINIMAL_RECORD_FIELDS = ("id", "email", "collectionId", "collectionName", "verified")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _cookie_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S GMT")


def _serialize(
    key: str,
    payload: Dict[str, Any],
    expires: datetime,
    path: str,
    secure: bool,
    http_only: bool,
    same_site: Optional[str],
) -> str:
    cookie: SimpleCookie = SimpleCookie()
    cookie[key] = quote(json.dumps(payload, separators=(",", ":")), safe="")
    morsel = cookie[key]
    morsel["path"] = path
    morsel["expires"] = _cookie_date(expires)
    morsel["secure"] = secure
    morsel["httponly"] = http_only
    if same_site:
        morsel["samesite"] = same_site
    return morsel.OutputString()


def export_auth_cookie(
    credential: Optional[Credential],
    key: str = DEFAULT_COOKIE_KEY,
    *,
    path: str = "/",
    secure: bool = True,
    http_only: bool = True,
    same_site: Optional[str] = "Strict",
) -> str:
    """Build a ``Set-Cookie`` header value for ``credential``.

    Without a credential, or without a token expiry, the cookie is already
    expired so browsers delete it. When the full record would push the
    cookie over the size limit only its identifying fields are kept.

    Raises:
        CookieError: If ``key`` is not a legal cookie name
    """
    if credential is None:
        payload: Dict[str, Any] = {"token": "", "record": None}
        expires = _EPOCH
    else:
        payload = credential.to_dict()
        expires = credential.expires_at or _EPOCH

    options = dict(path=path, secure=secure, http_only=http_only, same_site=same_site)
    result = _serialize(key, payload, expires, **options)

    record = payload.get("record")
    if len(result.encode("utf-8")) > MAX_COOKIE_BYTES and record:
        logger.debug("Auth cookie too large, keeping only identifying record fields")
        payload = dict(payload)
        payload["record"] = {k: record[k] for k in MINIMAL_RECORD_FIELDS if k in record}
        result = _serialize(key, payload, expires, **options)
    return result


def parse_auth_cookie(
    cookie_header: str, key: str = DEFAULT_COOKIE_KEY
) -> Optional[Credential]:
    """Read a credential from a ``Cookie`` header.

    Returns:
        The credential, or None if the cookie is absent, empty or malformed
    """
    if not cookie_header:
        return None
    cookie: SimpleCookie = SimpleCookie()
    try:
        cookie.load(cookie_header)
    except CookieError as e:
        logger.warning(f"Ignoring malformed cookie header: {e}")
        return None

    morsel = cookie.get(key)
    if morsel is None or not morsel.value:
        return None
    try:
        payload = json.loads(unquote(morsel.value))
        if not isinstance(payload, dict) or not payload.get("token"):
            return None
        return Credential.from_dict(payload)
    except (ValueError, TypeError) as e:
        logger.warning(f"Ignoring unreadable auth cookie {key}: {e}")
        return None
