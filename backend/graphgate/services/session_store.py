"""
Session store and identity resolution.

Sessions are issued by the login layer, which is outside this package. The
gate only reads them: a session id from the session cookie (or the session
header) is looked up in a pluggable key-value store, and the stored value is
turned into an IdentityContext. The decision pipeline never sees the store.

Stored session values look like::

    {"identityId": "3f7c...", "roles": ["USER"], "username": "alice"}
"""

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

from redis import asyncio as aioredis
from redis.exceptions import RedisError
from starlette.requests import Request

from ..config import Settings, get_settings
from ..models.authorization_models import IdentityContext
from ..utils.logging_security import sanitize_for_log

logger = logging.getLogger(__name__)


class SessionStoreError(Exception):
    """Raised when the session backend cannot be reached."""


class SessionStore:
    """Key-value session store interface"""

    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def set(self, session_id: str, data: Dict[str, Any], ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError

    async def delete(self, session_id: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemorySessionStore(SessionStore):
    """Process-local session store with per-entry expiry"""

    def __init__(self, default_ttl_seconds: int = 3600) -> None:
        self.default_ttl_seconds = default_ttl_seconds
        self._entries: Dict[str, Tuple[Dict[str, Any], float]] = {}

    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(session_id)
        if entry is None:
            return None

        data, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._entries[session_id]
            return None
        return dict(data)

    async def set(self, session_id: str, data: Dict[str, Any], ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        self._entries[session_id] = (dict(data), time.monotonic() + ttl)

    async def delete(self, session_id: str) -> None:
        self._entries.pop(session_id, None)


class RedisSessionStore(SessionStore):
    """Redis-backed session store; values are JSON documents with a TTL"""

    def __init__(self, client, key_prefix: str = "graphgate:session:", default_ttl_seconds: int = 3600) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.default_ttl_seconds = default_ttl_seconds

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "graphgate:session:", default_ttl_seconds: int = 3600):
        client = aioredis.from_url(url, decode_responses=True, socket_connect_timeout=5)
        return cls(client, key_prefix=key_prefix, default_ttl_seconds=default_ttl_seconds)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            value = await self.client.get(self._key(session_id))
        except RedisError as e:
            raise SessionStoreError(f"Redis GET failed: {e}") from e

        if not value:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt session payload for {sanitize_for_log(session_id)}: {e}")
            return None

    async def set(self, session_id: str, data: Dict[str, Any], ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        try:
            await self.client.set(self._key(session_id), json.dumps(data), ex=ttl)
        except RedisError as e:
            raise SessionStoreError(f"Redis SET failed: {e}") from e

    async def delete(self, session_id: str) -> None:
        try:
            await self.client.delete(self._key(session_id))
        except RedisError as e:
            raise SessionStoreError(f"Redis DELETE failed: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()


def create_session_store(settings: Optional[Settings] = None) -> SessionStore:
    settings = settings or get_settings()
    if settings.session_backend == "redis":
        return RedisSessionStore.from_url(
            settings.redis_url,
            key_prefix=settings.redis_key_prefix or "",
            default_ttl_seconds=settings.session_ttl_seconds,
        )
    return InMemorySessionStore(default_ttl_seconds=settings.session_ttl_seconds)


class SessionIdentityResolver:
    """Resolves the request's IdentityContext from its session, or None"""

    def __init__(self, session_store: SessionStore, cookie_name: str = "graphgate_session", header_name: str = "X-Session-Id"):
        self.session_store = session_store
        self.cookie_name = cookie_name
        self.header_name = header_name

    def session_id_for(self, request: Request) -> Optional[str]:
        return request.cookies.get(self.cookie_name) or request.headers.get(self.header_name)

    async def resolve(self, request: Request) -> Optional[IdentityContext]:
        """
        Raises:
            SessionStoreError: the session backend is unreachable
        """
        session_id = self.session_id_for(request)
        if not session_id:
            return None

        data = await self.session_store.get(session_id)
        if not data:
            return None

        identity_id = data.get("identityId") or data.get("identity_id")
        if not identity_id:
            logger.warning(f"Session {sanitize_for_log(session_id[:8])}... has no identity id")
            return None

        roles = data.get("roles") or []
        return IdentityContext(
            identity_id=str(identity_id),
            roles=[str(role) for role in roles],
            username=data.get("username"),
        )
