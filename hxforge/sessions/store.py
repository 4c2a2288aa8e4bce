"""
Session storage abstraction.

Stores are responsible only for persistence; lifetime and cookie policy
live in ``SessionManager``.

- MemoryStore: in-process dict (development, tests, no store configured)
- RedisStore: Redis/Valkey via ``redis.asyncio`` (production)
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .core import Session, utcnow
from .faults import SessionStoreUnavailableFault

logger = logging.getLogger("hxforge.sessions.store")


# ============================================================================
# SessionStore Protocol
# ============================================================================

class SessionStore(Protocol):
    """
    Async session storage interface.

    ``load`` returns None for unknown or expired tokens. Backend failures
    surface as ``SessionStoreUnavailableFault``.
    """

    name: str

    async def load(self, token: str) -> Optional[Session]:
        ...

    async def save(self, session: Session) -> None:
        ...

    async def delete(self, token: str) -> None:
        ...

    async def ping(self) -> None:
        ...

    async def shutdown(self) -> None:
        ...


# ============================================================================
# MemoryStore
# ============================================================================

class MemoryStore:
    """
    In-memory session storage.

    Records are held as serialised copies so a handler mutating a loaded
    session never changes the stored one until it is saved. Least recently
    used records are evicted once ``max_sessions`` is reached.

    Not shared between processes and lost on restart.
    """

    name = "memory"

    def __init__(self, max_sessions: int = 10000):
        self.max_sessions = max_sessions
        self._records: "OrderedDict[str, Tuple[Dict[str, Any], datetime]]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def load(self, token: str) -> Optional[Session]:
        async with self._lock:
            record = self._records.get(token)
            if record is None:
                return None
            payload, expires_at = record
            if utcnow() >= expires_at:
                del self._records[token]
                return None
            self._records.move_to_end(token)
            return Session.from_dict(token, copy.deepcopy(payload))

    async def save(self, session: Session) -> None:
        async with self._lock:
            if session.token not in self._records and len(self._records) >= self.max_sessions:
                self._records.popitem(last=False)
                logger.debug("Evicted session record (capacity %d)", self.max_sessions)
            self._records[session.token] = (copy.deepcopy(session.to_dict()), session.expires_at)
            self._records.move_to_end(session.token)

    async def delete(self, token: str) -> None:
        async with self._lock:
            self._records.pop(token, None)

    async def ping(self) -> None:
        return None

    async def cleanup_expired(self) -> int:
        now = utcnow()
        async with self._lock:
            expired = [token for token, (_, expires_at) in self._records.items() if now >= expires_at]
            for token in expired:
                del self._records[token]
        return len(expired)

    async def shutdown(self) -> None:
        async with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


# ============================================================================
# RedisStore
# ============================================================================

class RedisStore:
    """
    Redis/Valkey session storage.

    Each session is one JSON string under ``<prefix><token>`` written with
    ``SET ... EX <remaining lifetime>``, so the server expires records on
    its own. Corrupt payloads are logged and treated as missing.

    Example:
        >>> pool = build_pool(parse_connection_url("redis://localhost:6379/0"))
        >>> store = RedisStore(aioredis.Redis(connection_pool=pool))
    """

    name = "redis"

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        key_prefix: str = "hxforge:session:",
        display: str = "redis",
    ):
        self.client = client
        self.key_prefix = key_prefix
        self.display = display

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    def _unavailable(self, exc: BaseException) -> SessionStoreUnavailableFault:
        return SessionStoreUnavailableFault(store_name=self.display, cause=str(exc) or type(exc).__name__)

    async def load(self, token: str) -> Optional[Session]:
        try:
            raw = await self.client.get(self._key(token))
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise self._unavailable(exc) from exc

        if raw is None:
            return None

        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            session = Session.from_dict(token, json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Discarding corrupted session record: %s", exc)
            return None

        if session.is_expired():
            return None
        return session

    async def save(self, session: Session) -> None:
        ttl = int(session.remaining().total_seconds())
        if ttl <= 0:
            await self.delete(session.token)
            return
        payload = json.dumps(session.to_dict(), separators=(",", ":"))
        try:
            await self.client.set(self._key(session.token), payload, ex=ttl)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise self._unavailable(exc) from exc

    async def delete(self, token: str) -> None:
        try:
            await self.client.delete(self._key(token))
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise self._unavailable(exc) from exc

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise self._unavailable(exc) from exc

    async def shutdown(self) -> None:
        await self.client.aclose()
        await self.client.connection_pool.disconnect()


__all__ = ["SessionStore", "MemoryStore", "RedisStore"]
