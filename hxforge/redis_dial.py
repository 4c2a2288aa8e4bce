"""
Redis/Valkey connection descriptors and dialing.

One parse step turns a connection URL into a tagged descriptor:

- ``PlainConnection``: ``redis://`` without skip-verify, dialed straight
  from the URL.
- ``TLSConnection``: ``rediss://`` *or* any URL with skip-verify set. Built
  from explicit options (password, numeric db, TLS, optional certificate
  verification opt-out) because URL based dialing cannot express the
  skip-verify override needed for self-signed or provider-internal
  certificates.

One dial step (``build_pool``) consumes either variant. The session store,
the readiness probe and ``hxforge doctor`` all go through here.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import unquote, urlsplit

import redis.asyncio as aioredis
from redis.asyncio.connection import SSLConnection

from .faults import ConfigInvalidFault

logger = logging.getLogger("hxforge.redis")

DEFAULT_PORT = 6379

# Idle connections older than this are PINGed before reuse; a failed probe
# disconnects and redials instead of handing the broken socket out.
HEALTH_CHECK_INTERVAL = 60


@dataclass(frozen=True)
class PlainConnection:
    url: str
    host: str
    port: int
    password: Optional[str]
    db: int

    @property
    def display(self) -> str:
        return f"redis://{self.host}:{self.port}/{self.db}"


@dataclass(frozen=True)
class TLSConnection:
    host: str
    port: int
    password: Optional[str]
    db: int
    skip_verify: bool = False

    @property
    def display(self) -> str:
        suffix = " (skip-verify)" if self.skip_verify else ""
        return f"rediss://{self.host}:{self.port}/{self.db}{suffix}"


ConnectionDescriptor = Union[PlainConnection, TLSConnection]


def parse_connection_url(url: str, skip_verify: bool = False, *, key: str = "VALKEY_URL") -> ConnectionDescriptor:
    """
    Parse a ``redis://`` / ``rediss://`` URL into a connection descriptor.

    Raises:
        ConfigInvalidFault: the URL is not a usable redis URL
    """
    raw = url.strip()
    parts = urlsplit(raw)
    scheme = parts.scheme.lower()
    if scheme not in ("redis", "rediss"):
        raise ConfigInvalidFault(key, f"unsupported scheme {parts.scheme!r}")

    try:
        port = parts.port or DEFAULT_PORT
    except ValueError as exc:
        raise ConfigInvalidFault(key, f"invalid port ({exc})") from exc

    host = parts.hostname
    if not host:
        raise ConfigInvalidFault(key, "missing host")

    db_str = parts.path.lstrip("/")
    if not db_str:
        db = 0
    elif db_str.isdigit():
        db = int(db_str)
    else:
        raise ConfigInvalidFault(key, f"database index {db_str!r} is not numeric")

    password = unquote(parts.password) if parts.password else None

    if scheme == "rediss" or skip_verify:
        return TLSConnection(host=host, port=port, password=password, db=db, skip_verify=skip_verify)
    return PlainConnection(url=raw, host=host, port=port, password=password, db=db)


def build_pool(
    descriptor: ConnectionDescriptor,
    *,
    max_connections: int = 16,
    socket_timeout: float = 5.0,
    health_check_interval: int = HEALTH_CHECK_INTERVAL,
) -> aioredis.ConnectionPool:
    """Create a connection pool for either descriptor variant. No I/O happens here."""
    common = {
        "max_connections": max_connections,
        "socket_timeout": socket_timeout,
        "socket_connect_timeout": socket_timeout,
        "health_check_interval": health_check_interval,
    }
    if not isinstance(descriptor, (PlainConnection, TLSConnection)):
        raise TypeError(f"Unknown connection descriptor: {descriptor!r}")
    logger.debug("Building redis pool for %s", descriptor.display)

    if isinstance(descriptor, TLSConnection):
        return aioredis.ConnectionPool(
            connection_class=SSLConnection,
            host=descriptor.host,
            port=descriptor.port,
            password=descriptor.password,
            db=descriptor.db,
            ssl_cert_reqs="none" if descriptor.skip_verify else "required",
            ssl_check_hostname=not descriptor.skip_verify,
            **common,
        )

    return aioredis.ConnectionPool.from_url(descriptor.url, **common)


def create_client(descriptor: ConnectionDescriptor, **pool_kwargs) -> aioredis.Redis:
    return aioredis.Redis(connection_pool=build_pool(descriptor, **pool_kwargs))


async def ping(descriptor: ConnectionDescriptor, timeout: float = 3.0) -> None:
    """
    Open a short-lived connection and PING it.

    Raises whatever the redis client raises (connection, auth, TLS errors)
    or ``asyncio.TimeoutError``.
    """
    pool = build_pool(descriptor, max_connections=1, socket_timeout=timeout)
    client = aioredis.Redis(connection_pool=pool)
    try:
        await asyncio.wait_for(client.ping(), timeout=timeout)
    finally:
        await client.aclose()
        await pool.disconnect()


__all__ = [
    "PlainConnection",
    "TLSConnection",
    "ConnectionDescriptor",
    "parse_connection_url",
    "build_pool",
    "create_client",
    "ping",
]
