"""
Request - ASGI request wrapper and per-request context.
"""

from __future__ import annotations

from dataclasses import dataclass
from http.cookies import _unquote
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Mapping, Optional
from urllib.parse import parse_qsl

if TYPE_CHECKING:
    from .sessions.core import Session


def parse_cookie_header(cookie_header: str) -> Dict[str, str]:
    """
    Parse a ``Cookie`` header pair by pair.

    A malformed pair is skipped on its own; the rest of the header is kept.
    The first occurrence of a name wins.
    """
    cookies: Dict[str, str] = {}
    for chunk in cookie_header.split(";"):
        name, sep, value = chunk.partition("=")
        name = name.strip()
        if not sep or not name or " " in name:
            continue
        cookies.setdefault(name, _unquote(value.strip()))
    return cookies


class Request:
    """
    Request object for hxforge handlers and middleware.

    Wraps an ASGI HTTP scope. Headers, cookies and the body are parsed
    lazily and cached. ``state`` is a free-form dict that middleware use to
    pass values down the chain (request id, client ip, session).
    """

    def __init__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[dict]],
        *,
        max_body_size: int = 1_048_576,
    ):
        self.scope = scope
        self._receive = receive
        self.max_body_size = max_body_size

        self.state: Dict[str, Any] = {}

        self._headers: Optional[Dict[str, str]] = None
        self._cookies: Optional[Dict[str, str]] = None
        self._body: Optional[bytes] = None
        self._form: Optional[Dict[str, str]] = None

    # ========================================================================
    # Basic Properties
    # ========================================================================

    @property
    def method(self) -> str:
        return self.scope.get("method", "GET")

    @property
    def path(self) -> str:
        return self.scope.get("path", "/")

    @property
    def scheme(self) -> str:
        return self.scope.get("scheme", "http")

    @property
    def query_string(self) -> str:
        return self.scope.get("query_string", b"").decode("latin-1")

    @property
    def client(self) -> Optional[tuple]:
        """Socket peer address (host, port)."""
        return self.scope.get("client")

    @property
    def client_ip(self) -> str:
        """Client IP, preferring the value resolved by ``RealIPMiddleware``."""
        ip = self.state.get("client_ip")
        if ip:
            return ip
        client = self.client
        if client:
            return str(client[0])
        return "unknown"

    @property
    def host(self) -> str:
        return self.header("host", "") or ""

    # ========================================================================
    # Headers & Cookies
    # ========================================================================

    @property
    def headers(self) -> Dict[str, str]:
        """Lower-cased header map; repeated headers are comma-joined."""
        if self._headers is None:
            parsed: Dict[str, str] = {}
            for raw_name, raw_value in self.scope.get("headers", ()):
                name = raw_name.decode("latin-1").lower()
                value = raw_value.decode("latin-1")
                if name in parsed:
                    sep = "; " if name == "cookie" else ", "
                    parsed[name] = f"{parsed[name]}{sep}{value}"
                else:
                    parsed[name] = value
            self._headers = parsed
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single header (case-insensitive)."""
        return self.headers.get(name.lower(), default)

    def has_header(self, name: str) -> bool:
        return name.lower() in self.headers

    @property
    def cookies(self) -> Mapping[str, str]:
        if self._cookies is None:
            self._cookies = parse_cookie_header(self.header("cookie", "") or "")
        return self._cookies

    def cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.cookies.get(name, default)

    @property
    def is_htmx(self) -> bool:
        """True when the request was issued by htmx (``HX-Request: true``)."""
        return (self.header("hx-request", "") or "").strip().lower() == "true"

    # ========================================================================
    # Body
    # ========================================================================

    async def body(self) -> bytes:
        """Read the full request body (bounded by ``max_body_size``)."""
        if self._body is None:
            chunks = []
            size = 0
            while True:
                message = await self._receive()
                if message["type"] == "http.disconnect":
                    break
                chunk = message.get("body", b"")
                size += len(chunk)
                if size > self.max_body_size:
                    raise ValueError("Request body too large")
                chunks.append(chunk)
                if not message.get("more_body", False):
                    break
            self._body = b"".join(chunks)
        return self._body

    async def form(self) -> Dict[str, str]:
        """Parse an ``application/x-www-form-urlencoded`` body."""
        if self._form is None:
            raw = await self.body()
            self._form = dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
        return self._form

    # ========================================================================
    # Session
    # ========================================================================

    @property
    def session(self) -> Optional["Session"]:
        """Session bound by ``SessionMiddleware`` (None outside the chain)."""
        return self.state.get("session")


@dataclass
class RequestCtx:
    """Per-request context handed to every middleware and handler."""

    request: Request
    request_id: str = ""
    session: Optional["Session"] = None


__all__ = ["Request", "RequestCtx"]
