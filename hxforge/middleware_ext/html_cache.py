"""
HTML cache decision middleware.

Annotates HTML page responses with a shared-cache policy:

- ``HX-Request: true`` partials and pages rendered for a request that
  carries the session cookie are ``private, no-store``
- other HTML pages are ``public, s-maxage=<ttl>, stale-while-revalidate=<swr>``
- a ``Cache-Control`` set by the handler is left alone

Method, disable flag and path checks short-circuit before the handler runs.
The decision itself is the pure function ``decide`` so it can be exercised
without a request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from hxforge.config import ExemptPaths
from hxforge.middleware import Handler
from hxforge.request import Request, RequestCtx
from hxforge.response import Response
from hxforge.utils.http import add_vary

CACHEABLE_METHODS = frozenset({"GET", "HEAD"})

PRIVATE_NO_STORE = "private, no-store"
PRIVATE_VARY = ("Cookie", "Accept", "HX-Request")
PUBLIC_VARY = ("Cookie", "Accept")


# ============================================================================
# Decisions
# ============================================================================

@dataclass(frozen=True)
class NoStore:
    """Never stored by shared caches."""

    def header_value(self) -> str:
        return PRIVATE_NO_STORE


@dataclass(frozen=True)
class PublicShared:
    """Cacheable by shared caches for ``ttl`` seconds, served stale while revalidating."""

    ttl: int
    stale_while_revalidate: int

    def header_value(self) -> str:
        return f"public, s-maxage={self.ttl}, stale-while-revalidate={self.stale_while_revalidate}"


@dataclass(frozen=True)
class Passthrough:
    """The handler already chose a ``Cache-Control``; keep it."""

    value: str


CacheDecision = Union[NoStore, PublicShared, Passthrough]


@dataclass(frozen=True)
class CacheSettings:
    disabled: bool = False
    public_ttl: int = 60
    stale_while_revalidate: int = 300


def applies(method: str, path: str, settings: CacheSettings, exempt_paths: ExemptPaths) -> bool:
    """Pre-handler gate: only cacheable methods on non-exempt paths, engine enabled."""
    if method.upper() not in CACHEABLE_METHODS:
        return False
    if settings.disabled:
        return False
    return not exempt_paths.matches(path)


def decide(
    *,
    is_htmx: bool,
    has_session_cookie: bool,
    existing_cache_control: Optional[str],
    content_type: Optional[str],
    settings: CacheSettings,
) -> Optional[CacheDecision]:
    """
    Pick the cache policy for a response that passed ``applies``.

    Returns None when the response is not annotated (non-HTML).
    """
    if existing_cache_control:
        return Passthrough(existing_cache_control)
    if is_htmx:
        return NoStore()
    if "text/html" not in (content_type or "").lower():
        return None
    if has_session_cookie:
        return NoStore()
    return PublicShared(settings.public_ttl, settings.stale_while_revalidate)


def apply_decision(response: Response, decision: Optional[CacheDecision]) -> None:
    if decision is None or isinstance(decision, Passthrough):
        return
    response.set_header("cache-control", decision.header_value())
    for value in PRIVATE_VARY if isinstance(decision, NoStore) else PUBLIC_VARY:
        add_vary(response, value)


# ============================================================================
# Middleware
# ============================================================================

class HTMLCacheMiddleware:
    """
    Sets ``Cache-Control`` and ``Vary`` on HTML responses.

    Args:
        settings: TTLs and the global disable flag.
        exempt_paths: Paths owned by their own responders.
        session_cookie_name: Cookie whose presence marks a stateful request.
    """

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        exempt_paths: Optional[ExemptPaths] = None,
        session_cookie_name: str = "session",
    ):
        self.settings = settings or CacheSettings()
        self.exempt_paths = exempt_paths or ExemptPaths()
        self.session_cookie_name = session_cookie_name

    async def __call__(self, request: Request, ctx: RequestCtx, next_handler: Handler) -> Response:
        if not applies(request.method, request.path, self.settings, self.exempt_paths):
            return await next_handler(request, ctx)

        is_htmx = request.is_htmx
        has_session_cookie = bool(request.cookie(self.session_cookie_name))

        response = await next_handler(request, ctx)

        decision = decide(
            is_htmx=is_htmx,
            has_session_cookie=has_session_cookie,
            existing_cache_control=response.header("cache-control"),
            content_type=response.header("content-type"),
            settings=self.settings,
        )
        apply_decision(response, decision)
        return response


__all__ = [
    "CacheDecision",
    "CacheSettings",
    "HTMLCacheMiddleware",
    "NoStore",
    "Passthrough",
    "PublicShared",
    "applies",
    "apply_decision",
    "decide",
]
