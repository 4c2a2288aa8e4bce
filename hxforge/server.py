"""
HXForgeServer - builds and owns every runtime component for one instance.

Nothing here is process-global: configuration, the session manager, the
shared exempt-path list, the router and the middleware chain all live on
the server object, so several independent servers can coexist (tests do).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Tuple

from redis.exceptions import RedisError

from . import redis_dial
from .asgi import ASGIAdapter
from .config import ServerConfig
from .middleware import (
    CompressionMiddleware,
    MiddlewareStack,
    RealIPMiddleware,
    RecoveryMiddleware,
    RequestIdMiddleware,
)
from .middleware_ext.html_cache import CacheSettings, HTMLCacheMiddleware
from .middleware_ext.logging import LoggingMiddleware
from .middleware_ext.rate_limit import RateLimitMiddleware
from .middleware_ext.security import CSPMiddleware, CSRFMiddleware, build_cors_middleware, csp_for_env
from .middleware_ext.session_middleware import SessionMiddleware
from .middleware_ext.static import StaticFiles
from .routes import SiteRoutes, SitemapRegistry
from .routing import Router
from .sessions import MemoryStore, RedisStore, SessionManager, SessionStore
from .templating import TemplateEngine

# Outermost first. Gaps leave room for application middleware.
PRIORITY_REQUEST_ID = 10
PRIORITY_REAL_IP = 20
PRIORITY_RECOVERY = 30
PRIORITY_LOGGING = 40
PRIORITY_COMPRESSION = 50
PRIORITY_CORS = 60
PRIORITY_RATE_LIMIT = 70
PRIORITY_SESSION = 80
PRIORITY_CSP = 90
PRIORITY_CSRF = 100
PRIORITY_HTML_CACHE = 110


class HXForgeServer:
    """
    One hxforge application instance.

    Construction is synchronous and performs no network I/O. A malformed
    ``VALKEY_URL``/``REDIS_URL`` raises ``ConfigInvalidFault`` here, so a
    bad deployment fails at startup instead of on the first request.

    Example:
        >>> server = HXForgeServer(ServerConfig.from_env())
        >>> @server.router.get("/about")
        ... async def about(request, ctx):
        ...     return Response.html("<h1>About</h1>")
        >>> uvicorn.run(server.app)
    """

    def __init__(self, config: Optional[ServerConfig] = None, *, store: Optional[SessionStore] = None):
        self.config = config or ServerConfig.from_env()
        self.logger = logging.getLogger("hxforge.server")

        self.connection: Optional[redis_dial.ConnectionDescriptor] = None
        if self.config.session_store_url:
            self.connection = redis_dial.parse_connection_url(
                self.config.session_store_url,
                self.config.session_tls_skip_verify,
                key=self.config.session_store_key,
            )

        self.session_manager = SessionManager(
            store if store is not None else self._create_store(),
            lifetime=self.config.session_lifetime,
            cookie_name=self.config.session_cookie_name,
            secure=self.config.is_production,
            required=self.config.session_required,
        )

        self.templates = TemplateEngine()
        self.sitemap = SitemapRegistry()
        self.router = Router()
        SiteRoutes(self).register(self.router)
        self.static = StaticFiles(self.config.static_dir, prefix="/static/")
        self.router.mount("/static/", self.static)

        self.middleware_stack = MiddlewareStack()
        self._setup_middleware()

        self.app = ASGIAdapter(self.router, self.middleware_stack, server=self)
        self._started = False

    def _create_store(self) -> SessionStore:
        if self.connection is None:
            return MemoryStore()
        client = redis_dial.create_client(self.connection)
        return RedisStore(client, display=self.connection.display)

    def _setup_middleware(self) -> None:
        """Register the request pipeline in its fixed order."""
        config = self.config
        stack = self.middleware_stack

        stack.add(RequestIdMiddleware(), priority=PRIORITY_REQUEST_ID, name="request_id")
        stack.add(RealIPMiddleware(), priority=PRIORITY_REAL_IP, name="real_ip")
        stack.add(RecoveryMiddleware(), priority=PRIORITY_RECOVERY, name="recovery")

        if config.log_format != "off":
            stack.add(LoggingMiddleware(format=config.log_format), priority=PRIORITY_LOGGING, name="logging")

        stack.add(CompressionMiddleware(), priority=PRIORITY_COMPRESSION, name="compression")
        stack.add(build_cors_middleware(config.cors_origins), priority=PRIORITY_CORS, name="cors")
        stack.add(
            RateLimitMiddleware(
                limit=config.rate_limit_max,
                window=config.rate_limit_window,
                exempt_paths=config.exempt_paths,
            ),
            priority=PRIORITY_RATE_LIMIT,
            name="rate_limit",
        )
        stack.add(SessionMiddleware(self.session_manager), priority=PRIORITY_SESSION, name="session")
        stack.add(CSPMiddleware(csp_for_env(config.app_env)), priority=PRIORITY_CSP, name="csp")

        if config.is_production:
            stack.add(CSRFMiddleware(trusted_origins=config.cors_origins), priority=PRIORITY_CSRF, name="csrf")

        stack.add(
            HTMLCacheMiddleware(
                CacheSettings(
                    disabled=config.disable_html_cache,
                    public_ttl=config.cache_public_ttl,
                    stale_while_revalidate=config.cache_swr_ttl,
                ),
                exempt_paths=config.exempt_paths,
                session_cookie_name=config.session_cookie_name,
            ),
            priority=PRIORITY_HTML_CACHE,
            name="html_cache",
        )

    # ========================================================================
    # Probes
    # ========================================================================

    async def readiness(self) -> Tuple[bool, Dict[str, str]]:
        """
        Check external dependencies.

        Returns ``(ready, checks)`` where each check is ``OK``, ``FAIL`` or
        ``SKIP`` (dependency not configured).
        """
        checks: Dict[str, str] = {}
        if self.connection is None:
            checks["valkey"] = "SKIP"
        else:
            try:
                await redis_dial.ping(self.connection)
            except (RedisError, OSError, asyncio.TimeoutError) as exc:
                self.logger.warning("Readiness: session store %s unreachable: %s", self.connection.display, exc)
                checks["valkey"] = "FAIL"
            else:
                checks["valkey"] = "OK"
        return all(state != "FAIL" for state in checks.values()), checks

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def startup(self) -> None:
        if self._started:
            return
        store = self.connection.display if self.connection else "memory"
        self.logger.info(
            "hxforge starting: env=%s session_store=%s middleware=%s",
            self.config.app_env, store, ",".join(self.middleware_stack.names()),
        )
        self._started = True

    async def shutdown(self) -> None:
        if not self._started:
            return
        await self.session_manager.shutdown()
        self._started = False
        self.logger.info("hxforge stopped")


def create_app(config: Optional[ServerConfig] = None) -> ASGIAdapter:
    """ASGI factory (``uvicorn --factory hxforge.server:create_app``)."""
    return HXForgeServer(config).app


__all__ = [
    "HXForgeServer",
    "create_app",
]
