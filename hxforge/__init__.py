"""
hxforge - server-rendered htmx sites on ASGI

Integration of:
- Server: one object owning config, sessions, router and middleware
- Middleware: ordered request pipeline (request id, recovery, logging,
  compression, CORS, rate limiting, sessions, CSP, CSRF, HTML cache)
- Sessions: cookie-bound server-side sessions in memory or Redis/Valkey
- HTML cache: shared-cache safe Cache-Control/Vary decisions
- Faults: structured error handling with fault domains
"""

__version__ = "0.1.0"

# ============================================================================
# Core
# ============================================================================

from .config import ExemptPaths, ServerConfig
from .request import Request, RequestCtx
from .response import Response
from .routing import Router
from .server import HXForgeServer, create_app
from .templating import TemplateEngine

# ============================================================================
# Sessions
# ============================================================================

from .sessions import MemoryStore, RedisStore, Session, SessionManager, SessionStore

# ============================================================================
# Faults
# ============================================================================

from .faults import ConfigInvalidFault, Fault, FaultDomain, Severity

__all__ = [
    "__version__",
    "ServerConfig",
    "ExemptPaths",
    "Request",
    "RequestCtx",
    "Response",
    "Router",
    "HXForgeServer",
    "create_app",
    "TemplateEngine",
    "Session",
    "SessionManager",
    "SessionStore",
    "MemoryStore",
    "RedisStore",
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigInvalidFault",
]
