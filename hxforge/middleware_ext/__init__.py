"""
Extended middleware components for hxforge.

This module provides the middleware beyond the core stages in middleware.py:

Sessions:
- SessionMiddleware: session load before the handler, guaranteed save after

Security:
- CORSMiddleware: origin allow-list with credential-safe wildcard handling
- CSPMiddleware: Content-Security-Policy per environment
- CSRFMiddleware: same-origin check for state-changing requests

Caching:
- HTMLCacheMiddleware: Cache-Control / Vary decision for HTML pages

Rate Limiting:
- RateLimitMiddleware: per-IP sliding window

Static Files:
- StaticFiles: terminal handler for the /static/ mount

Logging:
- LoggingMiddleware: access log lines (text, JSON)
"""

from .html_cache import CacheSettings, HTMLCacheMiddleware, NoStore, Passthrough, PublicShared, decide
from .logging import JSONLogFormatter, LoggingMiddleware, TextLogFormatter
from .rate_limit import RateLimitMiddleware, ip_key_extractor
from .security import (
    CORSMiddleware,
    CSPMiddleware,
    CSPPolicy,
    CSRFMiddleware,
    build_cors_middleware,
    csp_for_env,
)
from .session_middleware import SessionMiddleware
from .static import StaticFiles

__all__ = [
    # Sessions
    "SessionMiddleware",
    # Security
    "CORSMiddleware",
    "build_cors_middleware",
    "CSPMiddleware",
    "CSPPolicy",
    "csp_for_env",
    "CSRFMiddleware",
    # Caching
    "HTMLCacheMiddleware",
    "CacheSettings",
    "NoStore",
    "PublicShared",
    "Passthrough",
    "decide",
    # Rate Limiting
    "RateLimitMiddleware",
    "ip_key_extractor",
    # Static Files
    "StaticFiles",
    # Logging
    "LoggingMiddleware",
    "TextLogFormatter",
    "JSONLogFormatter",
]
