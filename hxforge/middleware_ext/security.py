"""
Security Middleware Suite - cross-origin, content-security and CSRF policy.

Provides:
- CORSMiddleware:  origin allow-list with preflight handling
- CSPMiddleware:   Content-Security-Policy header from a CSPPolicy
- CSRFMiddleware:  same-origin enforcement for state-changing requests

All middleware follow the hxforge async signature:
    async def __call__(self, request, ctx, next) -> Response
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlsplit

from hxforge.faults.domains import CSRFViolationFault
from hxforge.middleware import Handler
from hxforge.request import Request, RequestCtx
from hxforge.response import Response
from hxforge.utils.http import add_vary


# ═══════════════════════════════════════════════════════════════════════════════
#  CORS Middleware
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_CORS_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
DEFAULT_CORS_HEADERS = ("Origin", "Content-Type", "Accept", "Authorization", "X-Requested-With")
DEFAULT_CORS_EXPOSE = ("Link",)


class _OriginMatcher:
    """Exact (case-insensitive) origin matching plus the ``*`` wildcard."""

    __slots__ = ("_allow_all", "_exact")

    def __init__(self, origins: Iterable[str]):
        self._allow_all = False
        self._exact = set()
        for origin in origins:
            if origin == "*":
                self._allow_all = True
            else:
                self._exact.add(origin.rstrip("/").lower())

    def matches(self, origin: str) -> bool:
        return self._allow_all or origin.rstrip("/").lower() in self._exact

    @property
    def is_wildcard(self) -> bool:
        return self._allow_all


class CORSMiddleware:
    """
    CORS middleware following the Fetch Standard.

    ``Access-Control-Allow-Origin: *`` and
    ``Access-Control-Allow-Credentials: true`` are never sent together:
    with credentials enabled the request origin is reflected instead.

    Args:
        allow_origins: Allowed origins (exact strings or ``*``).
        allow_methods: Methods for Access-Control-Allow-Methods.
        allow_headers: Headers for Access-Control-Allow-Headers.
        expose_headers: Headers for Access-Control-Expose-Headers.
        allow_credentials: Allow credentials (cookies, Authorization).
        max_age: Preflight cache duration (seconds).
    """

    def __init__(
        self,
        allow_origins: Optional[Sequence[str]] = None,
        allow_methods: Sequence[str] = DEFAULT_CORS_METHODS,
        allow_headers: Sequence[str] = DEFAULT_CORS_HEADERS,
        expose_headers: Sequence[str] = DEFAULT_CORS_EXPOSE,
        allow_credentials: bool = False,
        max_age: int = 300,
    ):
        self.allow_origins = list(allow_origins or ["*"])
        self._matcher = _OriginMatcher(self.allow_origins)
        self.allow_credentials = allow_credentials
        self.max_age = max_age

        self._methods_str = ", ".join(allow_methods)
        self._headers_str = ", ".join(allow_headers)
        self._expose_str = ", ".join(expose_headers)

    @property
    def is_wildcard(self) -> bool:
        return self._matcher.is_wildcard

    async def __call__(self, request: Request, ctx: RequestCtx, next_handler: Handler) -> Response:
        origin = request.header("origin")

        if not origin:
            response = await next_handler(request, ctx)
            if not self.is_wildcard:
                add_vary(response, "Origin")
            return response

        allowed = self._matcher.matches(origin)

        if request.method == "OPTIONS" and request.has_header("access-control-request-method"):
            return self._preflight(origin, allowed)

        response = await next_handler(request, ctx)
        if allowed:
            self._set_origin_header(response.headers, origin)
            if self._expose_str:
                response.set_header("access-control-expose-headers", self._expose_str)
        if not self.is_wildcard or self.allow_credentials:
            add_vary(response, "Origin")
        return response

    def _preflight(self, origin: str, allowed: bool) -> Response:
        headers: Dict[str, str] = {
            "vary": "Origin, Access-Control-Request-Method, Access-Control-Request-Headers",
        }
        if allowed:
            self._set_origin_header(headers, origin)
            headers["access-control-allow-methods"] = self._methods_str
            headers["access-control-allow-headers"] = self._headers_str
            headers["access-control-max-age"] = str(self.max_age)
        return Response(b"", status=204, headers=headers)

    def _set_origin_header(self, headers: dict, origin: str) -> None:
        """Reflect the origin when credentials are on or the list is exact."""
        if self.allow_credentials or not self.is_wildcard:
            headers["access-control-allow-origin"] = origin
            if self.allow_credentials:
                headers["access-control-allow-credentials"] = "true"
        else:
            headers["access-control-allow-origin"] = "*"


def build_cors_middleware(origins: Sequence[str]) -> CORSMiddleware:
    """
    CORS from a configured origin list.

    Empty list: wildcard, credentials off. Otherwise exact origins, with
    credentials on unless ``*`` is one of the entries.
    """
    cleaned = [o.strip() for o in origins if o and o.strip()]
    if not cleaned:
        return CORSMiddleware(allow_origins=["*"], allow_credentials=False)
    return CORSMiddleware(allow_origins=cleaned, allow_credentials="*" not in cleaned)


# ═══════════════════════════════════════════════════════════════════════════════
#  CSP Middleware
# ═══════════════════════════════════════════════════════════════════════════════

class CSPPolicy:
    """
    Builder for Content-Security-Policy directives.

    Example::

        policy = (
            CSPPolicy()
            .default_src("'self'")
            .script_src("'self'", "https://unpkg.com")
            .object_src("'none'")
        )
    """

    __slots__ = ("directives",)

    def __init__(self, directives: Optional[Dict[str, List[str]]] = None):
        self.directives: Dict[str, List[str]] = directives if directives is not None else {}

    def default_src(self, *sources: str) -> "CSPPolicy":
        return self.directive("default-src", *sources)

    def script_src(self, *sources: str) -> "CSPPolicy":
        return self.directive("script-src", *sources)

    def style_src(self, *sources: str) -> "CSPPolicy":
        return self.directive("style-src", *sources)

    def img_src(self, *sources: str) -> "CSPPolicy":
        return self.directive("img-src", *sources)

    def font_src(self, *sources: str) -> "CSPPolicy":
        return self.directive("font-src", *sources)

    def connect_src(self, *sources: str) -> "CSPPolicy":
        return self.directive("connect-src", *sources)

    def object_src(self, *sources: str) -> "CSPPolicy":
        return self.directive("object-src", *sources)

    def base_uri(self, *sources: str) -> "CSPPolicy":
        return self.directive("base-uri", *sources)

    def frame_ancestors(self, *sources: str) -> "CSPPolicy":
        return self.directive("frame-ancestors", *sources)

    def directive(self, name: str, *sources: str) -> "CSPPolicy":
        self.directives[name] = list(sources)
        return self

    def build(self) -> str:
        """Compile directives into a CSP header value."""
        parts = []
        for name, sources in self.directives.items():
            parts.append(f"{name} {' '.join(sources)}" if sources else name)
        return "; ".join(parts)

    @classmethod
    def development(cls) -> "CSPPolicy":
        """Broad script sources for local tooling (live reload, devtools)."""
        return cls._base(cls().default_src("'self'").script_src("'self'", "https:", "'unsafe-eval'", "'unsafe-inline'"))

    @classmethod
    def production(cls) -> "CSPPolicy":
        """Scripts from self and the CDN allow-list; inline kept for JSON-LD."""
        return cls._base(
            cls()
            .default_src("'self'")
            .script_src("'self'", "https://unpkg.com", "https://cdn.jsdelivr.net", "'unsafe-inline'")
        )

    @staticmethod
    def _base(policy: "CSPPolicy") -> "CSPPolicy":
        return (
            policy
            .style_src("'self'", "https:", "'unsafe-inline'")
            .img_src("'self'", "data:", "https:")
            .font_src("'self'", "https:")
            .connect_src("'self'", "https:")
            .object_src("'none'")
            .base_uri("'self'")
            .frame_ancestors("'self'")
        )


def csp_for_env(app_env: str) -> CSPPolicy:
    if app_env == "development":
        return CSPPolicy.development()
    return CSPPolicy.production()


class CSPMiddleware:
    """Sets ``Content-Security-Policy`` on every response."""

    def __init__(self, policy: Optional[CSPPolicy] = None):
        self.policy = policy or CSPPolicy.production()
        self._header_value = self.policy.build()

    async def __call__(self, request: Request, ctx: RequestCtx, next_handler: Handler) -> Response:
        response = await next_handler(request, ctx)
        response.set_header("content-security-policy", self._header_value)
        return response


# ═══════════════════════════════════════════════════════════════════════════════
#  CSRF Middleware
# ═══════════════════════════════════════════════════════════════════════════════

UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class CSRFMiddleware:
    """
    Same-origin check for state-changing requests.

    Rejects with 403 when:
    - ``Sec-Fetch-Site`` is ``cross-site``
    - ``Origin`` (or, failing that, ``Referer``) names a host other than
      the request's ``Host`` and is not in the trusted origin list

    Requests carrying neither header (curl, server-to-server) pass.

    Args:
        trusted_origins: Extra origins allowed to post (the CORS exact list).
    """

    def __init__(self, trusted_origins: Sequence[str] = ()):
        self.trusted_origins = frozenset(
            o.strip().rstrip("/").lower() for o in trusted_origins if o.strip() and o.strip() != "*"
        )

    async def __call__(self, request: Request, ctx: RequestCtx, next_handler: Handler) -> Response:
        if request.method in UNSAFE_METHODS:
            reason = self._violation(request)
            if reason:
                fault = CSRFViolationFault(reason)
                resp = Response.text("Forbidden", status=403, headers={"x-fault-code": fault.code})
                resp._fault = fault
                return resp
        return await next_handler(request, ctx)

    def _violation(self, request: Request) -> Optional[str]:
        fetch_site = (request.header("sec-fetch-site") or "").strip().lower()
        if fetch_site == "cross-site":
            return "cross-site request (Sec-Fetch-Site)"

        source = request.header("origin") or request.header("referer")
        if not source:
            return None
        if source == "null":
            return "opaque origin"

        parts = urlsplit(source)
        if not parts.netloc:
            return "malformed origin"

        if parts.netloc.lower() == request.host.lower():
            return None

        origin = f"{parts.scheme}://{parts.netloc}".lower()
        if origin in self.trusted_origins:
            return None
        return f"origin {origin} does not match host"


__all__ = [
    "CORSMiddleware",
    "build_cors_middleware",
    "CSPPolicy",
    "CSPMiddleware",
    "csp_for_env",
    "CSRFMiddleware",
    "UNSAFE_METHODS",
]
