"""
Middleware system - composable async middleware and the core stages.

Every middleware has the signature::

    async def __call__(self, request, ctx, next) -> Response

``MiddlewareStack`` orders descriptors by priority (ties keep insertion
order) and folds them around a final handler so the first middleware is the
outermost wrapper.
"""

from __future__ import annotations

import gzip
import logging
import os
from dataclasses import dataclass
from http import HTTPStatus
from typing import Awaitable, Callable, List, Optional

from .faults import Fault
from .request import Request, RequestCtx
from .response import Response
from .utils.http import add_vary

Handler = Callable[[Request, RequestCtx], Awaitable[Response]]
Middleware = Callable[[Request, RequestCtx, Handler], Awaitable[Response]]

# request.state key: callables applied to the response built by RecoveryMiddleware
ERROR_RESPONSE_HOOKS = "error_response_hooks"


@dataclass
class MiddlewareDescriptor:
    """Descriptor for middleware registration."""
    middleware: Middleware
    priority: int
    name: str


class MiddlewareStack:
    """
    Manages the middleware stack with deterministic ordering.
    Lower priority runs first (outermost).
    """

    def __init__(self):
        self.middlewares: List[MiddlewareDescriptor] = []

    def add(
        self,
        middleware: Middleware,
        priority: int = 50,
        name: Optional[str] = None,
    ) -> None:
        if name is None:
            name = getattr(middleware, "__name__", type(middleware).__name__)
        self.middlewares.append(MiddlewareDescriptor(middleware=middleware, priority=priority, name=name))
        # list.sort is stable, so equal priorities keep registration order
        self.middlewares.sort(key=lambda desc: desc.priority)

    def names(self) -> List[str]:
        return [desc.name for desc in self.middlewares]

    def build_handler(self, final_handler: Handler) -> Handler:
        """Build middleware chain wrapping the final handler."""
        handler = final_handler
        for desc in reversed(self.middlewares):
            handler = self._wrap_middleware(desc.middleware, handler)
        return handler

    @staticmethod
    def _wrap_middleware(middleware: Middleware, next_handler: Handler) -> Handler:
        async def wrapped(request: Request, ctx: RequestCtx) -> Response:
            return await middleware(request, ctx, next_handler)

        return wrapped


# ============================================================================
# Core stages
# ============================================================================

class RequestIdMiddleware:
    """
    Assigns a request id used to correlate log lines.

    An inbound ``X-Request-ID`` is reused; otherwise 16 random bytes are
    hex-encoded. The id is echoed on the response.
    """

    def __init__(self, header_name: str = "X-Request-ID"):
        self.header_name = header_name

    async def __call__(self, request: Request, ctx: RequestCtx, next: Handler) -> Response:
        request_id = (request.header(self.header_name) or "").strip()
        if not request_id:
            request_id = os.urandom(16).hex()

        request.state["request_id"] = request_id
        ctx.request_id = request_id

        response = await next(request, ctx)
        response.set_header(self.header_name, request_id)
        return response


class RealIPMiddleware:
    """
    Resolves the client IP from forwarding headers.

    Precedence: ``True-Client-IP``, ``X-Real-IP``, first entry of
    ``X-Forwarded-For``, then the socket peer. The result lands in
    ``request.state["client_ip"]`` for the rate limiter and access log.
    """

    async def __call__(self, request: Request, ctx: RequestCtx, next: Handler) -> Response:
        ip = (request.header("true-client-ip") or request.header("x-real-ip") or "").strip()
        if not ip:
            forwarded_for = request.header("x-forwarded-for") or ""
            if forwarded_for:
                ip = forwarded_for.split(",")[0].strip()
        if not ip and request.client:
            ip = str(request.client[0])
        if ip:
            request.state["client_ip"] = ip
        return await next(request, ctx)


class RecoveryMiddleware:
    """
    Converts any exception raised downstream into a minimal error response.

    Faults keep their mapped status; the body carries the fault message only
    when the fault is public. Everything else is a 500 with no detail.
    """

    def __init__(self):
        self.logger = logging.getLogger("hxforge.recovery")

    async def __call__(self, request: Request, ctx: RequestCtx, next: Handler) -> Response:
        try:
            return await next(request, ctx)

        except Fault as fault:
            status = fault.status
            if status >= 500:
                self.logger.error(
                    "request_id=%s fault %s: %s", ctx.request_id, fault.code, fault.message,
                )
            else:
                self.logger.warning(
                    "request_id=%s fault %s: %s", ctx.request_id, fault.code, fault.message,
                )
            message = fault.message if fault.public else HTTPStatus(status).phrase
            response = Response.text(message, status=status)
            response._fault = fault
            return self._finish(request, response)

        except Exception as exc:
            self.logger.error(
                "request_id=%s unhandled exception in %s %s: %s",
                ctx.request_id, request.method, request.path, exc,
                exc_info=True,
            )
            return self._finish(request, Response.text(HTTPStatus.INTERNAL_SERVER_ERROR.phrase, status=500))

    @staticmethod
    def _finish(request: Request, response: Response) -> Response:
        for hook in request.state.pop(ERROR_RESPONSE_HOOKS, ()):
            hook(response)
        return response


class CompressionMiddleware:
    """gzip-compresses text-like response bodies for clients that accept it."""

    COMPRESSIBLE = (
        "text/",
        "application/json",
        "application/javascript",
        "application/xml",
        "image/svg+xml",
    )

    def __init__(self, minimum_size: int = 500, level: int = 5):
        self.minimum_size = minimum_size
        self.level = level

    async def __call__(self, request: Request, ctx: RequestCtx, next: Handler) -> Response:
        response = await next(request, ctx)

        accept_encoding = (request.header("accept-encoding", "") or "").lower()
        if "gzip" not in accept_encoding:
            return response
        if response.header("content-encoding") or response.status in (204, 304):
            return response

        content_type = (response.header("content-type", "") or "").lower()
        if not content_type.startswith(self.COMPRESSIBLE):
            return response

        body = response.body
        if len(body) < self.minimum_size:
            return response

        response.body = gzip.compress(body, compresslevel=self.level)
        response.set_header("content-encoding", "gzip")
        add_vary(response, "Accept-Encoding")
        return response


__all__ = [
    "ERROR_RESPONSE_HOOKS",
    "Handler",
    "Middleware",
    "MiddlewareStack",
    "RequestIdMiddleware",
    "RealIPMiddleware",
    "RecoveryMiddleware",
    "CompressionMiddleware",
]
