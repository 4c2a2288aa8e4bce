"""
ASGI adapter - bridges the ASGI protocol to hxforge's request/response objects.

The middleware chain is built once, on first use, and cached.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

from .middleware import Handler, MiddlewareStack
from .request import Request, RequestCtx
from .response import Response

if TYPE_CHECKING:
    from .server import HXForgeServer


class ASGIAdapter:
    """
    ASGI application.

    Converts HTTP scopes into ``Request`` objects, runs them through the
    middleware chain around the final handler, and sends the resulting
    ``Response``. Lifespan events call ``server.startup``/``server.shutdown``.
    """

    __slots__ = ("final_handler", "middleware_stack", "server", "logger", "max_body_size", "_chain")

    def __init__(
        self,
        final_handler: Handler,
        middleware_stack: MiddlewareStack,
        server: Optional["HXForgeServer"] = None,
        max_body_size: int = 1_048_576,
    ):
        self.final_handler = final_handler
        self.middleware_stack = middleware_stack
        self.server = server
        self.max_body_size = max_body_size
        self.logger = logging.getLogger("hxforge.asgi")
        self._chain: Optional[Handler] = None

    async def __call__(self, scope: dict, receive: Callable, send: Callable):
        scope_type = scope["type"]
        if scope_type == "http":
            await self.handle_http(scope, receive, send)
        elif scope_type == "lifespan":
            await self.handle_lifespan(scope, receive, send)
        else:
            self.logger.warning("Unsupported ASGI scope type: %s", scope_type)

    @property
    def chain(self) -> Handler:
        if self._chain is None:
            self._chain = self.middleware_stack.build_handler(self.final_handler)
        return self._chain

    async def handle_http(self, scope: dict, receive: Callable, send: Callable):
        request = Request(scope, receive, max_body_size=self.max_body_size)
        ctx = RequestCtx(request=request)

        try:
            response = await self.chain(request, ctx)
        except Exception as e:
            # Only reachable if the recovery stage itself is missing from the chain
            self.logger.error(f"Critical error in request pipeline: {e}", exc_info=True)
            response = Response.text("Internal Server Error", status=500)

        await response.send_asgi(send, head=request.method == "HEAD")

    async def handle_lifespan(self, scope: dict, receive: Callable, send: Callable):
        """Handle ASGI lifespan events."""
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                try:
                    if self.server:
                        await self.server.startup()
                    await send({"type": "lifespan.startup.complete"})
                except Exception as e:
                    self.logger.error(f"Startup error: {e}", exc_info=True)
                    await send({"type": "lifespan.startup.failed", "message": str(e)})
                    raise

            elif message["type"] == "lifespan.shutdown":
                try:
                    if self.server:
                        await self.server.shutdown()
                    await send({"type": "lifespan.shutdown.complete"})
                except Exception as e:
                    self.logger.error(f"Shutdown error: {e}", exc_info=True)
                    await send({"type": "lifespan.shutdown.failed", "message": str(e)})
                break


__all__ = ["ASGIAdapter"]
