"""
Session Middleware - binds a session to every request and guarantees save.

Flow:
1. Load the session from the cookie (or start a new one)
2. Store it in ``request.state["session"]`` and ``ctx.session``
3. Call the next handler
4. Commit: persist if dirty and emit the cookie

Commit also runs when the handler raises, so writes made before the error
are not lost. The exception is then re-raised for the recovery stage, which
puts the session cookie on the error response.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hxforge.middleware import ERROR_RESPONSE_HOOKS, Handler
from hxforge.request import Request, RequestCtx
from hxforge.response import Response
from hxforge.utils.http import add_vary

if TYPE_CHECKING:
    from hxforge.sessions import SessionManager


class SessionMiddleware:
    """
    Middleware that wraps each request in a session load/commit.

    Example:
        >>> manager = SessionManager(MemoryStore())
        >>> stack.add(SessionMiddleware(manager), priority=80)
    """

    def __init__(self, manager: "SessionManager"):
        self.manager = manager

    async def __call__(self, request: Request, ctx: RequestCtx, next_handler: Handler) -> Response:
        session = await self.manager.load(request)
        request.state["session"] = session
        ctx.session = session

        try:
            response = await next_handler(request, ctx)
        except Exception:
            if await self.manager.commit(session, None):
                request.state.setdefault(ERROR_RESPONSE_HOOKS, []).append(
                    lambda error_response: self.manager.write_cookie(session, error_response)
                )
            raise

        await self.manager.commit(session, response)
        add_vary(response, "Cookie")
        return response


__all__ = ["SessionMiddleware"]
