"""
Router - exact-path routes plus prefix mounts.

Routes are matched on the exact path; mounts take every path under a
prefix (longest prefix wins) and hand it to a terminal handler such as
``StaticFiles``. ``HEAD`` falls back to the ``GET`` handler.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .middleware import Handler
from .request import Request, RequestCtx
from .response import Response


class Router:
    """
    Dispatches requests to handlers.

    Example:
        >>> router = Router()
        >>> @router.get("/healthz")
        ... async def healthz(request, ctx):
        ...     return Response.text("ok")
        >>> router.mount("/static/", StaticFiles("app/static"))
    """

    def __init__(self):
        self._routes: Dict[str, Dict[str, Handler]] = {}
        self._mounts: List[Tuple[str, Handler]] = []

    # ========================================================================
    # Registration
    # ========================================================================

    def add_route(self, path: str, handler: Handler, methods: Iterable[str] = ("GET",)) -> None:
        by_method = self._routes.setdefault(path, {})
        for method in methods:
            method = method.upper()
            if method in by_method:
                raise ValueError(f"Route already registered: {method} {path}")
            by_method[method] = handler

    def route(self, path: str, methods: Iterable[str] = ("GET",)) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, methods)
            return handler

        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, ("GET",))

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, ("POST",))

    def mount(self, prefix: str, handler: Handler) -> None:
        prefix = "/" + prefix.strip("/") + "/"
        self._mounts.append((prefix, handler))
        self._mounts.sort(key=lambda item: len(item[0]), reverse=True)

    # ========================================================================
    # Dispatch
    # ========================================================================

    def match(self, path: str, method: str) -> Tuple[Optional[Handler], Optional[List[str]]]:
        """
        Resolve a handler.

        Returns ``(handler, None)`` on a match, ``(None, allowed_methods)`` when
        the path exists under other methods, ``(None, None)`` when unknown.
        """
        by_method = self._routes.get(path)
        if by_method is not None:
            handler = by_method.get(method)
            if handler is None and method == "HEAD":
                handler = by_method.get("GET")
            if handler is not None:
                return handler, None
            allowed = sorted(set(by_method) | ({"HEAD"} if "GET" in by_method else set()))
            return None, allowed

        for prefix, handler in self._mounts:
            if path.startswith(prefix):
                return handler, None
        return None, None

    async def __call__(self, request: Request, ctx: RequestCtx) -> Response:
        handler, allowed = self.match(request.path, request.method)
        if handler is not None:
            return await handler(request, ctx)
        if allowed:
            return Response.text("Method Not Allowed", status=405, headers={"allow": ", ".join(allowed)})
        return Response.text("Not Found", status=404)

    def paths(self) -> List[str]:
        return sorted(self._routes)


__all__ = ["Router"]
