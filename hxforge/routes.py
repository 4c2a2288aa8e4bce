"""
Built-in routes.

- ``/``               home page (reads the session counter)
- ``/counter``        htmx fragment with the session counter
- ``/counter/sync``   POST, stores ``count`` in the session and echoes it
- ``/favicon.ico``    301 to ``/static/favicon.svg``
- ``/healthz``        liveness for load balancers
- ``/livez``          liveness probe, never cached
- ``/readyz``         readiness probe (session store ping)
- ``/robots.txt``     from the static dir, else generated
- ``/sitemap.xml``    from the static dir, else generated from the registry
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional
from xml.sax.saxutils import escape

from .request import Request, RequestCtx
from .response import Response

if TYPE_CHECKING:
    from .routing import Router
    from .server import HXForgeServer

NO_CACHE = "no-cache, no-store, must-revalidate"


@dataclass(frozen=True)
class SitemapEntry:
    path: str
    lastmod: str = ""
    changefreq: str = ""
    priority: str = ""


class SitemapRegistry:
    """URLs listed in the generated sitemap.xml, keyed by path."""

    def __init__(self):
        self._entries: Dict[str, SitemapEntry] = {}

    def register(self, path: str, *, lastmod: str = "", changefreq: str = "", priority: str = "") -> None:
        if not path.startswith("/"):
            path = "/" + path
        self._entries[path] = SitemapEntry(path, lastmod, changefreq, priority)

    def entries(self) -> List[SitemapEntry]:
        return sorted(self._entries.values(), key=lambda e: e.path)


def absolute_base_url(request: Request, site_base_url: str = "") -> str:
    """``SITE_BASE_URL`` if set, otherwise scheme and host of the request."""
    if site_base_url:
        return site_base_url.rstrip("/")
    scheme = request.scheme
    if (request.header("x-forwarded-proto") or "").strip().lower() == "https":
        scheme = "https"
    return f"{scheme}://{request.host}"


def render_robots(base_url: str) -> str:
    return f"User-agent: *\nAllow: /\nSitemap: {base_url}/sitemap.xml\n"


def render_sitemap(base_url: str, entries: List[SitemapEntry], today: Optional[str] = None) -> str:
    today = today or datetime.now(timezone.utc).strftime("%Y-%m-%d")
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for entry in entries:
        priority = entry.priority or ("1.0" if entry.path == "/" else "0.7")
        lines.append(
            f"  <url><loc>{escape(base_url + entry.path)}</loc>"
            f"<lastmod>{entry.lastmod or today}</lastmod>"
            f"<changefreq>{entry.changefreq or 'weekly'}</changefreq>"
            f"<priority>{priority}</priority></url>"
        )
    lines.append("</urlset>")
    return "\n".join(lines) + "\n"


def _parse_count(raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        return 0


class SiteRoutes:
    """Handlers bound to one ``HXForgeServer`` (config, templates, readiness)."""

    def __init__(self, server: "HXForgeServer"):
        self.server = server
        self.config = server.config
        self.templates = server.templates

    def register(self, router: "Router") -> None:
        router.add_route("/", self.home)
        router.add_route("/counter", self.counter_fragment)
        router.add_route("/counter/sync", self.counter_sync, methods=("POST",))
        router.add_route("/favicon.ico", self.favicon)
        router.add_route("/healthz", self.healthz)
        router.add_route("/livez", self.livez)
        router.add_route("/readyz", self.readyz)
        router.add_route("/robots.txt", self.robots)
        router.add_route("/sitemap.xml", self.sitemap)
        self.server.sitemap.register("/")

    # ── Pages ─────────────────────────────────────────────────────────────

    async def home(self, request: Request, ctx: RequestCtx) -> Response:
        count = ctx.session.get("count", 0) if ctx.session is not None else 0
        return await self.templates.render_to_response(
            "index.html", {"count": count, "base_url": self.config.site_base_url},
        )

    async def counter_fragment(self, request: Request, ctx: RequestCtx) -> Response:
        count = ctx.session.get("count", 0) if ctx.session is not None else 0
        return await self.templates.render_to_response("_counter.html", {"count": count})

    async def counter_sync(self, request: Request, ctx: RequestCtx) -> Response:
        try:
            form = await request.form()
        except (ValueError, UnicodeDecodeError):
            return Response.text("bad request", status=400)
        count = _parse_count(form.get("count", ""))
        if ctx.session is not None:
            ctx.session["count"] = count
        return Response.text(str(count))

    async def favicon(self, request: Request, ctx: RequestCtx) -> Response:
        return Response.redirect("/static/favicon.svg", status=301)

    # ── Probes ────────────────────────────────────────────────────────────

    async def healthz(self, request: Request, ctx: RequestCtx) -> Response:
        return Response.text("ok")

    async def livez(self, request: Request, ctx: RequestCtx) -> Response:
        return Response.text("alive", headers={"cache-control": NO_CACHE})

    async def readyz(self, request: Request, ctx: RequestCtx) -> Response:
        ready, checks = await self.server.readiness()
        lines = [f"{name}: {state}" for name, state in checks.items()]
        lines.append("ready" if ready else "not ready")
        return Response.text(
            "\n".join(lines),
            status=200 if ready else 503,
            headers={"cache-control": NO_CACHE},
        )

    # ── SEO ───────────────────────────────────────────────────────────────

    async def robots(self, request: Request, ctx: RequestCtx) -> Response:
        content = await self._static_override("robots.txt")
        if content is None:
            content = render_robots(absolute_base_url(request, self.config.site_base_url)).encode()
        return Response(content, media_type="text/plain; charset=utf-8")

    async def sitemap(self, request: Request, ctx: RequestCtx) -> Response:
        content = await self._static_override("sitemap.xml")
        if content is None:
            base_url = absolute_base_url(request, self.config.site_base_url)
            content = render_sitemap(base_url, self.server.sitemap.entries()).encode()
        return Response(content, media_type="application/xml; charset=utf-8")

    async def _static_override(self, name: str) -> Optional[bytes]:
        path = Path(self.config.static_dir) / name
        if not path.is_file():
            return None
        return await asyncio.to_thread(path.read_bytes)


__all__ = [
    "SiteRoutes",
    "SitemapEntry",
    "SitemapRegistry",
    "absolute_base_url",
    "render_robots",
    "render_sitemap",
]
