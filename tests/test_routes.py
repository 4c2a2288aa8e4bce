"""
Tests for the built-in pages, probes and SEO routes.
"""

from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from hxforge.routes import NO_CACHE, SitemapRegistry, render_robots, render_sitemap
from hxforge.sessions import MemoryStore
from hxforge.testing import TestClient

from tests.conftest import make_server


class TestPages:

    @pytest.mark.asyncio
    async def test_home(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.content_type == "text/html"
        assert "https://unpkg.com/htmx.org" in resp.text
        assert '<strong id="server-count">0</strong>' in resp.text
        assert 'hx-post="/counter/sync"' in resp.text

    @pytest.mark.asyncio
    async def test_home_json_ld_uses_site_base_url(self, static_dir):
        client = TestClient(make_server(static_dir, SITE_BASE_URL="https://site.example"))
        resp = await client.get("/")
        assert '"url": "https://site.example/"' in resp.text

    @pytest.mark.asyncio
    async def test_favicon_redirect(self, client):
        resp = await client.get("/favicon.ico")
        assert resp.status_code == 301
        assert resp.header("location") == "/static/favicon.svg"


class TestProbes:

    @pytest.mark.asyncio
    async def test_healthz(self, client):
        resp = await client.get("/healthz")
        assert resp.status_code == 200
        assert resp.text == "ok"

    @pytest.mark.asyncio
    async def test_livez_never_cached(self, client):
        resp = await client.get("/livez")
        assert resp.status_code == 200
        assert resp.header("cache-control") == NO_CACHE

    @pytest.mark.asyncio
    async def test_readyz_without_store(self, client):
        resp = await client.get("/readyz")
        assert resp.status_code == 200
        assert resp.text == "valkey: SKIP\nready"
        assert resp.header("cache-control") == NO_CACHE

    @pytest.mark.asyncio
    async def test_readyz_store_ok(self, static_dir):
        server = make_server(static_dir, store=MemoryStore(), VALKEY_URL="redis://valkey:6379/0")
        with patch("hxforge.server.redis_dial.ping", new=AsyncMock()) as ping:
            resp = await TestClient(server).get("/readyz")
        assert resp.status_code == 200
        assert resp.text == "valkey: OK\nready"
        ping.assert_awaited_once_with(server.connection)

    @pytest.mark.asyncio
    async def test_readyz_store_down(self, static_dir):
        server = make_server(static_dir, store=MemoryStore(), VALKEY_URL="redis://valkey:6379/0")
        failing = AsyncMock(side_effect=RedisConnectionError("refused"))
        with patch("hxforge.server.redis_dial.ping", new=failing):
            resp = await TestClient(server).get("/readyz")
        assert resp.status_code == 503
        assert resp.text == "valkey: FAIL\nnot ready"


class TestSEO:

    @pytest.mark.asyncio
    async def test_generated_robots(self, client):
        resp = await client.get("/robots.txt")
        assert resp.status_code == 200
        assert resp.header("content-type") == "text/plain; charset=utf-8"
        assert resp.text == "User-agent: *\nAllow: /\nSitemap: http://testserver/sitemap.xml\n"

    @pytest.mark.asyncio
    async def test_robots_from_static_dir(self, client, static_dir):
        (static_dir / "robots.txt").write_text("User-agent: *\nDisallow: /\n")
        resp = await client.get("/robots.txt")
        assert resp.text == "User-agent: *\nDisallow: /\n"

    @pytest.mark.asyncio
    async def test_generated_sitemap(self, client):
        resp = await client.get("/sitemap.xml", headers={"X-Forwarded-Proto": "https"})
        assert resp.header("content-type") == "application/xml; charset=utf-8"
        assert "<loc>https://testserver/</loc>" in resp.text
        assert "<priority>1.0</priority>" in resp.text

    @pytest.mark.asyncio
    async def test_sitemap_lists_registered_paths(self, server):
        server.sitemap.register("about", changefreq="monthly")
        resp = await TestClient(server).get("/sitemap.xml")
        assert "<loc>http://testserver/about</loc>" in resp.text
        assert "<changefreq>monthly</changefreq>" in resp.text

    @pytest.mark.asyncio
    async def test_seo_routes_are_not_html_cache_annotated(self, client):
        resp = await client.get("/sitemap.xml")
        assert resp.header("cache-control") is None

    def test_render_robots(self):
        assert render_robots("https://site.example").endswith("Sitemap: https://site.example/sitemap.xml\n")

    def test_render_sitemap(self):
        registry = SitemapRegistry()
        registry.register("/b")
        registry.register("/a", lastmod="2024-01-01", priority="0.5")
        xml = render_sitemap("https://site.example", registry.entries(), today="2025-06-30")
        assert xml.index("/a</loc>") < xml.index("/b</loc>")
        assert "<lastmod>2024-01-01</lastmod>" in xml
        assert "<lastmod>2025-06-30</lastmod>" in xml
        assert "<priority>0.5</priority>" in xml
        assert "<priority>0.7</priority>" in xml
        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
