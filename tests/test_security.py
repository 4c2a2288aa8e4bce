"""
Tests for CORS, Content-Security-Policy and CSRF enforcement.
"""

import pytest

from hxforge.faults import CSRFViolationFault
from hxforge.middleware_ext.security import (
    CORSMiddleware,
    CSPPolicy,
    CSRFMiddleware,
    build_cors_middleware,
    csp_for_env,
)
from hxforge.response import Response
from hxforge.testing import TestClient

from tests.conftest import make_ctx, make_request, make_server


async def ok_handler(request, ctx):
    return Response.text("ok")


# ============================================================================
# CORS
# ============================================================================


class TestCORS:

    def test_empty_config_is_wildcard_without_credentials(self):
        mw = build_cors_middleware(())
        assert mw.is_wildcard
        assert mw.allow_credentials is False

    def test_explicit_list_enables_credentials(self):
        mw = build_cors_middleware(["https://a.example", " https://b.example "])
        assert not mw.is_wildcard
        assert mw.allow_credentials is True
        assert mw.allow_origins == ["https://a.example", "https://b.example"]

    def test_star_in_list_disables_credentials(self):
        mw = build_cors_middleware(["*", "https://a.example"])
        assert mw.allow_credentials is False

    @pytest.mark.asyncio
    async def test_wildcard_response(self):
        mw = build_cors_middleware(())
        request = make_request(headers={"Origin": "https://any.example"})
        resp = await mw(request, make_ctx(request), ok_handler)
        assert resp.header("access-control-allow-origin") == "*"
        assert resp.header("access-control-allow-credentials") is None
        assert resp.header("access-control-expose-headers") == "Link"

    @pytest.mark.asyncio
    async def test_credentials_reflect_origin(self):
        mw = build_cors_middleware(["https://a.example", "https://b.example"])
        request = make_request(headers={"Origin": "https://b.example"})
        resp = await mw(request, make_ctx(request), ok_handler)
        assert resp.header("access-control-allow-origin") == "https://b.example"
        assert resp.header("access-control-allow-credentials") == "true"
        assert "Origin" in resp.header("vary")

    @pytest.mark.asyncio
    async def test_unlisted_origin_gets_no_cors_headers(self):
        mw = build_cors_middleware(["https://a.example"])
        request = make_request(headers={"Origin": "https://evil.example"})
        resp = await mw(request, make_ctx(request), ok_handler)
        assert resp.status == 200
        assert resp.header("access-control-allow-origin") is None

    @pytest.mark.asyncio
    async def test_preflight(self):
        mw = CORSMiddleware(allow_origins=["https://a.example"], allow_credentials=True, max_age=600)
        request = make_request(
            "OPTIONS", "/counter/sync",
            headers={"Origin": "https://a.example", "Access-Control-Request-Method": "POST"},
        )
        resp = await mw(request, make_ctx(request), ok_handler)
        assert resp.status == 204
        assert resp.header("access-control-allow-origin") == "https://a.example"
        assert "POST" in resp.header("access-control-allow-methods")
        assert "Content-Type" in resp.header("access-control-allow-headers")
        assert resp.header("access-control-max-age") == "600"

    @pytest.mark.asyncio
    async def test_preflight_for_unlisted_origin(self):
        mw = CORSMiddleware(allow_origins=["https://a.example"])
        request = make_request(
            "OPTIONS", "/", headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"},
        )
        resp = await mw(request, make_ctx(request), ok_handler)
        assert resp.status == 204
        assert resp.header("access-control-allow-origin") is None

    @pytest.mark.asyncio
    async def test_server_wires_configured_origins(self, static_dir):
        client = TestClient(make_server(static_dir, CORS_ORIGINS="https://a.example,https://b.example"))
        resp = await client.get("/healthz", headers={"Origin": "https://a.example"})
        assert resp.header("access-control-allow-origin") == "https://a.example"
        assert resp.header("access-control-allow-credentials") == "true"


# ============================================================================
# CSP
# ============================================================================


class TestCSP:

    def test_builder(self):
        policy = CSPPolicy().default_src("'self'").object_src("'none'").directive("upgrade-insecure-requests")
        assert policy.build() == "default-src 'self'; object-src 'none'; upgrade-insecure-requests"

    def test_development_allows_eval(self):
        value = csp_for_env("development").build()
        assert "'unsafe-eval'" in value
        assert "default-src 'self'" in value

    def test_production_restricts_scripts(self):
        value = csp_for_env("production").build()
        assert "'unsafe-eval'" not in value
        assert "script-src 'self' https://unpkg.com https://cdn.jsdelivr.net 'unsafe-inline'" in value
        assert "object-src 'none'" in value
        assert "frame-ancestors 'self'" in value

    def test_unknown_env_uses_production(self):
        assert csp_for_env("staging").build() == CSPPolicy.production().build()

    @pytest.mark.asyncio
    async def test_header_on_every_response(self, static_dir):
        client = TestClient(make_server(static_dir, APP_ENV="production"))
        for path in ("/", "/missing"):
            resp = await client.get(path)
            assert "'unsafe-eval'" not in resp.header("content-security-policy")

        dev = TestClient(make_server(static_dir, APP_ENV="development"))
        assert "'unsafe-eval'" in (await dev.get("/")).header("content-security-policy")


# ============================================================================
# CSRF
# ============================================================================


class TestCSRF:

    async def _post(self, mw, headers):
        request = make_request("POST", "/counter/sync", headers={"Host": "site.example", **headers})
        return await mw(request, make_ctx(request), ok_handler)

    @pytest.mark.asyncio
    async def test_same_origin_passes(self):
        resp = await self._post(CSRFMiddleware(), {"Origin": "https://site.example"})
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_no_origin_or_referer_passes(self):
        resp = await self._post(CSRFMiddleware(), {})
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_cross_origin_rejected(self):
        resp = await self._post(CSRFMiddleware(), {"Origin": "https://evil.example"})
        assert resp.status == 403
        assert resp.body == b"Forbidden"
        assert isinstance(resp._fault, CSRFViolationFault)

    @pytest.mark.asyncio
    async def test_referer_checked_without_origin(self):
        resp = await self._post(CSRFMiddleware(), {"Referer": "https://evil.example/page"})
        assert resp.status == 403
        resp = await self._post(CSRFMiddleware(), {"Referer": "https://site.example/page"})
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_sec_fetch_site_cross_site_rejected(self):
        resp = await self._post(CSRFMiddleware(), {"Sec-Fetch-Site": "cross-site"})
        assert resp.status == 403

    @pytest.mark.asyncio
    async def test_null_origin_rejected(self):
        resp = await self._post(CSRFMiddleware(), {"Origin": "null"})
        assert resp.status == 403

    @pytest.mark.asyncio
    async def test_trusted_origin_passes(self):
        mw = CSRFMiddleware(trusted_origins=["https://app.example/"])
        resp = await self._post(mw, {"Origin": "https://app.example"})
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_safe_methods_skip_check(self):
        request = make_request("GET", "/", headers={"Origin": "https://evil.example", "Host": "site.example"})
        resp = await CSRFMiddleware()(request, make_ctx(request), ok_handler)
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_only_enforced_in_production(self, static_dir):
        headers = {"Origin": "https://evil.example"}
        prod = TestClient(make_server(static_dir, APP_ENV="production"))
        assert (await prod.post("/counter/sync", data={"count": "1"}, headers=headers)).status_code == 403

        dev = TestClient(make_server(static_dir, APP_ENV="development"))
        assert (await dev.post("/counter/sync", data={"count": "1"}, headers=headers)).status_code == 200

    @pytest.mark.asyncio
    async def test_production_same_host_post(self, static_dir):
        client = TestClient(make_server(static_dir, APP_ENV="production"))
        resp = await client.post("/counter/sync", data={"count": "4"}, headers={"Origin": "http://testserver"})
        assert resp.status_code == 200
        assert resp.text == "4"
