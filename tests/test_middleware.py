"""
Tests for the middleware stack, the core stages and the ASGI adapter.
"""

import gzip
import logging

import pytest

from hxforge.asgi import ASGIAdapter
from hxforge.faults import CSRFViolationFault, ConfigInvalidFault, FaultDomain
from hxforge.faults.core import DOMAIN_DEFAULTS, DOMAIN_STATUS
from hxforge.middleware import (
    ERROR_RESPONSE_HOOKS,
    CompressionMiddleware,
    MiddlewareStack,
    RealIPMiddleware,
    RecoveryMiddleware,
    RequestIdMiddleware,
)
from hxforge.response import Response
from hxforge.routing import Router
from hxforge.testing import TestClient

from tests.conftest import make_ctx, make_request, make_server


async def ok_handler(request, ctx):
    return Response.text("ok")


class TestMiddlewareStack:

    @pytest.mark.asyncio
    async def test_priority_order_outermost_first(self):
        calls = []

        def tracer(label):
            async def mw(request, ctx, next_handler):
                calls.append(f"{label}:in")
                response = await next_handler(request, ctx)
                calls.append(f"{label}:out")
                return response
            return mw

        stack = MiddlewareStack()
        stack.add(tracer("inner"), priority=90, name="inner")
        stack.add(tracer("outer"), priority=10, name="outer")
        stack.add(tracer("middle"), priority=50, name="middle")
        assert stack.names() == ["outer", "middle", "inner"]

        request = make_request()
        await stack.build_handler(ok_handler)(request, make_ctx(request))
        assert calls == ["outer:in", "middle:in", "inner:in", "inner:out", "middle:out", "outer:out"]

    def test_equal_priority_keeps_insertion_order(self):
        stack = MiddlewareStack()
        for name in ("a", "b", "c"):
            stack.add(ok_handler, priority=50, name=name)
        assert stack.names() == ["a", "b", "c"]

    def test_server_pipeline_order(self, static_dir):
        dev = make_server(static_dir, LOG_FORMAT="text")
        assert dev.middleware_stack.names() == [
            "request_id", "real_ip", "recovery", "logging", "compression",
            "cors", "rate_limit", "session", "csp", "html_cache",
        ]

        prod = make_server(static_dir, APP_ENV="production")
        names = prod.middleware_stack.names()
        assert "logging" not in names
        assert names.index("csp") < names.index("csrf") < names.index("html_cache")


class TestRequestId:

    @pytest.mark.asyncio
    async def test_generated(self):
        request = make_request()
        ctx = make_ctx(request)
        resp = await RequestIdMiddleware()(request, ctx, ok_handler)
        request_id = resp.header("x-request-id")
        assert len(request_id) == 32
        assert ctx.request_id == request_id == request.state["request_id"]

    @pytest.mark.asyncio
    async def test_inbound_id_reused(self, client):
        resp = await client.get("/healthz", headers={"X-Request-ID": "abc-123"})
        assert resp.header("x-request-id") == "abc-123"


class TestRealIP:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("headers,expected", [
        ({"True-Client-IP": "1.1.1.1", "X-Real-IP": "2.2.2.2"}, "1.1.1.1"),
        ({"X-Real-IP": "2.2.2.2", "X-Forwarded-For": "3.3.3.3"}, "2.2.2.2"),
        ({"X-Forwarded-For": "3.3.3.3, 10.0.0.1"}, "3.3.3.3"),
        ({}, "127.0.0.1"),
    ])
    async def test_precedence(self, headers, expected):
        request = make_request(headers=headers)
        await RealIPMiddleware()(request, make_ctx(request), ok_handler)
        assert request.client_ip == expected


class TestRecovery:

    @pytest.mark.asyncio
    async def test_unhandled_exception_is_500(self, caplog):
        async def boom(request, ctx):
            raise RuntimeError("secret detail")

        request = make_request()
        with caplog.at_level(logging.ERROR, logger="hxforge.recovery"):
            resp = await RecoveryMiddleware()(request, make_ctx(request), boom)
        assert resp.status == 500
        assert resp.body == b"Internal Server Error"
        assert "secret detail" in caplog.text

    @pytest.mark.asyncio
    async def test_public_fault_message_shown(self):
        async def reject(request, ctx):
            raise CSRFViolationFault("origin mismatch")

        request = make_request()
        resp = await RecoveryMiddleware()(request, make_ctx(request), reject)
        assert resp.status == 403
        assert resp.body == b"origin mismatch"
        assert isinstance(resp._fault, CSRFViolationFault)

    @pytest.mark.asyncio
    async def test_private_fault_message_hidden(self):
        async def misconfigured(request, ctx):
            raise ConfigInvalidFault("PORT", "not a number")

        request = make_request()
        resp = await RecoveryMiddleware()(request, make_ctx(request), misconfigured)
        assert resp.status == 500
        assert b"PORT" not in resp.body

    def test_fault_domains_all_mapped(self):
        domains = {FaultDomain.CONFIG, FaultDomain.SESSION, FaultDomain.SECURITY}
        assert set(DOMAIN_STATUS) == domains
        assert set(DOMAIN_DEFAULTS) == domains
        assert DOMAIN_STATUS[FaultDomain.SESSION] == 503

    @pytest.mark.asyncio
    async def test_error_response_hooks_applied(self):
        async def boom(request, ctx):
            request.state.setdefault(ERROR_RESPONSE_HOOKS, []).append(
                lambda response: response.set_header("x-hooked", "1")
            )
            raise RuntimeError("late")

        request = make_request()
        resp = await RecoveryMiddleware()(request, make_ctx(request), boom)
        assert resp.status == 500
        assert resp.header("x-hooked") == "1"
        assert ERROR_RESPONSE_HOOKS not in request.state

    @pytest.mark.asyncio
    async def test_server_keeps_request_id_on_500(self, server):
        @server.router.get("/boom")
        async def boom(request, ctx):
            raise ValueError("nope")

        resp = await TestClient(server).get("/boom", headers={"X-Request-ID": "rid-1"})
        assert resp.status_code == 500
        assert resp.header("x-request-id") == "rid-1"


class TestCompression:

    @pytest.mark.asyncio
    async def test_gzip_large_text(self):
        body = "<p>hello</p>" * 100

        async def handler(request, ctx):
            return Response.html(body)

        request = make_request(headers={"Accept-Encoding": "gzip, br"})
        resp = await CompressionMiddleware()(request, make_ctx(request), handler)
        assert resp.header("content-encoding") == "gzip"
        assert gzip.decompress(resp.body).decode() == body
        assert "Accept-Encoding" in resp.header("vary")

    @pytest.mark.asyncio
    async def test_small_or_binary_bodies_untouched(self):
        async def small(request, ctx):
            return Response.text("tiny")

        async def binary(request, ctx):
            return Response(b"\x89PNG" * 500, media_type="image/png")

        for handler in (small, binary):
            request = make_request(headers={"Accept-Encoding": "gzip"})
            resp = await CompressionMiddleware()(request, make_ctx(request), handler)
            assert resp.header("content-encoding") is None

    @pytest.mark.asyncio
    async def test_client_without_gzip(self):
        async def handler(request, ctx):
            return Response.html("x" * 2000)

        request = make_request()
        resp = await CompressionMiddleware()(request, make_ctx(request), handler)
        assert resp.header("content-encoding") is None


class TestRouting:

    @pytest.mark.asyncio
    async def test_not_found_and_method_not_allowed(self, client):
        assert (await client.get("/nope")).status_code == 404
        resp = await client.delete("/counter/sync")
        assert resp.status_code == 405
        assert resp.header("allow") == "POST"

        resp = await client.post("/healthz", data={})
        assert resp.status_code == 405
        assert resp.header("allow") == "GET, HEAD"

    def test_duplicate_route(self):
        router = Router()
        router.add_route("/a", ok_handler)
        with pytest.raises(ValueError):
            router.add_route("/a", ok_handler)
        router.add_route("/a", ok_handler, methods=("POST",))
        assert router.paths() == ["/a"]

    def test_longest_mount_wins(self):
        router = Router()

        async def outer(request, ctx):
            return Response.text("outer")

        async def inner(request, ctx):
            return Response.text("inner")

        router.mount("/static/", outer)
        router.mount("/static/img/", inner)
        assert router.match("/static/img/a.png", "GET")[0] is inner
        assert router.match("/static/a.css", "GET")[0] is outer


class TestASGILifespan:

    @pytest.mark.asyncio
    async def test_startup_and_shutdown(self, server, memory_store):
        messages = iter([{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}])
        sent = []

        async def receive():
            return next(messages)

        async def send(message):
            sent.append(message["type"])

        await server.app({"type": "lifespan"}, receive, send)
        assert sent == ["lifespan.startup.complete", "lifespan.shutdown.complete"]
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_adapter_without_recovery(self):
        async def boom(request, ctx):
            raise RuntimeError("x")

        app = ASGIAdapter(boom, MiddlewareStack())
        resp = await TestClient(app).get("/")
        assert resp.status_code == 500
