"""
Shared test fixtures and helpers for the hxforge test suite.
"""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from hxforge.config import ServerConfig
from hxforge.request import Request, RequestCtx
from hxforge.response import Response
from hxforge.server import HXForgeServer
from hxforge.sessions import MemoryStore
from hxforge.testing import TestClient


# ============================================================================
# Config / server helpers
# ============================================================================


def make_config(**env: str) -> ServerConfig:
    """Config from an explicit environment; never reads os.environ or .env."""
    environ = {"LOG_FORMAT": "off"}
    environ.update(env)
    return ServerConfig.from_env(environ=environ, env_file=None)


def make_server(static_dir: Optional[Path] = None, store=None, **env: str) -> HXForgeServer:
    if static_dir is not None:
        env.setdefault("STATIC_DIR", str(static_dir))
    return HXForgeServer(make_config(**env), store=store)


# ============================================================================
# Request helpers
# ============================================================================


def make_scope(
    method: str = "GET",
    path: str = "/",
    headers: Optional[List[tuple]] = None,
    client: tuple = ("127.0.0.1", 12345),
) -> dict:
    """Build a minimal ASGI HTTP scope."""
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": b"",
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers or []],
        "scheme": "http",
        "server": ("testserver", 80),
        "client": client,
        "root_path": "",
    }


def make_request(method: str = "GET", path: str = "/", headers: Optional[Dict[str, str]] = None,
                 body: bytes = b"") -> Request:
    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(make_scope(method, path, list((headers or {}).items())), receive)


def make_ctx(request: Request) -> RequestCtx:
    return RequestCtx(request=request)


def html_handler(body: str = "<p>hi</p>", **headers: str):
    async def handler(request, ctx):
        return Response.html(body, headers={k.replace("_", "-"): v for k, v in headers.items()})
    return handler


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def static_dir(tmp_path: Path) -> Path:
    root = tmp_path / "static"
    root.mkdir()
    (root / "styles.css").write_text("body { color: #111; }\n")
    (root / "app.js").write_text("console.log('hx');\n")
    (root / "favicon.svg").write_text("<svg xmlns='http://www.w3.org/2000/svg'></svg>")
    (tmp_path / "secret.txt").write_text("outside the static root")
    return root


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def server(static_dir: Path, memory_store: MemoryStore) -> HXForgeServer:
    return make_server(static_dir, store=memory_store)


@pytest.fixture
def client(server: HXForgeServer) -> TestClient:
    return TestClient(server)
