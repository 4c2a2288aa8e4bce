"""
hxforge Testing - in-process ASGI test client.

``TestClient`` issues requests straight into an ASGI app (or an
``HXForgeServer``) without opening a socket, and keeps a cookie jar so
sessions survive across requests.
"""

from __future__ import annotations

import json as stdlib_json
import time as _time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode


class TestResponse:
    """
    Captured ASGI response events with a friendly API for assertions.
    """

    __test__ = False

    __slots__ = ("status_code", "headers", "set_cookies", "body", "content_type", "charset", "elapsed")

    def __init__(
        self,
        status_code: int,
        headers: Dict[str, str],
        body: bytes,
        *,
        set_cookies: Optional[List[str]] = None,
        elapsed: float = 0.0,
    ):
        self.status_code = status_code
        self.headers = headers
        self.set_cookies = set_cookies or []
        self.body = body
        self.elapsed = elapsed

        ct = headers.get("content-type", "")
        self.content_type = ct.split(";")[0].strip()
        self.charset = "utf-8"
        if "charset=" in ct:
            self.charset = ct.split("charset=")[-1].strip()

    @property
    def text(self) -> str:
        return self.body.decode(self.charset)

    def json(self) -> Any:
        return stdlib_json.loads(self.body)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    def has_header(self, name: str) -> bool:
        return name.lower() in self.headers

    @property
    def vary(self) -> List[str]:
        """``Vary`` split into its values."""
        return [v.strip() for v in self.headers.get("vary", "").split(",") if v.strip()]

    def __repr__(self) -> str:
        return f"<TestResponse [{self.status_code}] {self.content_type} {len(self.body)}B {self.elapsed:.1f}ms>"


class TestClient:
    """
    In-process ASGI test client.

    Example:
        >>> client = TestClient(HXForgeServer(config))
        >>> resp = await client.get("/")
        >>> assert resp.status_code == 200
    """

    __test__ = False

    def __init__(
        self,
        server_or_app: Any,
        *,
        host: str = "testserver",
        client_addr: Tuple[str, int] = ("127.0.0.1", 50000),
        default_headers: Optional[Dict[str, str]] = None,
    ):
        self._app = getattr(server_or_app, "app", server_or_app)
        self.host = host
        self.client_addr = client_addr
        self._default_headers = default_headers or {}
        self._cookies: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # HTTP verbs
    # ------------------------------------------------------------------

    async def get(self, path: str, **kw) -> TestResponse:
        return await self.request("GET", path, **kw)

    async def head(self, path: str, **kw) -> TestResponse:
        return await self.request("HEAD", path, **kw)

    async def options(self, path: str, **kw) -> TestResponse:
        return await self.request("OPTIONS", path, **kw)

    async def post(self, path: str, data: Optional[Dict[str, str]] = None, **kw) -> TestResponse:
        return await self.request("POST", path, data=data, **kw)

    async def put(self, path: str, data: Optional[Dict[str, str]] = None, **kw) -> TestResponse:
        return await self.request("PUT", path, data=data, **kw)

    async def delete(self, path: str, **kw) -> TestResponse:
        return await self.request("DELETE", path, **kw)

    # ------------------------------------------------------------------
    # Cookie management
    # ------------------------------------------------------------------

    def set_cookie(self, name: str, value: str) -> None:
        self._cookies[name] = value

    @property
    def cookies(self) -> Dict[str, str]:
        return dict(self._cookies)

    # ------------------------------------------------------------------
    # Core request execution
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, str]] = None,
        body: bytes = b"",
        query_string: str = "",
        scheme: str = "http",
        client: Optional[Tuple[str, int]] = None,
    ) -> TestResponse:
        header_list: List[Tuple[str, str]] = [("host", self.host)]
        for k, v in {**self._default_headers, **(headers or {})}.items():
            header_list.append((k.lower(), v))

        if self._cookies:
            header_list.append(("cookie", "; ".join(f"{k}={v}" for k, v in self._cookies.items())))

        if data is not None:
            body = urlencode(data).encode("utf-8")
            header_list.append(("content-type", "application/x-www-form-urlencoded"))
        if body:
            header_list.append(("content-length", str(len(body))))

        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method.upper(),
            "scheme": scheme,
            "path": path,
            "raw_path": path.encode("latin-1"),
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in header_list],
            "client": client or self.client_addr,
            "server": (self.host, 80),
        }

        sent = False

        async def receive() -> dict:
            nonlocal sent
            if sent:
                return {"type": "http.disconnect"}
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}

        status_code = 500
        resp_headers: Dict[str, str] = {}
        set_cookies: List[str] = []
        body_parts: List[bytes] = []

        async def send(event: dict) -> None:
            nonlocal status_code
            if event["type"] == "http.response.start":
                status_code = event["status"]
                for raw_name, raw_value in event.get("headers", []):
                    name = raw_name.decode("latin-1").lower()
                    value = raw_value.decode("latin-1")
                    if name == "set-cookie":
                        set_cookies.append(value)
                    if name in resp_headers:
                        resp_headers[name] = f"{resp_headers[name]}, {value}"
                    else:
                        resp_headers[name] = value
            elif event["type"] == "http.response.body":
                body_parts.append(event.get("body", b""))

        start = _time.monotonic()
        await self._app(scope, receive, send)
        elapsed_ms = (_time.monotonic() - start) * 1000

        for cookie in set_cookies:
            self._store_cookie(cookie)

        return TestResponse(
            status_code,
            resp_headers,
            b"".join(body_parts),
            set_cookies=set_cookies,
            elapsed=elapsed_ms,
        )

    def _store_cookie(self, header: str) -> None:
        pair, *attributes = [part.strip() for part in header.split(";")]
        name, _, value = pair.partition("=")
        expired = any(attr.lower() == "max-age=0" for attr in attributes)
        if expired or not value:
            self._cookies.pop(name, None)
        else:
            self._cookies[name] = value


__all__ = ["TestClient", "TestResponse"]
