"""
Response - HTTP response builder.

Handlers return a ``Response`` object instead of writing to the socket.
Nothing is committed until ``send_asgi`` runs at the very end of the
middleware chain, so every middleware may still rewrite status and headers
after the handler has produced its body.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from email.utils import formatdate
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union


HeaderValue = Union[str, List[str]]


class Response:
    """
    HTTP response with lower-cased, multi-value aware headers.
    """

    def __init__(
        self,
        content: Union[bytes, str] = b"",
        status: int = 200,
        headers: Optional[Mapping[str, Union[str, Sequence[str]]]] = None,
        media_type: Optional[str] = None,
        *,
        encoding: str = "utf-8",
    ):
        self.status = status
        self.encoding = encoding
        self._content = content.encode(encoding) if isinstance(content, str) else bytes(content)

        self._headers: Dict[str, HeaderValue] = {}
        if headers:
            for key, value in headers.items():
                if isinstance(value, (list, tuple)):
                    self._headers[key.lower()] = list(value)
                else:
                    self._headers[key.lower()] = value

        if media_type:
            self._headers["content-type"] = media_type
        elif "content-type" not in self._headers and self._content:
            self._headers["content-type"] = "application/octet-stream"

        self._fault = None

    @property
    def headers(self) -> Dict[str, HeaderValue]:
        return self._headers

    @property
    def body(self) -> bytes:
        return self._content

    @body.setter
    def body(self, value: bytes) -> None:
        self._content = value
        self._headers.pop("content-length", None)

    @property
    def content_length(self) -> int:
        return len(self._content)

    # ========================================================================
    # Factory Methods
    # ========================================================================

    @classmethod
    def json(
        cls,
        obj: Any,
        status: int = 200,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> "Response":
        return cls(
            content=json.dumps(obj, default=str),
            status=status,
            headers=headers,
            media_type="application/json; charset=utf-8",
        )

    @classmethod
    def html(cls, content: str, status: int = 200, **kwargs) -> "Response":
        return cls(content=content, status=status, media_type="text/html; charset=utf-8", **kwargs)

    @classmethod
    def text(cls, content: str, status: int = 200, **kwargs) -> "Response":
        return cls(content=content, status=status, media_type="text/plain; charset=utf-8", **kwargs)

    @classmethod
    def redirect(cls, url: str, status: int = 307, *, headers: Optional[Dict[str, str]] = None) -> "Response":
        redirect_headers = {"location": url}
        if headers:
            redirect_headers.update(headers)
        return cls(content=b"", status=status, headers=redirect_headers)

    # ========================================================================
    # Header Helpers
    # ========================================================================

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return a header value; multi-value headers are comma-joined."""
        value = self._headers.get(name.lower())
        if value is None:
            return default
        if isinstance(value, list):
            return ", ".join(value)
        return value

    def set_header(self, name: str, value: str) -> None:
        self._validate_header(name, value)
        self._headers[name.lower()] = value

    def add_header(self, name: str, value: str) -> None:
        """Add header (supports multiple values, e.g. Set-Cookie)."""
        self._validate_header(name, value)
        name_lower = name.lower()
        existing = self._headers.get(name_lower)
        if existing is None:
            self._headers[name_lower] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            self._headers[name_lower] = [existing, value]

    @staticmethod
    def _validate_header(name: str, value: str) -> None:
        if any(ch in name for ch in "\r\n:") or "\r" in value or "\n" in value:
            raise ValueError(f"Invalid header {name!r}")

    # ========================================================================
    # Cookie Helpers
    # ========================================================================

    def set_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: Optional[int] = None,
        expires: Optional[datetime] = None,
        path: str = "/",
        domain: Optional[str] = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: Optional[str] = "Lax",
    ) -> None:
        cookie_parts = [f"{name}={value}", f"Path={path}"]
        if domain:
            cookie_parts.append(f"Domain={domain}")
        if expires:
            cookie_parts.append(f"Expires={formatdate(expires.timestamp(), usegmt=True)}")
        if max_age is not None:
            cookie_parts.append(f"Max-Age={max_age}")
        if httponly:
            cookie_parts.append("HttpOnly")
        if secure:
            cookie_parts.append("Secure")
        if samesite:
            cookie_parts.append(f"SameSite={samesite}")
        self.add_header("set-cookie", "; ".join(cookie_parts))

    def delete_cookie(
        self,
        name: str,
        *,
        path: str = "/",
        domain: Optional[str] = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: Optional[str] = "Lax",
    ) -> None:
        self.set_cookie(
            name,
            "",
            max_age=0,
            expires=datetime.fromtimestamp(0, tz=timezone.utc),
            path=path,
            domain=domain,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        )

    # ========================================================================
    # ASGI
    # ========================================================================

    async def send_asgi(self, send: Callable[[dict], Awaitable[None]], *, head: bool = False) -> None:
        """Commit status, headers and body. HEAD responses keep their length but send no body."""
        if "content-length" not in self._headers:
            self._headers["content-length"] = str(len(self._content))

        await send({
            "type": "http.response.start",
            "status": self.status,
            "headers": self._prepare_headers(),
        })
        await send({
            "type": "http.response.body",
            "body": b"" if head else self._content,
            "more_body": False,
        })

    def _prepare_headers(self) -> List[tuple]:
        headers_list = []
        for name, value in self._headers.items():
            name_bytes = name.encode("latin-1")
            if isinstance(value, list):
                for v in value:
                    headers_list.append((name_bytes, v.encode("latin-1")))
            else:
                headers_list.append((name_bytes, value.encode("latin-1")))
        return headers_list

    def __repr__(self) -> str:
        return f"<Response [{self.status}] {self.header('content-type', '-')} {len(self._content)}B>"


__all__ = ["Response"]
