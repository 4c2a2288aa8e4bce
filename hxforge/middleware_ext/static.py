"""
Static file responder - terminal handler mounted at ``/static/``.

Features:
- Explicit content types for web assets (override ``mimetypes`` guesses)
- ``Cache-Control: public, max-age=31536000, immutable`` on every file
- Weak ETag with If-None-Match support
- Last-Modified / If-Modified-Since conditional responses
- Directory traversal prevention with resolve() canonicalization
- File reads off the event loop (``asyncio.to_thread``)
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
import os
from datetime import datetime, timezone
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote

from hxforge.request import Request, RequestCtx
from hxforge.response import Response

logger = logging.getLogger("hxforge.static")

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"

# ─── Content types that win over mimetypes ────────────────────────────────────
CONTENT_TYPES: Dict[str, str] = {
    ".css": "text/css; charset=utf-8",
    ".js": "application/javascript; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".woff2": "font/woff2",
    ".woff": "font/woff",
    ".ttf": "font/ttf",
    ".ico": "image/x-icon",
}


def content_type_for(path: Path) -> str:
    explicit = CONTENT_TYPES.get(path.suffix.lower())
    if explicit:
        return explicit
    mime, _ = mimetypes.guess_type(str(path))
    return mime or "application/octet-stream"


class StaticFiles:
    """
    Serves files from ``directory`` for paths under ``prefix``.

    Args:
        directory: Filesystem root for assets.
        prefix: URL prefix the router mounts this handler at.
        cache_control: Value sent with every file.
        etag: Emit weak ETags and honour If-None-Match.
    """

    def __init__(
        self,
        directory: str | os.PathLike,
        prefix: str = "/static/",
        cache_control: str = IMMUTABLE_CACHE_CONTROL,
        etag: bool = True,
    ):
        self.directory = Path(directory).resolve()
        self.prefix = "/" + prefix.strip("/") + "/"
        self.cache_control = cache_control
        self.etag = etag
        if not self.directory.is_dir():
            logger.warning("Static directory %s does not exist", self.directory)

    async def __call__(self, request: Request, ctx: RequestCtx) -> Response:
        if request.method not in ("GET", "HEAD"):
            return Response.text("Method Not Allowed", status=405, headers={"allow": "GET, HEAD"})

        file_path = self._resolve(request.path)
        if file_path is None:
            return Response.text("Not Found", status=404)

        try:
            st = await asyncio.to_thread(os.stat, file_path)
        except OSError:
            return Response.text("Not Found", status=404)

        etag = self._compute_etag(st) if self.etag else None
        cache_headers = self._build_cache_headers(etag, st)

        if self._not_modified(request, etag, st):
            return Response(b"", status=304, headers=cache_headers)

        content = await asyncio.to_thread(file_path.read_bytes)
        return Response(content, status=200, headers=cache_headers, media_type=content_type_for(file_path))

    # ── Internals ─────────────────────────────────────────────────────────

    def _resolve(self, url_path: str) -> Optional[Path]:
        """Map a URL path to a file inside ``directory``; None on miss or traversal."""
        if not url_path.startswith(self.prefix):
            return None
        relative = unquote(url_path[len(self.prefix):])
        if not relative or "\x00" in relative:
            return None

        candidate = (self.directory / relative).resolve()
        try:
            candidate.relative_to(self.directory)
        except ValueError:
            logger.warning("Rejected static path outside root: %r", url_path)
            return None

        if not candidate.is_file():
            return None
        return candidate

    def _compute_etag(self, st: os.stat_result) -> str:
        raw = f"{st.st_ino}-{st.st_mtime_ns}-{st.st_size}"
        digest = hashlib.md5(raw.encode(), usedforsecurity=False).hexdigest()[:16]
        return f'W/"{digest}"'

    def _not_modified(self, request: Request, etag: Optional[str], st: os.stat_result) -> bool:
        client_etag = request.header("if-none-match")
        if etag and client_etag:
            return self._etag_matches(client_etag, etag)

        ims = request.header("if-modified-since")
        if ims:
            try:
                ims_dt = parsedate_to_datetime(ims)
            except (ValueError, TypeError):
                return False
            file_dt = datetime.fromtimestamp(int(st.st_mtime), tz=timezone.utc)
            return file_dt <= ims_dt
        return False

    @staticmethod
    def _etag_matches(client_header: str, etag: str) -> bool:
        if client_header.strip() == "*":
            return True
        tags = {_opaque_tag(t) for t in client_header.split(",")}
        return _opaque_tag(etag) in tags

    def _build_cache_headers(self, etag: Optional[str], st: os.stat_result) -> Dict[str, str]:
        headers: Dict[str, str] = {"cache-control": self.cache_control}
        if etag:
            headers["etag"] = etag
        headers["last-modified"] = formatdate(st.st_mtime, usegmt=True)
        return headers

    def url_for(self, path: str) -> str:
        return self.prefix + path.lstrip("/")


def _opaque_tag(tag: str) -> str:
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag.strip('"')


__all__ = ["StaticFiles", "CONTENT_TYPES", "IMMUTABLE_CACHE_CONTROL", "content_type_for"]
