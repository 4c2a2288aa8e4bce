"""
Config system - typed server configuration, read once at startup.

Values come from the process environment layered over an optional ``.env``
file (environment wins). The resulting ``ServerConfig`` is immutable and is
passed by reference into every component constructor; nothing reads
``os.environ`` while serving requests.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from dotenv import dotenv_values

logger = logging.getLogger("hxforge.config")

_TRUTHY = {"1", "true"}
_LOG_OFF = {"off", "silent", "none"}


@dataclass(frozen=True)
class ExemptPaths:
    """
    Static/infrastructure paths that bypass both rate limiting and the
    HTML cache decision engine.

    A single instance is shared by both consumers so the two lists can never
    drift apart.
    """

    prefixes: Tuple[str, ...] = ("/static/",)
    exact: FrozenSet[str] = frozenset({
        "/favicon.ico",
        "/robots.txt",
        "/sitemap.xml",
        "/healthz",
    })

    def matches(self, path: str) -> bool:
        if path in self.exact:
            return True
        return any(path.startswith(prefix) for prefix in self.prefixes)


@dataclass(frozen=True)
class ServerConfig:
    """Runtime configuration for one server instance."""

    app_env: str = "development"
    log_format: str = "text"  # "text" | "json" | "off"
    log_level: str = "info"
    host: str = "0.0.0.0"
    port: int = 8080

    rate_limit_max: int = 120
    rate_limit_window: int = 60

    cors_origins: Tuple[str, ...] = ()

    session_store_url: str = ""
    session_store_key: str = "VALKEY_URL"
    session_tls_skip_verify: bool = False
    session_lifetime: int = 24 * 60 * 60
    session_cookie_name: str = "session"
    session_required: bool = False

    disable_html_cache: bool = False
    cache_public_ttl: int = 60
    cache_swr_ttl: int = 300

    static_dir: str = "app/static"
    site_base_url: str = ""

    exempt_paths: ExemptPaths = field(default_factory=ExemptPaths)

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[str] = ".env",
    ) -> "ServerConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)
            env_file: Optional dotenv file whose values sit *below* the
                environment. Missing files are ignored.
        """
        values: Dict[str, str] = {}
        if env_file and Path(env_file).is_file():
            values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        values.update(os.environ if environ is None else environ)

        def get(key: str, default: str = "") -> str:
            return (values.get(key) or default).strip()

        store_key = "VALKEY_URL" if get("VALKEY_URL") else "REDIS_URL"
        store_url = get(store_key)

        return cls(
            app_env=get("APP_ENV", "development"),
            log_format=_parse_log_format(get("LOG_FORMAT")),
            log_level=get("LOG_LEVEL", "info").lower(),
            host=get("HOST", "0.0.0.0"),
            port=_env_int(values, "PORT", 8080, minimum=1),
            rate_limit_max=_env_int(values, "RATE_LIMIT_MAX", 120, minimum=1),
            rate_limit_window=_env_int(values, "RATE_LIMIT_WINDOW_SECONDS", 60, minimum=1),
            cors_origins=_split_csv(get("CORS_ORIGINS")),
            session_store_url=store_url,
            session_store_key=store_key,
            session_tls_skip_verify=get("VALKEY_TLS_SKIP_VERIFY") == "1",
            session_lifetime=_env_int(values, "SESSION_LIFETIME_SECONDS", 24 * 60 * 60, minimum=1),
            session_cookie_name=get("SESSION_COOKIE_NAME", "session"),
            session_required=get("SESSION_REQUIRED").lower() in _TRUTHY,
            disable_html_cache=get("DISABLE_HTML_CACHE").lower() in _TRUTHY,
            cache_public_ttl=_env_int(values, "CACHE_PUBLIC_TTL", 60, minimum=0),
            cache_swr_ttl=_env_int(values, "CACHE_SWREVAL_TTL", 300, minimum=0),
            static_dir=_detect_static_dir(get("STATIC_DIR"), get("HXFORGE_BASEDIR")),
            site_base_url=get("SITE_BASE_URL").rstrip("/"),
        )


def _parse_log_format(raw: str) -> str:
    value = raw.lower()
    if value == "json":
        return "json"
    if value in _LOG_OFF:
        return "off"
    return "text"


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_int(values: Mapping[str, str], key: str, default: int, minimum: int = 0) -> int:
    """Parse an integer setting; invalid or out-of-range values keep the default."""
    raw = (values.get(key) or "").strip()
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", key, raw, default)
        return default
    if parsed < minimum:
        logger.warning("Ignoring %s=%d (minimum %d), using %d", key, parsed, minimum, default)
        return default
    return parsed


def _detect_static_dir(explicit: str, basedir: str) -> str:
    if explicit:
        return explicit
    if basedir:
        return str(Path(basedir) / "app" / "static")
    cur = Path.cwd()
    for candidate in (cur, *cur.parents):
        static = candidate / "app" / "static"
        if static.is_dir():
            return str(static)
    return str(Path("app") / "static")


__all__ = ["ServerConfig", "ExemptPaths"]
