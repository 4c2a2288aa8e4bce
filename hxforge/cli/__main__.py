"""hxforge CLI - Main Entry Point.

Commands:
    serve   - Run the server under uvicorn
    doctor  - Print the effective configuration and ping the session store
"""

import asyncio
import logging
import sys
from pathlib import Path

import click
from redis.exceptions import RedisError

from . import __version__, __cli_name__
from .output import _CHECK, _CROSS, badge, error, info, kv, section, success, warning
from .. import redis_dial
from ..config import ServerConfig
from ..faults import Fault


def _load_config(env_file: str) -> ServerConfig:
    return ServerConfig.from_env(env_file=env_file or None)


def _configure_logging(config: ServerConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    # JSON access records are already complete lines
    fmt = "%(message)s" if config.log_format == "json" else "%(asctime)s %(levelname)s %(name)s: %(message)s"
    logging.basicConfig(level=level, format=fmt)


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, verbose: bool):
    """Server-rendered htmx sites with sessions and shared-cache aware HTML.

    \b
    Quick start:
      hxforge doctor
      hxforge serve --port 8080
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


@cli.command('serve')
@click.option('--host', type=str, default=None, help='Bind host (default: HOST or 0.0.0.0)')
@click.option('--port', type=int, default=None, help='Bind port (default: PORT or 8080)')
@click.option('--env-file', type=str, default='.env', help='Dotenv file layered under the environment')
@click.pass_context
def serve(ctx, host, port, env_file: str):
    """
    Start the server.

    Examples:
      hxforge serve
      hxforge serve --port 9000
    """
    import uvicorn

    from ..server import HXForgeServer

    config = _load_config(env_file)
    _configure_logging(config, ctx.obj['verbose'])

    try:
        server = HXForgeServer(config)
    except Fault as e:
        error(f"  {_CROSS} {e.message}")
        sys.exit(1)

    uvicorn.run(
        server.app,
        host=host or config.host,
        port=port or config.port,
        log_level=config.log_level,
        access_log=False,
        proxy_headers=True,
    )


@cli.command('doctor')
@click.option('--env-file', type=str, default='.env', help='Dotenv file layered under the environment')
@click.pass_context
def doctor(ctx, env_file: str):
    """Show the effective configuration and check the session store."""
    config = _load_config(env_file)
    problems = 0

    section("Environment")
    kv("APP_ENV", config.app_env)
    kv("LOG_FORMAT", config.log_format)
    kv("SITE_BASE_URL", config.site_base_url or "(from request)")
    if config.is_production and (not config.site_base_url or "localhost" in config.site_base_url):
        warning("  ! APP_ENV=production but SITE_BASE_URL looks dev-like")

    section("HTTP")
    kv("CORS origins", ", ".join(config.cors_origins) or "*")
    kv("Rate limit", f"{config.rate_limit_max}/{config.rate_limit_window}s")
    kv("HTML cache", "disabled" if config.disable_html_cache else
       f"s-maxage={config.cache_public_ttl}, swr={config.cache_swr_ttl}")
    static_ok = Path(config.static_dir).is_dir()
    kv("Static dir", config.static_dir)
    click.echo(f"  {badge('present' if static_ok else 'missing', style='ok' if static_ok else 'skip')}")

    section("Session store")
    if not config.session_store_url:
        kv("Store", "memory")
        click.echo(f"  {badge('SKIP', style='skip')} no VALKEY_URL/REDIS_URL configured")
    else:
        try:
            descriptor = redis_dial.parse_connection_url(
                config.session_store_url, config.session_tls_skip_verify,
                key=config.session_store_key,
            )
        except Fault as e:
            error(f"  {_CROSS} {e.message}")
            sys.exit(1)

        kv("Store", descriptor.display)
        try:
            asyncio.run(redis_dial.ping(descriptor))
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            click.echo(f"  {badge('FAIL', style='fail')} {e}")
            problems += 1
        else:
            click.echo(f"  {badge('OK')} PING")

    click.echo()
    if problems:
        error(f"  {_CROSS} {problems} check(s) failed")
        sys.exit(1)
    success(f"  {_CHECK} Ready")
    if ctx.obj['verbose'] and not config.is_production:
        info("  Set APP_ENV=production for the strict CSP and CSRF checks")


def main():
    """Entry point for `hxforge` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
