"""
Tests for the hxforge command line.
"""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner
from redis.exceptions import ConnectionError as RedisConnectionError

from hxforge import __version__
from hxforge.cli.__main__ import cli

CLEAN_ENV = {
    "VALKEY_URL": None,
    "REDIS_URL": None,
    "APP_ENV": None,
    "CORS_ORIGINS": None,
    "SITE_BASE_URL": None,
    "CACHE_PUBLIC_TTL": None,
    "CACHE_SWREVAL_TTL": None,
    "DISABLE_HTML_CACHE": None,
}


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, args, **env):
    return runner.invoke(cli, args, env={**CLEAN_ENV, **env}, obj={})


def test_version(runner):
    result = invoke(runner, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_doctor_memory_store(runner, tmp_path):
    result = invoke(runner, ["doctor", "--env-file", ""], STATIC_DIR=str(tmp_path))
    assert result.exit_code == 0, result.output
    assert "memory" in result.output
    assert "SKIP" in result.output
    assert "s-maxage=60, swr=300" in result.output
    assert "Ready" in result.output


def test_doctor_reads_env_file(runner, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("RATE_LIMIT_MAX=7\nCORS_ORIGINS=https://a.example\n")
    result = invoke(runner, ["doctor", "--env-file", str(env_file)], STATIC_DIR=str(tmp_path))
    assert result.exit_code == 0, result.output
    assert "7/60s" in result.output
    assert "https://a.example" in result.output


def test_doctor_pings_store(runner, tmp_path):
    with patch("hxforge.cli.__main__.redis_dial.ping", new=AsyncMock()) as ping:
        result = invoke(
            runner, ["doctor", "--env-file", ""],
            STATIC_DIR=str(tmp_path), VALKEY_URL="rediss://:pw@valkey.example:25061/0",
        )
    assert result.exit_code == 0, result.output
    assert "rediss://valkey.example:25061/0" in result.output
    assert ":pw@" not in result.output
    ping.assert_awaited_once()


def test_doctor_store_unreachable(runner, tmp_path):
    failing = AsyncMock(side_effect=RedisConnectionError("refused"))
    with patch("hxforge.cli.__main__.redis_dial.ping", new=failing):
        result = invoke(
            runner, ["doctor", "--env-file", ""],
            STATIC_DIR=str(tmp_path), REDIS_URL="redis://localhost:6399/0",
        )
    assert result.exit_code == 1
    assert "FAIL" in result.output


def test_doctor_invalid_store_url(runner, tmp_path):
    result = invoke(
        runner, ["doctor", "--env-file", ""],
        STATIC_DIR=str(tmp_path), VALKEY_URL="redis://localhost/not-a-db",
    )
    assert result.exit_code == 1
    assert "VALKEY_URL" in result.output


def test_doctor_warns_on_dev_base_url_in_production(runner, tmp_path):
    result = invoke(
        runner, ["doctor", "--env-file", ""],
        STATIC_DIR=str(tmp_path), APP_ENV="production", SITE_BASE_URL="http://localhost:8080",
    )
    assert result.exit_code == 0
    assert "dev-like" in result.output


def test_serve_runs_uvicorn(runner, tmp_path):
    with patch("uvicorn.run") as run:
        result = invoke(runner, ["serve", "--port", "9001", "--env-file", ""], STATIC_DIR=str(tmp_path))
    assert result.exit_code == 0, result.output
    args, kwargs = run.call_args
    assert kwargs["port"] == 9001
    assert kwargs["host"] == "0.0.0.0"
    assert callable(args[0])
