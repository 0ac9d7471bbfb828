"""
Tests for the command-line interface.
"""

from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from chat_gateway.cli import app
from shared.config.settings import get_settings

runner = CliRunner()


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_serve_enables_protocol_keepalive():
    from shared.config.settings import settings

    with patch("uvicorn.run") as run:
        result = runner.invoke(app, ["serve", "--port", "9000"])

    assert result.exit_code == 0
    kwargs = run.call_args.kwargs
    assert kwargs["port"] == 9000
    assert kwargs["ws_ping_interval"] == settings.ping_interval_seconds
    assert kwargs["ws_ping_timeout"] == settings.ping_timeout_seconds


def test_config_valid(fresh_settings):
    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert "Configuration valid" in result.output


def test_config_reports_problems(fresh_settings, monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_MAX_MESSAGES", "0")

    result = runner.invoke(app, ["config"])

    assert result.exit_code == 1
    assert "RATE_LIMIT_MAX_MESSAGES must be positive" in result.output


def test_health_reports_stats():
    response = MagicMock(status_code=200)
    response.json.return_value = {
        "status": "healthy",
        "clients": {"totalClients": 3, "activeUsers": 2},
        "messageQueue": 0,
        "metrics": {},
    }

    with patch("httpx.get", return_value=response):
        result = runner.invoke(app, ["health"])

    assert result.exit_code == 0
    assert "healthy" in result.output


def test_health_unavailable():
    response = MagicMock(status_code=503)

    with patch("httpx.get", return_value=response):
        result = runner.invoke(app, ["health"])

    assert result.exit_code == 1
