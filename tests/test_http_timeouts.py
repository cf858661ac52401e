"""
Test that all httpx.AsyncClient instances use explicit timeouts.

This ensures external HTTP calls don't block a webhook or consumer indefinitely.
"""

from pathlib import Path

import httpx

from app.services.integrations.http_client import create_httpx_client, get_httpx_timeout


def test_http_client_helper_returns_timeout():
    """Test that get_httpx_timeout() returns a proper timeout object."""
    timeout = get_httpx_timeout()
    assert isinstance(timeout, httpx.Timeout)
    assert timeout.connect == 5.0
    assert timeout.read == 10.0
    assert timeout.write == 5.0
    assert timeout.pool == 5.0


def test_long_poll_read_timeout_is_extended():
    timeout = get_httpx_timeout(read=25.0)
    assert timeout.read == 25.0
    assert timeout.connect == 5.0


def test_create_httpx_client_uses_timeout():
    """Test that create_httpx_client() creates a client with timeout."""
    client = create_httpx_client()
    assert isinstance(client, httpx.AsyncClient)
    assert isinstance(client.timeout, httpx.Timeout)


def test_no_bare_async_clients_outside_helper():
    """Every module that talks HTTP goes through the timeout helper."""
    services = Path(__file__).parent.parent / "app" / "services"
    offenders = []
    for path in services.rglob("*.py"):
        if path.name == "http_client.py":
            continue
        if "httpx.AsyncClient(" in path.read_text(encoding="utf-8"):
            offenders.append(str(path.relative_to(services)))
    assert offenders == []
