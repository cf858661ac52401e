"""
HTTP client helper with standardized timeout configuration.

Ensures all outbound HTTP calls (queue provider, Telegram) have explicit
timeouts so a hanging upstream cannot block a webhook or consumer invocation.
"""

import httpx

DEFAULT_READ_TIMEOUT = 10.0


def get_httpx_timeout(read: float = DEFAULT_READ_TIMEOUT) -> httpx.Timeout:
    """
    Get standardized timeout configuration for HTTP clients.

    Args:
        read: Read timeout in seconds. Long-poll callers pass their wait time plus a margin.

    Returns:
        httpx.Timeout with appropriate timeout values
    """
    return httpx.Timeout(
        max(read, DEFAULT_READ_TIMEOUT),
        connect=5.0,
        read=read,
        write=5.0,
        pool=5.0,
    )


def create_httpx_client(read: float = DEFAULT_READ_TIMEOUT) -> httpx.AsyncClient:
    """Create an httpx.AsyncClient with standardized timeout configuration."""
    return httpx.AsyncClient(timeout=get_httpx_timeout(read))
