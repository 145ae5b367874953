# mediapreview/infra/http_client.py
"""
HTTP client sessions for origin fetches.

Two ways to obtain an aiohttp.ClientSession:

- ``get_fetcher_session()`` – a named, lazily created session kept for the
  lifetime of a long-running server (connection pooling across requests).
- ``create_fetcher_session()`` – a fresh session owned by the caller, for
  one-shot invocations (CLI, serverless handler) where the event loop does
  not outlive the run.

Neither session carries a total timeout: the fetcher enforces its own
connect/transfer deadlines through the run's cancellation token.

Shutdown
~~~~~~~~
Call ``close_all_sessions()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from mediapreview.infra.logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Internal state
# ---------------------------------------------------------------------------

_sessions: dict[str, aiohttp.ClientSession] = {}


def _new_session(limit: int) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=None),
        connector=aiohttp.TCPConnector(
            keepalive_timeout=30,
            limit=limit,
            enable_cleanup_closed=True,
        ),
    )


def _get_or_create(name: str, limit: int = 10) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = _new_session(limit)
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_fetcher_session() -> aiohttp.ClientSession:
    """Shared session for origin fetches in the HTTP server."""
    return _get_or_create("fetcher", limit=50)


def create_fetcher_session() -> aiohttp.ClientSession:
    """Caller-owned session; close it when the run is over."""
    return _new_session(limit=4)


async def close_all_sessions() -> None:
    """Gracefully close every managed session.  Call during app shutdown."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
