"""HTTP session handling for upstream requests."""

import random
import time
from typing import Optional

import requests  # type: ignore[import-untyped]

from storesync.config import (
    HEADERS,
    MAX_RETRIES,
    MAX_RETRY_BACKOFF,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF_BASE,
    RETRY_STATUS_CODES,
)
from storesync.logging_config import get_logger

__all__ = ["create_session", "get_session", "http_get"]

logger = get_logger("http_client")

# Module-level session for connection reuse
_session: Optional[requests.Session] = None


def create_session() -> requests.Session:
    """Create a requests Session with connection pooling and default headers."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


def get_session() -> requests.Session:
    """Get or create the module-level session."""
    global _session
    if _session is None:
        _session = create_session()
    return _session


def _backoff(attempt: int) -> float:
    return min(RETRY_BACKOFF_BASE ** attempt, MAX_RETRY_BACKOFF) + random.uniform(0, 1)


def http_get(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
    max_retries: int = MAX_RETRIES,
) -> requests.Response:
    """GET with a timeout and exponential backoff on transient failures.

    Retries on connection errors, timeouts and the status codes in
    RETRY_STATUS_CODES. Any other non-2xx status fails immediately.

    Returns:
        The successful response

    Raises:
        requests.RequestException: If the request fails after all retries
    """
    sess = session or get_session()

    for attempt in range(max_retries + 1):
        try:
            resp = sess.get(url, timeout=timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            if attempt < max_retries:
                delay = _backoff(attempt)
                logger.warning(
                    f"{type(e).__name__} for {url}, backing off {delay:.1f}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(delay)
                continue
            raise

        if resp.status_code in RETRY_STATUS_CODES and attempt < max_retries:
            delay = _backoff(attempt)
            logger.warning(
                f"Received {resp.status_code} for {url}, backing off {delay:.1f}s "
                f"(attempt {attempt + 1}/{max_retries})"
            )
            time.sleep(delay)
            continue

        resp.raise_for_status()
        return resp

    # Unreachable: the last attempt either returns or raises
    raise requests.exceptions.RetryError(f"Failed to fetch {url} after {max_retries} retries")
