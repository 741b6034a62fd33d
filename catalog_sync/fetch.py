"""HTTP retrieval of catalog documents and images."""

import random
import threading
import time
from typing import Optional

import requests  # type: ignore[import-untyped]

from catalog_sync.config import (
    HEADERS,
    MAX_RETRIES,
    MAX_RETRY_BACKOFF,
    PASSWORD,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF_BASE,
    RETRY_STATUS_CODES,
    USERNAME,
)
from catalog_sync.logging_config import get_logger
from catalog_sync.shutdown import shutdown_requested

__all__ = [
    "FetchError",
    "create_session",
    "fetch_bytes",
]

logger = get_logger("fetch")

# Sessions are not thread-safe; keep one per worker thread
_local = threading.local()


class FetchError(ValueError):
    """Raised when a remote document cannot be retrieved."""
    pass


def create_session(
    username: Optional[str] = USERNAME,
    password: Optional[str] = PASSWORD,
) -> requests.Session:
    """Create a requests Session with catalog headers and basic auth."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    if username:
        session.auth = (username, password or "")
    return session


def _get_session() -> requests.Session:
    session = getattr(_local, "session", None)
    if session is None:
        session = create_session()
        _local.session = session
    return session


def _backoff(attempt: int) -> float:
    return min(RETRY_BACKOFF_BASE ** attempt, MAX_RETRY_BACKOFF) + random.uniform(0, 1)


def fetch_bytes(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
    max_retries: int = MAX_RETRIES,
) -> bytes:
    """GET a URL with exponential backoff on transient failures.

    Args:
        url: Absolute URL to fetch
        session: Optional requests.Session (default: per-thread session)
        timeout: Per-request timeout in seconds
        max_retries: Retries for connection errors, timeouts and retryable statuses

    Returns:
        Raw response body

    Raises:
        FetchError: If the request fails after all retries
    """
    sess = session or _get_session()
    last_exception: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        if shutdown_requested():
            raise KeyboardInterrupt("Graceful shutdown requested")

        try:
            resp = sess.get(url, timeout=timeout)

            if resp.status_code in RETRY_STATUS_CODES and attempt < max_retries:
                backoff = _backoff(attempt)
                logger.warning(
                    f"Received {resp.status_code} for {url}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(backoff)
                continue

            resp.raise_for_status()
            return resp.content

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            raise FetchError(f"HTTP Error {status_code} fetching {url}") from e

        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            last_exception = e
            if attempt < max_retries:
                backoff = _backoff(attempt)
                logger.warning(
                    f"{type(e).__name__} for {url}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(backoff)
                continue
            raise FetchError(f"Failed to fetch {url}: {e}") from e

        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

    raise FetchError(f"Failed to fetch {url} after {max_retries} retries") from last_exception
