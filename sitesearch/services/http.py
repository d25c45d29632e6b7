"""HTTP utility layer for the crawler."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter


@dataclass(frozen=True)
class HttpSettings:
    """Runtime configuration for crawl requests."""

    user_agent: str
    timeout: float  # время ожидания чтения в секундах
    connect_timeout: float  # время установления соединения в секундах
    pool_size: int = 4

    @classmethod
    def from_indexing(cls, indexing) -> "HttpSettings":
        seconds = max(0.1, indexing.timeout_ms / 1000.0)
        return cls(
            user_agent=indexing.user_agent,
            timeout=seconds,
            connect_timeout=seconds,
            pool_size=max(1, indexing.max_concurrent_pages),
        )


_LOGGER = logging.getLogger("sitesearch.http")


def create_session(settings: HttpSettings) -> Session:
    """Build a session whose connection pool matches the crawl concurrency.

    Retries are not delegated to urllib3: the crawler applies its own
    per-attempt courtesy delay.
    """
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=settings.pool_size,
        pool_maxsize=settings.pool_size,
        max_retries=0,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["User-Agent"] = settings.user_agent
    return session


def http_get(
    session: Session,
    url: str,
    settings: HttpSettings,
    *,
    logger: Optional[logging.Logger] = None,
    **kwargs: Any,
) -> Response:
    """Perform a GET that tolerates non-2xx responses.

    Network errors are logged at debug level and re-raised; the caller owns the
    retry policy.
    """
    log = logger or _LOGGER
    try:
        return session.get(
            url,
            headers={"User-Agent": settings.user_agent},
            timeout=(settings.connect_timeout, settings.timeout),
            allow_redirects=True,
            **kwargs,
        )
    except requests.RequestException as exc:
        log.debug("HTTP GET %s failed: %s", url, exc)
        raise
