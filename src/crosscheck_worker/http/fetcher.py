"""Blocking HTTP client for submission archive downloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from crosscheck_worker import __version__

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = f"crosscheck-worker/{__version__}"


@dataclass(slots=True)
class DownloadResult:
    """Result of an HTTP download."""

    url: str
    status_code: int
    content: bytes
    is_success: bool
    error: str | None = None


class HttpFetcher:
    """HTTP client wrapper with retry, timeout, and user-agent configuration.

    Only status 200 counts as success; redirects are not followed.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = httpx.Timeout(timeout_seconds, connect=10.0)
        self._client = httpx.Client(
            timeout=self._timeout,
            headers={"User-Agent": user_agent},
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            follow_redirects=False,
        )

    def download(self, url: str) -> DownloadResult:
        """GET ``url`` and return the raw body with a success flag."""

        try:
            response = self._client.get(url)
        except httpx.TimeoutException:
            logger.warning("Timeout downloading %s", url)
            return DownloadResult(
                url=url,
                status_code=0,
                content=b"",
                is_success=False,
                error="timeout",
            )
        except httpx.HTTPError as exc:
            logger.warning("HTTP error downloading %s: %s", url, exc)
            return DownloadResult(
                url=url,
                status_code=0,
                content=b"",
                is_success=False,
                error=str(exc),
            )

        is_success = response.status_code == httpx.codes.OK
        return DownloadResult(
            url=url,
            status_code=response.status_code,
            content=response.content if is_success else b"",
            is_success=is_success,
            error=None if is_success else f"HTTP {response.status_code}",
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
