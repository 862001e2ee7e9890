"""Single non-blocking HTTP request that never raises for network conditions."""

import asyncio
from typing import Any, Dict, Optional, Tuple

import httpx

from acipoll.fetcher.http_client import AsyncHTTPClient
from acipoll.models.data_models import FetchResult
from acipoll.models.errors import NetworkError
from acipoll.monitoring.logger import StructuredLogger


class HTTPTask:
    """
    Issues requests through a shared AsyncHTTPClient and converts every
    outcome into a FetchResult.

    Transport failures and non-2xx statuses become a NetworkError inside the
    result. No retry is attempted; the caller decides what a failure means.
    """

    def __init__(self, http_client: AsyncHTTPClient, logger: Optional[StructuredLogger] = None):
        self.http_client = http_client
        self.logger = logger

    async def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        auth: Optional[Tuple[str, str]] = None,
    ) -> FetchResult:
        """
        Perform one request and resume exactly once with its outcome.

        Args:
            url: Absolute URL
            headers: Extra headers (e.g. the controller session cookie)
            method: HTTP method
            params: Query parameters
            json: JSON body for POST requests
            auth: Optional basic-auth (user, password) tuple

        Returns:
            FetchResult with success flag, body text and error
        """
        if self.logger:
            self.logger.fetch_start(url=url)

        loop = asyncio.get_running_loop()
        start = loop.time()

        kwargs: Dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        if auth is not None:
            kwargs["auth"] = auth

        try:
            response = await self.http_client.request(
                method, url, headers=headers, params=params, **kwargs
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            error = NetworkError(e.response.reason_phrase or "request failed", code=status_code)
            return self._failure(url, error, loop.time() - start)
        except httpx.TimeoutException as e:
            error = NetworkError(f"timeout: {e.__class__.__name__}")
            return self._failure(url, error, loop.time() - start)
        except httpx.HTTPError as e:
            error = NetworkError(str(e) or e.__class__.__name__)
            return self._failure(url, error, loop.time() - start)

        duration = loop.time() - start
        if self.logger:
            self.logger.fetch_success(
                url=url,
                status=response.status_code,
                elapsed_ms=duration * 1000
            )

        return FetchResult(
            url=url,
            success=True,
            status_code=response.status_code,
            text=response.text,
            duration=duration
        )

    def _failure(self, url: str, error: NetworkError, duration: float) -> FetchResult:
        if self.logger:
            self.logger.fetch_error(url=url, status=error.code, error=error.message)
        return FetchResult(
            url=url,
            success=False,
            status_code=error.code,
            error=error,
            duration=duration
        )
