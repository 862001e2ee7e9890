"""Shared httpx client for every controller and monitoring request of a run."""

from typing import Any, Dict, Optional

import httpx


class AsyncHTTPClient:
    """
    Thin lifecycle wrapper around one httpx.AsyncClient.

    One instance serves every controller in a poll run, so connections to
    the same controller are pooled across stages. ``verify`` toggles TLS
    certificate checks.
    A timeout of None lets that phase wait indefinitely.
    """

    def __init__(
        self,
        connect_timeout: Optional[float] = 10.0,
        read_timeout: Optional[float] = 30.0,
        verify: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            connect_timeout: Seconds allowed to establish a connection, None disables it
            read_timeout: Seconds allowed per response, None disables it
            verify: Verify TLS certificates
            transport: Transport override (mock or ASGI transports in tests)
        """
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.verify = verify
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        # Request bodies share the read bound
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=self.connect_timeout,
                read=self.read_timeout,
                write=self.read_timeout,
                pool=None
            ),
            verify=self.verify,
            transport=self.transport
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Send one request without raising for HTTP status.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Per-request headers such as the session cookie
            params: Query parameters
            **kwargs: Passed through to httpx (json, auth, ...)
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        return await self._client.request(method, url, headers=headers, params=params, **kwargs)
