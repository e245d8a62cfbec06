"""HTTP provider - context fetched from a JSON endpoint."""

from typing import Dict, Optional

import httpx

from .base import ContextProvider
from ..types import ContextFragment


class HttpProvider(ContextProvider):
    """
    Fetches a JSON document over HTTP on every gather.

    Non-2xx responses raise, which the manager counts as a provider error.
    The manager's per-provider deadline still applies on top of `timeout`.

    Usage:
        provider = HttpProvider("app-state", "http://localhost:3000/state")
    """

    def __init__(
        self,
        name: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        """
        Args:
            name: Provider name
            url: Endpoint returning JSON
            headers: Extra request headers
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests, proxies)
        """
        super().__init__(name, **kwargs)
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout
        self._transport = transport

    async def gather(self) -> ContextFragment:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.get(self.url, headers=self.headers)
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict):
            data = {"data": data}
        return self.fragment(data)
