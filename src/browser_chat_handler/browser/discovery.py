"""Locate a browser that exposes the Chrome DevTools Protocol on a local port."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

import httpx

LOGGER = logging.getLogger(__name__)


class EndpointDiscovery(ABC):
    """Resolve a debug port to a browser endpoint."""

    @abstractmethod
    async def resolve_endpoint(self, port: int) -> Optional[str]:
        """Return an endpoint URL for ``port`` or ``None`` when nothing answers."""


class CdpEndpointDiscovery(EndpointDiscovery):
    """Probe ``/json/version`` on each candidate host until one answers."""

    def __init__(
        self,
        hosts: Iterable[str] = ("127.0.0.1", "localhost"),
        *,
        timeout: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._hosts = list(hosts)
        self._timeout = timeout
        self._transport = transport

    async def resolve_endpoint(self, port: int) -> Optional[str]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for host in self._hosts:
                base_url = f"http://{host}:{port}"
                try:
                    response = await client.get(f"{base_url}/json/version")
                except httpx.HTTPError as exc:
                    LOGGER.debug("No debuggable browser at %s: %s", base_url, exc)
                    continue
                if response.status_code != 200:
                    LOGGER.debug("%s answered /json/version with %s", base_url, response.status_code)
                    continue
                try:
                    payload = response.json()
                except ValueError:
                    LOGGER.debug("%s returned a non-JSON version payload", base_url)
                    continue
                if "webSocketDebuggerUrl" not in payload:
                    continue
                LOGGER.debug("Found %s at %s", payload.get("Browser", "browser"), base_url)
                return base_url
        return None
