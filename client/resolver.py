"""
Real-time endpoint address resolution.

The base address (e.g. ``wss://app.example.com``) is fetched from the
server's ``/api/config`` endpoint on every connection attempt. Anything that
goes wrong degrades to an address derived from the browsing context, so
`AddressResolver.resolve` never raises.
"""

from __future__ import annotations
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import httpx

from client.location import Location
from shared.log import get_logger
from shared.utils import encode_uri_component, join_url

logger = get_logger(__name__)


class ResolutionError(Exception):
    """Raised internally when the configuration lookup yields no usable address."""
    pass


def _designates_localhost(url: str) -> bool:
    return "localhost" in (urlsplit(url).hostname or url)


def _is_invalid_address(value: Any) -> bool:
    return not isinstance(value, str) or not value or value == "undefined" or "undefined" in value


def build_socket_url(base: str, token: str, socket_path: str = "/ws") -> str:
    """Full socket URL with the token carried as a query parameter"""
    return f"{join_url(base, socket_path)}?token={encode_uri_component(token)}"


class AddressResolver:
    """
    Computes the base address of the real-time endpoint.

    Args:
        location: The browsing context (protocol/host/port) the client runs in
        config_path: Path of the configuration endpoint on the context origin
        timeout: Seconds before the configuration request is abandoned; None waits forever
        dev_port_map: Front-end dev port -> back-end dev port used by the fallback
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        location: Location,
        *,
        config_path: str = "/api/config",
        timeout: Optional[float] = 10.0,
        dev_port_map: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.location = location
        self.config_url = join_url(location.origin, config_path)
        self.timeout = timeout
        self.dev_port_map = {"3001": "3002"} if dev_port_map is None else dict(dev_port_map)
        self._transport = transport

    async def resolve(self, token: str) -> str:
        """Return the base address to connect to; falls back on any failure."""
        try:
            return await self._fetch_address(token)
        except (httpx.HTTPError, httpx.InvalidURL, ResolutionError, ValueError) as e:
            logger.warning("Could not fetch server config, constructing WebSocket URL from current location: %s", e)
            base = self.fallback_address()
            logger.info("Fallback WebSocket URL constructed: %s", base)
            return base

    async def _fetch_address(self, token: str) -> str:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(
                self.config_url,
                headers={"Authorization": f"Bearer {token}"},
            )

        if not response.is_success:
            raise ResolutionError(f"Config API failed: {response.status_code}")

        config = response.json()
        if not isinstance(config, dict):
            raise ResolutionError("Config API returned a non-object body")

        ws_url = config.get("wsUrl")
        logger.info(
            "WebSocket config received: wsUrl=%s requestHost=%s currentLocation=%s",
            ws_url, config.get("requestHost"), self.location.origin,
        )

        if _is_invalid_address(ws_url):
            raise ResolutionError("Invalid WebSocket URL received from server")

        # A misconfigured server may echo its development address
        if _designates_localhost(ws_url) and not self.location.is_localhost:
            logger.warning("Config returned localhost URL, but we are on domain - constructing WebSocket URL from current location")
            return self.context_address()

        return ws_url.rstrip("/")

    def context_address(self) -> str:
        """Socket address on the same host as the browsing context"""
        return f"{self.location.socket_scheme}//{self.location.host}"

    def fallback_address(self) -> str:
        target_host = self.location.host
        # Front-end dev server: the API server sits on the paired port
        paired_port = self.dev_port_map.get(self.location.port)
        if paired_port:
            target_host = f"{self.location.url_hostname}:{paired_port}"
        return f"{self.location.socket_scheme}//{target_host}"
