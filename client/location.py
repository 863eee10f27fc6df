from __future__ import annotations
from dataclasses import dataclass
from urllib.parse import urlsplit


@dataclass(frozen=True)
class Location:
    """
    The browsing context the client runs in.

    Mirrors the parts of `window.location` the resolver needs:
    protocol ("http:"/"https:"), hostname and port (empty when default).
    """
    protocol: str
    hostname: str
    port: str = ""

    @classmethod
    def from_url(cls, url: str) -> "Location":
        parts = urlsplit(url if "//" in url else f"http://{url}")
        if not parts.hostname:
            raise ValueError(f"Origin has no host: {url!r}")
        port = str(parts.port) if parts.port is not None else ""
        return cls(protocol=f"{parts.scheme}:", hostname=parts.hostname, port=port)

    @property
    def url_hostname(self) -> str:
        """hostname as it appears in a URL (IPv6 literals bracketed)"""
        return f"[{self.hostname}]" if ":" in self.hostname else self.hostname

    @property
    def host(self) -> str:
        """hostname plus ':port' when a port is present"""
        return f"{self.url_hostname}:{self.port}" if self.port else self.url_hostname

    @property
    def origin(self) -> str:
        return f"{self.protocol}//{self.host}"

    @property
    def is_secure(self) -> bool:
        return self.protocol == "https:"

    @property
    def socket_scheme(self) -> str:
        return "wss:" if self.is_secure else "ws:"

    @property
    def is_localhost(self) -> bool:
        return "localhost" in self.hostname
