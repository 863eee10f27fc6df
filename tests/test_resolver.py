import httpx
import pytest

from client.location import Location
from client.resolver import AddressResolver, build_socket_url


def config_transport(body=None, status: int = 200, seen: list | None = None, raw: str | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if raw is not None:
            return httpx.Response(status, text=raw)
        return httpx.Response(status, json=body)
    return httpx.MockTransport(handler)


def failing_transport(exc_type):
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type("unreachable", request=request)
    return httpx.MockTransport(handler)


def make_resolver(origin: str, transport) -> AddressResolver:
    return AddressResolver(Location.from_url(origin), transport=transport)


@pytest.mark.asyncio
async def test_returns_configured_address_and_sends_bearer_token():
    seen = []
    resolver = make_resolver(
        "https://app.example.com",
        config_transport({"wsUrl": "wss://rt.example.com", "requestHost": "app.example.com"}, seen=seen),
    )

    assert await resolver.resolve("secret") == "wss://rt.example.com"
    assert len(seen) == 1
    assert str(seen[0].url) == "https://app.example.com/api/config"
    assert seen[0].headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_trailing_slash_is_stripped():
    resolver = make_resolver("https://app.example.com", config_transport({"wsUrl": "wss://rt.example.com/"}))
    assert await resolver.resolve("t") == "wss://rt.example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"wsUrl": "undefined"},
    {"wsUrl": "wss://undefined:3002"},
    {"wsUrl": ""},
    {"wsUrl": None},
    {"requestHost": "app.example.com"},
    ["wss://rt.example.com"],
])
async def test_invalid_config_body_falls_back(body):
    resolver = make_resolver("https://app.example.com", config_transport(body))
    assert await resolver.resolve("t") == "wss://app.example.com"


@pytest.mark.asyncio
async def test_non_json_body_falls_back():
    resolver = make_resolver("http://app.example.com:8080", config_transport(raw="<html>oops</html>"))
    assert await resolver.resolve("t") == "ws://app.example.com:8080"


@pytest.mark.asyncio
async def test_error_status_falls_back():
    resolver = make_resolver("https://app.example.com", config_transport({"wsUrl": "wss://rt.example.com"}, status=401))
    assert await resolver.resolve("t") == "wss://app.example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize("exc_type", [httpx.ConnectError, httpx.ReadTimeout])
async def test_unreachable_or_slow_config_falls_back(exc_type):
    resolver = make_resolver("https://app.example.com", failing_transport(exc_type))
    assert await resolver.resolve("t") == "wss://app.example.com"


@pytest.mark.asyncio
async def test_fallback_maps_frontend_dev_port_to_backend():
    resolver = make_resolver("http://devbox:3001", failing_transport(httpx.ConnectError))
    assert await resolver.resolve("t") == "ws://devbox:3002"


@pytest.mark.asyncio
async def test_localhost_address_overridden_on_deployed_host():
    resolver = make_resolver("https://app.example.com", config_transport({"wsUrl": "ws://localhost:3002"}))
    assert await resolver.resolve("t") == "wss://app.example.com"


@pytest.mark.asyncio
async def test_localhost_address_kept_when_context_is_localhost():
    resolver = make_resolver("http://localhost:3001", config_transport({"wsUrl": "ws://localhost:3002"}))
    assert await resolver.resolve("t") == "ws://localhost:3002"


@pytest.mark.asyncio
async def test_resolver_is_not_cached():
    seen = []
    resolver = make_resolver("https://app.example.com", config_transport({"wsUrl": "wss://rt.example.com"}, seen=seen))

    await resolver.resolve("t")
    await resolver.resolve("t")

    assert len(seen) == 2


def test_build_socket_url_encodes_token_like_encode_uri_component():
    url = build_socket_url("wss://rt.example.com", "a b/c?d=e&f~(g)")
    assert url == "wss://rt.example.com/ws?token=a%20b%2Fc%3Fd%3De%26f~(g)"


def test_location_parsing():
    loc = Location.from_url("https://app.example.com:8443/some/page")
    assert loc.host == "app.example.com:8443"
    assert loc.origin == "https://app.example.com:8443"
    assert loc.socket_scheme == "wss:"
    assert Location.from_url("app.example.com").protocol == "http:"


@pytest.mark.asyncio
async def test_invalid_url_error_falls_back():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid port: ':1:8080'")

    resolver = make_resolver("https://app.example.com", httpx.MockTransport(handler))
    assert await resolver.resolve("t") == "wss://app.example.com"


@pytest.mark.asyncio
async def test_ipv6_context_requests_bracketed_config_url():
    seen = []
    resolver = make_resolver("http://[::1]:8080", config_transport({"wsUrl": "ws://[::1]:8080"}, seen=seen))

    assert await resolver.resolve("t") == "ws://[::1]:8080"
    assert str(seen[0].url) == "http://[::1]:8080/api/config"


@pytest.mark.asyncio
async def test_ipv6_fallback_keeps_brackets_with_paired_port():
    resolver = make_resolver("http://[::1]:3001", failing_transport(httpx.ConnectError))
    assert await resolver.resolve("t") == "ws://[::1]:3002"


def test_ipv6_location_host_is_bracketed():
    loc = Location.from_url("http://[::1]:3001")
    assert loc.hostname == "::1"
    assert loc.host == "[::1]:3001"
    assert loc.origin == "http://[::1]:3001"
    assert Location.from_url("https://[2001:db8::5]").host == "[2001:db8::5]"
