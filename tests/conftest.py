import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from client.credentials import CredentialStore


_CLOSE = object()


class DummyWebSocket:
    """Stands in for a websockets ClientConnection: async-iterable frames, send, close."""

    def __init__(self) -> None:
        self.sent_messages: list[str] = []
        self.closed = False
        self.close_code: int | None = None
        self._frames: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code
            self._frames.put_nowait(_CLOSE)

    def feed(self, raw) -> None:
        self._frames.put_nowait(raw)

    def remote_close(self) -> None:
        self.closed = True
        self._frames.put_nowait(_CLOSE)

    def fail(self, exc: BaseException) -> None:
        self._frames.put_nowait(exc)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._frames.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class DummyConnector:
    """Records every URL it is asked to open; fails the next `failures` attempts."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.sockets: list[DummyWebSocket] = []
        self.failures = 0

    async def __call__(self, url: str) -> DummyWebSocket:
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise OSError("connection refused")
        ws = DummyWebSocket()
        self.sockets.append(ws)
        return ws


class DummyResolver:
    def __init__(self, base: str = "wss://app.example.com") -> None:
        self.base = base
        self.tokens: list[str] = []

    async def resolve(self, token: str) -> str:
        self.tokens.append(token)
        return self.base


async def wait_for(predicate, timeout: float = 2.0) -> bool:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.fixture
def credentials(tmp_path):
    store = CredentialStore(tmp_path / "credentials.json")
    store.set("auth-token", "tok en/x")
    return store


@pytest.fixture
def empty_credentials(tmp_path):
    return CredentialStore(tmp_path / "empty.json")


@pytest.fixture
def connector():
    return DummyConnector()


@pytest.fixture
def resolver():
    return DummyResolver()
