import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
import websockets

from shared.config import RoomlinkConfig

_CLOSE = object()

JOIN_PAGE = (
    "<!doctype html><html><head>"
    '<meta charset="utf-8"><meta property="og:title" content="Join">'
    '<meta property="int:jid" content="4321-nekot">'
    "</head><body></body></html>"
)


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class DummyWebSocket:
    def __init__(self, url: str, inbound: List[Any] = (), close_immediately: bool = False) -> None:
        self.url = url
        self.sent_messages: List[Any] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.fail_sends = False
        self.send_error: Optional[BaseException] = None
        self._inbound: asyncio.Queue = asyncio.Queue()
        for message in inbound:
            self._inbound.put_nowait(message)
        if close_immediately:
            self.server_close(1006, "gone")

    async def send(self, data: Any) -> None:
        if self.send_error is not None:
            raise self.send_error
        if self.closed or self.fail_sends:
            raise websockets.exceptions.ConnectionClosedError(None, None)
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code
            self.close_reason = reason
            self._inbound.put_nowait(_CLOSE)

    def feed(self, message: Any) -> None:
        self._inbound.put_nowait(message)

    def server_close(self, code: int = 1000, reason: str = "") -> None:
        """Close initiated by the remote side."""
        if not self.closed:
            self.closed = True
            self.close_code = code
            self.close_reason = reason
            self._inbound.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        item = await self._inbound.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item


class FakeDialer:
    """Stands in for websockets.connect; records every socket it opens."""

    def __init__(self) -> None:
        self.sockets: List[DummyWebSocket] = []
        self.inbound: List[Any] = []
        self.close_immediately = False
        self.fail: Optional[BaseException] = None

    async def __call__(self, url: str) -> DummyWebSocket:
        if self.fail is not None:
            raise self.fail
        ws = DummyWebSocket(url, self.inbound, close_immediately=self.close_immediately)
        self.sockets.append(ws)
        return ws


class ManualTicker:
    """Replaces asyncio.sleep in the heartbeat loop; each tick() ends one sleep."""

    def __init__(self) -> None:
        self.delays: List[float] = []
        self._ticks: asyncio.Queue = asyncio.Queue()

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        await self._ticks.get()

    async def tick(self, count: int = 1) -> None:
        for _ in range(count):
            self._ticks.put_nowait(None)
            await settle()


class FakeGimkit:
    """In-memory matchmaker, join page and game server HTTP endpoints."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, Any]] = []
        self.room_info: Dict[str, Any] = {"roomId": "room-xyz", "useRandomNamePicker": False}
        self.join_page = JOIN_PAGE
        self.join_status = 200
        self.join_response: Any = {
            "source": "original",
            "serverUrl": "https://blueboat.example",
            "roomId": "room-xyz",
            "intentId": "intent-1",
        }
        self.join_by_id_status = 200
        self.join_by_id: Any = {"room": {"processId": "proc-1", "roomId": "inner-9"}, "sessionId": "sess-7"}
        self.latency = 0.01

    def count(self, path: str) -> int:
        return sum(1 for _, p, _ in self.calls if p == path)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))
        await asyncio.sleep(self.latency)

        if path == "/api/matchmaker/find-info-from-code":
            return httpx.Response(200, json=self.room_info)
        if path == "/join":
            return httpx.Response(200, text=self.join_page)
        if path == "/api/matchmaker/join":
            if isinstance(self.join_response, str):
                return httpx.Response(self.join_status, text=self.join_response)
            return httpx.Response(self.join_status, json=self.join_response)
        if path.startswith("/matchmake/joinById/"):
            return httpx.Response(self.join_by_id_status, json=self.join_by_id)
        return httpx.Response(404, json={"message": "unknown"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingHider:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, str]] = []

    def __call__(self, token: str, key: str, cover_text: str) -> str:
        self.calls.append((token, key, cover_text))
        return f"{cover_text}|{key}|{token}"


@pytest.fixture
def config() -> RoomlinkConfig:
    return RoomlinkConfig(join_timeout=1.0)


@pytest.fixture
def gimkit() -> FakeGimkit:
    return FakeGimkit()


@pytest.fixture
def dialer() -> FakeDialer:
    return FakeDialer()


@pytest.fixture
def ticker() -> ManualTicker:
    return ManualTicker()


@pytest.fixture
def hider() -> RecordingHider:
    return RecordingHider()


@pytest.fixture
def matchmaker_join(gimkit: FakeGimkit) -> FakeGimkit:
    gimkit.join_response = {
        "source": "colyseus",
        "serverUrl": "https://game.example",
        "roomId": "room-xyz",
        "intentId": "intent-2",
    }
    return gimkit
