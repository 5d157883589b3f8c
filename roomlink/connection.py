from __future__ import annotations
import asyncio
import uuid
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

import httpx
import websockets
import websockets.exceptions

from roomlink.negotiator import JoinResponse, TransportVariant
from shared.config import RoomlinkConfig
from shared.errors import MatchmakerError, NetworkError, RoomFullError
from shared.log import get_logger, log_connection_event
from shared.packets import SocketIOTextCodec, TransportCodec
from shared.urls import blueboat_url, join_by_id_url, room_socket_url

logger = get_logger(__name__)


# connector(url) -> open websocket (send / close / async iteration)
Connector = Callable[[str], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[None]]

# Substring of the first inbound frame when the room refuses new players
FULL_ROOM_MARKER = '{"type":"FULL"'

_CLOSE_ERRORS = (websockets.exceptions.ConnectionClosed, OSError)


async def default_connector(url: str) -> websockets.ClientConnection:
    return await websockets.connect(url, ping_interval=15, ping_timeout=45)


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    JOINED = "joined"
    REJECTED = "rejected"
    CLOSED = "closed"


class EventKind(str, Enum):
    OPENED = "opened"
    MESSAGE = "message"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConnectionEvent:
    kind: EventKind
    data: Union[str, bytes, None] = None
    code: Optional[int] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class RoomReservation:
    """Seat reserved by joinById: {room:{processId, roomId}, sessionId}"""
    process_id: str
    room_id: str
    session_id: str

    @classmethod
    def from_dict(cls, data: Any) -> "RoomReservation":
        room = data.get("room") if isinstance(data, dict) else None
        if not isinstance(room, dict):
            raise MatchmakerError("joinById response is missing 'room'")
        values = (room.get("processId"), room.get("roomId"), data.get("sessionId"))
        if not all(isinstance(v, str) and v for v in values):
            raise MatchmakerError("joinById response needs room.processId, room.roomId and sessionId")
        return cls(*values)


class SessionConnection:
    """
    One bot's websocket and its lifecycle.

    Socket callbacks are turned into ConnectionEvents: a reader task feeds
    inbound frames and the final close into a queue, and a single dispatcher
    task applies every state transition in order.
    """

    variant: TransportVariant

    def __init__(
        self,
        join: JoinResponse,
        *,
        bot_name: str,
        config: RoomlinkConfig,
        connector: Optional[Connector] = None,
    ) -> None:
        self.join = join
        self.bot_name = bot_name
        self.config = config
        self.connection_id = uuid.uuid4().hex[:8]
        self.state = ConnectionState.IDLE
        self.websocket: Any = None
        self.close_code: Optional[int] = None
        self._connector = connector or default_connector
        self._events: asyncio.Queue[ConnectionEvent] = asyncio.Queue()
        self._reader: Optional[asyncio.Task] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None
        self._closed = asyncio.Event()
        self._close_callbacks: List[Callable[["SessionConnection"], Any]] = []

    @property
    def is_open(self) -> bool:
        return self.state in (ConnectionState.OPEN, ConnectionState.JOINED)

    def _set_state(self, state: ConnectionState) -> None:
        log_connection_event(logger, "debug", f"{self.state.value} -> {state.value}", connection=self)
        self.state = state

    # ---- lifecycle -------------------------------------------------------

    async def open(self) -> "SessionConnection":
        """
        Dial and run the handshake. Returns once the connection is usable;
        on any failure or cancellation the socket and tasks are released
        before the error propagates.
        """
        if self.state is not ConnectionState.IDLE:
            raise RuntimeError(f"Connection already {self.state.value}")
        self._set_state(ConnectionState.CONNECTING)
        self._ready = asyncio.get_running_loop().create_future()
        try:
            url = await self._endpoint()
            self.websocket = await self._dial(url)
            # OPENED is queued before the reader starts so it is always handled first
            self._events.put_nowait(ConnectionEvent(EventKind.OPENED))
            self._reader = asyncio.create_task(self._read_loop(self.websocket))
            self._dispatcher = asyncio.create_task(self._dispatch_loop())
            try:
                await asyncio.wait_for(self._ready, timeout=self.config.join_timeout)
            except asyncio.TimeoutError as e:
                raise NetworkError(f"No join confirmation within {self.config.join_timeout}s") from e
        except BaseException as e:
            log_connection_event(logger, "warning", f"Connection failed: {e!r}", connection=self)
            if not self._ready.done():
                self._ready.cancel()
            await self._teardown()
            raise
        return self

    async def close(self, code: int = 1000, reason: str = "bot closed") -> None:
        if self.state is ConnectionState.CLOSED:
            return
        await self._teardown(code, reason)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def add_close_callback(self, callback: Callable[["SessionConnection"], Any]) -> None:
        """Run ``callback(connection)`` once the connection reaches CLOSED."""
        if self.state is ConnectionState.CLOSED:
            callback(self)
            return
        self._close_callbacks.append(callback)

    async def _endpoint(self) -> str:
        raise NotImplementedError

    async def _dial(self, url: str) -> Any:
        log_connection_event(logger, "info", f"Dialing {url}", connection=self)
        try:
            return await self._connector(url)
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise NetworkError(f"Could not open websocket {url}: {e}") from e

    async def _teardown(self, code: int = 1000, reason: str = "bot closed") -> None:
        """Release socket and tasks. Safe to call from any state, any number of times."""
        if self.websocket is not None:
            try:
                await self.websocket.close(code=code, reason=reason)
            except _CLOSE_ERRORS as e:
                logger.debug("Ignoring error while closing socket: %s", e)
        current = asyncio.current_task()
        for task in (self._reader, self._dispatcher):
            if task is not None and task is not current and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._handle_close(code, reason)

    # ---- event plumbing --------------------------------------------------

    async def _read_loop(self, websocket: Any) -> None:
        try:
            async for raw in websocket:
                self._events.put_nowait(ConnectionEvent(EventKind.MESSAGE, raw))
        except _CLOSE_ERRORS as e:
            logger.debug("Socket closed abnormally: %s", e)
        finally:
            self._events.put_nowait(ConnectionEvent(
                EventKind.CLOSED,
                code=getattr(websocket, "close_code", None),
                reason=getattr(websocket, "close_reason", None),
            ))

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._events.get()
            if event.kind is EventKind.CLOSED:
                self._handle_close(event.code, event.reason)
                return
            try:
                if event.kind is EventKind.OPENED:
                    self._set_state(ConnectionState.OPEN)
                    await self._on_open()
                else:
                    await self._on_message(event.data)
            except _CLOSE_ERRORS as e:
                self._fail(NetworkError(f"Socket failed during handshake: {e}"))
            except Exception as e:
                log_connection_event(logger, "error", f"Error handling {event.kind.value} event: {e!r}", connection=self)
                self._fail(e)

    def _handle_close(self, code: Optional[int], reason: Optional[str]) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self._on_close()
        self.close_code = code
        self._fail(NetworkError("Connection closed before the join completed"))
        self._set_state(ConnectionState.CLOSED)
        self._closed.set()
        log_connection_event(logger, "info", f"WebSocket connection closed (code={code}, reason={reason!r})", connection=self)
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback(self)

    def _succeed(self) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(None)

    def _fail(self, error: Exception) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(error)

    # ---- variant hooks ---------------------------------------------------

    async def _on_open(self) -> None:
        pass

    async def _on_message(self, data: Union[str, bytes, None]) -> None:
        log_connection_event(logger, "debug", "Inbound frame ignored", connection=self)

    def _on_close(self) -> None:
        pass


class BlueboatConnection(SessionConnection):
    """Legacy transport: one join frame on open, then a heartbeat every interval."""

    variant = TransportVariant.ORIGINAL

    def __init__(
        self,
        join: JoinResponse,
        *,
        codec: Optional[TransportCodec] = None,
        sleep: Sleeper = asyncio.sleep,
        **kwargs: Any,
    ) -> None:
        super().__init__(join, **kwargs)
        self.codec = codec or SocketIOTextCodec()
        self.heartbeats_sent = 0
        self._sleep = sleep
        self._heartbeat: Optional[asyncio.Task] = None

    async def _endpoint(self) -> str:
        log_connection_event(logger, "info", "Connecting via Blueboat server", connection=self)
        return blueboat_url(self.join.server_url)

    async def _on_open(self) -> None:
        log_connection_event(logger, "info", "Sending join packet to the Blueboat server", connection=self)
        await self.websocket.send(self.codec.join_frame(self.join.room_id, self.join.intent_id))
        # The legacy server sends no acknowledgement; the bot counts as joined once the frame is out
        self._set_state(ConnectionState.JOINED)
        self._heartbeat = asyncio.create_task(self._heartbeat_loop())
        self._succeed()

    def _on_close(self) -> None:
        if self._heartbeat is not None:
            log_connection_event(logger, "debug", "Stopping heartbeat", connection=self)
            self._heartbeat.cancel()
            self._heartbeat = None

    async def _heartbeat_loop(self) -> None:
        frame = self.codec.heartbeat_frame()
        while True:
            await self._sleep(self.config.heartbeat_interval)
            if not self.is_open:
                return
            try:
                await self.websocket.send(frame)
            except _CLOSE_ERRORS:
                # socket died under the tick; the close event will finish the teardown
                log_connection_event(logger, "debug", "Heartbeat stopped, socket is gone", connection=self)
                return
            self.heartbeats_sent += 1
            log_connection_event(logger, "debug", "Sent heartbeat packet", connection=self)


class MatchmakerConnection(SessionConnection):
    """Matchmaker-by-id transport: reserve a seat, dial the room, check the first frame."""

    variant = TransportVariant.MATCHMAKER

    def __init__(self, join: JoinResponse, *, http: httpx.AsyncClient, **kwargs: Any) -> None:
        super().__init__(join, **kwargs)
        self.http = http
        self.reservation: Optional[RoomReservation] = None
        self._first_seen = False

    async def _endpoint(self) -> str:
        self.reservation = await self.reserve()
        return room_socket_url(
            self.join.server_url,
            self.reservation.process_id,
            self.reservation.room_id,
            self.reservation.session_id,
        )

    async def reserve(self) -> RoomReservation:
        url = join_by_id_url(self.join.server_url, self.join.room_id)
        try:
            response = await self.http.post(url, json={"intentId": self.join.intent_id})
        except httpx.HTTPError as e:
            raise NetworkError(f"joinById request failed: {e}") from e
        if not response.is_success:
            raise MatchmakerError(f"joinById returned HTTP {response.status_code}", response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise MatchmakerError("joinById response is not JSON", response.status_code) from e
        return RoomReservation.from_dict(data)

    async def _on_message(self, data: Union[str, bytes, None]) -> None:
        if self._first_seen:
            await super()._on_message(data)
            return
        self._first_seen = True

        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else (data or "")
        if FULL_ROOM_MARKER in text:
            log_connection_event(logger, "warning", "Room is full", connection=self)
            self._set_state(ConnectionState.REJECTED)
            self._fail(RoomFullError(f"Room {self.join.room_id} is full"))
            await self.websocket.close()
            return

        self._set_state(ConnectionState.JOINED)
        log_connection_event(logger, "info", "Bot successfully joined the game", connection=self)
        self._succeed()


async def open_connection(
    join: JoinResponse,
    *,
    bot_name: str,
    config: RoomlinkConfig,
    http: httpx.AsyncClient,
    connector: Optional[Connector] = None,
    codec: Optional[TransportCodec] = None,
    sleep: Sleeper = asyncio.sleep,
) -> SessionConnection:
    """Pick the transport fixed by ``join.source`` and open it."""
    if join.variant is TransportVariant.ORIGINAL:
        connection: SessionConnection = BlueboatConnection(
            join, codec=codec, sleep=sleep, bot_name=bot_name, config=config, connector=connector
        )
    else:
        connection = MatchmakerConnection(
            join, http=http, bot_name=bot_name, config=config, connector=connector
        )
    return await connection.open()
