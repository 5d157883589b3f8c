from __future__ import annotations
import asyncio
import random
import string
from typing import List, Optional, Set

import httpx

from roomlink.connection import Connector, SessionConnection, Sleeper, open_connection
from roomlink.directory import RoomDirectory, RoomMetadata
from roomlink.negotiator import CredentialHider, JoinNegotiator, load_hider
from shared.config import RoomlinkConfig, load_config
from shared.errors import ConfigurationError, RoomlinkError
from shared.log import get_logger
from shared.packets import TransportCodec

logger = get_logger(__name__)


def random_bot_name(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


class Session:
    """
    Spawns bots into one room.

    All spawns share the session's RoomDirectory, so the room code is looked
    up once no matter how many bots are spawned or how concurrently.
    """

    def __init__(
        self,
        room_code: str,
        *,
        config: RoomlinkConfig,
        hider: CredentialHider,
        http_client: Optional[httpx.AsyncClient] = None,
        connector: Optional[Connector] = None,
        codec: Optional[TransportCodec] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.room_code = room_code
        self.config = config
        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(
            timeout=config.http_timeout,
            headers={"User-Agent": config.user_agent},
        )
        self.directory = RoomDirectory(room_code, self.http, config)
        self.negotiator = JoinNegotiator(self.http, config, hider)
        self.connections: Set[SessionConnection] = set()
        self._connector = connector
        self._codec = codec
        self._sleep = sleep

    @property
    def live_connections(self) -> List[SessionConnection]:
        return [c for c in self.connections if c.is_open]

    async def room_info(self) -> RoomMetadata:
        return await self.directory.resolve()

    async def spawn(self, name: Optional[str] = None) -> SessionConnection:
        """
        Join one bot and return its open connection.

        Raises RoomNotFound, JoinPageParseError, MatchmakerError,
        RoomFullError or NetworkError; nothing is retried.
        """
        name = name or random_bot_name()
        extra = {"room": self.room_code, "bot": name}
        logger.info("Attempting to spawn bot", extra=extra)
        try:
            # Room info must be resolved before any join credential is requested
            metadata = await self.directory.resolve()
            join = await self.negotiator.negotiate(metadata, name)
            connection = await open_connection(
                join,
                bot_name=name,
                config=self.config,
                http=self.http,
                connector=self._connector,
                codec=self._codec,
                sleep=self._sleep,
            )
        except RoomlinkError as e:
            logger.error("Failed to spawn bot: %s", e, extra=extra)
            raise
        self.connections.add(connection)
        connection.add_close_callback(self.connections.discard)
        return connection

    async def close(self) -> None:
        """Close every connection this session opened and release the HTTP client."""
        for connection in list(self.connections):
            await connection.close()
        self.connections.clear()
        self.directory.close()
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def create_session(
    room_code: str,
    *,
    config: Optional[RoomlinkConfig] = None,
    hider: Optional[CredentialHider] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    connector: Optional[Connector] = None,
    codec: Optional[TransportCodec] = None,
    sleep: Sleeper = asyncio.sleep,
) -> Session:
    """
    Build a Session for ``room_code``.

    The credential hider comes from ``hider`` or, failing that, from the
    ``hider`` import path in the configuration.
    """
    config = config or load_config()
    if hider is None:
        if not config.hider:
            raise ConfigurationError("No credential hider configured (set 'hider' to module:attribute)")
        hider = load_hider(config.hider)
    return Session(
        room_code,
        config=config,
        hider=hider,
        http_client=http_client,
        connector=connector,
        codec=codec,
        sleep=sleep,
    )
