from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

import httpx

from shared.config import RoomlinkConfig
from shared.errors import MatchmakerError, NetworkError, RoomNotFound
from shared.log import get_logger

logger = get_logger(__name__)

# Body "code" the matchmaker answers with when no room matches
NOT_FOUND_CODE = 404


@dataclass(frozen=True)
class RoomMetadata:
    room_id: str
    fields: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoomMetadata":
        room_id = data.get("roomId")
        if not isinstance(room_id, str) or not room_id:
            raise MatchmakerError("Room info response is missing 'roomId'")
        extra = {k: v for k, v in data.items() if k != "roomId"}
        return cls(room_id=room_id, fields=MappingProxyType(extra))


class RoomDirectory:
    """
    Resolves one room code to its RoomMetadata.

    The first resolve() starts the lookup; every caller, whether it arrives
    before, during or after the lookup, shares that single result. Failures
    are cached the same way as successes.
    """

    def __init__(self, room_code: str, http: httpx.AsyncClient, config: RoomlinkConfig) -> None:
        self.room_code = room_code
        self.http = http
        self.config = config
        self.lookups = 0
        self._lookup: Optional[asyncio.Task[RoomMetadata]] = None

    @property
    def resolved(self) -> bool:
        lookup = self._lookup
        return lookup is not None and lookup.done() and not lookup.cancelled() and lookup.exception() is None

    async def resolve(self) -> RoomMetadata:
        if self._lookup is None:
            self._lookup = asyncio.create_task(self._fetch())
        # shield: a waiter that gets cancelled must not cancel the shared lookup
        return await asyncio.shield(self._lookup)

    async def _fetch(self) -> RoomMetadata:
        self.lookups += 1
        extra = {"room": self.room_code}
        logger.info("Fetching room info", extra=extra)
        try:
            response = await self.http.post(self.config.find_info_url, json={"code": self.room_code})
            info = response.json()
        except httpx.HTTPError as e:
            logger.error("Failed to get room info: %s", e, extra=extra)
            raise NetworkError(f"Room lookup failed: {e}") from e
        except ValueError as e:
            logger.error("Room info response is not JSON", extra=extra)
            raise MatchmakerError("Room info response is not JSON", response.status_code) from e

        if not isinstance(info, dict):
            raise MatchmakerError("Room info response is not an object", response.status_code)
        if info.get("code") == NOT_FOUND_CODE:
            logger.warning("Game not found", extra=extra)
            raise RoomNotFound(self.room_code)

        metadata = RoomMetadata.from_dict(info)
        logger.info("Room info successfully fetched (roomId=%s)", metadata.room_id, extra=extra)
        return metadata

    def close(self) -> None:
        """Cancel a lookup that is still in flight."""
        if self._lookup is not None and not self._lookup.done():
            self._lookup.cancel()
