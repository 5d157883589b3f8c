from __future__ import annotations
import importlib
from dataclasses import dataclass, field
from enum import Enum
from html.parser import HTMLParser
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

import httpx

from roomlink.directory import RoomMetadata
from shared.config import RoomlinkConfig
from shared.errors import ConfigurationError, JoinPageParseError, MatchmakerError, NetworkError
from shared.log import get_logger

logger = get_logger(__name__)


# hide(token, key, cover_text) -> credential
CredentialHider = Callable[[str, str, str], str]

LEGACY_SOURCE = "original"


class TransportVariant(str, Enum):
    """Backend connection path selected by the join response's ``source``."""
    ORIGINAL = "original"        # Blueboat / Socket.IO transport
    MATCHMAKER = "matchmaker"    # joinById + room websocket


@dataclass(frozen=True)
class JoinResponse:
    source: str
    server_url: str
    room_id: str
    intent_id: str
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def variant(self) -> TransportVariant:
        if self.source == LEGACY_SOURCE:
            return TransportVariant.ORIGINAL
        return TransportVariant.MATCHMAKER

    @classmethod
    def from_dict(cls, data: Any) -> "JoinResponse":
        """Parse the matchmaker join body, validating the fields both variants need"""
        if not isinstance(data, dict):
            raise MatchmakerError("Join response is not an object")
        for key in ("source", "serverUrl", "roomId", "intentId"):
            if not isinstance(data.get(key), str) or not data[key]:
                raise MatchmakerError(f"Join response is missing '{key}'")
        if not data["serverUrl"].startswith(("http://", "https://")):
            raise MatchmakerError(f"Join response has unsupported 'serverUrl': {data['serverUrl']!r}")
        extra = {k: v for k, v in data.items() if k not in {"source", "serverUrl", "roomId", "intentId"}}
        return cls(
            source=data["source"],
            server_url=data["serverUrl"],
            room_id=data["roomId"],
            intent_id=data["intentId"],
            extra=MappingProxyType(extra),
        )


class _MetaContentParser(HTMLParser):
    """Collects the content of the first <meta property=...> matching ``prop``."""

    def __init__(self, prop: str) -> None:
        super().__init__()
        self.prop = prop
        self.content: Optional[str] = None

    def handle_starttag(self, tag, attrs):
        if tag != "meta" or self.content is not None:
            return
        attributes = dict(attrs)
        if attributes.get("property") == self.prop:
            self.content = attributes.get("content") or ""


def extract_join_token(markup: str, meta_property: str = "int:jid") -> str:
    """
    Return the join token embedded in the join page.

    The page stores the token reversed, so the result is the reversed
    content of the matching meta element.
    """
    parser = _MetaContentParser(meta_property)
    parser.feed(markup)
    parser.close()
    if not parser.content:
        raise JoinPageParseError(f"Join page has no meta[property='{meta_property}'] token")
    return parser.content[::-1]


def load_hider(path: str) -> CredentialHider:
    """Import a hide callable from a "package.module:attribute" path."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Hider must look like 'module:attribute', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import hider module {module_name!r}: {e}") from e
    hider = getattr(module, attr, None)
    if not callable(hider):
        raise ConfigurationError(f"{path!r} is not callable")
    return hider


class JoinNegotiator:
    """Turns a display name into a JoinResponse for one room."""

    def __init__(self, http: httpx.AsyncClient, config: RoomlinkConfig, hider: CredentialHider) -> None:
        self.http = http
        self.config = config
        self.hider = hider

    async def negotiate(self, metadata: RoomMetadata, display_name: str) -> JoinResponse:
        extra = {"room": metadata.room_id, "bot": display_name}

        markup = await self.fetch_join_page()
        token = extract_join_token(markup, self.config.jid_meta_property)
        client_type = self.hider(token, self.config.credential_key, self.config.cover_text)
        logger.debug("Built client credential (%d chars)", len(client_type), extra=extra)

        body = {"clientType": client_type, "name": display_name, "roomId": metadata.room_id}
        headers = {
            "Origin": self.config.base_url.rstrip("/"),
            "Referer": self.config.join_page_url,
        }
        try:
            response = await self.http.post(self.config.join_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"Matchmaker join failed: {e}") from e

        if not response.is_success:
            logger.warning("Matchmaker rejected join with HTTP %d", response.status_code, extra=extra)
            raise MatchmakerError(
                f"Matchmaker join returned HTTP {response.status_code}", response.status_code
            )
        try:
            data = response.json()
        except ValueError as e:
            raise MatchmakerError("Matchmaker join response is not JSON", response.status_code) from e

        join = JoinResponse.from_dict(data)
        logger.info("Matchmaker accepted join (source=%s)", join.source, extra=extra)
        return join

    async def fetch_join_page(self) -> str:
        try:
            response = await self.http.get(self.config.join_page_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NetworkError(f"Join page fetch failed: {e}") from e
        return response.text
