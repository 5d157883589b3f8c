from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Union
import json

from shared.errors import PacketDecodeError

# Engine.IO v3 packet types
EIO_PING = "2"
EIO_MESSAGE = "4"
# Socket.IO packet types
SIO_EVENT = "2"

JOIN_EVENT = "blueboat_JOIN_ROOM"


@dataclass(frozen=True)
class JoinPacket:
    """
    Join frame for the legacy transport:
    {
    "roomId": "STRING",
    "options": {"intent": "STRING"}
    }
    """
    room_id: str
    intent: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JoinPacket':
        """Create JoinPacket from the wire payload, validating required fields"""
        if not isinstance(data, dict):
            raise PacketDecodeError("Join payload must be an object")
        options = data.get("options")
        if not isinstance(data.get("roomId"), str) or not isinstance(options, dict):
            raise PacketDecodeError("Join payload needs 'roomId' and 'options'")
        if not isinstance(options.get("intent"), str):
            raise PacketDecodeError("Join payload needs 'options.intent'")
        return cls(room_id=data["roomId"], intent=options["intent"])

    def to_dict(self) -> Dict[str, Any]:
        return {"roomId": self.room_id, "options": {"intent": self.intent}}


@dataclass(frozen=True)
class HeartbeatPacket:
    """Bare keepalive marker; carries no payload."""


Packet = Union[JoinPacket, HeartbeatPacket]
Frame = Union[str, bytes]


class TransportCodec:
    """Serialises legacy transport packets. Holds no connection state."""

    def encode(self, packet: Packet) -> Frame:
        raise NotImplementedError

    def decode(self, frame: Frame) -> Packet:
        raise NotImplementedError

    def join_frame(self, room_id: str, intent: str) -> Frame:
        return self.encode(JoinPacket(room_id=room_id, intent=intent))

    def heartbeat_frame(self) -> Frame:
        return self.encode(HeartbeatPacket())


class SocketIOTextCodec(TransportCodec):
    """
    Socket.IO events over Engine.IO v3 text frames.

    join:      42["blueboat_JOIN_ROOM",{"roomId":"r1","options":{"intent":"i1"}}]
    heartbeat: 2
    """

    def encode(self, packet: Packet) -> Frame:
        if isinstance(packet, HeartbeatPacket):
            return EIO_PING
        if isinstance(packet, JoinPacket):
            body = json.dumps([JOIN_EVENT, packet.to_dict()], separators=(',', ':'))
            return EIO_MESSAGE + SIO_EVENT + body
        raise TypeError(f"Cannot encode {type(packet).__name__}")

    def decode(self, frame: Frame) -> Packet:
        if isinstance(frame, bytes):
            try:
                frame = frame.decode("utf-8")
            except UnicodeDecodeError as e:
                raise PacketDecodeError(f"Frame is not UTF-8: {e}") from e
        if frame == EIO_PING:
            return HeartbeatPacket()
        if not frame.startswith(EIO_MESSAGE + SIO_EVENT):
            raise PacketDecodeError(f"Unsupported frame: {frame[:16]!r}")
        try:
            event = json.loads(frame[2:])
        except json.JSONDecodeError as e:
            raise PacketDecodeError(f"Invalid JSON: {e}") from e
        if not isinstance(event, list) or len(event) != 2 or event[0] != JOIN_EVENT:
            raise PacketDecodeError(f"Unexpected event: {event!r}")
        return JoinPacket.from_dict(event[1])
