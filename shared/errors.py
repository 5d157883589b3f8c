from __future__ import annotations


class RoomlinkError(Exception):
    """Base class for every failure a spawn attempt can surface."""
    pass
class RoomNotFound(RoomlinkError):
    """Raised when the matchmaker reports no room for the given code."""

    def __init__(self, room_code: str) -> None:
        super().__init__(f"Game not found for room code {room_code}")
        self.room_code = room_code
class JoinPageParseError(RoomlinkError):
    """Raised when the join page does not carry the join token element."""
    pass
class MatchmakerError(RoomlinkError):
    """Raised on a non-success matchmaker response or a malformed body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
class RoomFullError(RoomlinkError):
    """Raised when the game server rejects the join because the room is full."""
    pass
class NetworkError(RoomlinkError):
    """Raised when dialing, fetching or a handshake fails at the network level."""
    pass
class ConfigurationError(RoomlinkError):
    """Raised for invalid configuration or a missing credential hider."""
    pass
class PacketDecodeError(RoomlinkError):
    """Raised when an inbound frame is not a packet the codec understands."""
    pass
