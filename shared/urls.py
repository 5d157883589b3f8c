from __future__ import annotations
from urllib.parse import quote, urlencode

# ========================================
#           ENDPOINT HELPERS
# ========================================
"""
Helpers that build the game-server endpoints out of the serverUrl returned
by the matchmaker.
"""

BLUEBOAT_QUERY = {"id": "", "EIO": "3", "transport": "websocket"}


def to_websocket_url(server_url: str) -> str:
    """
    Swap the http(s) scheme of a server URL for ws(s).

    "https://host/x" -> "wss://host/x", "http://host" -> "ws://host"
    """
    server_url = server_url.rstrip("/")
    if server_url.startswith("https://"):
        return "wss" + server_url[len("https"):]
    if server_url.startswith("http://"):
        return "ws" + server_url[len("http"):]
    raise ValueError(f"Unsupported server URL scheme: {server_url!r}")


def blueboat_url(server_url: str) -> str:
    """Websocket endpoint of the legacy transport, with its fixed negotiation query."""
    return f"{to_websocket_url(server_url)}/blueboat/?{urlencode(BLUEBOAT_QUERY)}"


def join_by_id_url(server_url: str, room_id: str) -> str:
    return f"{server_url.rstrip('/')}/matchmake/joinById/{quote(room_id, safe='')}"


def room_socket_url(server_url: str, process_id: str, room_id: str, session_id: str) -> str:
    """Websocket endpoint of a reserved room on the matchmaker-by-id transport."""
    return (
        f"{to_websocket_url(server_url)}/{quote(process_id, safe='')}/{quote(room_id, safe='')}"
        f"?{urlencode({'sessionId': session_id})}"
    )


def is_room_code(s: str) -> bool:
    """
    Accepts numeric room codes of at least five digits (>= 10000).
    """
    try:
        return s.isdigit() and int(s) >= 10_000
    except ValueError:
        return False
