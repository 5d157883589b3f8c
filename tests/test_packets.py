import pytest


def test_join_frame_round_trips_room_and_intent():
    from shared.packets import JoinPacket, SocketIOTextCodec

    codec = SocketIOTextCodec()
    frame = codec.encode(JoinPacket.from_dict({"roomId": "r1", "options": {"intent": "i1"}}))
    decoded = codec.decode(frame)

    assert isinstance(decoded, JoinPacket)
    assert decoded.room_id == "r1"
    assert decoded.intent == "i1"


def test_join_frame_is_socketio_event():
    from shared.packets import SocketIOTextCodec

    frame = SocketIOTextCodec().join_frame("r1", "i1")

    assert frame == '42["blueboat_JOIN_ROOM",{"roomId":"r1","options":{"intent":"i1"}}]'


def test_heartbeat_is_bare_marker():
    from shared.packets import HeartbeatPacket, SocketIOTextCodec

    codec = SocketIOTextCodec()

    assert codec.heartbeat_frame() == "2"
    assert codec.decode(b"2") == HeartbeatPacket()
    assert codec.heartbeat_frame() != codec.join_frame("r1", "i1")


@pytest.mark.parametrize("frame", [
    "3probe",
    "42not json",
    '42["other_EVENT",{}]',
    '42["blueboat_JOIN_ROOM",{"roomId":"r1"}]',
    b"\xff\xfe",
])
def test_decode_rejects_unknown_frames(frame):
    from shared.errors import PacketDecodeError
    from shared.packets import SocketIOTextCodec

    with pytest.raises(PacketDecodeError):
        SocketIOTextCodec().decode(frame)
