import asyncio

import httpx
import pytest


FIND_INFO = "/api/matchmaker/find-info-from-code"


@pytest.mark.asyncio
async def test_concurrent_resolves_share_one_lookup(gimkit, config):
    from roomlink.directory import RoomDirectory

    async with gimkit.client() as http:
        directory = RoomDirectory("123456", http, config)
        results = await asyncio.gather(*(directory.resolve() for _ in range(10)))

        # later callers reuse the cached result
        again = await directory.resolve()

    assert gimkit.count(FIND_INFO) == 1
    assert directory.lookups == 1
    assert all(r is results[0] for r in results)
    assert again is results[0]
    assert results[0].room_id == "room-xyz"
    assert results[0].fields["useRandomNamePicker"] is False
    assert gimkit.calls[0][2] == {"code": "123456"}


@pytest.mark.asyncio
async def test_concurrent_spawns_trigger_one_lookup(gimkit, config, dialer, ticker, hider):
    from roomlink.session import create_session

    async with gimkit.client() as http:
        session = create_session("123456", config=config, hider=hider, http_client=http,
                                 connector=dialer, sleep=ticker.sleep)
        async with session:
            connections = await asyncio.gather(*(session.spawn(f"Bot {i}") for i in range(5)))
            assert len(session.live_connections) == 5

    assert gimkit.count(FIND_INFO) == 1
    assert gimkit.count("/api/matchmaker/join") == 5
    assert len({c.connection_id for c in connections}) == 5


@pytest.mark.asyncio
async def test_not_found_sentinel_raises_and_is_cached(gimkit, config):
    from roomlink.directory import RoomDirectory
    from shared.errors import RoomNotFound

    gimkit.room_info = {"code": 404, "message": "Game not found"}
    async with gimkit.client() as http:
        directory = RoomDirectory("999999", http, config)
        with pytest.raises(RoomNotFound):
            await directory.resolve()
        with pytest.raises(RoomNotFound):
            await directory.resolve()

    assert gimkit.count(FIND_INFO) == 1
    assert directory.resolved is False


@pytest.mark.asyncio
async def test_transport_failure_is_network_error(config):
    from roomlink.directory import RoomDirectory
    from shared.errors import NetworkError

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as http:
        directory = RoomDirectory("123456", http, config)
        with pytest.raises(NetworkError):
            await directory.resolve()


@pytest.mark.asyncio
async def test_missing_room_id_is_matchmaker_error(gimkit, config):
    from roomlink.directory import RoomDirectory
    from shared.errors import MatchmakerError

    gimkit.room_info = {"message": "something else"}
    async with gimkit.client() as http:
        directory = RoomDirectory("123456", http, config)
        with pytest.raises(MatchmakerError):
            await directory.resolve()


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_lookup(gimkit, config):
    from roomlink.directory import RoomDirectory

    gimkit.latency = 0.05
    async with gimkit.client() as http:
        directory = RoomDirectory("123456", http, config)
        first = asyncio.create_task(directory.resolve())
        second = asyncio.create_task(directory.resolve())
        await asyncio.sleep(0.01)
        first.cancel()

        metadata = await second

    assert metadata.room_id == "room-xyz"
    assert first.cancelled()
    assert gimkit.count(FIND_INFO) == 1
