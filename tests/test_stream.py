import asyncio

import pytest

from event_chain import (
    EventChain,
    EventChainConfig,
    EventStream,
    OverflowPolicy,
    StreamCancelledError,
    StreamItem,
)


def test_emissions_before_pulls_are_yielded_in_order(bus):
    async def scenario():
        stream = bus.async_iterable("tick")
        for i in range(3):
            bus.emit("tick", i)
        assert stream.buffered == 3

        items = [await stream.__anext__() for _ in range(3)]
        stream.cancel("done")
        return [item.args for item in items]

    assert asyncio.run(scenario()) == [(0,), (1,), (2,)]


def test_pulls_before_emissions_resolve_in_arrival_order(bus):
    async def scenario():
        stream = bus.async_iterable("tick")
        pulls = [asyncio.ensure_future(stream.__anext__()) for _ in range(3)]
        await asyncio.sleep(0)
        assert stream.pending == 3

        bus.emit("tick", "a").emit("tick", "b", 1).emit("tick", "c")
        items = await asyncio.gather(*pulls)
        stream.cancel("done")
        return [item.args for item in items]

    assert asyncio.run(scenario()) == [("a",), ("b", 1), ("c",)]


def test_async_for_with_item_cancel(bus):
    async def producer():
        for i in range(10):
            await asyncio.sleep(0)
            bus.emit("n", i)

    async def scenario():
        seen = []
        task = asyncio.ensure_future(producer())
        async for item in bus.async_iterable("n"):
            assert isinstance(item, StreamItem)
            seen.append(item.args[0])
            if len(seen) == 4:
                item.cancel("enough")
        await task
        return seen

    assert asyncio.run(scenario()) == [0, 1, 2, 3]
    assert not bus.has_listeners("n")


def test_cancel_fails_pending_pulls_with_reason(bus):
    async def scenario():
        stream = bus.async_iterable("x")
        pull = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        stream.cancel("done")

        with pytest.raises(StreamCancelledError) as excinfo:
            await pull
        assert excinfo.value.reason == "done"

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    asyncio.run(scenario())
    assert not bus.has_listeners("x")


def test_cancel_with_exception_reason_raises_it(bus):
    class Shutdown(Exception):
        pass

    async def scenario():
        stream = bus.async_iterable("x")
        pull = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        stream.cancel(Shutdown("bye"))
        with pytest.raises(Shutdown):
            await pull

    asyncio.run(scenario())


def test_cancel_discards_buffer_and_is_idempotent(bus):
    stream = bus.async_iterable("x")
    bus.emit("x", 1).emit("x", 2)

    stream.cancel("done")
    stream.cancel("again")
    bus.emit("x", 3)

    assert stream.closed
    assert stream.buffered == 0
    assert not bus.has_listeners("x")


def test_each_call_returns_fresh_stream(bus):
    async def scenario():
        first = bus.async_iterable("x")
        second = bus.async_iterable("x")
        bus.emit("x", 1)
        a = await first.__anext__()
        b = await second.__anext__()
        first.cancel()
        second.cancel()
        return a.args, b.args

    assert asyncio.run(scenario()) == ((1,), (1,))


def test_cancelled_pull_does_not_consume_emission(bus):
    async def scenario():
        stream = bus.async_iterable("x")
        abandoned = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        abandoned.cancel()
        await asyncio.sleep(0)

        bus.emit("x", "kept")
        item = await stream.__anext__()
        stream.cancel()
        return item.args

    assert asyncio.run(scenario()) == ("kept",)


def test_bounded_buffer_drops_oldest(bus):
    stream = bus.async_iterable("x", max_buffer=2)
    for i in range(4):
        bus.emit("x", i)

    async def drain():
        items = [await stream.__anext__() for _ in range(2)]
        stream.cancel()
        return [item.args for item in items]

    assert asyncio.run(drain()) == [(2,), (3,)]
    assert stream.dropped == 2


def test_bounded_buffer_drops_newest(bus):
    stream = bus.async_iterable("x", max_buffer=2, overflow=OverflowPolicy.DROP_NEWEST)
    for i in range(4):
        bus.emit("x", i)

    async def drain():
        items = [await stream.__anext__() for _ in range(2)]
        stream.cancel()
        return [item.args for item in items]

    assert asyncio.run(drain()) == [(0,), (1,)]
    assert stream.dropped == 2


def test_buffer_bound_defaults_from_config():
    bus = EventChain(EventChainConfig(stream_max_buffer=1))
    stream = bus.async_iterable("x")
    bus.emit("x", 1).emit("x", 2)

    assert stream.buffered == 1
    assert stream.dropped == 1
    stream.cancel()


def test_invalid_buffer_bound(bus):
    with pytest.raises(ValueError):
        EventStream(bus, "x", max_buffer=0)


def test_async_context_manager_closes(bus):
    async def scenario():
        async with bus.async_iterable("x") as stream:
            bus.emit("x", 1)
            item = await stream.__anext__()
        return item.args, stream.closed

    assert asyncio.run(scenario()) == ((1,), True)
    assert not bus.has_listeners("x")


def test_abandoned_pulls_leave_no_requests_behind(bus):
    async def scenario():
        stream = bus.async_iterable("quiet")
        for _ in range(20):
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(stream.__anext__(), 0.001)

        assert stream.pending == 0
        assert len(stream._requests) == 0

        bus.emit("quiet", "late")
        item = await stream.__anext__()
        stream.cancel()
        return item.args

    assert asyncio.run(scenario()) == ("late",)
