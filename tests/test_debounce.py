import asyncio

import pytest

from app.client.debounce import Debouncer


class Sink:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def __call__(self, value):
        if self.fail:
            raise RuntimeError("write failed")
        self.calls.append(value)


@pytest.mark.asyncio
async def test_rapid_pushes_coalesce_to_latest():
    sink = Sink()
    d = Debouncer(0.02, sink)
    for i in range(5):
        d.push(i)
    await asyncio.sleep(0.08)
    assert sink.calls == [4]
    assert not d.pending


@pytest.mark.asyncio
async def test_flush_writes_now():
    sink = Sink()
    d = Debouncer(10, sink)
    d.push("a")
    d.push("b")
    await d.flush()
    assert sink.calls == ["b"]

    await d.flush()
    assert sink.calls == ["b"]


@pytest.mark.asyncio
async def test_flush_propagates_errors():
    d = Debouncer(10, Sink(fail=True))
    d.push("x")
    with pytest.raises(RuntimeError):
        await d.flush()


@pytest.mark.asyncio
async def test_background_failure_is_recorded():
    d = Debouncer(0.01, Sink(fail=True))
    d.push("x")
    await asyncio.sleep(0.05)
    assert isinstance(d.last_error, RuntimeError)

    assert isinstance(d.take_error(), RuntimeError)
    assert d.take_error() is None


@pytest.mark.asyncio
async def test_cancel_drops_pending_value():
    sink = Sink()
    d = Debouncer(0.01, sink)
    d.push("x")
    d.cancel()
    await asyncio.sleep(0.03)
    assert sink.calls == []
