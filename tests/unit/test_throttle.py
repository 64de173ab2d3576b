import asyncio
import pytest

from querycoalesce.errors import ResolverError
from querycoalesce.throttle import ThrottleCoordinator
from tests.helpers.fake_fn import RecordingFn, echo_result

WINDOW = 0.01

def _const(*_args, **_kwargs):
    return "default"

@pytest.mark.asyncio
async def test_calls_in_window_collapse_to_last_args():
    fn = RecordingFn(result=echo_result)
    coord = ThrottleCoordinator(fn, WINDOW, _const)

    t1 = asyncio.create_task(coord.call(1))
    t2 = asyncio.create_task(coord.call(2))
    t3 = asyncio.create_task(coord.call(3))
    await asyncio.sleep(0)
    assert fn.call_count == 0
    assert coord.pending_keys() == ["default"]
    assert coord.is_open("default")

    results = await asyncio.gather(t1, t2, t3)
    assert fn.call_count == 1
    assert fn.last_args == (3,)
    assert results == ["result-3"] * 3
    assert coord.stats.windows_opened == 1
    assert coord.stats.calls_coalesced == 2
    assert coord.pending_keys() == []

@pytest.mark.asyncio
async def test_groups_by_resolver_key():
    fn = RecordingFn(result=lambda key, v: v)
    coord = ThrottleCoordinator(fn, WINDOW, lambda key, _v: key)

    results = await asyncio.gather(
        coord.call("A", 1), coord.call("A", 2), coord.call("B", 3), coord.call("B", 4)
    )
    assert fn.call_count == 2
    assert sorted(fn.args_list()) == [("A", 2), ("B", 4)]
    assert results == [2, 2, 4, 4]

@pytest.mark.asyncio
async def test_error_fans_out_to_all_waiters_unmodified():
    err = ValueError("Test error")
    fn = RecordingFn(error=err)
    coord = ThrottleCoordinator(fn, WINDOW, _const)

    results = await asyncio.gather(coord.call(1), coord.call(2), return_exceptions=True)
    assert results[0] is err
    assert results[1] is err
    assert fn.call_count == 1
    assert coord.stats.failures == 1

@pytest.mark.asyncio
async def test_resolver_error_opens_no_window():
    fn = RecordingFn(result=1)

    def bad(_v):
        raise RuntimeError("Resolver error")

    coord = ThrottleCoordinator(fn, WINDOW, bad)
    with pytest.raises(ResolverError, match="Resolver function failed"):
        await coord.call(1)
    assert coord.pending_keys() == []
    await asyncio.sleep(WINDOW * 3)
    assert fn.call_count == 0

@pytest.mark.asyncio
async def test_consecutive_windows_are_independent():
    fn = RecordingFn(result=echo_result)
    coord = ThrottleCoordinator(fn, WINDOW, _const)

    r1, r2 = await asyncio.gather(coord.call(1), coord.call(2))
    assert (r1, r2) == ("result-2", "result-2")
    assert fn.call_count == 1

    r3, r4 = await asyncio.gather(coord.call(3), coord.call(4))
    assert (r3, r4) == ("result-4", "result-4")
    assert fn.call_count == 2
    assert fn.args_list() == [(2,), (4,)]

@pytest.mark.asyncio
async def test_timer_not_reset_by_later_calls():
    fn = RecordingFn(result=echo_result)
    coord = ThrottleCoordinator(fn, 0.05, _const)

    loop = asyncio.get_running_loop()
    started = loop.time()
    first = asyncio.create_task(coord.call(1))
    await asyncio.sleep(0.03)
    second = asyncio.create_task(coord.call(2))
    await asyncio.gather(first, second)
    elapsed = loop.time() - started
    # fired ~0.05 after the first call, not 0.05 after the second
    assert elapsed < 0.075
    assert fn.call_count == 1
    assert fn.last_args == (2,)

@pytest.mark.asyncio
async def test_new_window_while_previous_invocation_in_flight():
    gate = asyncio.Event()
    fn = RecordingFn(result=echo_result, gate=gate)
    coord = ThrottleCoordinator(fn, WINDOW, _const)

    a = asyncio.create_task(coord.call("A"))
    await asyncio.sleep(WINDOW * 3)
    assert fn.call_count == 1           # window A fired, still running
    assert coord.pending_keys() == []

    b = asyncio.create_task(coord.call("B"))
    await asyncio.sleep(WINDOW * 3)
    assert fn.call_count == 2           # B opened a fresh window
    gate.set()
    assert await a == "result-A"
    assert await b == "result-B"

@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_window():
    fn = RecordingFn(result=echo_result)
    coord = ThrottleCoordinator(fn, WINDOW, _const)

    quitter = asyncio.create_task(coord.call(1))
    stayer = asyncio.create_task(coord.call(2))
    await asyncio.sleep(0)
    quitter.cancel()

    assert await stayer == "result-2"
    assert fn.call_count == 1
    with pytest.raises(asyncio.CancelledError):
        await quitter

@pytest.mark.asyncio
async def test_sync_raise_from_fn_reaches_waiters():
    err = TypeError("not awaitable")

    def not_async(*_):
        raise err

    coord = ThrottleCoordinator(not_async, WINDOW, _const)
    with pytest.raises(TypeError) as ei:
        await coord.call(1)
    assert ei.value is err

def test_negative_window_rejected():
    with pytest.raises(ValueError):
        ThrottleCoordinator(RecordingFn(), -1, _const)
