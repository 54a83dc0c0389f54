import asyncio

from tests.conftest import FakeProvider
from tourguide.cache.ttl_lru import TTLCache
from tourguide.exceptions import LocationPermissionDenied, LocationUnavailable
from tourguide.location.permissions import PermissionMonitor, PermissionState
from tourguide.location.source import FailureKind, LocationFailure, LocationSource
from tourguide.models import Position

FIX = Position(latitude=48.8584, longitude=2.2945, accuracy_m=15)


async def test_timeout_is_a_typed_failure():
    source = LocationSource(provider=FakeProvider(results=[FIX], delay=1.0))
    result = await source.get_current_position(timeout=0.01)
    assert isinstance(result, LocationFailure)
    assert result.kind == FailureKind.TIMEOUT


async def test_provider_errors_map_to_failures():
    source = LocationSource(provider=FakeProvider(results=[LocationPermissionDenied("no")]))
    result = await source.get_current_position()
    assert result.kind == FailureKind.PERMISSION_DENIED

    source = LocationSource(provider=FakeProvider(results=[LocationUnavailable("no gps")]))
    result = await source.get_current_position()
    assert result.kind == FailureKind.UNAVAILABLE


async def test_successful_fix_is_remembered():
    source = LocationSource(provider=FakeProvider(results=[FIX]))
    assert await source.get_current_position() == FIX
    assert source.last_position == FIX


async def test_push_mode_without_provider():
    source = LocationSource()
    failure = await source.get_current_position()
    assert failure.kind == FailureKind.UNAVAILABLE

    received = []
    source.subscribe(received.append)
    assert source.push(FIX)
    assert received == [FIX]
    assert await source.get_current_position() == FIX


async def test_push_discards_inaccurate_fix():
    source = LocationSource(max_accuracy_m=100)
    received = []
    source.subscribe(received.append)

    assert not source.push(Position(latitude=0, longitude=0, accuracy_m=500))
    assert received == []
    assert source.last_position is None


async def test_report_failure_is_delivered():
    source = LocationSource()
    received = []
    source.subscribe(received.append)

    failure = source.report_failure("timeout", "no fix")
    assert failure.kind == FailureKind.TIMEOUT
    assert received == [failure]

    # Unknown codes degrade to unavailable
    assert source.report_failure("weird").kind == FailureKind.UNAVAILABLE


async def test_unsubscribe():
    source = LocationSource()
    received = []
    unsubscribe = source.subscribe(received.append)
    unsubscribe()
    source.push(FIX)
    assert received == []


async def test_failing_subscriber_does_not_block_others():
    source = LocationSource()
    received = []

    def broken(_result):
        raise RuntimeError("boom")

    source.subscribe(broken)
    source.subscribe(received.append)
    source.push(FIX)
    assert received == [FIX]


async def test_polling_keeps_going_after_failures():
    provider = FakeProvider(results=[LocationUnavailable("cold start"), FIX])
    source = LocationSource(provider=provider, poll_interval=0.01)
    received = []
    source.subscribe(received.append)

    assert await source.start() is None
    assert source.is_running
    await asyncio.sleep(0.1)
    await source.stop()

    assert isinstance(received[0], LocationFailure)
    assert FIX in received[1:]
    assert not source.is_running
    count = len(received)
    await asyncio.sleep(0.03)
    assert len(received) == count


async def test_request_refresh_wakes_loop():
    provider = FakeProvider(results=[FIX])
    source = LocationSource(provider=provider, poll_interval=60)
    await source.start()
    await asyncio.sleep(0.01)
    assert provider.calls == 1

    source.request_refresh()
    await asyncio.sleep(0.01)
    assert provider.calls == 2
    await source.stop()


async def test_start_with_denied_permission(clock):
    provider = FakeProvider(results=[FIX], permission=PermissionState.DENIED)
    monitor = PermissionMonitor(provider, TTLCache(capacity=1, clock=clock))
    source = LocationSource(provider=provider, permission_monitor=monitor)

    failure = await source.start()
    assert failure.kind == FailureKind.PERMISSION_DENIED
    assert not source.is_running
    assert source.permission_state == PermissionState.DENIED


async def test_accepted_fix_marks_permission_granted(clock):
    provider = FakeProvider(results=[FIX], permission=PermissionState.PROMPT)
    monitor = PermissionMonitor(provider, TTLCache(capacity=1, clock=clock))
    source = LocationSource(provider=provider, permission_monitor=monitor)

    await source.get_current_position()
    assert source.permission_state == PermissionState.GRANTED


async def test_unexpected_provider_error_does_not_stop_polling():
    provider = FakeProvider(results=[RuntimeError("bridge crashed"), FIX])
    source = LocationSource(provider=provider, poll_interval=0.01)
    received = []
    source.subscribe(received.append)

    await source.start()
    await asyncio.sleep(0.1)
    await source.stop()

    assert received[0] == LocationFailure(FailureKind.UNAVAILABLE, "bridge crashed")
    assert FIX in received[1:]
    assert provider.calls > 1
