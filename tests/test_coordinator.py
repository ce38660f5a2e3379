import asyncio

from worksnaps_status.config import StatusConfig
from worksnaps_status.coordinator import RefreshCoordinator
from worksnaps_status.models import ErrorKind, WorkSummary
from worksnaps_status.source import NetworkTimeoutError, NetworkUnreachableError
from worksnaps_status.surface import RenderDispatcher

CONFIGURED = StatusConfig(api_token="secret-token", project_id="77")


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FakeSource:
    def __init__(self, summary: WorkSummary | None = None, user_id: str = "42") -> None:
        self.summary = summary or WorkSummary(hours_worked=3.5, activity_percent=82)
        self.user_id = user_id
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.fetch_calls: list[tuple[str, str]] = []
        self.resolve_calls = 0
        self.close_calls = 0

    async def resolve_user_id(self) -> str:
        self.resolve_calls += 1
        return self.user_id

    async def fetch_today_summary(self, user_id: str, project_id: str) -> WorkSummary:
        self.fetch_calls.append((user_id, project_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.summary

    async def close(self) -> None:
        self.close_calls += 1


class Holder:
    def __init__(self, config: StatusConfig) -> None:
        self.config = config


def make_coordinator(source: FakeSource, config: StatusConfig = CONFIGURED, **kwargs):
    holder = Holder(config)
    changes: list[tuple[bool, ErrorKind | None]] = []
    coordinator = RefreshCoordinator(lambda: holder.config, lambda _cfg: source, **kwargs)
    coordinator.set_on_change(lambda: changes.append((coordinator.in_progress, coordinator.last_error)))
    return coordinator, holder, changes


def test_successful_refresh_populates_cache_and_notifies() -> None:
    source = FakeSource()
    coordinator, _, changes = make_coordinator(source)

    asyncio.run(coordinator.refresh())

    assert coordinator.get_summary() == source.summary
    assert coordinator.last_error is None
    assert coordinator.in_progress is False
    assert source.fetch_calls == [("42", "77")]
    assert source.close_calls == 1
    # Observers only ever see the finished state.
    assert changes == [(False, None)]


def test_cache_is_served_within_ttl_and_refetched_after() -> None:
    source = FakeSource()
    clock = FakeClock()
    coordinator, _, _ = make_coordinator(source, clock=clock)

    async def scenario() -> None:
        await coordinator.refresh()
        clock.now += 30
        assert coordinator.get_summary() == source.summary
        assert coordinator.get_summary() == source.summary
        assert len(source.fetch_calls) == 1

        clock.now += 31
        # Stale value is still returned while a refresh starts in the background.
        assert coordinator.get_summary() == source.summary
        assert coordinator.in_progress is True
        await coordinator.refresh()

    asyncio.run(scenario())

    assert len(source.fetch_calls) == 2


def test_concurrent_refreshes_share_one_fetch() -> None:
    source = FakeSource()
    coordinator, _, changes = make_coordinator(source)

    async def scenario() -> None:
        source.gate = asyncio.Event()
        first = asyncio.create_task(coordinator.refresh())
        second = asyncio.create_task(coordinator.refresh())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert coordinator.in_progress is True
        source.gate.set()
        await asyncio.gather(first, second)

    asyncio.run(scenario())

    assert len(source.fetch_calls) == 1
    assert coordinator.get_summary() == source.summary
    assert changes == [(False, None)]


def test_failed_refresh_keeps_previous_cache() -> None:
    source = FakeSource()
    coordinator, _, changes = make_coordinator(source)

    async def scenario() -> None:
        await coordinator.refresh()
        source.error = NetworkTimeoutError("timed out")
        source.summary = WorkSummary(9.0, 10)
        await coordinator.refresh()

    asyncio.run(scenario())

    assert coordinator.get_summary() == WorkSummary(hours_worked=3.5, activity_percent=82)
    assert coordinator.last_error is ErrorKind.NETWORK_TIMEOUT
    assert coordinator.is_using_cached_data() is True
    assert changes[-1] == (False, ErrorKind.NETWORK_TIMEOUT)


def test_first_failure_without_cache_is_not_cached_data() -> None:
    source = FakeSource()
    source.error = NetworkUnreachableError("offline")
    coordinator, _, _ = make_coordinator(source)

    asyncio.run(coordinator.refresh())

    assert coordinator.last_error is ErrorKind.NETWORK_UNREACHABLE
    assert coordinator.is_using_cached_data() is False
    assert coordinator.cache_entry is None


def test_unexpected_exception_maps_to_unexpected_response() -> None:
    source = FakeSource()
    source.error = KeyError("boom")
    coordinator, _, _ = make_coordinator(source)

    asyncio.run(coordinator.refresh())

    assert coordinator.last_error is ErrorKind.UNEXPECTED_RESPONSE
    assert coordinator.in_progress is False


def test_missing_configuration_skips_network() -> None:
    source = FakeSource()
    coordinator, _, changes = make_coordinator(source, config=StatusConfig(api_token="", project_id="77"))

    asyncio.run(coordinator.refresh())

    assert coordinator.last_error is ErrorKind.CONFIGURATION_MISSING
    assert coordinator.get_summary() is None
    assert source.fetch_calls == []
    assert source.resolve_calls == 0
    assert changes == [(False, ErrorKind.CONFIGURATION_MISSING)]


def test_user_id_resolved_once_per_session() -> None:
    source = FakeSource(user_id="900")
    clock = FakeClock()
    coordinator, _, _ = make_coordinator(source, clock=clock)

    async def scenario() -> None:
        await coordinator.refresh()
        clock.now += 120
        await coordinator.refresh()

    asyncio.run(scenario())

    assert source.resolve_calls == 1
    assert source.fetch_calls == [("900", "77"), ("900", "77")]


def test_configured_user_id_is_used_directly() -> None:
    source = FakeSource()
    coordinator, _, _ = make_coordinator(source, config=StatusConfig(api_token="t", project_id="5", user_id="11"))

    asyncio.run(coordinator.refresh())

    assert source.resolve_calls == 0
    assert source.fetch_calls == [("11", "5")]


def test_clear_cache_drops_data_error_and_user_id() -> None:
    source = FakeSource()
    coordinator, _, _ = make_coordinator(source)

    async def scenario() -> None:
        await coordinator.refresh()
        source.error = NetworkTimeoutError("slow")
        await coordinator.refresh()
        coordinator.clear_cache()
        assert coordinator.cache_entry is None
        assert coordinator.last_error is None
        source.error = None
        await coordinator.refresh()

    asyncio.run(scenario())

    assert source.resolve_calls == 2


def test_clear_cache_during_refresh_refetches_with_new_settings() -> None:
    source = FakeSource()
    coordinator, holder, _ = make_coordinator(source)

    async def scenario() -> None:
        source.gate = asyncio.Event()
        task = coordinator.trigger_refresh()
        await asyncio.sleep(0)
        holder.config = StatusConfig(api_token="new-token", project_id="88")
        coordinator.clear_cache()
        source.gate.set()
        await task

    asyncio.run(scenario())

    assert source.fetch_calls == [("42", "77"), ("42", "88")]
    assert coordinator.get_summary() == source.summary
    assert coordinator.in_progress is False


def test_get_summary_without_event_loop_does_not_raise() -> None:
    coordinator, _, _ = make_coordinator(FakeSource())

    assert coordinator.get_summary() is None
    assert coordinator.in_progress is False


def test_change_listener_errors_are_contained() -> None:
    source = FakeSource()
    coordinator, _, _ = make_coordinator(source)

    def broken() -> None:
        raise RuntimeError("render failed")

    coordinator.set_on_change(broken)
    asyncio.run(coordinator.refresh())

    assert coordinator.get_summary() == source.summary


def test_snapshot_is_consistent() -> None:
    source = FakeSource()
    coordinator, _, _ = make_coordinator(source)

    async def scenario() -> None:
        await coordinator.refresh()
        source.error = NetworkTimeoutError("slow")
        await coordinator.refresh()

    asyncio.run(scenario())
    snapshot = coordinator.snapshot()

    assert snapshot.summary == source.summary
    assert snapshot.last_error is ErrorKind.NETWORK_TIMEOUT
    assert snapshot.using_cached_data is True
    assert snapshot.in_progress is False


def test_rendering_after_failed_refresh_does_not_refetch() -> None:
    source = FakeSource()
    source.error = NetworkUnreachableError("offline")
    coordinator, _, _ = make_coordinator(source)
    renders: list[bool] = []

    async def render() -> None:
        renders.append(coordinator.snapshot().summary is None)

    async def scenario() -> None:
        dispatcher = RenderDispatcher(asyncio.get_running_loop(), render)
        coordinator.set_on_change(dispatcher.request)
        await coordinator.refresh()
        await asyncio.sleep(0.1)

    asyncio.run(scenario())

    assert len(source.fetch_calls) == 1
    assert renders == [True]
    assert coordinator.in_progress is False


def test_snapshot_of_stale_cache_does_not_trigger_refresh() -> None:
    source = FakeSource()
    clock = FakeClock()
    coordinator, _, _ = make_coordinator(source, clock=clock)

    async def scenario() -> None:
        await coordinator.refresh()
        clock.now += 120
        assert coordinator.snapshot().summary == source.summary
        assert coordinator.in_progress is False

    asyncio.run(scenario())

    assert len(source.fetch_calls) == 1
