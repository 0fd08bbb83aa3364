import heapq
import itertools
from concurrent.futures import Executor, Future

import pytest

from virtual_location.models.domain import ProviderSpec, Scenario, ScenarioSegment
from virtual_location.services.playback.dispatcher import PlaybackDispatcher
from virtual_location.services.playback.scheduler import ScheduledHandle
from virtual_location.services.playback.sinks import RecordingSink

WALL_CLOCK_BASE_MS = 1_700_000_000_000.0

PROVIDERS = [
    ProviderSpec(name="gps", accuracy="fine", power_requirement="high"),
    ProviderSpec(name="network", accuracy="coarse", power_requirement="low"),
    ProviderSpec(name="fused", accuracy="fine", power_requirement="low"),
]


class InlineExecutor(Executor):
    """Runs submitted work immediately so virtual-time tests stay synchronous."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            future.set_exception(exc)
        return future


class FakeScheduler:
    """Virtual-time scheduler: callbacks only run inside ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, ScheduledHandle]] = []
        self._sequence = itertools.count()

    def now_ms(self) -> float:
        return self.now

    def call_later(self, delay_ms, callback, *, label=""):
        handle = ScheduledHandle(due_ms=self.now + max(0.0, delay_ms), callback=callback, label=label)
        heapq.heappush(self._queue, (handle.due_ms, next(self._sequence), handle))
        return handle

    def cancel(self, handle: ScheduledHandle) -> bool:
        if not handle.pending:
            return False
        handle.cancelled = True
        return True

    def pending(self) -> list[ScheduledHandle]:
        return [handle for _, _, handle in self._queue if handle.pending]

    def advance(self, ms: float) -> None:
        target = self.now + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if not handle.pending:
                continue
            self.now = due
            try:
                handle.callback()
            finally:
                handle.done = True
        self.now = target


def make_segment(segment_id: str, points, pace=6.0, dwell_ms=0.0, easing="linear") -> ScenarioSegment:
    return ScenarioSegment(
        id=segment_id,
        label=segment_id.upper(),
        points=[tuple(point) for point in points],
        pace=pace,
        dwell_ms=dwell_ms,
        easing=easing,
    )


def make_scenario(*segments: ScenarioSegment) -> Scenario:
    return Scenario(id="test", name="Sample", segments=list(segments))


@pytest.fixture
def two_segment_scenario() -> Scenario:
    return make_scenario(
        make_segment("seg-1", [(120.0, 30.0), (120.0009, 30.0003)], pace=6, dwell_ms=0),
        make_segment("seg-2", [(120.0009, 30.0003), (120.0018, 30.0006)], pace=5, dwell_ms=5000, easing="easeInOut"),
    )


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def dispatcher(sink: RecordingSink, scheduler: FakeScheduler) -> PlaybackDispatcher:
    return PlaybackDispatcher(
        sink,
        providers=PROVIDERS,
        scheduler=scheduler,
        wall_clock=lambda: WALL_CLOCK_BASE_MS + scheduler.now,
        target_interval_ms=1000,
        target_duration_ms=60_000,
        target_lead_offset_ms=1500,
        executor=InlineExecutor(),
    )
