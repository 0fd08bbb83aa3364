import logging

import pytest

from conftest import PROVIDERS, WALL_CLOCK_BASE_MS, InlineExecutor
from virtual_location.models.domain import Coordinate, SimulationOptions, TimelinePoint
from virtual_location.services.playback.dispatcher import PlaybackDispatcher
from virtual_location.services.playback.sinks import RecordingSink
from virtual_location.services.timeline.builder import build_timeline

TARGET = Coordinate(latitude=30.2741, longitude=120.1551)


def _point(segment_id: str, timestamp_ms: float) -> TimelinePoint:
    return TimelinePoint(
        segment_id=segment_id,
        coordinate=Coordinate(latitude=30.0, longitude=120.0),
        distance_from_start_m=0.0,
        timestamp_ms=timestamp_ms,
        speed_mps=2.5,
    )


def _gps_timeline(sink: RecordingSink) -> list[TimelinePoint]:
    return [sample for sample in sink.samples_for("gps") if sample.segment_id != "target"]


def _gps_targets(sink: RecordingSink) -> list[TimelinePoint]:
    return [sample for sample in sink.samples_for("gps") if sample.segment_id == "target"]


def test_start_without_samples_or_target_is_rejected(dispatcher, sink, scheduler):
    result = dispatcher.start([], SimulationOptions())

    assert not result.ok
    assert result.reason == "missing input"
    assert sink.arm_calls == 0
    assert scheduler.pending() == []
    assert dispatcher.status() == "idle"


def test_timeline_samples_are_delivered_at_relative_offsets(dispatcher, sink, scheduler):
    samples = [_point("seg", 10_000), _point("seg", 12_000), _point("seg", 15_000)]

    result = dispatcher.start(samples, SimulationOptions())

    assert result.ok
    assert result.scheduled_samples == 3
    assert dispatcher.status() == "active"
    assert sorted(handle.due_ms for handle in scheduler.pending()) == [0, 2000, 5000]

    scheduler.advance(1999)
    assert len(_gps_timeline(sink)) == 1
    scheduler.advance(3001)
    assert [sample.timestamp_ms for sample in _gps_timeline(sink)] == [10_000, 12_000, 15_000]


def test_each_delivery_fans_out_to_every_armed_provider(dispatcher, sink, scheduler):
    dispatcher.start([_point("seg", 0)], SimulationOptions())
    scheduler.advance(0)

    assert sorted(name for name, _ in sink.pushed) == ["fused", "gps", "network"]


def test_timeline_from_builder_plays_back_in_order(dispatcher, sink, scheduler, two_segment_scenario):
    timeline = build_timeline(two_segment_scenario, start_at_ms=0)

    dispatcher.start(timeline.points, SimulationOptions())
    scheduler.advance(timeline.points[-1].timestamp_ms + 1)

    assert _gps_timeline(sink) == list(timeline.points)


def test_target_only_repeats_every_second_for_a_minute(dispatcher, sink, scheduler):
    result = dispatcher.start([], SimulationOptions(target_coordinate=TARGET))

    assert result.ok
    assert result.target_broadcast
    assert dispatcher.session.repeater is not None

    scheduler.advance(0)
    assert len(_gps_targets(sink)) == 1
    scheduler.advance(2500)
    assert len(_gps_targets(sink)) == 3

    scheduler.advance(60_000)
    targets = _gps_targets(sink)
    assert len(targets) == 61
    assert not dispatcher.snapshot().target_repeating

    scheduler.advance(10_000)
    assert len(_gps_targets(sink)) == 61


def test_target_entries_are_restamped_with_delivery_time(dispatcher, sink, scheduler):
    dispatcher.start([], SimulationOptions(target_coordinate=TARGET))
    scheduler.advance(3000)

    targets = _gps_targets(sink)
    assert [sample.timestamp_ms for sample in targets] == [
        WALL_CLOCK_BASE_MS,
        WALL_CLOCK_BASE_MS + 1000,
        WALL_CLOCK_BASE_MS + 2000,
        WALL_CLOCK_BASE_MS + 3000,
    ]
    assert all(sample.speed_mps == 0 for sample in targets)
    assert all(sample.coordinate == TARGET for sample in targets)


def test_timeline_waits_for_target_lead_offset(dispatcher, sink, scheduler):
    dispatcher.start([_point("seg", 0), _point("seg", 1000)], SimulationOptions(target_coordinate=TARGET))

    scheduler.advance(1499)
    assert _gps_timeline(sink) == []
    assert len(_gps_targets(sink)) == 2

    scheduler.advance(1)
    assert len(_gps_timeline(sink)) == 1
    scheduler.advance(1000)
    assert len(_gps_timeline(sink)) == 2


def test_stop_cancels_everything_and_disarms(dispatcher, sink, scheduler):
    dispatcher.start([_point("seg", 0), _point("seg", 5000)], SimulationOptions(target_coordinate=TARGET))
    scheduler.advance(2000)
    delivered = len(sink.pushed)

    result = dispatcher.stop()

    assert result.stopped
    assert result.cancelled_deliveries == 1
    assert all(outcome.ok for outcome in result.disarm_outcomes)
    assert sink.disarm_calls == 1
    assert dispatcher.status() == "idle"
    assert scheduler.pending() == []

    scheduler.advance(120_000)
    assert len(sink.pushed) == delivered


def test_stop_is_idempotent(dispatcher, sink):
    assert dispatcher.stop().stopped is False

    dispatcher.start([_point("seg", 0)], SimulationOptions())
    assert dispatcher.stop().stopped is True
    assert dispatcher.stop().stopped is False
    assert sink.disarm_calls == 1


def test_restart_cancels_stale_deliveries(dispatcher, sink, scheduler):
    dispatcher.start([_point("old", 0), _point("old", 5000), _point("old", 9000)], SimulationOptions())
    scheduler.advance(1000)
    first_session = dispatcher.session.session_id

    result = dispatcher.start([_point("new", 0), _point("new", 3000)], SimulationOptions())
    scheduler.advance(20_000)

    assert result.ok
    assert result.session_id != first_session
    assert [sample.segment_id for sample in _gps_timeline(sink)] == ["old", "new", "new"]
    assert sink.arm_calls == 2
    assert sink.disarm_calls == 1


def test_restart_keeps_a_single_target_repeater(dispatcher, sink, scheduler):
    dispatcher.start([], SimulationOptions(target_coordinate=TARGET))
    scheduler.advance(5000)
    before = len(_gps_targets(sink))

    dispatcher.start([], SimulationOptions(target_coordinate=TARGET))
    scheduler.advance(3000)

    # A lone repeater delivers at 0, 1000, 2000 and 3000 ms after the restart.
    assert len(_gps_targets(sink)) - before == 4


def test_delivery_after_stop_is_dropped(dispatcher, sink, scheduler):
    dispatcher.start([_point("seg", 1000)], SimulationOptions())
    [handle] = scheduler.pending()

    dispatcher.stop()
    handle.callback()

    assert sink.pushed == []


def test_partial_arm_failure_still_plays_on_remaining_providers(scheduler):
    sink = RecordingSink(fail_arm={"gps"})
    dispatcher = PlaybackDispatcher(sink, providers=PROVIDERS, scheduler=scheduler, executor=InlineExecutor())

    result = dispatcher.start([_point("seg", 0)], SimulationOptions())
    scheduler.advance(0)

    assert result.ok
    assert [(outcome.provider, outcome.ok) for outcome in result.arm_outcomes] == [
        ("gps", False),
        ("network", True),
        ("fused", True),
    ]
    assert "mock location provider" in result.arm_outcomes[0].error
    assert sorted(name for name, _ in sink.pushed) == ["fused", "network"]


def test_total_arm_failure_rejects_start(scheduler):
    sink = RecordingSink(fail_arm={"gps", "network", "fused"})
    dispatcher = PlaybackDispatcher(sink, providers=PROVIDERS, scheduler=scheduler, executor=InlineExecutor())

    result = dispatcher.start([_point("seg", 0)], SimulationOptions(target_coordinate=TARGET))

    assert not result.ok
    assert result.reason == "sink arm failure"
    assert len(result.arm_outcomes) == 3
    assert dispatcher.status() == "idle"
    assert scheduler.pending() == []


def test_push_failures_are_recorded_and_do_not_stop_playback(scheduler):
    sink = RecordingSink(fail_push={"network"})
    dispatcher = PlaybackDispatcher(sink, providers=PROVIDERS, scheduler=scheduler, executor=InlineExecutor())

    dispatcher.start([_point("seg", 0), _point("seg", 1000), _point("seg", 2000)], SimulationOptions())
    scheduler.advance(2000)

    snapshot = dispatcher.snapshot()
    assert len(sink.samples_for("gps")) == 3
    assert snapshot.failed == 3
    assert snapshot.delivered == 0
    failure = dispatcher.session.deliveries[0].outcomes
    assert [outcome.provider for outcome in failure if not outcome.ok] == ["network"]


def test_sink_exception_is_contained(scheduler):
    class ExplodingSink(RecordingSink):
        def push(self, sample, *, cancelled=None):
            raise ConnectionError("bridge went away")

    dispatcher = PlaybackDispatcher(
        ExplodingSink(), providers=PROVIDERS, scheduler=scheduler, executor=InlineExecutor()
    )
    dispatcher.start([_point("seg", 0), _point("seg", 500)], SimulationOptions())
    scheduler.advance(1000)

    snapshot = dispatcher.snapshot()
    assert snapshot.failed == 2
    assert snapshot.pending_deliveries == 0
    assert snapshot.state == "active"


def test_snapshot_reports_session_progress(dispatcher, scheduler):
    assert dispatcher.snapshot().state == "idle"

    dispatcher.start([_point("seg", 0), _point("seg", 4000)], SimulationOptions(target_coordinate=TARGET))
    scheduler.advance(2000)
    snapshot = dispatcher.snapshot()

    assert snapshot.state == "active"
    assert snapshot.pending_deliveries == 1
    assert snapshot.delivered == 4  # three target pushes and the first sample
    assert snapshot.target_repeating


def test_enhancement_flags_are_logged(dispatcher, caplog):
    options = SimulationOptions(target_coordinate=TARGET, wifi_enhancement=True, cell_enhancement=True)

    with caplog.at_level(logging.INFO):
        dispatcher.start([], options)

    assert "Wi-Fi enhancement requested" in caplog.text
    assert "Cell enhancement requested" in caplog.text


def test_dispatcher_requires_providers(sink, scheduler):
    with pytest.raises(ValueError):
        PlaybackDispatcher(sink, providers=[], scheduler=scheduler)


def test_stop_during_push_reaches_no_further_provider(scheduler):
    class StopOnFirstPush(RecordingSink):
        def _push_provider(self, provider, sample):
            super()._push_provider(provider, sample)
            dispatcher.stop()

    sink = StopOnFirstPush()
    dispatcher = PlaybackDispatcher(sink, providers=PROVIDERS, scheduler=scheduler, executor=InlineExecutor())
    dispatcher.start([_point("seg", 0), _point("seg", 1000)], SimulationOptions())

    scheduler.advance(2000)

    assert [name for name, _ in sink.pushed] == ["gps"]
    assert sink.disarm_calls == 1
    assert sink.armed_providers == []
    assert dispatcher.status() == "idle"


def test_close_releases_delivery_worker_and_sink(scheduler):
    class ClosingSink(RecordingSink):
        closed = False

        def close(self):
            self.closed = True

    sink = ClosingSink()
    dispatcher = PlaybackDispatcher(sink, providers=PROVIDERS, scheduler=scheduler)
    dispatcher.start([_point("seg", 0)], SimulationOptions())

    dispatcher.close()

    assert sink.closed
    assert dispatcher.status() == "idle"
    with pytest.raises(RuntimeError):
        dispatcher.executor.submit(lambda: None)
