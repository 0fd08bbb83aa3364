"""Real-time playback of timeline samples to a location sink."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence

from ...config import settings
from ...models.domain import (
    DeliveryOutcome,
    PlaybackSnapshot,
    PlaybackState,
    ProviderOutcome,
    ProviderSpec,
    SimulationOptions,
    StartResult,
    StopResult,
    TimelinePoint,
)
from .scheduler import ScheduledHandle, Scheduler, ThreadScheduler
from .sinks import LocationSink, providers_from_settings

logger = logging.getLogger(__name__)

WallClock = Callable[[], float]


def _wall_clock_ms() -> float:
    return time.time() * 1000


class TargetRepeater:
    """Periodic broadcast of a fixed coordinate, re-stamped on every push.

    Delivers once immediately, then every ``interval_ms`` until ``duration_ms``
    has elapsed since :meth:`start`, after which it stops by itself.
    """

    def __init__(
        self,
        options: SimulationOptions,
        deliver: Callable[[TimelinePoint], None],
        scheduler: Scheduler,
        *,
        interval_ms: int,
        duration_ms: int,
        wall_clock: WallClock = _wall_clock_ms,
    ) -> None:
        if not options.has_target():
            raise ValueError("TargetRepeater requires a target coordinate.")
        self.options = options
        self.interval_ms = interval_ms
        self.duration_ms = duration_ms
        self._deliver = deliver
        self._scheduler = scheduler
        self._wall_clock = wall_clock
        self._cancelled = threading.Event()
        self._handle: Optional[ScheduledHandle] = None
        self._started_at_ms: Optional[float] = None
        self._finished = False
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._started_at_ms is not None and not (self._finished or self._cancelled.is_set())

    def start(self) -> None:
        self._started_at_ms = self._scheduler.now_ms()
        self._handle = self._scheduler.call_later(0, self._tick, label="target")

    def cancel(self) -> None:
        self._cancelled.set()
        if self._handle is not None:
            self._scheduler.cancel(self._handle)

    def _tick(self) -> None:
        if self._cancelled.is_set():
            return
        entry = self.options.to_target_entry(self._wall_clock())
        self.ticks += 1
        self._deliver(entry)
        now = self._scheduler.now_ms()
        elapsed = now - self._started_at_ms
        if elapsed < self.duration_ms and not self._cancelled.is_set():
            # Anchored to the start so a late tick does not shift the ones after it.
            due = self._started_at_ms + self.ticks * self.interval_ms
            self._handle = self._scheduler.call_later(max(0.0, due - now), self._tick, label="target")
        else:
            self._finished = True
            logger.debug(f"Target broadcast finished after {self.ticks} deliveries")


@dataclass(slots=True)
class PlaybackSession:
    """State of one start→stop run. Owned by the dispatcher."""

    options: SimulationOptions
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    handles: list[ScheduledHandle] = field(default_factory=list)
    repeater: Optional[TargetRepeater] = None
    deliveries: list[DeliveryOutcome] = field(default_factory=list)
    cancelled: threading.Event = field(default_factory=threading.Event)

    def pending_count(self) -> int:
        return sum(1 for handle in self.handles if handle.pending)


class PlaybackDispatcher:
    """Schedules timeline samples and the target broadcast onto a location sink.

    Only one session is active at a time; :meth:`start` on an active
    dispatcher stops the previous session first. Timer callbacks run on the
    scheduler's thread and only hand each sample to ``executor``, so a slow
    sink delays deliveries but never the schedule itself. The default
    executor has a single worker, which keeps deliveries serialized. A
    failing sink is reported per delivery without affecting the rest of the
    schedule.
    """

    def __init__(
        self,
        sink: LocationSink,
        *,
        providers: Sequence[ProviderSpec] | None = None,
        scheduler: Scheduler | None = None,
        wall_clock: WallClock = _wall_clock_ms,
        target_interval_ms: int | None = None,
        target_duration_ms: int | None = None,
        target_lead_offset_ms: int | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.sink = sink
        self.providers = list(providers) if providers is not None else providers_from_settings()
        if not self.providers:
            raise ValueError("At least one location provider is required.")
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or ThreadScheduler()
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="PlaybackDelivery")
        self.target_interval_ms = target_interval_ms if target_interval_ms is not None else settings.target_push_interval_ms
        self.target_duration_ms = target_duration_ms if target_duration_ms is not None else settings.target_push_duration_ms
        self.target_lead_offset_ms = (
            target_lead_offset_ms if target_lead_offset_ms is not None else settings.target_lead_offset_ms
        )
        self._wall_clock = wall_clock
        self._lock = threading.RLock()
        # Held for the duration of one sink push; stop waits on it before disarming.
        self._delivery_lock = threading.RLock()
        self._session: Optional[PlaybackSession] = None

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    def status(self) -> PlaybackState:
        return "active" if self._session is not None else "idle"

    def snapshot(self) -> PlaybackSnapshot:
        with self._lock:
            session = self._session
            if session is None:
                return PlaybackSnapshot(state="idle")
            deliveries = list(session.deliveries)
            return PlaybackSnapshot(
                state="active",
                session_id=session.session_id,
                pending_deliveries=session.pending_count(),
                delivered=sum(1 for item in deliveries if item.ok),
                failed=sum(1 for item in deliveries if not item.ok),
                target_repeating=bool(session.repeater and session.repeater.running),
            )

    def start(self, samples: Iterable[TimelinePoint], options: SimulationOptions | None = None) -> StartResult:
        entries = list(samples)
        options = options or SimulationOptions()
        has_timeline = bool(entries)
        has_target = options.has_target()
        logger.info(f"start: has_timeline={has_timeline}, has_target={has_target}, entries={len(entries)}")
        if not has_timeline and not has_target:
            logger.warning("Timeline empty and no target provided")
            return StartResult(ok=False, reason="missing input")

        with self._lock:
            if self._session is not None:
                self._teardown()

            arm_outcomes = self._arm()
            if not any(outcome.ok for outcome in arm_outcomes):
                logger.error(f"No location provider could be armed: {arm_outcomes}")
                self._disarm()
                return StartResult(ok=False, reason="sink arm failure", arm_outcomes=arm_outcomes)

            session = PlaybackSession(options=options)
            self._session = session

            if has_target:
                repeater = TargetRepeater(
                    options,
                    lambda entry: self._dispatch(session, entry, "target"),
                    self.scheduler,
                    interval_ms=self.target_interval_ms,
                    duration_ms=self.target_duration_ms,
                    wall_clock=self._wall_clock,
                )
                session.repeater = repeater
                repeater.start()

            if has_timeline:
                self._schedule_timeline(session, entries, lead_ms=self.target_lead_offset_ms if has_target else 0)

            if options.wifi_enhancement:
                logger.info("Wi-Fi enhancement requested (not yet implemented)")
            if options.cell_enhancement:
                logger.info("Cell enhancement requested (not yet implemented)")

            return StartResult(
                ok=True,
                session_id=session.session_id,
                arm_outcomes=arm_outcomes,
                scheduled_samples=len(entries),
                target_broadcast=has_target,
            )

    def stop(self) -> StopResult:
        with self._lock:
            if self._session is None:
                return StopResult(stopped=False)
            return self._teardown()

    def _schedule_timeline(self, session: PlaybackSession, entries: list[TimelinePoint], *, lead_ms: int) -> None:
        base_ts = entries[0].timestamp_ms
        for entry in entries:
            delay = max(0.0, entry.timestamp_ms - base_ts) + lead_ms
            logger.debug(f"schedule timeline entry delay={delay:.0f} segment={entry.segment_id}")
            handle = self.scheduler.call_later(
                delay,
                lambda entry=entry: self._dispatch(session, entry, "timeline"),
                label=f"timeline:{entry.segment_id}",
            )
            session.handles.append(handle)

    def _dispatch(self, session: PlaybackSession, entry: TimelinePoint, kind: str) -> None:
        if session.cancelled.is_set():
            return
        try:
            self.executor.submit(self._deliver, session, entry, kind)
        except RuntimeError as exc:
            logger.warning(f"Dropping {kind} location for session {session.session_id}: {exc}")

    def _deliver(self, session: PlaybackSession, entry: TimelinePoint, kind: str) -> None:
        with self._delivery_lock:
            if session.cancelled.is_set():
                return
            try:
                outcomes = list(self.sink.push(entry, cancelled=session.cancelled))
            except Exception as exc:
                logger.exception(f"Failed to push {kind} location for session {session.session_id}")
                outcomes = [ProviderOutcome(provider="*", ok=False, error=str(exc))]
        session.deliveries.append(DeliveryOutcome(kind=kind, timestamp_ms=entry.timestamp_ms, outcomes=tuple(outcomes)))

    def _arm(self) -> list[ProviderOutcome]:
        try:
            return list(self.sink.arm(self.providers))
        except Exception as exc:
            logger.exception("Sink arm failed")
            return [ProviderOutcome(provider=provider.name, ok=False, error=str(exc)) for provider in self.providers]

    def _disarm(self) -> list[ProviderOutcome]:
        try:
            return list(self.sink.disarm(self.providers))
        except Exception as exc:
            logger.warning(f"Sink disarm failed: {exc}")
            return [ProviderOutcome(provider=provider.name, ok=False, error=str(exc)) for provider in self.providers]

    def _teardown(self) -> StopResult:
        session = self._session
        session.cancelled.set()
        if session.repeater is not None:
            session.repeater.cancel()
        cancelled = sum(1 for handle in session.handles if self.scheduler.cancel(handle))
        with self._delivery_lock:
            # A push already in flight finishes its current provider before disarm.
            disarm_outcomes = self._disarm()
        self._session = None
        logger.info(f"Stopped session {session.session_id}: cancelled {cancelled} pending deliveries")
        return StopResult(
            stopped=True,
            session_id=session.session_id,
            cancelled_deliveries=cancelled,
            disarm_outcomes=disarm_outcomes,
        )

    def close(self) -> None:
        """Stop any session, release the worker and scheduler this dispatcher created, and close the sink."""
        self.stop()
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_scheduler:
            self.scheduler.shutdown()
        self.sink.close()
