"""Location sinks that receive playback samples.

A sink fans every operation out to a set of providers (gps, network, fused)
and reports one :class:`ProviderOutcome` per provider. A failing provider
never prevents the others from being served.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Protocol, Sequence

import httpx

from ...config import ProviderSetting, settings
from ...models.domain import ProviderOutcome, ProviderSpec, TimelinePoint

logger = logging.getLogger(__name__)


class LocationSink(Protocol):
    def arm(self, providers: Sequence[ProviderSpec]) -> list[ProviderOutcome]: ...

    def push(
        self, sample: TimelinePoint, *, cancelled: threading.Event | None = None
    ) -> list[ProviderOutcome]: ...

    def disarm(self, providers: Sequence[ProviderSpec]) -> list[ProviderOutcome]: ...

    def close(self) -> None: ...


def providers_from_settings(configured: Sequence[ProviderSetting] | None = None) -> list[ProviderSpec]:
    items = configured if configured is not None else settings.providers
    return [
        ProviderSpec(name=item.name, accuracy=item.accuracy, power_requirement=item.power_requirement)
        for item in items
    ]


class MultiProviderSink(ABC):
    """Base class handling per-provider fan-out and outcome collection."""

    def __init__(self) -> None:
        self._armed: list[ProviderSpec] = []

    @property
    def armed_providers(self) -> list[ProviderSpec]:
        return list(self._armed)

    def arm(self, providers: Sequence[ProviderSpec]) -> list[ProviderOutcome]:
        outcomes = self._fan_out("arm", providers, self._arm_provider)
        ok_names = {outcome.provider for outcome in outcomes if outcome.ok}
        self._armed = [provider for provider in providers if provider.name in ok_names]
        return outcomes

    def push(self, sample: TimelinePoint, *, cancelled: threading.Event | None = None) -> list[ProviderOutcome]:
        """Send ``sample`` to every armed provider.

        Stops before the next provider once ``cancelled`` is set, so a stop
        issued mid-push reaches the sink before any further location does.
        """
        outcomes: list[ProviderOutcome] = []
        for provider in list(self._armed):
            if cancelled is not None and cancelled.is_set():
                break
            outcomes.extend(self._fan_out("push", [provider], lambda item: self._push_provider(item, sample)))
        return outcomes

    def disarm(self, providers: Sequence[ProviderSpec]) -> list[ProviderOutcome]:
        outcomes = self._fan_out("disarm", providers, self._disarm_provider)
        self._armed = []
        return outcomes

    def close(self) -> None:
        pass

    def _fan_out(
        self,
        operation: str,
        providers: Sequence[ProviderSpec],
        action: Callable[[ProviderSpec], None],
    ) -> list[ProviderOutcome]:
        outcomes: list[ProviderOutcome] = []
        for provider in providers:
            try:
                action(provider)
            except Exception as exc:
                logger.warning(f"Sink {operation} failed for provider '{provider.name}': {exc}")
                outcomes.append(ProviderOutcome(provider=provider.name, ok=False, error=str(exc)))
            else:
                outcomes.append(ProviderOutcome(provider=provider.name, ok=True))
        return outcomes

    @abstractmethod
    def _arm_provider(self, provider: ProviderSpec) -> None:
        raise NotImplementedError

    @abstractmethod
    def _push_provider(self, provider: ProviderSpec, sample: TimelinePoint) -> None:
        raise NotImplementedError

    @abstractmethod
    def _disarm_provider(self, provider: ProviderSpec) -> None:
        raise NotImplementedError


class LoggingSink(MultiProviderSink):
    """Dry-run sink: logs every operation and always succeeds."""

    def _arm_provider(self, provider: ProviderSpec) -> None:
        logger.info(f"Test provider ready: {provider.name} ({provider.accuracy}/{provider.power_requirement})")

    def _push_provider(self, provider: ProviderSpec, sample: TimelinePoint) -> None:
        logger.debug(
            f"Pushed mock location to {provider.name}: "
            f"({sample.coordinate.latitude:.6f}, {sample.coordinate.longitude:.6f}) "
            f"ts={sample.timestamp_ms:.0f} speed={sample.speed_mps:.2f}"
        )

    def _disarm_provider(self, provider: ProviderSpec) -> None:
        logger.info(f"Test provider disabled: {provider.name}")


class RecordingSink(MultiProviderSink):
    """In-memory sink that records every call; providers can be told to fail."""

    def __init__(self, fail_arm: Iterable[str] = (), fail_push: Iterable[str] = ()) -> None:
        super().__init__()
        self.fail_arm = set(fail_arm)
        self.fail_push = set(fail_push)
        self.arm_calls = 0
        self.disarm_calls = 0
        self.pushed: list[tuple[str, TimelinePoint]] = []

    def arm(self, providers: Sequence[ProviderSpec]) -> list[ProviderOutcome]:
        self.arm_calls += 1
        return super().arm(providers)

    def disarm(self, providers: Sequence[ProviderSpec]) -> list[ProviderOutcome]:
        self.disarm_calls += 1
        return super().disarm(providers)

    def samples_for(self, provider: str) -> list[TimelinePoint]:
        return [sample for name, sample in self.pushed if name == provider]

    def _arm_provider(self, provider: ProviderSpec) -> None:
        if provider.name in self.fail_arm:
            raise PermissionError(f"{provider.name} is not allowed as mock location provider")

    def _push_provider(self, provider: ProviderSpec, sample: TimelinePoint) -> None:
        if provider.name in self.fail_push:
            raise RuntimeError(f"{provider.name} rejected location")
        self.pushed.append((provider.name, sample))

    def _disarm_provider(self, provider: ProviderSpec) -> None:
        pass


class HttpBridgeSink(MultiProviderSink):
    """Forward mock locations to a device bridge over HTTP.

    The bridge exposes ``POST /providers/{name}/arm``, ``/location`` and
    ``/disarm``; the concrete injection into the device's location stack
    happens on the other side.

    Arm and disarm are retried with backoff. A location push is sent exactly
    once with a short timeout: a timed-out request may already have been
    applied by the bridge, and the next sample supersedes it anyway.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        push_timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__()
        self.base_url = (base_url or settings.sink_bridge_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("Sink bridge URL is not configured.")
        self.timeout = timeout if timeout is not None else settings.sink_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.sink_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.sink_backoff_seconds
        self.push_timeout = push_timeout if push_timeout is not None else settings.sink_push_timeout_seconds
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 2.0)),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, payload: dict | None = None, *, retry: bool = True, timeout: float | None = None) -> None:
        max_retries = self.max_retries if retry else 0
        request_options = {"timeout": timeout} if timeout is not None else {}
        attempt = 0
        while True:
            try:
                response = self._client.post(path, json=payload or {}, **request_options)
                response.raise_for_status()
                return
            except httpx.HTTPStatusError as exc:
                # 4xx means the bridge rejected the request; retrying will not help.
                if exc.response.status_code < 500:
                    raise
                attempt += 1
                if attempt > max_retries:
                    raise
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                attempt += 1
                if attempt > max_retries:
                    raise ConnectionError(f"Sink bridge at {self.base_url} is not reachable: {exc}") from exc
            wait_time = self.backoff_seconds * (2 ** (attempt - 1))
            logger.debug(f"Sink bridge request to {path} failed, retrying in {wait_time:.1f}s (attempt {attempt}/{max_retries})")
            time.sleep(wait_time)

    def _arm_provider(self, provider: ProviderSpec) -> None:
        self._post(
            f"/providers/{provider.name}/arm",
            {"accuracy": provider.accuracy, "power_requirement": provider.power_requirement},
        )

    def _push_provider(self, provider: ProviderSpec, sample: TimelinePoint) -> None:
        self._post(
            f"/providers/{provider.name}/location",
            {
                "latitude": sample.coordinate.latitude,
                "longitude": sample.coordinate.longitude,
                "timestamp_ms": sample.timestamp_ms,
                "speed_mps": sample.speed_mps,
                "accuracy_m": 3.0,
            },
            retry=False,
            timeout=self.push_timeout,
        )

    def _disarm_provider(self, provider: ProviderSpec) -> None:
        self._post(f"/providers/{provider.name}/disarm")


def get_default_sink() -> MultiProviderSink:
    if settings.sink_bridge_url:
        return HttpBridgeSink()
    logger.info("No sink bridge configured; using logging sink")
    return LoggingSink()
