"""
Bounded Waiter and Observer Lifecycle Registry.

A wait for an element that is not rendered yet is a race between two
single-shot events: a DOM mutation that makes one of the candidates resolve,
and a timer. Both feed one settlement future. Whichever fires first wins and
the loser is torn down before the winner's continuation resumes.

Each wait (and each caller-managed observer) is an ObserverRegistration that
owns its timer, its mutation observation and its pending check. Teardown is
one-shot: ``cleanup()`` may be called any number of times from any path
(settlement, caller cancellation, emergency cleanup) and only the first call
does anything. The ObserverRegistry holds a non-owning index over the live
registrations for telemetry and mass cleanup.

Usage:
    registry = ObserverRegistry()
    waiter = BoundedWaiter(document, environment, resolver, registry)
    element = await waiter.wait_for_element("#checkout", 5000)

    stop = waiter.create_element_observer(".toast", on_toast)
    ...
    stop()
"""

import asyncio
import inspect
import itertools
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from tour_anchor.engine.environment import EnvironmentDetector, TimerFlavor
from tour_anchor.engine.models import ObserverRegistryStats
from tour_anchor.engine.resolver import Resolution, StaticResolver
from tour_anchor.interfaces.dom import IDocument, IElement, IMutationObservation

logger = logging.getLogger(__name__)


ElementCallback = Callable[[IElement], Any]


def monotonic_ms() -> float:
    return time.monotonic() * 1000


def sanitize_timeout(timeout_ms: Any, fallback_ms: float, context: str = "wait") -> float:
    """
    Return a usable timeout in milliseconds.

    None, booleans, non-numbers, negative, NaN and infinite values are
    replaced with ``fallback_ms`` and logged.
    """
    valid = (
        isinstance(timeout_ms, (int, float))
        and not isinstance(timeout_ms, bool)
        and not math.isnan(timeout_ms)
        and not math.isinf(timeout_ms)
        and timeout_ms >= 0
    )
    if not valid:
        logger.warning(f"Invalid timeout {timeout_ms!r} provided to {context}, using {fallback_ms}ms")
        return float(fallback_ms)
    return float(timeout_ms)


class RegistrationState(Enum):
    PENDING = "pending"
    SETTLED = "settled"


class ObserverRegistration:
    """
    One observation plus timer plus pending check, torn down exactly once.

    Created by the function that registers it; the registry only indexes it.
    """

    def __init__(
        self,
        registration_id: str,
        selector: str,
        registry: "ObserverRegistry",
        created_at: float,
        callback: Optional[Callable] = None,
    ):
        self.id = registration_id
        self.selector = selector
        self.callback = callback
        self.created_at = created_at
        self.timer: Optional[asyncio.TimerHandle] = None
        self.observation: Optional[IMutationObservation] = None
        self.pending_check: Optional[asyncio.Task] = None
        self.on_teardown: Optional[Callable[[], None]] = None
        self.disconnected = False
        self.state = RegistrationState.PENDING
        self.cleanup_calls = 0
        self._registry = registry
        self._queued: Optional[Callable[[], Awaitable[None]]] = None

    def attach(self, observation: IMutationObservation) -> None:
        """Take ownership of an observation; disconnects it if already torn down."""
        if self.disconnected:
            logger.debug(f"Observation for {self.id} attached after cleanup, disconnecting")
            self._disconnect(observation)
            return
        self.observation = observation

    def _disconnect(self, observation: IMutationObservation) -> None:
        try:
            observation.disconnect()
        except Exception as e:
            logger.warning(f"Error disconnecting observation for {self.id}: {e}")

    def schedule(self, check: Callable[[], Awaitable[None]]) -> None:
        """
        Run ``check`` in a task owned by this registration.

        Requests arriving while a check is running are coalesced into one
        more run after it finishes.
        """
        if self.disconnected:
            return
        if self.pending_check is not None and not self.pending_check.done():
            self._queued = check
            return
        self.pending_check = asyncio.get_running_loop().create_task(self._run(check))

    async def _run(self, check: Callable[[], Awaitable[None]]) -> None:
        current: Optional[Callable[[], Awaitable[None]]] = check
        while current is not None and not self.disconnected:
            self._queued = None
            await current()
            current = self._queued

    def cleanup(self) -> None:
        """
        Tear everything down. Idempotent; never raises.

        Each step is guarded separately so a failure in one does not skip
        the others.
        """
        self.cleanup_calls += 1
        if self.disconnected:
            if self.cleanup_calls > 5:
                logger.debug(f"Excessive cleanup calls ({self.cleanup_calls}) for {self.selector!r}")
            return
        self.disconnected = True
        self.state = RegistrationState.SETTLED

        if self.timer is not None:
            try:
                self.timer.cancel()
            except Exception as e:
                logger.warning(f"Error clearing timer for {self.id}: {e}")
            self.timer = None

        if self.pending_check is not None:
            try:
                if self.pending_check is not asyncio.current_task():
                    self.pending_check.cancel()
            except Exception as e:
                logger.warning(f"Error cancelling pending check for {self.id}: {e}")
            self.pending_check = None

        if self.observation is not None:
            self._disconnect(self.observation)
            self.observation = None

        self._registry.discard(self.id)

        if self.on_teardown is not None:
            on_teardown, self.on_teardown = self.on_teardown, None
            try:
                on_teardown()
            except Exception as e:
                logger.warning(f"Error in teardown hook for {self.id}: {e}")

    def __call__(self) -> None:
        self.cleanup()

    def age_ms(self, now: float) -> float:
        return now - self.created_at


class ObserverRegistry:
    """
    Non-owning index over live registrations.

    Args:
        clock: Millisecond clock; injectable for tests
        stale_after_ms: Age beyond which emergency cleanup may tear down
        leak_risk_count: More live registrations than this flags a leak risk
        leak_risk_age_ms: A registration older than this flags a leak risk
        high_count_warning: More live registrations than this is logged
    """

    def __init__(
        self,
        clock: Callable[[], float] = monotonic_ms,
        stale_after_ms: float = 5000,
        leak_risk_count: int = 20,
        leak_risk_age_ms: float = 600000,
        high_count_warning: int = 10,
    ):
        self._clock = clock
        self.stale_after_ms = stale_after_ms
        self.leak_risk_count = leak_risk_count
        self.leak_risk_age_ms = leak_risk_age_ms
        self.high_count_warning = high_count_warning
        self._entries: Dict[str, ObserverRegistration] = {}
        self._counter = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)

    def now(self) -> float:
        return self._clock()

    def register(self, selector: str, callback: Optional[Callable] = None) -> ObserverRegistration:
        registration = ObserverRegistration(
            registration_id=f"observer-{next(self._counter)}",
            selector=selector,
            registry=self,
            created_at=self._clock(),
            callback=callback,
        )
        self._entries[registration.id] = registration
        logger.debug(f"Registered {registration.id} for {selector!r} ({len(self._entries)} live)")
        return registration

    def discard(self, registration_id: str) -> bool:
        """Remove an entry. Returns False when it was already gone."""
        return self._entries.pop(registration_id, None) is not None

    def registrations(self) -> List[ObserverRegistration]:
        return list(self._entries.values())

    def stats(self) -> ObserverRegistryStats:
        now = self._clock()
        ages = [registration.age_ms(now) for registration in self._entries.values()]
        oldest = max(ages) if ages else 0.0
        return ObserverRegistryStats(
            active_observers=len(ages),
            oldest_observer_age_ms=oldest,
            average_observer_age_ms=sum(ages) / len(ages) if ages else 0.0,
            memory_leak_risk=len(ages) > self.leak_risk_count or oldest > self.leak_risk_age_ms,
        )

    def perform_emergency_cleanup(self) -> int:
        """
        Tear down registrations older than the staleness threshold.

        Fresh registrations are never touched. Returns the number removed.
        """
        now = self._clock()
        stale = [
            registration
            for registration in self._entries.values()
            if registration.disconnected or registration.age_ms(now) > self.stale_after_ms
        ]
        for registration in stale:
            logger.warning(f"Emergency cleanup of stale observer: {registration.id} ({registration.selector!r})")
            if registration.disconnected:
                self.discard(registration.id)
            else:
                registration.cleanup()

        if len(self._entries) > self.high_count_warning:
            logger.warning(f"High number of active observers: {len(self._entries)}")
        return len(stale)

    def cleanup_all(self) -> int:
        """Tear down every registration. Returns the number removed."""
        registrations = list(self._entries.values())
        for registration in registrations:
            registration.cleanup()
        self._entries.clear()
        if registrations:
            logger.info(f"Force-cleaned {len(registrations)} observers")
        return len(registrations)


@dataclass
class ObserverOptions:
    """
    Options for create_element_observer.

    Attributes:
        timeout_ms: Tear the observer down after this long; 0 disables
        once: Fire the callback at most once, then tear down
    """
    timeout_ms: Optional[float] = 10000
    once: bool = True


@dataclass
class WaitOutcome:
    """Result of a bounded wait over one or more candidates."""
    element: Optional[IElement] = None
    resolution: Resolution = field(default_factory=Resolution)
    static_attempts: int = 0
    timed_out: bool = False

    @property
    def found(self) -> bool:
        return self.element is not None


class BoundedWaiter:
    """
    Waits for candidates to resolve, bounded by a timeout.

    Args:
        document: Document to observe
        environment: Capability gate
        resolver: Static resolver used for every check
        registry: Registry that indexes live registrations
        invalid_timeout_fallback_ms: Timeout used when callers pass garbage
        observer_timeout_ms: Default timeout for create_element_observer
    """

    def __init__(
        self,
        document: Optional[IDocument],
        environment: EnvironmentDetector,
        resolver: StaticResolver,
        registry: ObserverRegistry,
        invalid_timeout_fallback_ms: float = 100,
        observer_timeout_ms: float = 10000,
    ):
        self._document = document
        self._environment = environment
        self._resolver = resolver
        self._registry = registry
        self._invalid_timeout_fallback_ms = invalid_timeout_fallback_ms
        self._observer_timeout_ms = observer_timeout_ms

    @property
    def registry(self) -> ObserverRegistry:
        return self._registry

    async def wait_for_any(self, selectors: List[str], timeout_ms: Any) -> WaitOutcome:
        """
        Resolve the first candidate that appears within ``timeout_ms``.

        A static pass runs first; only if it misses is a mutation
        observation and a timer set up. Never raises except for caller
        cancellation, which still tears the registration down.
        """
        timeout = sanitize_timeout(timeout_ms, self._invalid_timeout_fallback_ms, "wait_for_any")
        candidates = [s.strip() for s in selectors if isinstance(s, str) and s.strip()]
        if not candidates or not self._environment.is_browser_like():
            return WaitOutcome()

        static = await self._resolver.resolve(candidates)
        if static.found:
            return WaitOutcome(static.element, static, static.attempts)
        if timeout <= 0:
            return WaitOutcome(None, static, static.attempts, timed_out=True)

        loop = asyncio.get_running_loop()
        settled: asyncio.Future = loop.create_future()
        registration = self._registry.register(", ".join(candidates))

        def settle(value: Optional[Resolution]) -> None:
            if settled.done():
                return
            # Loser goes first so nothing fires after the winner resumes
            registration.on_teardown = None
            registration.cleanup()
            if not settled.done():
                settled.set_result(value)

        async def check() -> None:
            if registration.disconnected:
                return
            try:
                resolution = await self._resolver.resolve(candidates)
            except Exception as e:
                logger.warning(f"Check failed while waiting for {candidates!r}: {e}")
                return
            if resolution.found:
                settle(resolution)

        registration.on_teardown = lambda: settle(None)
        registration.timer = loop.call_later(timeout / 1000, settle, None)

        try:
            try:
                observation = await self._document.observe_mutations(
                    lambda: registration.schedule(check)
                )
                registration.attach(observation)
            except Exception as e:
                logger.warning(f"Failed to observe mutations for {candidates!r}: {e}")

            # Catch anything rendered between the static pass and the attach
            registration.schedule(check)
            resolution = await settled
        finally:
            registration.cleanup()

        if resolution is None:
            logger.debug(f"Timed out after {timeout:.0f}ms waiting for {candidates!r}")
            return WaitOutcome(None, static, static.attempts, timed_out=True)
        return WaitOutcome(resolution.element, resolution, static.attempts)

    async def wait_for_element(self, selector: Any, timeout_ms: Any) -> Optional[IElement]:
        """
        Wait for one selector.

        Returns:
            The element, or None on invalid input or timeout
        """
        if not isinstance(selector, str) or not selector.strip():
            logger.warning("Invalid selector provided to wait_for_element")
            return None
        outcome = await self.wait_for_any([selector], timeout_ms)
        return outcome.element

    def create_element_observer(
        self,
        selector: Any,
        callback: Any,
        options: Optional[ObserverOptions] = None,
    ) -> Callable[[], None]:
        """
        Call ``callback(element)`` when ``selector`` resolves.

        Must be called from inside a running event loop. Bad input never
        raises: it logs a warning and returns a no-op cleanup.

        Args:
            selector: Selector to watch for
            callback: Sync or async callable receiving the element
            options: Timeout and once semantics

        Returns:
            Idempotent cleanup closure
        """
        def noop() -> None:
            return None

        if not self._environment.is_browser_like():
            logger.warning("create_element_observer called without a DOM-capable document")
            return noop
        if not isinstance(selector, str) or not selector.strip():
            logger.warning("Invalid selector provided to create_element_observer")
            return noop
        if not callable(callback):
            logger.warning("Invalid callback provided to create_element_observer")
            return noop
        if self._environment.timer_flavor() is TimerFlavor.NONE:
            logger.warning("create_element_observer needs a running event loop")
            return noop

        options = options or ObserverOptions(timeout_ms=self._observer_timeout_ms)
        timeout = sanitize_timeout(options.timeout_ms, self._observer_timeout_ms, "create_element_observer")
        once = options.once if isinstance(options.once, bool) else True
        selector = selector.strip()

        loop = asyncio.get_running_loop()
        registration = self._registry.register(selector, callback)
        fired = False

        async def check() -> None:
            nonlocal fired
            if registration.disconnected or (once and fired):
                return
            outcome = await self._resolver.lookup(selector)
            if not outcome.found or registration.disconnected or (once and fired):
                return
            fired = True
            try:
                result = callback(outcome.element)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Error in element observer callback for {selector!r}: {e}")
            if once:
                registration.cleanup()

        async def start() -> None:
            await check()
            if registration.disconnected:
                return
            try:
                observation = await self._document.observe_mutations(
                    lambda: registration.schedule(check)
                )
            except Exception as e:
                logger.warning(f"Failed to observe mutations for {selector!r}: {e}")
                registration.cleanup()
                return
            registration.attach(observation)

        if timeout > 0:
            registration.timer = loop.call_later(timeout / 1000, registration.cleanup)
        registration.schedule(start)
        return registration.cleanup
