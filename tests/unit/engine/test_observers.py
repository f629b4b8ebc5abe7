"""
Tests for the bounded waiter and the observer lifecycle registry.
"""

import asyncio
import math

import pytest

from tour_anchor.engine.environment import EnvironmentDetector
from tour_anchor.engine.finder import ScriptElementFinder
from tour_anchor.engine.observers import (
    BoundedWaiter,
    ObserverOptions,
    ObserverRegistry,
    RegistrationState,
    sanitize_timeout,
)
from tour_anchor.engine.resolver import StaticResolver
from tour_anchor.engine.selectors import SelectorSupport
from tour_anchor.engine.visibility import VisibilityEvaluator
from tour_anchor.exceptions import ObservationError
from tests.fakes import FakeDocument, FakeElement, FakeObservation


def make_waiter(doc, registry=None, **kwargs):
    env = EnvironmentDetector(doc)
    resolver = StaticResolver(
        doc,
        SelectorSupport(doc),
        ScriptElementFinder(doc, env),
        VisibilityEvaluator(doc, env),
    )
    return BoundedWaiter(doc, env, resolver, registry or ObserverRegistry(), **kwargs)


# =============================================================================
# TIMEOUTS
# =============================================================================

class TestSanitizeTimeout:
    """Test timeout sanitization."""

    @pytest.mark.parametrize("value", [-1, math.nan, math.inf, "soon", None, True])
    def test_unusable_values_use_fallback(self, value):
        assert sanitize_timeout(value, 100) == 100.0

    def test_usable_values_pass_through(self):
        assert sanitize_timeout(250, 100) == 250.0
        assert sanitize_timeout(0, 100) == 0.0
        assert sanitize_timeout(12.5, 100) == 12.5


# =============================================================================
# REGISTRY
# =============================================================================

class TestObserverRegistration:
    """Test one-shot teardown of a registration."""

    def test_cleanup_is_idempotent(self, clock):
        registry = ObserverRegistry(clock=clock)
        registration = registry.register("#a")
        observation = FakeObservation(None, lambda: None)
        teardowns = []
        registration.attach(observation)
        registration.on_teardown = lambda: teardowns.append(1)

        registration.cleanup()
        registration.cleanup()
        registration()

        assert observation.disconnect_calls == 1
        assert teardowns == [1]
        assert registration.cleanup_calls == 3
        assert registration.state is RegistrationState.SETTLED
        assert len(registry) == 0

    def test_attach_after_cleanup_disconnects(self, clock):
        """Test an observation arriving late is disconnected straight away."""
        registration = ObserverRegistry(clock=clock).register("#a")
        registration.cleanup()
        observation = FakeObservation(None, lambda: None)

        registration.attach(observation)

        assert observation.disconnect_calls == 1
        assert registration.observation is None

    def test_failing_disconnect_does_not_skip_teardown(self, clock):
        class BrokenObservation(FakeObservation):
            def disconnect(self):
                raise ObservationError("page gone")

        registry = ObserverRegistry(clock=clock)
        registration = registry.register("#a")
        registration.attach(BrokenObservation(None, lambda: None))
        teardowns = []
        registration.on_teardown = lambda: teardowns.append(1)

        registration.cleanup()

        assert teardowns == [1]
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_schedule_coalesces_requests(self, clock):
        """Test requests made while a check runs collapse into one more run."""
        registration = ObserverRegistry(clock=clock).register("#a")
        gate = asyncio.Event()
        runs = 0

        async def check():
            nonlocal runs
            runs += 1
            await gate.wait()

        registration.schedule(check)
        await asyncio.sleep(0)
        registration.schedule(check)
        registration.schedule(check)
        gate.set()
        await asyncio.sleep(0.01)

        assert runs == 2
        registration.cleanup()

    @pytest.mark.asyncio
    async def test_cleanup_cancels_pending_check(self, clock):
        registration = ObserverRegistry(clock=clock).register("#a")
        started = asyncio.Event()

        async def check():
            started.set()
            await asyncio.sleep(10)

        registration.schedule(check)
        await started.wait()
        task = registration.pending_check

        registration.cleanup()
        await asyncio.sleep(0.01)

        assert task.cancelled()
        assert registration.pending_check is None


class TestObserverRegistry:
    """Test registry telemetry and mass cleanup."""

    def test_stats(self, clock):
        registry = ObserverRegistry(clock=clock)
        registry.register("#a")
        registry.register("#b")
        clock.advance(900)
        registry.register("#c")

        stats = registry.stats()

        assert stats.active_observers == 3
        assert stats.oldest_observer_age_ms == 900
        assert stats.average_observer_age_ms == pytest.approx(600)
        assert stats.memory_leak_risk is False

    def test_empty_stats(self, clock):
        stats = ObserverRegistry(clock=clock).stats()

        assert stats.active_observers == 0
        assert stats.oldest_observer_age_ms == 0
        assert stats.memory_leak_risk is False

    def test_leak_risk_by_count(self, clock):
        registry = ObserverRegistry(clock=clock)
        for i in range(21):
            registry.register(f"#item-{i}")

        assert registry.stats().memory_leak_risk is True

    def test_leak_risk_by_age(self, clock):
        registry = ObserverRegistry(clock=clock)
        registry.register("#old")
        clock.advance(600001)

        assert registry.stats().memory_leak_risk is True

    def test_emergency_cleanup_spares_fresh_registrations(self, clock):
        registry = ObserverRegistry(clock=clock)
        stale = registry.register("#stale")
        clock.advance(6000)
        fresh = registry.register("#fresh")

        removed = registry.perform_emergency_cleanup()

        assert removed == 1
        assert stale.disconnected is True
        assert fresh.disconnected is False
        assert len(registry) == 1

    def test_cleanup_all(self, clock):
        registry = ObserverRegistry(clock=clock)
        registrations = [registry.register(f"#{i}") for i in range(3)]

        assert registry.cleanup_all() == 3
        assert len(registry) == 0
        assert all(r.disconnected for r in registrations)
        assert registry.cleanup_all() == 0


# =============================================================================
# BOUNDED WAITING
# =============================================================================

class TestWaitForAny:
    """Test bounded waiting over candidates."""

    @pytest.mark.asyncio
    async def test_static_hit_needs_no_observer(self, page):
        waiter = make_waiter(page)

        outcome = await waiter.wait_for_any(["#missing", "#email"], 1000)

        assert outcome.found
        assert outcome.static_attempts == 2
        assert outcome.resolution.selector == "#email"
        assert page.observations == []
        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_element_rendered_later(self, page):
        """Test a mutation that adds the target settles the wait."""
        waiter = make_waiter(page)
        late = FakeElement("div", "Welcome", attrs={"id": "late"})
        asyncio.get_running_loop().call_later(0.02, page.append, page.body, late)

        outcome = await waiter.wait_for_any(["#late"], 2000)

        assert outcome.element is late
        assert outcome.timed_out is False
        assert page.active_observations == []
        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_timeout(self, page):
        waiter = make_waiter(page)

        outcome = await waiter.wait_for_any(["#never"], 30)

        assert outcome.found is False
        assert outcome.timed_out is True
        assert len(page.observations) == 1
        assert page.active_observations == []
        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_zero_timeout_is_a_single_pass(self, page):
        outcome = await make_waiter(page).wait_for_any(["#never"], 0)

        assert outcome.timed_out is True
        assert page.observations == []

    @pytest.mark.asyncio
    async def test_invalid_timeout_uses_fallback(self, page):
        waiter = make_waiter(page, invalid_timeout_fallback_ms=10)

        outcome = await asyncio.wait_for(waiter.wait_for_any(["#never"], -5), timeout=1)

        assert outcome.timed_out is True

    @pytest.mark.asyncio
    async def test_element_rendered_before_observation_attached(self):
        """Test the initial check catches what appeared during setup."""
        class RacingDocument(FakeDocument):
            async def observe_mutations(self, callback):
                # Rendered without a notification reaching this observer
                self.body.add(FakeElement("div", attrs={"id": "raced"}))
                return await super().observe_mutations(callback)

        doc = RacingDocument()

        outcome = await make_waiter(doc).wait_for_any(["#raced"], 2000)

        assert outcome.found
        assert outcome.timed_out is False

    @pytest.mark.asyncio
    async def test_observation_failure_still_times_out(self):
        class NoObserverDocument(FakeDocument):
            async def observe_mutations(self, callback):
                raise ObservationError("binding failed")

        waiter = make_waiter(NoObserverDocument())

        outcome = await waiter.wait_for_any(["#never"], 20)

        assert outcome.timed_out is True
        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_cancellation_tears_down(self, page):
        """Test a cancelled wait leaves no observer or registry entry behind."""
        waiter = make_waiter(page)
        task = asyncio.create_task(waiter.wait_for_any(["#never"], 5000))
        await asyncio.sleep(0.01)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert page.active_observations == []
        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_no_candidates(self, page):
        outcome = await make_waiter(page).wait_for_any(["", None], 1000)

        assert outcome.found is False
        assert outcome.timed_out is False

    @pytest.mark.asyncio
    async def test_wait_for_element(self, page):
        waiter = make_waiter(page)

        assert (await waiter.wait_for_element("#email", 100)).attrs["id"] == "email"
        assert await waiter.wait_for_element("", 100) is None
        assert await waiter.wait_for_element(None, 100) is None


# =============================================================================
# ELEMENT OBSERVERS
# =============================================================================

class TestCreateElementObserver:
    """Test caller-managed element observers."""

    @pytest.mark.asyncio
    async def test_fires_once_then_tears_down(self, page):
        waiter = make_waiter(page)
        seen = []
        waiter.create_element_observer("#toast", seen.append)
        await asyncio.sleep(0.01)

        toast = page.append(page.body, FakeElement("div", "Saved", attrs={"id": "toast"}))
        await asyncio.sleep(0.01)
        page.notify()
        await asyncio.sleep(0.01)

        assert seen == [toast]
        assert page.active_observations == []
        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_present_element_fires_without_observing(self, page):
        waiter = make_waiter(page)
        seen = []

        waiter.create_element_observer("#email", seen.append)
        await asyncio.sleep(0.01)

        assert [el.attrs["id"] for el in seen] == ["email"]
        assert page.observations == []

    @pytest.mark.asyncio
    async def test_repeating_observer(self, page):
        waiter = make_waiter(page)
        seen = []

        stop = waiter.create_element_observer("#email", seen.append, ObserverOptions(timeout_ms=0, once=False))
        await asyncio.sleep(0.01)
        page.notify()
        await asyncio.sleep(0.01)
        stop()
        page.notify()
        await asyncio.sleep(0.01)

        assert len(seen) == 2
        assert page.active_observations == []
        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_async_callback(self, page):
        waiter = make_waiter(page)
        seen = []

        async def on_element(element):
            seen.append(element)

        waiter.create_element_observer("#email", on_element)
        await asyncio.sleep(0.01)

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self, page):
        waiter = make_waiter(page)

        def explode(element):
            raise RuntimeError("boom")

        waiter.create_element_observer("#email", explode)
        await asyncio.sleep(0.01)

        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_timeout_tears_down(self, page):
        waiter = make_waiter(page)

        waiter.create_element_observer("#never", lambda el: None, ObserverOptions(timeout_ms=50))
        await asyncio.sleep(0.01)
        assert len(waiter.registry) == 1

        await asyncio.sleep(0.1)

        assert len(waiter.registry) == 0
        assert page.active_observations == []

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, page):
        waiter = make_waiter(page)

        stop = waiter.create_element_observer("#never", lambda el: None)
        await asyncio.sleep(0.01)
        stop()
        stop()

        assert page.active_observations == []
        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_bad_input_returns_noop(self, page):
        """Test invalid selectors and callbacks register nothing."""
        waiter = make_waiter(page)

        for stop in (
            waiter.create_element_observer("", print),
            waiter.create_element_observer(None, print),
            waiter.create_element_observer("#email", "not callable"),
        ):
            assert stop() is None

        assert len(waiter.registry) == 0

    @pytest.mark.asyncio
    async def test_without_document(self):
        waiter = make_waiter(None)

        stop = waiter.create_element_observer("#email", print)

        assert stop() is None
        assert len(waiter.registry) == 0

    def test_requires_running_loop(self, page):
        waiter = make_waiter(page)

        stop = waiter.create_element_observer("#email", print)

        assert stop() is None
        assert len(waiter.registry) == 0
