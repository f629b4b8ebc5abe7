"""
Tour Element Validator - Construction root and public façade.

Wires one observer registry and one performance monitor into every
component bound to a document, and exposes the operations a tour runtime
needs: find an anchor (with waiting, fallbacks and retries), check it is
visible, measure it, score it, and report on engine health.

None of the public operations raise for bad input or platform failures;
problems come back as structured results.

Example:
    >>> validator = TourElementValidator(PlaywrightDocument(page))
    >>> result = await validator.find_element(["", "[data-testid=checkout]", ".checkout"])
    >>> if result.found:
    ...     position = await validator.get_element_position(result.element)
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging

from pydantic import ValidationError

from tour_anchor.config import Settings, get_settings
from tour_anchor.engine.diagnostics import DiagnosticReporter
from tour_anchor.engine.environment import EnvironmentDetector
from tour_anchor.engine.fallback import (
    create_fallback_strategies,
    generate_element_selectors,
    generate_fallback_selectors,
    generate_fallback_strategies,
)
from tour_anchor.engine.finder import ScriptElementFinder
from tour_anchor.engine.models import (
    ComprehensiveValidation,
    ElementPosition,
    ElementValidationResult,
    ErrorCode,
    ErrorSeverity,
    FallbackStrategies,
    ObserverRegistryStats,
    SearchPerformance,
    SelectorCheck,
    SlowStep,
    StepPerformance,
    TourStep,
    TourStepsReport,
    ValidationMethod,
    ValidationReport,
)
from tour_anchor.engine.monitor import HealthReporter, PerformanceMonitor
from tour_anchor.engine.observers import (
    BoundedWaiter,
    ObserverOptions,
    ObserverRegistry,
    monotonic_ms,
    sanitize_timeout,
)
from tour_anchor.engine.resolver import StaticResolver
from tour_anchor.engine.selectors import (
    SelectorSupport,
    has_script_fallback,
    normalize,
)
from tour_anchor.engine.validator import ComprehensiveValidator, ScoringPolicy
from tour_anchor.engine.visibility import VisibilityEvaluator
from tour_anchor.interfaces.dom import IElement, looks_like_document
from tour_anchor.utils.retry import RetryConfig, retry_until

logger = logging.getLogger(__name__)


INVALID_INPUT_RECOMMENDATIONS = ["Provide valid CSS selector strings", "Ensure selectors are not empty or null"]

NOT_FOUND_RECOMMENDATIONS = [
    "Consider adding data-testid attributes to target elements",
    "Verify element exists and is not dynamically loaded",
    "Check if element requires user interaction to appear",
    "Increase timeout for slow-loading content",
]

DOM_ERROR_RECOMMENDATIONS = [
    "Ensure the page has finished loading before element search",
    "Check for script errors that might affect the DOM",
    "Retry after navigation has settled",
]

STEP_RECOMMENDATIONS = [
    "Use data-testid attributes for more reliable element selection",
    "Ensure all tour elements are accessible and visible",
]


@dataclass
class FallbackOptions:
    """
    Options for execute_with_fallback_strategies.

    Attributes:
        timeout_ms: Bounded wait per attempt
        max_retries: Retries after the first attempt
        retry_delay_ms: Delay between attempts
        generate_fallbacks: Add generated alternatives to the candidates
        validate_accessibility: Score the element once found
    """
    timeout_ms: float = 5000
    max_retries: int = 3
    retry_delay_ms: float = 500
    generate_fallbacks: bool = True
    validate_accessibility: bool = True


def _non_negative_int(value: Any, default: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        logger.warning(f"Invalid {name} {value!r}, using {default}")
        return default
    return value


def _dedupe(items: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(items))


class TourElementValidator:
    """
    Façade over the resolution engine for one document.

    Args:
        document: Document implementing the DOM port (may be None)
        settings: Engine settings; global settings when omitted
        registry: Observer registry to share; a fresh one when omitted
        monitor: Performance monitor to share; a fresh one when omitted
    """

    def __init__(
        self,
        document: Any,
        settings: Optional[Settings] = None,
        registry: Optional[ObserverRegistry] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.settings = settings or get_settings()
        observers = self.settings.observers
        locator = self.settings.locator

        self.document = looks_like_document(document)
        self.environment = EnvironmentDetector(document, headless_hint=self.settings.browser.headless)
        self.registry = registry or ObserverRegistry(
            stale_after_ms=observers.stale_after_ms,
            leak_risk_count=observers.leak_risk_count,
            leak_risk_age_ms=observers.leak_risk_age_ms,
            high_count_warning=observers.high_count_warning,
        )
        self.monitor = monitor or PerformanceMonitor(
            slow_search_ms=self.settings.monitor.slow_search_ms,
            retention_ms=self.settings.monitor.retention_ms,
        )

        self.support = SelectorSupport(self.document)
        self.finder = ScriptElementFinder(self.document, self.environment)
        self.visibility = VisibilityEvaluator(self.document, self.environment)
        self.resolver = StaticResolver(
            self.document,
            self.support,
            self.finder,
            self.visibility,
            require_visible=locator.require_visible,
        )
        self.waiter = BoundedWaiter(
            self.document,
            self.environment,
            self.resolver,
            self.registry,
            invalid_timeout_fallback_ms=locator.invalid_timeout_fallback_ms,
            observer_timeout_ms=observers.default_timeout_ms,
        )
        self.validator = ComprehensiveValidator(
            self.visibility,
            self.monitor,
            ScoringPolicy.from_settings(self.settings.scoring, self.settings.monitor.slow_search_ms),
        )
        self.health = HealthReporter(self.monitor, self.registry)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _timeout(self, timeout_ms: Any, context: str) -> float:
        if timeout_ms is None:
            return float(self.settings.locator.wait_timeout_ms)
        return sanitize_timeout(timeout_ms, self.settings.locator.invalid_timeout_fallback_ms, context)

    async def _accessibility_warnings(self, element: IElement) -> List[str]:
        issues = []
        try:
            if not await self.visibility.is_visible_in_shadow_dom(element):
                issues.append("Element not visible")
            style = await element.computed_style()
            if style.get("pointer-events") == "none":
                issues.append("Element has pointer-events: none")
            if await element.get_attribute("disabled") is not None:
                issues.append("Element is disabled")
            if await element.get_attribute("readonly") is not None:
                issues.append("Element is readonly")
            if await element.get_attribute("tabindex") == "-1":
                issues.append("Element not focusable (tabindex=-1)")
            if await self.visibility.is_covered(element):
                issues.append("Element covered by other elements")
        except Exception as e:
            logger.warning(f"Error checking element accessibility: {e}")
            issues.append("Error checking accessibility")
        return issues

    async def find_element(self, selectors: Any, timeout_ms: Any = None) -> ElementValidationResult:
        """
        Find the first candidate that resolves within the timeout.

        Candidates are normalized first; invalid entries are dropped before
        anything is counted. A static pass over every candidate runs before
        a single bounded wait covers them all. Exactly one search is
        recorded with the performance monitor.

        Args:
            selectors: A selector string or an ordered list of candidates
            timeout_ms: Bounded wait; defaults to the configured wait timeout

        Returns:
            ElementValidationResult (never raises)
        """
        return await self._find(selectors, timeout_ms, record=True)

    async def _find(self, selectors: Any, timeout_ms: Any, record: bool) -> ElementValidationResult:
        # Callers that wrap this in retries pass record=False and record once themselves
        start = monotonic_ms()
        normalized = normalize(selectors)

        if normalized.error:
            raw = [c.raw for c in normalized.candidates]
            label = next((r for r in raw if isinstance(r, str)), "")
            return ElementValidationResult(
                element=None,
                selector=label,
                found=False,
                validation_method=ValidationMethod.HYBRID,
                performance=SearchPerformance(),
                error=normalized.error,
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.SELECTOR_INVALID,
                    normalized.error,
                    {"selectors": [repr(r) for r in raw]},
                ),
                fallback_strategies=FallbackStrategies(
                    failed=[r if isinstance(r, str) else repr(r) for r in raw],
                    recommendations=list(INVALID_INPUT_RECOMMENDATIONS),
                ),
            )

        valid = normalized.valid
        if not self.environment.is_browser_like():
            return ElementValidationResult(
                element=None,
                selector=valid[0],
                found=False,
                validation_method=ValidationMethod.HYBRID,
                performance=SearchPerformance(monotonic_ms() - start, 0),
                error=DiagnosticReporter.create_message(ErrorCode.ENVIRONMENT_UNSUPPORTED, valid[0]),
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.ENVIRONMENT_UNSUPPORTED,
                    "Element finding requires a DOM-capable document",
                    {"environment": "no-document", "selectors": valid},
                ),
                fallback_strategies=FallbackStrategies(
                    failed=list(valid),
                    recommendations=["Attach a browser page before searching", "Add environment detection"],
                ),
            )

        timeout = self._timeout(timeout_ms, "find_element")
        try:
            strategies = generate_fallback_strategies(valid[0])
            errors: List[str] = []
            usable: List[str] = []
            for selector in valid:
                if not await self.support.is_valid_selector(selector) and not has_script_fallback(selector):
                    errors.append(f"Invalid selector syntax: {selector}")
                    continue
                usable.append(selector)

            outcome = await self.waiter.wait_for_any(usable, timeout)
            elapsed = monotonic_ms() - start

            if outcome.found:
                selector = outcome.resolution.selector
                index = valid.index(selector)
                if record:
                    self.monitor.record_search(selector, elapsed, True, index > 0)
                result = ElementValidationResult(
                    element=outcome.element,
                    selector=selector,
                    found=True,
                    validation_method=outcome.resolution.method,
                    performance=SearchPerformance(elapsed, index + 1),
                    fallback_used=index > 0,
                    fallback_strategies=FallbackStrategies(
                        attempted=valid[: index + 1],
                        successful=selector,
                        failed=valid[:index],
                        recommendations=strategies.recommendations,
                    ),
                )
                issues = await self._accessibility_warnings(outcome.element)
                if issues:
                    result.error_details = DiagnosticReporter.create_error_details(
                        ErrorCode.ELEMENT_NOT_ACCESSIBLE,
                        f"Element found but has accessibility issues: {', '.join(issues)}",
                        {"selector": selector, "issues": issues, "search_time": elapsed},
                        severity=ErrorSeverity.LOW,
                    )
                return result

            if record:
                self.monitor.record_search(valid[0], elapsed, False, len(usable) > 1)
            if not usable:
                code = ErrorCode.SELECTOR_INVALID
            elif elapsed > timeout:
                code = ErrorCode.TIMEOUT_EXCEEDED
            else:
                code = ErrorCode.SELECTOR_NOT_FOUND
            context = {"timeout": timeout, "attempts": len(valid), "search_time": elapsed}
            return ElementValidationResult(
                element=None,
                selector=valid[-1],
                found=False,
                validation_method=ValidationMethod.HYBRID,
                performance=SearchPerformance(elapsed, len(valid)),
                error=DiagnosticReporter.create_message(code, valid[0], context),
                error_details=DiagnosticReporter.create_error_details(
                    code,
                    "; ".join(errors) or "No candidate matched",
                    {"selectors": valid, "errors": errors, **context},
                ),
                fallback_strategies=FallbackStrategies(
                    attempted=list(valid),
                    failed=list(valid),
                    recommendations=strategies.recommendations,
                ),
            )
        except Exception as e:
            logger.warning(f"Unexpected error in find_element: {e}")
            elapsed = monotonic_ms() - start
            return ElementValidationResult(
                element=None,
                selector=valid[0],
                found=False,
                validation_method=ValidationMethod.HYBRID,
                performance=SearchPerformance(elapsed, len(valid)),
                error=DiagnosticReporter.create_message(ErrorCode.DOM_NOT_READY, valid[0]),
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.DOM_NOT_READY, str(e), {"selectors": valid, "search_time": elapsed}
                ),
                fallback_strategies=FallbackStrategies(
                    failed=list(valid), recommendations=list(DOM_ERROR_RECOMMENDATIONS)
                ),
            )

    async def execute_with_fallback_strategies(
        self,
        selector: Any,
        options: Optional[FallbackOptions] = None,
    ) -> ElementValidationResult:
        """
        Find an element with generated alternatives and retries.

        The primary selector is tried first, then the alternatives generated
        for it. The whole candidate list is retried ``max_retries`` times.
        When found, the element can be scored and any issues attached.
        """
        options = options or FallbackOptions(
            timeout_ms=self.settings.locator.wait_timeout_ms,
            max_retries=self.settings.locator.fallback_retries,
            retry_delay_ms=self.settings.locator.fallback_retry_delay_ms,
        )
        start = monotonic_ms()

        if not isinstance(selector, str) or not selector.strip():
            message = "Invalid primary selector provided"
            return ElementValidationResult(
                element=None,
                selector=selector if isinstance(selector, str) else "",
                found=False,
                validation_method=ValidationMethod.HYBRID,
                error=message,
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.SELECTOR_INVALID, message, {"selector": repr(selector)}
                ),
                fallback_strategies=FallbackStrategies(
                    recommendations=["Provide a valid CSS selector string"]
                ),
            )

        primary = selector.strip()
        timeout = self._timeout(options.timeout_ms, "execute_with_fallback_strategies")
        retries = _non_negative_int(options.max_retries, self.settings.locator.fallback_retries, "max_retries")
        delay = sanitize_timeout(options.retry_delay_ms, self.settings.locator.fallback_retry_delay_ms, "retry delay")

        try:
            strategies = generate_fallback_strategies(primary) if options.generate_fallbacks else FallbackStrategies()
            candidates = _dedupe([primary, *strategies.attempted])

            result, attempts = await retry_until(
                self._find,
                RetryConfig(max_attempts=retries + 1, initial_delay_ms=delay),
                candidates,
                timeout,
                is_done=lambda r: r is not None and r.found,
                record=False,
            )
            elapsed = monotonic_ms() - start

            if result is not None and result.found:
                if result.fallback_strategies is None:
                    result.fallback_strategies = FallbackStrategies(successful=result.selector)
                result.fallback_strategies.recommendations = _dedupe(
                    [*result.fallback_strategies.recommendations, *strategies.recommendations]
                )
                if options.validate_accessibility:
                    validation = await self.validate_element_comprehensively(result.element, result.selector)
                    result.fallback_strategies.recommendations = _dedupe(
                        [*result.fallback_strategies.recommendations, *validation.recommendations]
                    )
                    if not validation.is_valid:
                        result.error_details = validation.error_details
                        result.error = f"Element found but has issues: {'; '.join(validation.issues)}"
                self.monitor.record_search(primary, elapsed, True, attempts > 1)
                return result

            context = {"timeout": timeout, "attempts": retries + 1, "search_time": elapsed}
            self.monitor.record_search(primary, elapsed, False, True)
            return ElementValidationResult(
                element=None,
                selector=primary,
                found=False,
                validation_method=ValidationMethod.HYBRID,
                performance=SearchPerformance(elapsed, len(candidates) * attempts),
                fallback_used=len(candidates) > 1,
                error=DiagnosticReporter.create_message(ErrorCode.SELECTOR_NOT_FOUND, primary, context),
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.SELECTOR_NOT_FOUND,
                    f"Element not found after {attempts} attempts",
                    {"selector": primary, "candidates": candidates, **context},
                ),
                fallback_strategies=FallbackStrategies(
                    attempted=_dedupe(candidates),
                    failed=_dedupe(candidates),
                    recommendations=_dedupe([*strategies.recommendations, *NOT_FOUND_RECOMMENDATIONS]),
                ),
            )
        except Exception as e:
            logger.warning(f"Unexpected error in execute_with_fallback_strategies: {e}")
            return ElementValidationResult(
                element=None,
                selector=primary,
                found=False,
                validation_method=ValidationMethod.HYBRID,
                performance=SearchPerformance(monotonic_ms() - start, 0),
                error=DiagnosticReporter.create_message(ErrorCode.DOM_NOT_READY, primary),
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.DOM_NOT_READY, str(e), {"selector": primary}
                ),
                fallback_strategies=FallbackStrategies(
                    failed=[primary], recommendations=list(DOM_ERROR_RECOMMENDATIONS)
                ),
            )

    async def find_tour_element(
        self,
        selectors: Any,
        timeout_ms: Any = None,
        retries: Any = None,
        retry_delay_ms: Any = None,
    ) -> Optional[IElement]:
        """
        Convenience lookup for tour runtimes: element or None, with retries.

        Unusable timeout, retry count or delay values are replaced with the
        configured defaults and logged.
        """
        locator = self.settings.locator
        timeout = sanitize_timeout(
            locator.wait_timeout_ms if timeout_ms is None else timeout_ms,
            locator.wait_timeout_ms,
            "find_tour_element",
        )
        retries = _non_negative_int(locator.retries if retries is None else retries, locator.retries, "retries")
        delay = sanitize_timeout(
            locator.retry_delay_ms if retry_delay_ms is None else retry_delay_ms,
            locator.retry_delay_ms,
            "find_tour_element retry delay",
        )

        errors: List[str] = []

        def remember(attempt: int, reason: Any) -> None:
            if isinstance(reason, ElementValidationResult) and reason.error:
                errors.append(f"Attempt {attempt}: {reason.error}")

        start = monotonic_ms()
        result, attempts = await retry_until(
            self._find,
            RetryConfig(max_attempts=retries + 1, initial_delay_ms=delay, on_retry=remember),
            selectors,
            timeout,
            is_done=lambda r: r is not None and r.found,
            record=False,
        )
        # One sample for the whole retried lookup; rejected input never searched
        if result is not None and result.performance.fallbacks_attempted:
            attempted = result.fallback_strategies.attempted if result.fallback_strategies else []
            key = result.selector if result.found or not attempted else attempted[0]
            self.monitor.record_search(
                key, monotonic_ms() - start, result.found, attempts > 1 or result.fallback_used
            )
        if result is not None and result.found:
            return result.element

        if result is not None and result.error:
            errors.append(f"Attempt {attempts}: {result.error}")
        logger.warning(f"Tour element not found after {attempts} attempts: {errors}")
        return None

    async def wait_for_element(self, selector: Any, timeout_ms: Any = None) -> Optional[IElement]:
        return await self.waiter.wait_for_element(selector, self._timeout(timeout_ms, "wait_for_element"))

    def create_element_observer(
        self,
        selector: Any,
        callback: Callable,
        options: Optional[ObserverOptions] = None,
    ) -> Callable[[], None]:
        return self.waiter.create_element_observer(selector, callback, options)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def generate_fallback_selectors(self, selector: Any) -> List[str]:
        return generate_fallback_selectors(selector)

    async def generate_fallback_selectors_for(self, selector: Any) -> List[str]:
        """
        Like generate_fallback_selectors, enriched from the live element.

        When ``selector`` resolves now (no waiting), candidates built from
        the element's attributes and its parent are added right after the
        primary. Otherwise only the text-derived list is returned. Never
        raises.
        """
        generated = generate_fallback_selectors(selector)
        if not generated or not self.environment.is_browser_like():
            return generated
        try:
            outcome = await self.resolver.lookup(selector)
            if not outcome.found:
                return generated
            from_element = await generate_element_selectors(outcome.element)
        except Exception as e:
            logger.warning(f"Error deriving selectors from element for {selector!r}: {e}")
            return generated

        primary = selector.strip()
        if generated[0] == primary:
            return _dedupe([primary, *from_element, *generated[1:]])
        return _dedupe([*from_element, *generated])

    async def validate_css_selector(self, selector: Any) -> SelectorCheck:
        return await self.support.validate_css_selector(selector)

    async def validate_element_comprehensively(
        self,
        element: Any,
        selector: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> ComprehensiveValidation:
        return await self.validator.validate(element, selector, context)

    async def validate_tour_steps(self, steps: Any) -> TourStepsReport:
        """
        Check that every step of a tour can find its anchor.

        Each step is looked up with its generated alternatives and the
        shorter per-step timeout. Bad steps are reported, never raised.

        Args:
            steps: Sequence of step mappings (or TourStep models) with ``element``

        Returns:
            TourStepsReport; ``valid`` only when nothing is missing or broken
        """
        report = TourStepsReport(valid=False)
        step_timeout = self.settings.locator.step_validation_timeout_ms
        slow_step_ms = self.settings.monitor.slow_step_ms
        start = monotonic_ms()

        if not isinstance(steps, (list, tuple)):
            report.errors.append("Tour steps must be a list")
            report.recommendations = list(STEP_RECOMMENDATIONS)
            return report

        for index, raw in enumerate(steps):
            number = index + 1
            try:
                step = raw if isinstance(raw, TourStep) else TourStep.model_validate(raw)
            except ValidationError:
                step = None

            selectors = normalize(step.element if step else None)
            if step is None or selectors.error:
                report.errors.append(f"Step {number}: Invalid step structure or missing element selector")
                report.missing_elements.append(f"step-{number}")
                continue

            primary = selectors.valid[0]
            step_start = monotonic_ms()
            try:
                candidates = _dedupe([*selectors.valid, *generate_fallback_selectors(primary)])
                result = await self.find_element(candidates, step_timeout)
            except Exception as e:
                logger.warning(f"Error validating step {number}: {e}")
                report.errors.append(f"Step {number}: {e}")
                report.missing_elements.append(primary)
                continue
            step_time = monotonic_ms() - step_start

            report.results.append(result)
            if not result.found:
                report.missing_elements.append(primary)
                report.errors.append(f"Step {number}: {result.error}")
            if step_time > slow_step_ms:
                report.performance.slow_steps.append(SlowStep(index, primary, step_time))
            if result.fallback_strategies is not None:
                report.fallback_strategies[f"step-{number}"] = create_fallback_strategies(result.selector)

        total = monotonic_ms() - start
        report.performance.total_time_ms = total
        report.performance.average_time_per_step_ms = total / len(steps) if steps else 0.0

        if report.missing_elements:
            report.recommendations.append("Add missing elements to the DOM or update selectors")
        if report.errors:
            report.recommendations.append("Fix validation errors before starting tour")
        if report.performance.slow_steps:
            report.recommendations.append("Optimize slow selectors for better performance")
        report.recommendations.extend(STEP_RECOMMENDATIONS)

        report.valid = not report.missing_elements and not report.errors
        return report

    # ------------------------------------------------------------------
    # Visibility & geometry
    # ------------------------------------------------------------------

    async def is_element_visible(self, element: Any) -> bool:
        return await self.visibility.is_visible(element)

    async def is_element_visible_in_shadow_dom(self, element: Any) -> bool:
        return await self.visibility.is_visible_in_shadow_dom(element)

    async def get_element_position(self, element: Any) -> Optional[ElementPosition]:
        return await self.visibility.get_position(element)

    async def get_element_position_in_shadow_dom(self, element: Any) -> Optional[ElementPosition]:
        return await self.visibility.get_position_in_shadow_dom(element)

    # ------------------------------------------------------------------
    # Lifecycle & telemetry
    # ------------------------------------------------------------------

    def verify_observer_cleanup(self) -> ObserverRegistryStats:
        return self.registry.stats()

    def perform_emergency_cleanup(self) -> int:
        return self.registry.perform_emergency_cleanup()

    def force_cleanup_all_observers(self) -> int:
        return self.registry.cleanup_all()

    def get_validation_report(self) -> ValidationReport:
        return self.health.get_validation_report()
