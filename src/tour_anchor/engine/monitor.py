"""
Performance Monitor & Health Reporter.

Every lookup reports its timing and outcome here. The monitor keeps running
totals per selector, prunes selectors that have not been seen for a while,
and grades overall behaviour A..F. The health reporter combines those stats
with the observer registry into a single score and a list of actions.
"""

from collections import deque
from typing import Callable, Deque, Dict, List, Optional
import logging

from tour_anchor.engine.models import (
    ObserverRegistryStats,
    PerformanceGrade,
    PerformanceSample,
    PerformanceStats,
    SelectorMetrics,
    ValidationReport,
)
from tour_anchor.engine.observers import ObserverRegistry, monotonic_ms

logger = logging.getLogger(__name__)


MAX_SAMPLES = 1000

GRADE_RECOMMENDATIONS: Dict[PerformanceGrade, str] = {
    PerformanceGrade.F: "Critical performance issues detected - immediate attention required",
    PerformanceGrade.D: "Poor performance - review selector strategies and timeout settings",
    PerformanceGrade.C: "Average performance - consider optimizing frequently used selectors",
    PerformanceGrade.B: "Good performance - minor optimizations possible",
    PerformanceGrade.A: "Excellent performance - maintain current practices",
}


def grade_for(average_ms: float, success_rate: float) -> PerformanceGrade:
    """Band average search time and success rate into a letter grade."""
    if average_ms > 2000 or success_rate < 50:
        return PerformanceGrade.F
    if average_ms > 1000 or success_rate < 70:
        return PerformanceGrade.D
    if average_ms > 500 or success_rate < 85:
        return PerformanceGrade.C
    if average_ms > 200 or success_rate < 95:
        return PerformanceGrade.B
    return PerformanceGrade.A


class PerformanceMonitor:
    """
    Records search timings and aggregates them.

    Args:
        slow_search_ms: Searches slower than this are counted as slow
        retention_ms: Selectors not updated for this long are dropped
        clock: Millisecond clock; injectable for tests
    """

    def __init__(
        self,
        slow_search_ms: float = 1000,
        retention_ms: float = 300000,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.slow_search_ms = slow_search_ms
        self.retention_ms = retention_ms
        self._clock = clock
        self._metrics: Dict[str, SelectorMetrics] = {}
        self._samples: Deque[PerformanceSample] = deque(maxlen=MAX_SAMPLES)

    def record_search(
        self,
        selector: str,
        search_time_ms: float,
        found: bool,
        used_fallback: bool = False,
    ) -> None:
        """Record one search. Never raises."""
        try:
            now = self._clock()
            key = selector if isinstance(selector, str) else str(selector)
            metrics = self._metrics.setdefault(key, SelectorMetrics(last_updated=now))

            metrics.total_searches += 1
            metrics.total_time_ms += search_time_ms
            metrics.last_updated = now
            if search_time_ms > self.slow_search_ms:
                metrics.slow_searches += 1
            if found:
                metrics.successful_searches += 1
            else:
                metrics.failed_searches += 1
            if used_fallback:
                metrics.fallback_usage += 1

            self._samples.append(PerformanceSample(key, search_time_ms, found, used_fallback, now))
            self._prune(now)
        except Exception as e:
            logger.warning(f"Error recording performance metrics: {e}")

    def _prune(self, now: float) -> None:
        cutoff = now - self.retention_ms
        for key in [k for k, m in self._metrics.items() if m.last_updated < cutoff]:
            del self._metrics[key]
        while self._samples and self._samples[0].timestamp < cutoff:
            self._samples.popleft()

    def get_metrics(self, selector: str) -> Optional[SelectorMetrics]:
        return self._metrics.get(selector)

    def samples(self) -> List[PerformanceSample]:
        return list(self._samples)

    def get_overall_stats(self) -> PerformanceStats:
        """
        Aggregate every tracked selector.

        With no data the grade is A and every rate is zero.
        """
        try:
            metrics = list(self._metrics.values())
            total = sum(m.total_searches for m in metrics)
            if not metrics or total == 0:
                return PerformanceStats()

            average = sum(m.total_time_ms for m in metrics) / total
            success_rate = sum(m.successful_searches for m in metrics) / total * 100
            return PerformanceStats(
                total_selectors=len(metrics),
                total_searches=total,
                average_search_time_ms=average,
                slow_search_percentage=sum(m.slow_searches for m in metrics) / total * 100,
                success_rate=success_rate,
                fallback_usage_rate=sum(m.fallback_usage for m in metrics) / total * 100,
                performance_grade=grade_for(average, success_rate),
            )
        except Exception as e:
            logger.warning(f"Error calculating performance stats: {e}")
            return PerformanceStats(performance_grade=PerformanceGrade.F)

    def reset(self) -> None:
        self._metrics.clear()
        self._samples.clear()


class HealthReporter:
    """
    Combines monitor and registry telemetry into a health score.

    The score starts at 100 and loses points for slow searches, low success,
    many slow searches, many or stale observers, and heavy fallback use.
    Performance deductions only apply once at least one search was recorded.
    """

    def __init__(self, monitor: PerformanceMonitor, registry: ObserverRegistry):
        self._monitor = monitor
        self._registry = registry

    def _stale_observers(self) -> int:
        now = self._registry.now()
        return sum(
            1
            for registration in self._registry.registrations()
            if not registration.disconnected and registration.age_ms(now) > self._registry.stale_after_ms
        )

    def get_validation_report(self) -> ValidationReport:
        try:
            stats = self._monitor.get_overall_stats()
            observers = self._registry.stats()
            recommendations: List[str] = []
            score = 100

            if stats.total_searches:
                if stats.average_search_time_ms > 1000:
                    score -= 20
                    recommendations.append("Optimize selectors to reduce average search time")
                if stats.success_rate < 80:
                    score -= 25
                    recommendations.append("Improve selector reliability to increase success rate")
                if stats.slow_search_percentage > 20:
                    score -= 15
                    recommendations.append(
                        "Reduce number of slow searches by optimizing complex selectors"
                    )

            if observers.active_observers > self._registry.high_count_warning:
                score -= 10
                recommendations.append("High number of active observers may indicate memory leaks")
            stale = self._stale_observers()
            if stale:
                score -= 15
                recommendations.append(f"{stale} observers exceed staleness threshold, investigate for leaks")

            if stats.fallback_usage_rate > 50:
                score -= 10
                recommendations.append(
                    "High fallback usage suggests primary selectors need improvement"
                )

            recommendations.append(GRADE_RECOMMENDATIONS[stats.performance_grade])
            return ValidationReport(
                performance_stats=stats,
                observer_stats=observers,
                recommendations=recommendations,
                health_score=max(0, score),
            )
        except Exception as e:
            logger.warning(f"Error generating validation report: {e}")
            return ValidationReport(
                performance_stats=PerformanceStats(performance_grade=PerformanceGrade.F),
                observer_stats=ObserverRegistryStats(),
                recommendations=["Error generating report - check system health"],
                health_score=0,
            )
