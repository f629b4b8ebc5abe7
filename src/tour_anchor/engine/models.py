"""
Value objects produced by the resolution engine.

Every object here is created per call and owned by the caller. Element
handles carried in results are non-owning: the page owns the node and it
may disappear at any time.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from tour_anchor.interfaces.dom import IElement


class ValidationMethod(str, Enum):
    """How an element was (or was not) located."""
    CSS = "css"
    JAVASCRIPT = "javascript"
    HYBRID = "hybrid"


class ErrorCode(str, Enum):
    """Error taxonomy for lookup and validation failures."""
    SELECTOR_INVALID = "SELECTOR_INVALID"
    SELECTOR_NOT_FOUND = "SELECTOR_NOT_FOUND"
    ELEMENT_NOT_VISIBLE = "ELEMENT_NOT_VISIBLE"
    ELEMENT_NOT_ACCESSIBLE = "ELEMENT_NOT_ACCESSIBLE"
    DOM_NOT_READY = "DOM_NOT_READY"
    TIMEOUT_EXCEEDED = "TIMEOUT_EXCEEDED"
    ENVIRONMENT_UNSUPPORTED = "ENVIRONMENT_UNSUPPORTED"
    SHADOW_DOM_ACCESS = "SHADOW_DOM_ACCESS"
    IFRAME_ACCESS = "IFRAME_ACCESS"
    PERFORMANCE_DEGRADED = "PERFORMANCE_DEGRADED"


class ErrorCategory(str, Enum):
    SELECTOR = "selector"
    DOM = "dom"
    VISIBILITY = "visibility"
    TIMEOUT = "timeout"
    ENVIRONMENT = "environment"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PerformanceGrade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


def _plain(value: Any) -> Any:
    """Convert enums and nested containers for JSON output."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass
class SelectorCandidate:
    """
    One candidate selector after normalization.

    Attributes:
        raw: The value the caller supplied (may be None or a non-string)
        is_valid: Whether the candidate may be forwarded to a query
        reason: Why the candidate was rejected
    """
    raw: Any
    is_valid: bool
    reason: Optional[str] = None


@dataclass
class NormalizedSelectors:
    """Result of normalizing caller input into ordered candidates."""
    candidates: List[SelectorCandidate] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def valid(self) -> List[str]:
        return [c.raw.strip() for c in self.candidates if c.is_valid]


@dataclass
class SelectorCheck:
    """Outcome of validate_css_selector."""
    is_valid: bool
    error: Optional[str] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SearchPerformance:
    search_time_ms: float = 0.0
    fallbacks_attempted: int = 0


@dataclass
class ErrorDetails:
    """
    Structured description of a failure.

    Attributes:
        code: Taxonomy code
        category: Broad area the failure belongs to
        severity: How much the failure matters to a tour
        context: Free-form facts (selector, timeout, attempts, timestamp)
        suggestions: Actionable remediation hints
    """
    code: ErrorCode
    category: ErrorCategory
    severity: ErrorSeverity
    context: Dict[str, Any] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass
class FallbackStrategies:
    attempted: List[str] = field(default_factory=list)
    successful: Optional[str] = None
    failed: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ElementValidationResult:
    """
    Outcome of a lookup.

    ``performance`` is always populated, with zeros when no search ran.
    """
    element: Optional[IElement]
    selector: str
    found: bool
    validation_method: ValidationMethod = ValidationMethod.CSS
    performance: SearchPerformance = field(default_factory=SearchPerformance)
    fallback_used: bool = False
    error: Optional[str] = None
    error_details: Optional[ErrorDetails] = None
    fallback_strategies: Optional[FallbackStrategies] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selector": self.selector,
            "found": self.found,
            "fallback_used": self.fallback_used,
            "error": self.error,
            "validation_method": self.validation_method.value,
            "performance": asdict(self.performance),
            "error_details": self.error_details.to_dict() if self.error_details else None,
            "fallback_strategies": (
                self.fallback_strategies.to_dict() if self.fallback_strategies else None
            ),
        }


@dataclass
class ObserverRegistryStats:
    active_observers: int = 0
    oldest_observer_age_ms: float = 0.0
    average_observer_age_ms: float = 0.0
    memory_leak_risk: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PerformanceSample:
    selector: str
    search_time_ms: float
    found: bool
    used_fallback: bool
    timestamp: float


@dataclass
class SelectorMetrics:
    """Running totals for one selector."""
    total_searches: int = 0
    total_time_ms: float = 0.0
    slow_searches: int = 0
    failed_searches: int = 0
    successful_searches: int = 0
    fallback_usage: int = 0
    last_updated: float = 0.0

    @property
    def average_time_ms(self) -> float:
        if not self.total_searches:
            return 0.0
        return self.total_time_ms / self.total_searches

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["average_time_ms"] = self.average_time_ms
        return data


@dataclass
class PerformanceStats:
    total_selectors: int = 0
    total_searches: int = 0
    average_search_time_ms: float = 0.0
    slow_search_percentage: float = 0.0
    success_rate: float = 0.0
    fallback_usage_rate: float = 0.0
    performance_grade: PerformanceGrade = PerformanceGrade.A

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass
class Point:
    x: float = 0.0
    y: float = 0.0


@dataclass
class ViewportInfo:
    """
    Viewport intersection of an element box.

    ``visible_area`` is the fraction of the box inside the viewport, in [0, 1].
    """
    top: float
    left: float
    right: float
    bottom: float
    is_visible: bool
    visible_area: float


@dataclass
class ShadowDomInfo:
    is_in_shadow_dom: bool
    host: Optional[str] = None
    host_offset: Point = field(default_factory=Point)


@dataclass
class ElementPosition:
    """Element geometry in page coordinates plus viewport context."""
    top: float
    left: float
    width: float
    height: float
    center: Point
    viewport: ViewportInfo
    scroll: Point
    shadow_dom: Optional[ShadowDomInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ComprehensiveValidation:
    is_valid: bool
    accessibility_score: int
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    error_details: Optional[ErrorDetails] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "accessibility_score": self.accessibility_score,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "error_details": self.error_details.to_dict() if self.error_details else None,
        }


@dataclass
class StepFallbackPlan:
    """Fallback options for one tour step, from cheapest to most involved."""
    immediate: List[str] = field(default_factory=list)
    delayed: List[str] = field(default_factory=list)
    alternative: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SlowStep:
    index: int
    selector: str
    time_ms: float


@dataclass
class StepPerformance:
    total_time_ms: float = 0.0
    average_time_per_step_ms: float = 0.0
    slow_steps: List[SlowStep] = field(default_factory=list)


@dataclass
class TourStepsReport:
    valid: bool
    results: List[ElementValidationResult] = field(default_factory=list)
    missing_elements: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    performance: StepPerformance = field(default_factory=StepPerformance)
    recommendations: List[str] = field(default_factory=list)
    fallback_strategies: Dict[str, StepFallbackPlan] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "results": [r.to_dict() for r in self.results],
            "missing_elements": list(self.missing_elements),
            "errors": list(self.errors),
            "performance": asdict(self.performance),
            "recommendations": list(self.recommendations),
            "fallback_strategies": {k: v.to_dict() for k, v in self.fallback_strategies.items()},
        }


@dataclass
class ValidationReport:
    performance_stats: PerformanceStats
    observer_stats: ObserverRegistryStats
    recommendations: List[str] = field(default_factory=list)
    health_score: int = 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "performance_stats": self.performance_stats.to_dict(),
            "observer_stats": self.observer_stats.to_dict(),
            "recommendations": list(self.recommendations),
            "health_score": self.health_score,
        }


class TourStep(BaseModel):
    """
    A tour step descriptor as supplied by the authoring layer.

    Only ``element`` matters here; any other fields are carried along.
    """
    model_config = ConfigDict(extra="allow")

    element: Union[str, List[Optional[str]], None] = None
