"""
Engine Module - Element resolution, observation and diagnostics.

This is the heart of the package, handling:
- Selector normalization, support probing and escaping
- Static resolution with script-based text and relational matching
- Bounded waiting on DOM mutations with leak-free observer lifecycles
- Visibility, geometry and accessibility scoring
- Fallback generation, error taxonomy and health reporting
"""

from tour_anchor.engine.models import (
    ComprehensiveValidation,
    ElementPosition,
    ElementValidationResult,
    ErrorCode,
    ErrorDetails,
    FallbackStrategies,
    ObserverRegistryStats,
    PerformanceGrade,
    PerformanceStats,
    StepFallbackPlan,
    TourStep,
    TourStepsReport,
    ValidationMethod,
    ValidationReport,
)
from tour_anchor.engine.environment import EnvironmentDetector, TimerFlavor
from tour_anchor.engine.selectors import SelectorSupport, normalize, sanitize_for_test_id
from tour_anchor.engine.finder import ScriptElementFinder
from tour_anchor.engine.fallback import (
    SmartSelectorBuilder,
    create_fallback_strategies,
    extract_test_id,
    generate_fallback_selectors,
    generate_fallback_strategies,
)
from tour_anchor.engine.diagnostics import DiagnosticReporter
from tour_anchor.engine.resolver import StaticResolver, LookupOutcome
from tour_anchor.engine.observers import (
    BoundedWaiter,
    ObserverOptions,
    ObserverRegistration,
    ObserverRegistry,
)
from tour_anchor.engine.visibility import VisibilityEvaluator
from tour_anchor.engine.validator import ComprehensiveValidator, ScoringPolicy
from tour_anchor.engine.monitor import HealthReporter, PerformanceMonitor
from tour_anchor.engine.tour_validator import FallbackOptions, TourElementValidator

__all__ = [
    # Façade
    "TourElementValidator",
    "FallbackOptions",
    # Components
    "EnvironmentDetector",
    "TimerFlavor",
    "SelectorSupport",
    "ScriptElementFinder",
    "StaticResolver",
    "LookupOutcome",
    "BoundedWaiter",
    "ObserverOptions",
    "ObserverRegistration",
    "ObserverRegistry",
    "VisibilityEvaluator",
    "ComprehensiveValidator",
    "ScoringPolicy",
    "PerformanceMonitor",
    "HealthReporter",
    "DiagnosticReporter",
    "SmartSelectorBuilder",
    # Functions
    "normalize",
    "sanitize_for_test_id",
    "extract_test_id",
    "generate_fallback_selectors",
    "generate_fallback_strategies",
    "create_fallback_strategies",
    # Models
    "ComprehensiveValidation",
    "ElementPosition",
    "ElementValidationResult",
    "ErrorCode",
    "ErrorDetails",
    "FallbackStrategies",
    "ObserverRegistryStats",
    "PerformanceGrade",
    "PerformanceStats",
    "StepFallbackPlan",
    "TourStep",
    "TourStepsReport",
    "ValidationMethod",
    "ValidationReport",
]
