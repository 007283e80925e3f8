"""
Prometheus metrics for the analysis pipeline.
"""
from prometheus_client import Counter, Histogram

RECOMMENDATIONS_GENERATED = Counter(
    "cloudoptimizer_recommendations_generated_total",
    "Recommendations emitted by the recommendation engine",
    ["action"]
)

FORECAST_RUNS = Counter(
    "cloudoptimizer_forecast_runs_total",
    "Forecasts produced, labelled by the model that produced them",
    ["model"]
)

ANALYSIS_CACHE_LOOKUPS = Counter(
    "cloudoptimizer_analysis_cache_total",
    "Analysis result cache lookups",
    ["result"]
)

SAVINGS_VALIDATIONS = Counter(
    "cloudoptimizer_savings_validation_total",
    "Savings validation outcomes",
    ["outcome"]
)

TRADEOFF_SCORER_FAILURES = Counter(
    "cloudoptimizer_tradeoff_scorer_failures_total",
    "Tradeoff dimension scorers that failed and fell back to an unknown score",
    ["dimension"]
)

ANALYSIS_DURATION = Histogram(
    "cloudoptimizer_analysis_duration_seconds",
    "Duration of single-resource analyses",
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10]
)
