"""Health-metrics computation and plan-caching engine."""
