"""Prometheus instrumentation for payment orchestration."""

from .metrics import MetricsService, metrics_service

__all__ = ["MetricsService", "metrics_service"]
