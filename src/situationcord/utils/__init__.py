"""Utility functions and helpers.

This module provides various utilities for the pipeline:
- security: Secret redaction
- async_helpers: Error hierarchy, step retries, timeouts
- logging: Structured logging with secret sanitization
- health: Health check utilities
- metrics: Application metrics collection
"""

from situationcord.utils.async_helpers import (
    AlertDispatchError,
    LLMAnalysisError,
    MessageNotFoundError,
    PayloadError,
    RateLimitError,
    SituationError,
    StepFailedError,
    StepRunner,
    StoreError,
    with_timeout,
)
from situationcord.utils.health import (
    CheckResult,
    HealthChecker,
    HealthReport,
    HealthStatus,
)
from situationcord.utils.logging import (
    LogFormat,
    bind_context,
    configure_logging,
    unbind_context,
)
from situationcord.utils.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    Timer,
    get_metrics,
)
from situationcord.utils.security import (
    RedactionError,
    SecretRedactor,
    SecurityError,
)

__all__ = [
    # Errors
    "AlertDispatchError",
    # Health
    "CheckResult",
    # Metrics
    "Counter",
    "Gauge",
    "HealthChecker",
    "HealthReport",
    "HealthStatus",
    "Histogram",
    "LLMAnalysisError",
    # Logging
    "LogFormat",
    "MessageNotFoundError",
    "MetricsRegistry",
    "PayloadError",
    "RateLimitError",
    # Security
    "RedactionError",
    "SecretRedactor",
    "SecurityError",
    "SituationError",
    "StepFailedError",
    "StepRunner",
    "StoreError",
    "Timer",
    "bind_context",
    "configure_logging",
    "get_metrics",
    "unbind_context",
    "with_timeout",
]
