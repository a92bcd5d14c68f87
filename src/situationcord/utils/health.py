"""Health check utilities for monitoring service health.

This module provides health check capabilities for the pipeline:
- Check configuration consistency
- Check LLM provider configuration
- Check database connectivity
- Check the alert endpoint configuration
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from situationcord.config.schema import SituationConfig
    from situationcord.interfaces.store import MessageStore

log = structlog.get_logger()


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str
    latency_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthReport:
    """Overall health report."""

    healthy: bool
    status: HealthStatus
    timestamp: datetime
    checks: list[CheckResult]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "healthy": self.healthy,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "checks": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    "details": c.details,
                }
                for c in self.checks
            ],
        }


class HealthChecker:
    """Performs health checks on all service dependencies.

    The database check only runs when a store is supplied.

    Example:
        checker = HealthChecker(config, store)
        report = await checker.run_all_checks()
        if not report.healthy:
            print(report.to_dict())
    """

    def __init__(self, config: SituationConfig, store: MessageStore | None = None) -> None:
        self._config = config
        self._store = store

    async def run_all_checks(self) -> HealthReport:
        """Run all health checks concurrently and return a report."""
        log.info("health_check_start")
        started = datetime.now(UTC)

        coros = [self._check_config(), self._check_llm_provider(), self._check_alerts()]
        if self._store is not None:
            coros.append(self._check_database())

        checks: list[CheckResult] = []
        for result in await asyncio.gather(*coros, return_exceptions=True):
            if isinstance(result, BaseException):
                checks.append(
                    CheckResult(
                        name="unknown",
                        status=HealthStatus.UNHEALTHY,
                        message=f"Check failed with exception: {result}",
                    )
                )
            else:
                checks.append(result)

        if all(c.status == HealthStatus.HEALTHY for c in checks):
            status = HealthStatus.HEALTHY
        elif any(c.status == HealthStatus.UNHEALTHY for c in checks):
            status = HealthStatus.UNHEALTHY
        else:
            status = HealthStatus.DEGRADED

        report = HealthReport(
            healthy=status != HealthStatus.UNHEALTHY,
            status=status,
            timestamp=started,
            checks=checks,
        )

        log.info("health_check_complete", healthy=report.healthy, status=status.value)
        return report

    async def _check_config(self) -> CheckResult:
        from situationcord.config.loader import validate_config

        try:
            validate_config(self._config)
        except ValueError as e:
            return CheckResult(
                name="config",
                status=HealthStatus.UNHEALTHY,
                message=f"Configuration error: {e}",
            )

        return CheckResult(
            name="config",
            status=HealthStatus.HEALTHY,
            message="Configuration valid",
            details={
                "severity_threshold": self._config.pipeline.severity_threshold,
                "max_thread_context": self._config.pipeline.max_thread_context,
            },
        )

    async def _check_llm_provider(self) -> CheckResult:
        anthropic_config = self._config.llm.anthropic
        if not anthropic_config:
            return CheckResult(
                name="llm_provider",
                status=HealthStatus.UNHEALTHY,
                message="Anthropic configuration not found",
            )

        api_key = anthropic_config.api_key
        if not api_key or api_key.startswith("${"):
            return CheckResult(
                name="llm_provider",
                status=HealthStatus.UNHEALTHY,
                message="Anthropic API key not configured",
            )

        return CheckResult(
            name="llm_provider",
            status=HealthStatus.HEALTHY,
            message="Anthropic configured",
            details={"provider": "anthropic", "model": anthropic_config.model},
        )

    async def _check_alerts(self) -> CheckResult:
        # Missing endpoint disables alerting; the pipeline still runs
        if not self._config.alerts.endpoint:
            return CheckResult(
                name="alerts",
                status=HealthStatus.DEGRADED,
                message="Alert endpoint not configured; alerts disabled",
            )

        return CheckResult(
            name="alerts",
            status=HealthStatus.HEALTHY,
            message="Alert endpoint configured",
        )

    async def _check_database(self) -> CheckResult:
        assert self._store is not None
        start = time.monotonic()
        try:
            await self._store.ping()
        except Exception as e:
            return CheckResult(
                name="database",
                status=HealthStatus.UNHEALTHY,
                message=f"Database check failed: {e}",
                latency_ms=(time.monotonic() - start) * 1000,
            )

        return CheckResult(
            name="database",
            status=HealthStatus.HEALTHY,
            message="Database reachable",
            latency_ms=(time.monotonic() - start) * 1000,
        )
