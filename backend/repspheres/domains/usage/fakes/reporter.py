"""Fake upstream usage reporter for testing."""

import asyncio
from datetime import datetime
from typing import Optional

from repspheres.core.exceptions import ExternalServiceError
from repspheres.domains.usage.protocols import UsageReporterProtocol
from repspheres.schemas.usage import UsageFeatureType

_DEFAULT_METERED = [
    UsageFeatureType.AI_QUERIES.value,
    UsageFeatureType.AUTOMATION_RUNS.value,
    UsageFeatureType.API_CALLS.value,
]


class FakeUsageReporter(UsageReporterProtocol):
    """Test implementation of UsageReporterProtocol.

    Reports are keyed by identifier, like the provider's meter events, so
    re-reporting the same event is a no-op.

    Usage:
        reporter = FakeUsageReporter()
        reporter.fail_next(1)
        ...
        assert reporter.totals["cus_test"]["ai_queries"] == 3
    """

    def __init__(self, metered: Optional[list[str]] = None) -> None:
        """Initialize with the metered feature types (defaults to every metered type)."""
        self.metered = list(_DEFAULT_METERED if metered is None else metered)
        self.reports: dict[str, dict] = {}
        self.calls: list[dict] = []
        self.delay: float = 0.0
        self._failures_left = 0

    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` reports raise ExternalServiceError."""
        self._failures_left = count

    @property
    def totals(self) -> dict[str, dict[str, int]]:
        """Reported quantity per customer and feature type."""
        out: dict[str, dict[str, int]] = {}
        for report in self.reports.values():
            per_customer = out.setdefault(report["customer_id"], {})
            feature = report["feature_type"]
            per_customer[feature] = per_customer.get(feature, 0) + report["quantity"]
        return out

    def metered_feature_types(self) -> list[str]:
        """Feature types with a metered price configured."""
        return list(self.metered)

    async def report_usage(
        self,
        *,
        subscription_id: str,
        customer_id: str,
        feature_type: str,
        quantity: int,
        identifier: str,
        timestamp: datetime,
    ) -> Optional[str]:
        """Record the report, or fail / stall as configured."""
        call = dict(
            subscription_id=subscription_id,
            customer_id=customer_id,
            feature_type=feature_type,
            quantity=quantity,
            identifier=identifier,
            timestamp=timestamp,
        )
        self.calls.append(call)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._failures_left > 0:
            self._failures_left -= 1
            raise ExternalServiceError("Stripe", "simulated outage")
        if feature_type not in self.metered:
            return None
        self.reports.setdefault(identifier, call)
        return f"mtr_{identifier}"
