"""Fake implementations for usage domain testing."""

from repspheres.domains.usage.fakes.ledger import FakeUsageLedger
from repspheres.domains.usage.fakes.reporter import FakeUsageReporter
from repspheres.domains.usage.fakes.repository import FakeUsageEventRepository

__all__ = ["FakeUsageEventRepository", "FakeUsageLedger", "FakeUsageReporter"]
