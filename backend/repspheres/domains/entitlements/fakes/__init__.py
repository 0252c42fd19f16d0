"""Fake implementations for entitlement domain testing."""

from repspheres.domains.entitlements.fakes.evaluator import FakeEntitlementEvaluator
from repspheres.domains.entitlements.fakes.repository import FakeTeamSeatRepository

__all__ = ["FakeEntitlementEvaluator", "FakeTeamSeatRepository"]
