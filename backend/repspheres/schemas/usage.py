"""Usage event schemas."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class UsageFeatureType(str, Enum):
    """Consumable feature types recorded in the usage ledger."""

    AI_QUERIES = "ai_queries"
    AUTOMATION_RUNS = "automation_runs"
    CATEGORIES = "categories"
    API_CALLS = "api_calls"


class UsageEventCreate(BaseModel):
    """Schema for appending one usage event."""

    user_id: UUID
    feature_type: UsageFeatureType
    quantity: int = 1

    @field_validator("quantity")
    def check_quantity(cls, v: int) -> int:
        """Quantities are positive whole units."""
        if v < 1:
            raise ValueError("Quantity must be a positive integer.")
        return v


class UsageEvent(BaseModel):
    """Usage event returned to clients."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: UUID
    user_id: UUID
    feature_type: UsageFeatureType
    quantity: int
    created_at: datetime
    external_usage_record_id: Optional[str] = None
    reported_at: Optional[datetime] = None


class TrackUsageRequest(BaseModel):
    """Body of ``POST /subscription/track-usage``."""

    feature: UsageFeatureType
    quantity: int = Field(default=1, ge=1)


class UsageSummary(BaseModel):
    """Per-feature totals since ``period_start``. Missing types are zero."""

    user_id: UUID
    period_start: datetime
    totals: Dict[UsageFeatureType, int] = Field(default_factory=dict)

    def get(self, feature_type: UsageFeatureType) -> int:
        """Total for ``feature_type``; zero when nothing was recorded."""
        return self.totals.get(feature_type, 0)
