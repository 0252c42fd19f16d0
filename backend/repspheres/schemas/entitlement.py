"""Entitlement schemas."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class GatedFeature(str, Enum):
    """Capabilities the entitlement evaluator knows how to gate."""

    AI_QUERY = "ai_query"
    AUTOMATION = "automation"
    CATEGORY = "category"
    API = "api"
    USER = "user"

    @classmethod
    def parse(cls, value: str) -> Optional["GatedFeature"]:
        """Return the matching member, or None for names nobody gates yet."""
        try:
            return cls(value)
        except ValueError:
            return None


class AccessDecision(BaseModel):
    """Outcome of an entitlement check.

    Serialized as ``{hasAccess, reason?, requiresUpgrade?, canPurchase?, price?}``;
    unset optional fields are left out of the body.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    has_access: bool
    reason: Optional[str] = None
    requires_upgrade: Optional[bool] = None
    can_purchase: Optional[bool] = None
    price: Optional[float] = None

    @classmethod
    def allow(cls) -> "AccessDecision":
        """Plain allow."""
        return cls(has_access=True)

    @classmethod
    def deny(cls, reason: str, **extra: Any) -> "AccessDecision":
        """Deny with a human-readable reason and optional next-step hints."""
        return cls(has_access=False, reason=reason, **extra)
