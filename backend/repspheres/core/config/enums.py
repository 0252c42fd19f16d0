"""Configuration enums for type-safe settings.

These enums provide type safety and IDE autocomplete for configuration values.
They inherit from str to maintain JSON serialization compatibility.
"""

from enum import Enum


class Environment(str, Enum):
    """Deployment environments.

    Controls environment-specific behavior like logging and auth defaults.
    """

    LOCAL = "local"
    TEST = "test"
    DEV = "dev"
    PRD = "prd"


class UnknownFeaturePolicy(str, Enum):
    """What the entitlement evaluator does with a feature name it does not gate.

    ALLOW keeps new, not-yet-gated features working (fail-open).
    DENY is for deployments that want an explicit allow-list (fail-closed).
    """

    ALLOW = "allow"
    DENY = "deny"
