"""Configuration package.

Exports the ``Settings`` class, configuration enums and the process-wide
``settings`` instance.
"""

from repspheres.core.config.enums import Environment, UnknownFeaturePolicy
from repspheres.core.config.settings import Settings

settings = Settings()

__all__ = ["Environment", "Settings", "UnknownFeaturePolicy", "settings"]
