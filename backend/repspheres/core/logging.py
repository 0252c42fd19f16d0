"""Logging setup for the backend.

Wraps the standard library logger in a ``LoggerAdapter`` that carries
dimensions (user id, request id, stripe event id, ...) and appends them to
every record. Locally the dimensions render as a ``key=value`` suffix so
they stay readable in a terminal; deployed environments emit one JSON
object per line so the log shipper can index the dimensions.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

from repspheres.core.config import settings
from repspheres.core.config.enums import Environment


class _DimensionFormatter(logging.Formatter):
    """Human readable formatter used for local development."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        dims = getattr(record, "dimensions", None)
        if not dims:
            return base
        suffix = " ".join(f"{key}={value}" for key, value in sorted(dims.items()))
        return f"{base} [{suffix}]"


class _JsonFormatter(logging.Formatter):
    """One JSON object per record for deployed environments."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(getattr(record, "dimensions", None) or {})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that attaches a fixed set of dimensions to every record."""

    def __init__(self, logger: logging.Logger, dimensions: Optional[Dict[str, Any]] = None):
        """Create an adapter around ``logger`` carrying ``dimensions``."""
        super().__init__(logger, {})
        self.dimensions: Dict[str, Any] = dict(dimensions or {})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        """Merge adapter dimensions with any per-call ``extra`` dimensions."""
        extra = dict(kwargs.pop("extra", None) or {})
        dims = {**self.dimensions, **extra.pop("dimensions", {}), **extra}
        kwargs["extra"] = {"dimensions": dims}
        return msg, kwargs

    def with_context(self, **dimensions: Any) -> "ContextualLogger":
        """Return a new logger with ``dimensions`` added to the current ones."""
        cleaned = {key: value for key, value in dimensions.items() if value is not None}
        return ContextualLogger(self.logger, {**self.dimensions, **cleaned})


class LoggerConfigurator:
    """Configures the root application logger once per process."""

    _configured = False

    @classmethod
    def _configure_root(cls) -> None:
        if cls._configured:
            return

        handler = logging.StreamHandler(sys.stdout)
        if settings.ENVIRONMENT in (Environment.LOCAL, Environment.TEST):
            handler.setFormatter(
                _DimensionFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
        else:
            handler.setFormatter(_JsonFormatter())

        root = logging.getLogger("repspheres")
        root.handlers = [handler]
        root.setLevel(settings.LOG_LEVEL.upper())
        root.propagate = False

        # Stripe's SDK is chatty at INFO; keep it to warnings
        logging.getLogger("stripe").setLevel(logging.WARNING)
        cls._configured = True

    @classmethod
    def configure_logger(
        cls, name: str, dimensions: Optional[Dict[str, Any]] = None
    ) -> ContextualLogger:
        """Return a ``ContextualLogger`` under the ``repspheres`` hierarchy.

        Args:
            name: Logger name; prefixed with ``repspheres.`` when needed.
            dimensions: Base dimensions attached to every record.

        Returns:
            A configured ``ContextualLogger``.
        """
        cls._configure_root()
        if name != "repspheres" and not name.startswith("repspheres."):
            name = f"repspheres.{name}"
        return ContextualLogger(logging.getLogger(name), dimensions)


logger = LoggerConfigurator.configure_logger("repspheres", dimensions={})
