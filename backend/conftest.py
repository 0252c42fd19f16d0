"""Root conftest for pytest configuration and shared fixtures.

This conftest is loaded before every colocated test package under
repspheres/ (domains and api), so the environment below is in place before
any settings object is built.
"""

import os

# Register pytest-asyncio plugin at the root level
pytest_plugins = ("pytest_asyncio",)

# ---------------------------------------------------------------------------
# Environment variables: must be set before any repspheres module import.
# Uses setdefault so real env vars (CI, e2e) are never overridden.
# ---------------------------------------------------------------------------
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_USER", "test_user")
os.environ.setdefault("POSTGRES_PASSWORD", "test_password")
os.environ.setdefault("POSTGRES_DB", "test_db")
os.environ.setdefault("AUTH_ENABLED", "false")
os.environ.setdefault("STRIPE_ENABLED", "false")
os.environ.setdefault("USAGE_RECONCILE_INTERVAL_SECONDS", "0")
