"""Entitlements domain: decides whether a user may use a gated feature.

Use Inject(EntitlementEvaluatorProtocol) in FastAPI endpoints.
"""
