"""Usage domain: append-only usage ledger and metered-usage reconciliation.

Use Inject(UsageLedgerProtocol) in FastAPI endpoints to record and summarise usage.
The UsageReconciler is started in the app lifespan and re-reports usage the
inline path could not deliver to the billing provider.
"""
