"""
Billing engine: entitlement resolution and subscription lifecycle.

Turns payments-processor billing events into per-user tier links,
storage allocations and merged feature entitlements.
"""
