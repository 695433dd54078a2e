"""
Billing Sync

Keeps internal subscriber records consistent with the payment processor's
authoritative subscription state by reconciling signed billing webhooks.
"""

__version__ = "0.1.0"
