"""
Payment dispatch and offline resilience for point-of-sale terminals.

Charges go through a prioritized set of gateways with retry and circuit
breaking; sales made while offline are kept in a local durable store and
reconciled with the remote order ledger once connectivity returns.
"""

__version__ = "0.1.0"
