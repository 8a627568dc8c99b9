"""
Rental Kernel

The rental lifecycle core of the tool-sharing system:
- Tiered day/week/month pricing from an immutable price snapshot
- Append-only signed-cent ledger with a cached per-member balance
- Guarded rental state machine with atomic ledger postings
- Renegotiation of return dates mid-rental
"""

__version__ = "0.1.0"
