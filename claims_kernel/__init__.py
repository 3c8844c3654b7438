"""
Claims Kernel

Core of the lecturer claim-approval workflow:
- Claim lifecycle as an explicit, total transition table
- Append-only, hash-chained audit log per claim
- Optimistic concurrency on every claim mutation
- Read-side report aggregation over claims and audit entries
"""

__version__ = "0.1.0"
