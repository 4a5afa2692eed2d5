"""
Nagrik Ledger - Identity and Aggregation Core

Assigns every registered citizen a unique, sequential nagrik number and
keeps per-constituency survey statistics consistent with an append-only,
at-most-once stream of contributions.

Core Guarantees:
- No two participants ever share a nagrik number
- A participant answers each question for a constituency at most once
- Every aggregate can be rebuilt from its contribution log
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
