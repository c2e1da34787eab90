"""
Ledger Kernel

A double-entry ledger engine for a single company's books:
- Chart of accounts with type-driven sign conventions
- Atomic recording of balanced transactions
- Running account balances serialized per account
- Collision-free transaction reference numbers
- Read-side queries, balance recomputation and search
"""

__version__ = "0.1.0"
