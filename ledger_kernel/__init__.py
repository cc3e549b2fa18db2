"""
Ledger Kernel - Accounting Transaction Engine

A multi-tenant double-entry bookkeeping core with:
- Idempotent, atomic posting of accounting units of work
- Posting-period enforcement (open / soft-closed / closed)
- Append-only journals with mirror reversals
- FIFO inventory valuation tied to ledger postings
"""

__version__ = "0.1.0"
