"""
Requisition Kernel

Site material requisitions fulfilled against an append-only stock ledger:
- Requisition lifecycle derived from item quantities
- Two-level approval chain with audited modifications
- All-or-nothing issuance under row-level stock locks
- Exact-delta receipt reconciliation
- Low-stock evaluation on every ledger mutation
"""

__version__ = "0.1.0"
