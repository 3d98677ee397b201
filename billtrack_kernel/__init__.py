"""
BillTrack Kernel

Transaction workflow and settlement core for a small company's expense and
income records:
- Two coupled state machines (approval, document workflow)
- Payment attribution and employee reimbursement sub-ledger
- Exact decimal tax arithmetic with a single rounding point
- Side effects returned as events, never executed inline
"""

__version__ = "0.1.0"
