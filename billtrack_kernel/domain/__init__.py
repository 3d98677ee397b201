"""
Pure domain layer.

Value objects, state-machine tables and DTOs with NO dependencies on:
- ORM sessions
- Database
- Time (clocks are injected)
- I/O

All domain objects are immutable and deterministic.
"""

from billtrack_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    ApprovalDecision,
    ApprovalEvent,
    ApprovalStatus,
    apply_approval_event,
)
from billtrack_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billtrack_kernel.domain.commands import (
    BatchSettleOptions,
    CreateTransaction,
    DocumentFlagsUpdate,
    PaymentAttributionInput,
)
from billtrack_kernel.domain.document import (
    DocumentFlags,
    DocumentType,
    DocumentWorkflowProfile,
    ExpenseWorkflowStatus,
    IncomeWorkflowStatus,
    TransactionType,
)
from billtrack_kernel.domain.events import EventAction, EventKind, WorkflowEvent
from billtrack_kernel.domain.payments import (
    PayerType,
    SettlementStatus,
    settlement_status_for,
)
from billtrack_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "APPROVAL_TRANSITIONS",
    "ApprovalDecision",
    "ApprovalEvent",
    "ApprovalStatus",
    "BatchSettleOptions",
    "Clock",
    "CreateTransaction",
    "DeterministicClock",
    "DocumentFlags",
    "DocumentFlagsUpdate",
    "DocumentType",
    "DocumentWorkflowProfile",
    "EventAction",
    "EventKind",
    "ExpenseWorkflowStatus",
    "Guard",
    "IncomeWorkflowStatus",
    "PayerType",
    "PaymentAttributionInput",
    "SettlementStatus",
    "SystemClock",
    "TransactionType",
    "Transition",
    "Workflow",
    "WorkflowEvent",
    "apply_approval_event",
    "settlement_status_for",
]
