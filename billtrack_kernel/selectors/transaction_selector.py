"""
Transaction query selector.

Read access to expenses and incomes, plus the document backlog: how many
records of a company are waiting on each paperwork step.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select

from billtrack_kernel.domain.approval import ApprovalStatus
from billtrack_kernel.domain.document import (
    ExpenseWorkflowStatus,
    IncomeWorkflowStatus,
    TransactionType,
)
from billtrack_kernel.domain.dtos import TransactionRecord
from billtrack_kernel.models.transaction import TransactionModel
from billtrack_kernel.selectors.base import BaseSelector, company_transactions


@dataclass(frozen=True)
class DocumentBacklog:
    """Open paperwork counts for one company (soft-deleted records excluded)."""

    company_id: UUID
    waiting_tax_document: int = 0
    withholding_pending_issue: int = 0
    withholding_pending_certificate: int = 0
    waiting_invoice_issue: int = 0
    ready_for_accounting: int = 0

    @property
    def total(self) -> int:
        return (
            self.waiting_tax_document
            + self.withholding_pending_issue
            + self.withholding_pending_certificate
            + self.waiting_invoice_issue
            + self.ready_for_accounting
        )


# (transaction type, status) -> DocumentBacklog field
_BACKLOG_BUCKETS: dict[tuple[str, str], str] = {
    (TransactionType.EXPENSE.value, ExpenseWorkflowStatus.WAITING_TAX_DOCUMENT.value):
        "waiting_tax_document",
    (TransactionType.EXPENSE.value, ExpenseWorkflowStatus.WITHHOLDING_PENDING_ISSUE.value):
        "withholding_pending_issue",
    (TransactionType.EXPENSE.value, ExpenseWorkflowStatus.READY_FOR_ACCOUNTING.value):
        "ready_for_accounting",
    (TransactionType.INCOME.value, IncomeWorkflowStatus.WAITING_INVOICE_ISSUE.value):
        "waiting_invoice_issue",
    (TransactionType.INCOME.value, IncomeWorkflowStatus.WITHHOLDING_PENDING_CERTIFICATE.value):
        "withholding_pending_certificate",
    (TransactionType.INCOME.value, IncomeWorkflowStatus.READY_FOR_ACCOUNTING.value):
        "ready_for_accounting",
}


class TransactionSelector(BaseSelector[TransactionModel]):
    def get(self, transaction_id: UUID, include_deleted: bool = False) -> TransactionRecord | None:
        tx = self.session.get(TransactionModel, transaction_id)
        if tx is None or (tx.is_deleted and not include_deleted):
            return None
        return tx.to_dto()

    def list_for_company(
        self,
        company_id: UUID,
        transaction_type: TransactionType | str | None = None,
        approval_status: ApprovalStatus | str | None = None,
        document_status: str | None = None,
        include_deleted: bool = False,
    ) -> list[TransactionRecord]:
        """Newest first."""
        stmt = select(TransactionModel).where(*company_transactions(company_id, include_deleted))
        if transaction_type is not None:
            stmt = stmt.where(
                TransactionModel.transaction_type == TransactionType(transaction_type).value,
            )
        if approval_status is not None:
            stmt = stmt.where(
                TransactionModel.approval_status == ApprovalStatus(approval_status).value,
            )
        if document_status is not None:
            stmt = stmt.where(TransactionModel.document_workflow_status == document_status)
        stmt = stmt.order_by(TransactionModel.created_at.desc())
        return [tx.to_dto() for tx in self._scalars(stmt)]

    def document_backlog(self, company_id: UUID) -> DocumentBacklog:
        rows = self.session.execute(
            select(
                TransactionModel.transaction_type,
                TransactionModel.document_workflow_status,
                func.count(TransactionModel.id),
            )
            .where(*company_transactions(company_id))
            .group_by(
                TransactionModel.transaction_type,
                TransactionModel.document_workflow_status,
            )
        ).all()

        counts: dict[str, int] = {}
        for tx_type, status, count in rows:
            bucket = _BACKLOG_BUCKETS.get((tx_type, status))
            if bucket is not None:
                counts[bucket] = counts.get(bucket, 0) + count
        return DocumentBacklog(company_id=company_id, **counts)
