"""
SQLAlchemy ORM persistence for transactions.

Responsibility
--------------
One ``transactions`` table holds both expenses and incomes (single-table
inheritance on ``transaction_type``).  Each row carries the derived tax
amounts, the document flags, and the current value of both state machines
(approval status and document workflow status).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as strings for readability and portability.
* ``base_amount`` is strictly positive (check constraint).
* Rows are soft-deleted through ``deleted_at``; payment rows and their
  settlement history keep referencing them.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billtrack_kernel.db.base import TrackedBase
from billtrack_kernel.domain.document import DRAFT_STATUS


class TransactionModel(TrackedBase):
    """
    An expense or income record.

    Guarantees:
        - ``approval_status`` holds an ``ApprovalStatus`` value.
        - ``document_workflow_status`` holds a status of the row's own
          workflow (expense or income vocabulary).
        - ``vat_amount`` is NULL when the VAT rate is zero;
          ``withholding_amount`` and ``withholding_rate_percent`` are NULL
          when withholding does not apply.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_company_workflow", "company_id", "document_workflow_status"),
        Index("idx_transactions_company_approval", "company_id", "approval_status"),
        CheckConstraint("base_amount > 0", name="chk_transactions_base_positive"),
    )

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    company_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    counterparty_ref: Mapped[str | None] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(String(1000))

    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    vat_rate_percent: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)
    vat_amount: Mapped[Decimal | None]
    is_withholding_applicable: Mapped[bool] = mapped_column(Boolean, default=False)
    withholding_rate_percent: Mapped[Decimal | None] = mapped_column(Numeric(9, 4))
    withholding_amount: Mapped[Decimal | None]
    total_with_vat: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)

    has_tax_document: Mapped[bool] = mapped_column(Boolean, default=False)
    has_withholding_certificate: Mapped[bool] = mapped_column(Boolean, default=False)
    document_type: Mapped[str | None] = mapped_column(String(30))

    approval_status: Mapped[str] = mapped_column(String(20), default="NOT_REQUIRED")
    document_workflow_status: Mapped[str] = mapped_column(String(50), default=DRAFT_STATUS)

    submitted_at: Mapped[datetime | None]
    submitted_by: Mapped[UUID | None]
    approved_at: Mapped[datetime | None]
    approved_by: Mapped[UUID | None]
    rejected_at: Mapped[datetime | None]
    rejected_by: Mapped[UUID | None]
    rejection_reason: Mapped[str | None] = mapped_column(String(1000))
    deleted_at: Mapped[datetime | None]
    deleted_by: Mapped[UUID | None]

    # Set on payout expenses synthesized by batch settlement.
    reimbursement_payer_ref: Mapped[UUID | None]

    payments: Mapped[list["PaymentAttributionModel"]] = relationship(
        "PaymentAttributionModel",
        back_populates="transaction",
        foreign_keys="PaymentAttributionModel.transaction_id",
        cascade="all, delete-orphan",
        order_by="PaymentAttributionModel.created_at",
    )

    __mapper_args__ = {
        "polymorphic_on": "transaction_type",
    }

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dto(self):
        from billtrack_kernel.domain.approval import ApprovalStatus
        from billtrack_kernel.domain.document import DocumentType, TransactionType
        from billtrack_kernel.domain.dtos import TransactionRecord

        return TransactionRecord(
            id=self.id,
            transaction_type=TransactionType(self.transaction_type),
            company_id=self.company_id,
            counterparty_ref=self.counterparty_ref,
            description=self.description,
            base_amount=self.base_amount,
            vat_rate_percent=self.vat_rate_percent,
            vat_amount=self.vat_amount,
            is_withholding_applicable=self.is_withholding_applicable,
            withholding_rate_percent=self.withholding_rate_percent,
            withholding_amount=self.withholding_amount,
            total_with_vat=self.total_with_vat,
            net_amount=self.net_amount,
            has_tax_document=self.has_tax_document,
            has_withholding_certificate=self.has_withholding_certificate,
            document_type=DocumentType(self.document_type) if self.document_type else None,
            approval_status=ApprovalStatus(self.approval_status),
            document_workflow_status=self.document_workflow_status,
            created_at=self.created_at,
            created_by_id=self.created_by_id,
            submitted_at=self.submitted_at,
            submitted_by=self.submitted_by,
            approved_at=self.approved_at,
            approved_by=self.approved_by,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            rejection_reason=self.rejection_reason,
            deleted_at=self.deleted_at,
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.id} {self.net_amount} "
            f"[{self.approval_status}/{self.document_workflow_status}]>"
        )


class ExpenseModel(TransactionModel):
    """Money the company pays out.  Only expenses carry payment attributions."""

    __mapper_args__ = {"polymorphic_identity": "EXPENSE"}


class IncomeModel(TransactionModel):
    """Money the company receives."""

    __mapper_args__ = {"polymorphic_identity": "INCOME"}
