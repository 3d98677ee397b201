"""
SQLAlchemy ORM persistence for payment attributions and settlement history.

Responsibility
--------------
``payment_attributions`` records who funded an expense and whether that
person must be reimbursed.  ``settlement_records`` is the append-only
history of every settle of a row; a reversal closes the open record
instead of erasing it, so a reverse-then-settle cycle keeps both the
original and the new settlement reference.

Invariants enforced
-------------------
* ``amount`` is strictly positive.
* An INDIVIDUAL payer always has a ``payer_ref``.
* ``settlement_status`` is derived from ``payer_type``; the ledger service
  is the only writer.
* Settlement records are never deleted while their payment row exists.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billtrack_kernel.db.base import TrackedBase, UUIDString


class PaymentAttributionModel(TrackedBase):
    """
    One funding source of an expense.

    Guarantees:
        - Belongs to exactly one transaction.
        - ``payout_transaction_id`` points at the payout expense created when
          this row was reimbursed through a batch settlement.
    """

    __tablename__ = "payment_attributions"

    __table_args__ = (
        Index("idx_payment_attributions_transaction", "transaction_id"),
        Index("idx_payment_attributions_payer_status", "payer_ref", "settlement_status"),
        CheckConstraint("amount > 0", name="chk_payment_attributions_amount_positive"),
        CheckConstraint(
            "payer_type <> 'INDIVIDUAL' OR payer_ref IS NOT NULL",
            name="chk_payment_attributions_individual_ref",
        ),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("transactions.id"), nullable=False,
    )
    payer_type: Mapped[str] = mapped_column(String(20), nullable=False)
    payer_ref: Mapped[UUID | None]
    payer_name: Mapped[str | None] = mapped_column(String(200))
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    settlement_status: Mapped[str] = mapped_column(String(20), nullable=False)

    settled_at: Mapped[datetime | None]
    settled_by: Mapped[UUID | None]
    settlement_reference: Mapped[str | None] = mapped_column(String(200))
    settlement_attachments: Mapped[list | None] = mapped_column(JSON)

    reversed_at: Mapped[datetime | None]
    reversed_by: Mapped[UUID | None]
    reversal_reason: Mapped[str | None] = mapped_column(String(1000))

    payout_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("transactions.id"), nullable=True,
    )

    transaction: Mapped["TransactionModel"] = relationship(
        "TransactionModel",
        back_populates="payments",
        foreign_keys=[transaction_id],
    )

    history: Mapped[list["SettlementRecordModel"]] = relationship(
        "SettlementRecordModel",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="SettlementRecordModel.settled_at",
    )

    def to_dto(self):
        from billtrack_kernel.domain.dtos import PaymentRecord
        from billtrack_kernel.domain.payments import PayerType, SettlementStatus

        return PaymentRecord(
            id=self.id,
            transaction_id=self.transaction_id,
            payer_type=PayerType(self.payer_type),
            payer_ref=self.payer_ref,
            payer_name=self.payer_name,
            amount=self.amount,
            settlement_status=SettlementStatus(self.settlement_status),
            settled_at=self.settled_at,
            settled_by=self.settled_by,
            settlement_reference=self.settlement_reference,
            settlement_attachments=tuple(self.settlement_attachments or ()),
            reversed_at=self.reversed_at,
            reversed_by=self.reversed_by,
            reversal_reason=self.reversal_reason,
            payout_transaction_id=self.payout_transaction_id,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<PaymentAttributionModel {self.id} {self.payer_type} "
            f"{self.amount} [{self.settlement_status}]>"
        )


class SettlementRecordModel(TrackedBase):
    """
    One settlement of a payment row, closed by a reversal if one happens.

    Guarantees:
        - At most one open (unreversed) record per payment at a time.
    """

    __tablename__ = "settlement_records"

    __table_args__ = (
        Index("idx_settlement_records_payment", "payment_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payment_attributions.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    settled_at: Mapped[datetime] = mapped_column(nullable=False)
    settled_by: Mapped[UUID] = mapped_column(nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200))
    attachments: Mapped[list | None] = mapped_column(JSON)
    reversed_at: Mapped[datetime | None]
    reversed_by: Mapped[UUID | None]
    reversal_reason: Mapped[str | None] = mapped_column(String(1000))

    payment: Mapped["PaymentAttributionModel"] = relationship(
        "PaymentAttributionModel",
        back_populates="history",
    )

    @property
    def is_open(self) -> bool:
        return self.reversed_at is None

    def to_dto(self):
        from billtrack_kernel.domain.dtos import SettlementHistoryEntry

        return SettlementHistoryEntry(
            id=self.id,
            payment_id=self.payment_id,
            amount=self.amount,
            settled_at=self.settled_at,
            settled_by=self.settled_by,
            reference=self.reference,
            attachments=tuple(self.attachments or ()),
            reversed_at=self.reversed_at,
            reversed_by=self.reversed_by,
            reversal_reason=self.reversal_reason,
        )

    def __repr__(self) -> str:
        state = "reversed" if self.reversed_at else "open"
        return f"<SettlementRecordModel {self.payment_id} {self.reference} [{state}]>"
