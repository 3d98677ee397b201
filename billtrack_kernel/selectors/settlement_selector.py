"""
Settlement query selector.

Reimbursement aggregates for reporting: per-person and per-month pending
and settled totals over INDIVIDUAL payment attributions.

Key design decisions:
- Per-person summaries are a roster join.  Every company member appears
  exactly once (zero totals when they have no rows), followed by payer
  refs that are not on the roster.
- A row's reporting date is ``settled_at`` when SETTLED, else ``created_at``;
  month buckets and the date filters both use it.
- PENDING rows of soft-deleted transactions are excluded (nobody is owed
  money for a deleted expense); SETTLED rows always count, because the
  money has already moved.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select

from billtrack_kernel.db.types import ZERO, round2
from billtrack_kernel.domain.dtos import PaymentRecord, SettlementHistoryEntry
from billtrack_kernel.domain.payments import PayerType, SettlementStatus
from billtrack_kernel.models.member import CompanyMemberModel
from billtrack_kernel.models.payment import PaymentAttributionModel, SettlementRecordModel
from billtrack_kernel.models.transaction import TransactionModel
from billtrack_kernel.selectors.base import BaseSelector, company_transactions


@dataclass(frozen=True)
class PersonSettlementSummary:
    """Reimbursement position of one person."""

    payer_ref: UUID
    name: str
    is_member: bool
    pending_total: Decimal
    pending_count: int
    settled_total: Decimal
    settled_count: int

    @property
    def total(self) -> Decimal:
        return self.pending_total + self.settled_total

    @property
    def has_pending(self) -> bool:
        return self.pending_count > 0


@dataclass(frozen=True)
class MonthlySettlementSummary:
    month: str  # YYYY-MM
    pending_total: Decimal
    pending_count: int
    settled_total: Decimal
    settled_count: int


@dataclass(frozen=True)
class SettlementReport:
    company_id: UUID
    pending_total: Decimal
    pending_count: int
    settled_total: Decimal
    settled_count: int
    persons_with_pending: int
    by_person: tuple[PersonSettlementSummary, ...]
    by_month: tuple[MonthlySettlementSummary, ...]


class _Tally:
    __slots__ = ("pending_total", "pending_count", "settled_total", "settled_count")

    def __init__(self) -> None:
        self.pending_total = ZERO
        self.pending_count = 0
        self.settled_total = ZERO
        self.settled_count = 0

    def add(self, payment: PaymentAttributionModel) -> None:
        if payment.settlement_status == SettlementStatus.SETTLED.value:
            self.settled_total += payment.amount
            self.settled_count += 1
        else:
            self.pending_total += payment.amount
            self.pending_count += 1


def _reporting_time(payment: PaymentAttributionModel) -> datetime:
    if payment.settlement_status == SettlementStatus.SETTLED.value and payment.settled_at:
        return payment.settled_at
    return payment.created_at


class SettlementSelector(BaseSelector[PaymentAttributionModel]):
    """
    Selector for reimbursement reporting.

    Returns DTOs rather than ORM models.  Uses the caller's Session.
    """

    def _rows(
        self,
        company_id: UUID,
        status: SettlementStatus | str | None,
        date_from: date | None,
        date_to: date | None,
    ) -> list[PaymentAttributionModel]:
        stmt = (
            select(PaymentAttributionModel)
            .join(TransactionModel, PaymentAttributionModel.transaction_id == TransactionModel.id)
            .where(
                TransactionModel.company_id == company_id,
                PaymentAttributionModel.payer_type == PayerType.INDIVIDUAL.value,
                PaymentAttributionModel.settlement_status.in_((
                    SettlementStatus.PENDING.value,
                    SettlementStatus.SETTLED.value,
                )),
                or_(
                    TransactionModel.deleted_at.is_(None),
                    PaymentAttributionModel.settlement_status == SettlementStatus.SETTLED.value,
                ),
            )
            .order_by(PaymentAttributionModel.created_at)
        )
        if status is not None:
            stmt = stmt.where(
                PaymentAttributionModel.settlement_status == SettlementStatus(status).value,
            )
        rows = self._scalars(stmt)
        if date_from is None and date_to is None:
            return rows
        return [
            p for p in rows
            if (date_from is None or _reporting_time(p).date() >= date_from)
            and (date_to is None or _reporting_time(p).date() <= date_to)
        ]

    def _person_summaries(
        self,
        company_id: UUID,
        rows: Iterable[PaymentAttributionModel],
    ) -> list[PersonSettlementSummary]:
        members = self.session.execute(
            select(CompanyMemberModel).where(CompanyMemberModel.company_id == company_id)
        ).scalars()

        names: dict[UUID, str] = {}
        on_roster: set[UUID] = set()
        tallies: dict[UUID, _Tally] = {}
        for member in members:
            names[member.user_id] = member.display_name
            on_roster.add(member.user_id)
            tallies[member.user_id] = _Tally()

        for payment in rows:
            ref = payment.payer_ref
            if ref not in tallies:
                tallies[ref] = _Tally()
            if ref not in on_roster and payment.payer_name:
                names[ref] = payment.payer_name
            tallies[ref].add(payment)

        summaries = [
            PersonSettlementSummary(
                payer_ref=ref,
                name=names.get(ref, str(ref)),
                is_member=ref in on_roster,
                pending_total=round2(t.pending_total),
                pending_count=t.pending_count,
                settled_total=round2(t.settled_total),
                settled_count=t.settled_count,
            )
            for ref, t in tallies.items()
        ]
        summaries.sort(key=lambda s: (-s.pending_total, -s.settled_total, s.name))
        return summaries

    @staticmethod
    def _month_summaries(
        rows: Iterable[PaymentAttributionModel],
    ) -> list[MonthlySettlementSummary]:
        tallies: dict[str, _Tally] = {}
        for payment in rows:
            month = _reporting_time(payment).strftime("%Y-%m")
            tallies.setdefault(month, _Tally()).add(payment)
        return [
            MonthlySettlementSummary(
                month=month,
                pending_total=round2(t.pending_total),
                pending_count=t.pending_count,
                settled_total=round2(t.settled_total),
                settled_count=t.settled_count,
            )
            for month, t in sorted(tallies.items(), reverse=True)
        ]

    def summarize_by_person(
        self,
        company_id: UUID,
        status: SettlementStatus | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[PersonSettlementSummary]:
        """Per-person totals, roster members first-class (zero rows included).

        Sorted by pending total desc, then settled total desc, then name.
        """
        rows = self._rows(company_id, status, date_from, date_to)
        return self._person_summaries(company_id, rows)

    def summarize_by_month(
        self,
        company_id: UUID,
        status: SettlementStatus | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[MonthlySettlementSummary]:
        """Totals bucketed by ``YYYY-MM``, newest month first."""
        return self._month_summaries(self._rows(company_id, status, date_from, date_to))

    def settlement_report(
        self,
        company_id: UUID,
        status: SettlementStatus | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> SettlementReport:
        rows = self._rows(company_id, status, date_from, date_to)
        overall = _Tally()
        for payment in rows:
            overall.add(payment)
        by_person = self._person_summaries(company_id, rows)
        return SettlementReport(
            company_id=company_id,
            pending_total=round2(overall.pending_total),
            pending_count=overall.pending_count,
            settled_total=round2(overall.settled_total),
            settled_count=overall.settled_count,
            persons_with_pending=sum(1 for s in by_person if s.has_pending),
            by_person=tuple(by_person),
            by_month=tuple(self._month_summaries(rows)),
        )

    def payments_for(self, transaction_id: UUID) -> list[PaymentRecord]:
        rows = self._scalars(
            select(PaymentAttributionModel)
            .where(PaymentAttributionModel.transaction_id == transaction_id)
            .order_by(PaymentAttributionModel.created_at)
        )
        return [p.to_dto() for p in rows]

    def pending_for_payer(self, company_id: UUID, payer_ref: UUID) -> list[PaymentRecord]:
        """PENDING reimbursements owed to one person, oldest first."""
        rows = self._scalars(
            select(PaymentAttributionModel)
            .join(TransactionModel, PaymentAttributionModel.transaction_id == TransactionModel.id)
            .where(
                *company_transactions(company_id),
                PaymentAttributionModel.payer_ref == payer_ref,
                PaymentAttributionModel.settlement_status == SettlementStatus.PENDING.value,
            )
            .order_by(PaymentAttributionModel.created_at)
        )
        return [p.to_dto() for p in rows]

    def history(self, payment_id: UUID) -> list[SettlementHistoryEntry]:
        """Every settlement of a row, oldest first; reversed ones included."""
        rows = self.session.execute(
            select(SettlementRecordModel)
            .where(SettlementRecordModel.payment_id == payment_id)
            .order_by(SettlementRecordModel.settled_at, SettlementRecordModel.created_at)
        ).scalars()
        return [r.to_dto() for r in rows]
