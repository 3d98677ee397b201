"""ORM models for the billtrack kernel."""

from billtrack_kernel.models.member import CompanyMemberModel
from billtrack_kernel.models.payment import PaymentAttributionModel, SettlementRecordModel
from billtrack_kernel.models.transaction import ExpenseModel, IncomeModel, TransactionModel

__all__ = [
    "CompanyMemberModel",
    "ExpenseModel",
    "IncomeModel",
    "PaymentAttributionModel",
    "SettlementRecordModel",
    "TransactionModel",
]
