"""
Shared plumbing for the read side.

Selectors take the caller's Session, only ever SELECT, and hand back frozen
DTOs or report dataclasses; ORM instances never leave a selector.
"""

from abc import ABC
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import ColumnElement, Select
from sqlalchemy.orm import Session

from billtrack_kernel.db.base import Base
from billtrack_kernel.models.transaction import TransactionModel

ModelType = TypeVar("ModelType", bound=Base)


def company_transactions(company_id: UUID, include_deleted: bool = False) -> list[ColumnElement[bool]]:
    """WHERE clauses selecting one company's (live) transactions."""
    clauses = [TransactionModel.company_id == company_id]
    if not include_deleted:
        clauses.append(TransactionModel.deleted_at.is_(None))
    return clauses


class BaseSelector(ABC, Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session

    def _scalars(self, stmt: Select[Any]) -> list[ModelType]:
        return list(self.session.execute(stmt).scalars())
