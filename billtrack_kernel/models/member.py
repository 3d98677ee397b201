"""
SQLAlchemy ORM persistence for the company member roster.

The roster answers two questions for the engine: which capabilities an
actor holds in a company, and who the company's people are (so per-person
settlement reports list everyone, including members with no payments).
Permission strings are owned by an external permission store; this table is
the engine's read model of it.
"""

from uuid import UUID

from sqlalchemy import JSON, Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billtrack_kernel.db.base import TrackedBase


class CompanyMemberModel(TrackedBase):
    """
    A user's membership in a company.

    Guarantees:
        - One row per (company_id, user_id).
        - ``permissions`` is a list of ``module:action`` strings; ``module:*``
          grants every action of that module.
    """

    __tablename__ = "company_members"

    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_company_members_user"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320))
    is_owner: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    permissions: Mapped[list | None] = mapped_column(JSON)

    def __repr__(self) -> str:
        role = "owner" if self.is_owner else "member"
        return f"<CompanyMemberModel {self.display_name} ({role}) company={self.company_id}>"
