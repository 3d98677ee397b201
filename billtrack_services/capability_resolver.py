"""
billtrack_services.capability_resolver -- capability checks against the roster.

Responsibility:
    Answer ``has_capability(actor, company, "module:action")`` and
    ``actors_with_capability(company, capability)`` from the
    ``company_members`` table.  Grant semantics (owner, exact grant,
    ``module:*`` wildcard) live in ``billtrack_kernel.domain.capability``.

Architecture position:
    Services layer.  Implements the ``CapabilityResolver`` protocol the
    orchestrator and the settlement ledger depend on.

Invariants:
    - Inactive members hold no capability, owners included.
    - Non-members hold no capability.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billtrack_kernel.domain.capability import check_capability
from billtrack_kernel.logging_config import get_logger
from billtrack_kernel.models.member import CompanyMemberModel

logger = get_logger("services.capability_resolver")


class MemberCapabilityResolver:
    """Capability resolver backed by ``CompanyMemberModel`` rows."""

    def __init__(self, session: Session):
        self._session = session

    def _member(self, actor_id: UUID, company_id: UUID) -> CompanyMemberModel | None:
        return self._session.execute(
            select(CompanyMemberModel).where(
                CompanyMemberModel.company_id == company_id,
                CompanyMemberModel.user_id == actor_id,
            )
        ).scalar_one_or_none()

    def has_capability(self, actor_id: UUID, company_id: UUID, capability: str) -> bool:
        member = self._member(actor_id, company_id)
        if member is None or not member.is_active:
            logger.debug("capability_checked", extra={
                "actor_id": str(actor_id),
                "capability": capability,
                "allowed": False,
                "reason": "not an active member",
            })
            return False
        allowed, reason = check_capability(
            tuple(member.permissions or ()), member.is_owner, capability,
        )
        logger.debug("capability_checked", extra={
            "actor_id": str(actor_id),
            "capability": capability,
            "allowed": allowed,
            "reason": reason,
        })
        return allowed

    def actors_with_capability(self, company_id: UUID, capability: str) -> list[UUID]:
        members = self._session.execute(
            select(CompanyMemberModel)
            .where(
                CompanyMemberModel.company_id == company_id,
                CompanyMemberModel.is_active.is_(True),
            )
            .order_by(CompanyMemberModel.display_name)
        ).scalars()
        return [
            m.user_id
            for m in members
            if check_capability(tuple(m.permissions or ()), m.is_owner, capability)[0]
        ]
