"""
Capability resolution interface (``billtrack_kernel.domain.capability``).

The engine never inspects roles or ownership itself; it asks a resolver
whether an actor holds a ``module:action`` capability in a company, and
which actors hold one (to address approval notifications).
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from billtrack_kernel.exceptions import CapabilityDeniedError

WILDCARD_ACTION = "*"


class CapabilityResolver(Protocol):
    def has_capability(self, actor_id: UUID, company_id: UUID, capability: str) -> bool:
        ...

    def actors_with_capability(self, company_id: UUID, capability: str) -> list[UUID]:
        ...


def check_capability(
    permissions: tuple[str, ...] | list[str],
    is_owner: bool,
    capability: str,
) -> tuple[bool, str]:
    """Decide whether a grant set covers ``capability``.

    Owners hold everything.  Otherwise an exact ``module:action`` grant or
    a ``module:*`` wildcard grant is needed.

    Returns:
        (allowed, reason).  reason names the rule that matched or failed.
    """
    if is_owner:
        return (True, "owner")
    if capability in permissions:
        return (True, "exact grant")
    module, _, _ = capability.partition(":")
    if f"{module}:{WILDCARD_ACTION}" in permissions:
        return (True, "module wildcard")
    return (False, f"no grant for {capability}")


def require_capability(
    resolver: CapabilityResolver,
    actor_id: UUID,
    company_id: UUID,
    capability: str,
) -> None:
    """Raise ``CapabilityDeniedError`` unless ``resolver`` grants ``capability``."""
    if not resolver.has_capability(actor_id, company_id, capability):
        raise CapabilityDeniedError(actor_id, company_id, capability)
