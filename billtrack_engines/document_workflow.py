"""
Document Workflow Engine - status derivation, self-heal and table lookups.

Pure functions over a ``DocumentWorkflowProfile`` (expense or income) and
the record's current ``DocumentFlags``.  No I/O, no clock.

Derivation (run whenever a derivation-driving flag changes):
    1. explicit status supplied  -> use it verbatim
    2. tax document outstanding  -> the profile's wait state
    3. withholding applies       -> the withholding branch entry state
    4. otherwise                 -> READY_FOR_ACCOUNTING

Self-heal (``repair_status``) moves a record out of a status its flags no
longer justify: a withholding-branch status when withholding is off, or the
wait status when the document is present or not required.  Running it
twice yields the same status.

Usage:
    from billtrack_engines.document_workflow import derive_status
    from billtrack_modules.expense.workflows import EXPENSE_PROFILE

    status = derive_status(EXPENSE_PROFILE, flags)
"""

from __future__ import annotations

from collections.abc import Callable

from billtrack_kernel.domain.document import DocumentFlags, DocumentWorkflowProfile
from billtrack_kernel.domain.workflow import Guard, Transition
from billtrack_kernel.exceptions import InvalidTransitionError
from billtrack_kernel.logging_config import get_logger

logger = get_logger("engines.document_workflow")


WITHHOLDING_APPLICABLE = Guard(
    name="withholding_applicable",
    description="Withholding tax applies to this transaction",
)
WITHHOLDING_NOT_APPLICABLE = Guard(
    name="withholding_not_applicable",
    description="Withholding tax does not apply to this transaction",
)

_GUARD_PREDICATES: dict[str, Callable[[DocumentFlags], bool]] = {
    WITHHOLDING_APPLICABLE.name: lambda flags: flags.is_withholding_applicable,
    WITHHOLDING_NOT_APPLICABLE.name: lambda flags: not flags.is_withholding_applicable,
}


def guard_passes(guard: Guard | None, flags: DocumentFlags) -> bool:
    """Evaluate ``guard`` against ``flags``; no guard always passes."""
    if guard is None:
        return True
    predicate = _GUARD_PREDICATES.get(guard.name)
    if predicate is None:
        raise KeyError(f"No predicate registered for guard {guard.name}")
    return predicate(flags)


def has_required_document(profile: DocumentWorkflowProfile, flags: DocumentFlags) -> bool:
    """True when nothing is left to wait for on the tax-document front."""
    return flags.has_tax_document or (
        flags.document_type is not None
        and flags.document_type in profile.document_not_required
    )


def derive_status(
    profile: DocumentWorkflowProfile,
    flags: DocumentFlags,
    explicit_status: str | None = None,
) -> str:
    """Workflow status implied by ``flags`` (or ``explicit_status`` verbatim).

    Raises:
        InvalidTransitionError: ``explicit_status`` is not a status of this
            workflow, or is DRAFT.
    """
    if explicit_status is not None:
        if not profile.is_valid_status(explicit_status):
            raise InvalidTransitionError(
                entity=profile.workflow.name,
                current_state="?",
                requested=f"set status {explicit_status}",
                rule="unknown status for this transaction type",
            )
        if explicit_status == profile.draft_state:
            raise InvalidTransitionError(
                entity=profile.workflow.name,
                current_state="?",
                requested=f"set status {explicit_status}",
                rule="a released record cannot be returned to DRAFT",
            )
        return explicit_status

    if not has_required_document(profile, flags):
        return profile.wait_state
    if flags.is_withholding_applicable:
        return profile.withholding_entry_state
    return profile.ready_state


def needs_repair(profile: DocumentWorkflowProfile, status: str, flags: DocumentFlags) -> bool:
    if status == profile.draft_state or status in profile.locked_states:
        return False
    if status in profile.withholding_branch and not flags.is_withholding_applicable:
        return True
    if status == profile.wait_state and has_required_document(profile, flags):
        return True
    return False


def repair_status(profile: DocumentWorkflowProfile, status: str, flags: DocumentFlags) -> str:
    """Self-healed status: ``status`` itself when it is consistent."""
    if not needs_repair(profile, status, flags):
        return status
    repaired = derive_status(profile, flags)
    logger.debug("document_status_repaired", extra={
        "workflow": profile.workflow.name,
        "from_status": status,
        "to_status": repaired,
    })
    return repaired


def ensure_flags_mutable(profile: DocumentWorkflowProfile, status: str) -> None:
    """Refuse document-flag changes once a record is with the accountant."""
    if status in profile.locked_states:
        raise InvalidTransitionError(
            entity=profile.workflow.name,
            current_state=status,
            requested="change document flags",
            rule="document flags are locked once sent to the accountant",
        )


def next_transition(
    profile: DocumentWorkflowProfile,
    status: str,
    action: str,
    flags: DocumentFlags,
) -> Transition:
    """The table transition that ``action`` fires from ``status``.

    Raises:
        InvalidTransitionError: No transition for (status, action) whose
            guard passes.
    """
    candidates = [
        t for t in profile.workflow.transitions_from(status) if t.action == action
    ]
    for transition in candidates:
        if guard_passes(transition.guard, flags):
            return transition

    available = profile.workflow.actions_from(status)
    rule = (
        "guard not satisfied"
        if candidates
        else "available actions: " + (", ".join(available) or "none")
    )
    raise InvalidTransitionError(
        entity=profile.workflow.name,
        current_state=status,
        requested=action,
        rule=rule,
    )


def effective_path(profile: DocumentWorkflowProfile, flags: DocumentFlags) -> tuple[str, ...]:
    """Ordered statuses a record with these flags passes through.

    The wait state is skipped for document types that need no tax document;
    the withholding branch replaces READY_FOR_ACCOUNTING when withholding
    applies.
    """
    states = profile.workflow.states
    path: list[str] = [profile.draft_state]
    skips_wait = (
        flags.document_type is not None
        and flags.document_type in profile.document_not_required
    )
    if not skips_wait:
        path.append(profile.wait_state)
    if flags.is_withholding_applicable:
        path.extend(profile.withholding_branch)
    else:
        path.append(profile.ready_state)
    path.extend(s for s in states if s in profile.locked_states)
    return tuple(path)
