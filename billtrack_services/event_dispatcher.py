"""
billtrack_services.event_dispatcher -- runs WorkflowEvent intents after commit.

Responsibility:
    Route NOTIFY events to a notifier and AUDIT events to an auditor.  The
    orchestrator never calls either; the caller dispatches the events an
    operation returned once that operation has committed.

Invariants:
    - Events are dispatched in the order they were returned.
    - A notifier failure propagates to the caller.
    - An auditor failure never undoes the business change that already
      committed; it is logged with the traceback and dispatch continues.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from billtrack_kernel.domain.events import EventKind, WorkflowEvent
from billtrack_kernel.logging_config import get_logger

logger = get_logger("services.event_dispatcher")


class Notifier(Protocol):
    def notify(self, event: WorkflowEvent) -> None:
        ...


class Auditor(Protocol):
    def record(self, event: WorkflowEvent) -> None:
        ...


@dataclass(frozen=True)
class DispatchReport:
    notified: int = 0
    audited: int = 0
    audit_failures: int = 0


class EventDispatcher:
    def __init__(self, notifier: Notifier, auditor: Auditor):
        self._notifier = notifier
        self._auditor = auditor

    def dispatch(self, events: Iterable[WorkflowEvent]) -> DispatchReport:
        notified = audited = audit_failures = 0
        for event in events:
            if event.kind is EventKind.NOTIFY:
                if not event.target_user_ids:
                    continue
                self._notifier.notify(event)
                notified += 1
                continue
            try:
                self._auditor.record(event)
                audited += 1
            except Exception:
                audit_failures += 1
                logger.exception("audit_record_failed", extra={
                    "action": event.action.value,
                    "transaction_id": event.transaction_id,
                })

        logger.info("events_dispatched", extra={
            "notified": notified,
            "audited": audited,
            "audit_failures": audit_failures,
        })
        return DispatchReport(
            notified=notified, audited=audited, audit_failures=audit_failures,
        )
