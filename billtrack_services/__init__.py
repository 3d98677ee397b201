"""
BillTrack services -- the public entry points.

- ``WorkflowOrchestrator``: approval, document workflow, settlement and tax.
- ``EventDispatcher``: delivers the returned ``WorkflowEvent`` intents.
- ``MemberCapabilityResolver``: capability checks against the member roster.
"""

from billtrack_services.capability_resolver import MemberCapabilityResolver
from billtrack_services.event_dispatcher import (
    Auditor,
    DispatchReport,
    EventDispatcher,
    Notifier,
)
from billtrack_services.workflow_orchestrator import WorkflowOrchestrator

__all__ = [
    "Auditor",
    "DispatchReport",
    "EventDispatcher",
    "MemberCapabilityResolver",
    "Notifier",
    "WorkflowOrchestrator",
]
