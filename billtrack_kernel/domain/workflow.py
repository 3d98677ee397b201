"""
Table-driven state machine types for the document workflows.

A ``Workflow`` is data: its states and the ``Transition`` rows that connect
them.  Expense and income each declare one (``billtrack_modules.*.workflows``);
``billtrack_engines.document_workflow`` interprets them.  Construction
fails fast on a malformed table:

* ``initial_state`` and every transition endpoint are declared states;
* terminal states have no outgoing transition.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """Named precondition on a transition.

    Only a label here; the document workflow engine maps ``name`` to a
    predicate over the record's document flags.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """``action`` moves a record from ``from_state`` to ``to_state``.

    ``sets_flags`` are document flags switched on when it fires, e.g.
    ``receive_tax_document`` sets ``has_tax_document``.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    sets_flags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Workflow:
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        declared = set(self.states)
        problems: list[str] = []
        if self.initial_state not in declared:
            problems.append(f"initial state {self.initial_state} is not declared")
        for t in self.transitions:
            undeclared = {t.from_state, t.to_state} - declared
            if undeclared:
                problems.append(f"{t.action} uses undeclared {', '.join(sorted(undeclared))}")
            if t.from_state in self.terminal_states:
                problems.append(f"{t.action} leaves terminal state {t.from_state}")
        if problems:
            raise ValueError(f"Workflow {self.name}: " + "; ".join(problems))

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        """Rows leaving ``state``, in declaration order."""
        return tuple(t for t in self.transitions if t.from_state == state)

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(dict.fromkeys(t.action for t in self.transitions_from(state)))
