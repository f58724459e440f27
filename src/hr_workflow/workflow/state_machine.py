"""Per-entity state machines with role-gated transitions.

Each workflow entity type has one explicit transition table: current state
and action map to the next state and the actor kinds allowed to trigger it.
The tables are plain data and are testable without storage.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from hr_workflow.errors import ConstraintViolationError, InvalidTransitionError
from hr_workflow.models import ExpenseStatus, Form16Status, MemoStatus, ReviewStatus


class Action(str, Enum):
    """Actions a principal can request on a record."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    PAY = "pay"
    GENERATE = "generate"

    @property
    def is_transition(self) -> bool:
        return self in TRANSITION_ACTIONS


TRANSITION_ACTIONS = frozenset({Action.SUBMIT, Action.APPROVE, Action.REJECT, Action.PAY, Action.GENERATE})


class Actor(str, Enum):
    """Kinds of principal a transition may be triggered by."""

    OWNER = "owner"
    MANAGER_OF_OWNER = "manager_of_owner"
    ORG_MANAGER = "org_manager"
    ADMIN = "admin"
    HR = "hr"
    FINANCE = "finance"


@dataclass(frozen=True)
class Transition:
    """One row of a transition table."""

    from_state: str
    to_state: str
    action: Action
    actors: frozenset[Actor]

    @property
    def is_self_loop(self) -> bool:
        """Re-entering the same state; must be a no-op without side effects."""
        return self.from_state == self.to_state


def _t(from_state: Enum, to_state: Enum, action: Action, *actors: Actor) -> Transition:
    return Transition(from_state.value, to_state.value, action, frozenset(actors))


class StateMachine:
    """State machine for one entity type.

    ``owner_editable`` are the pre-approval states in which the owner may
    still edit or delete the record. ``delete_guarded`` are the states in
    which structural deletion is blocked for every role unless the
    maintenance override is active. ``frozen`` states accept no field
    updates from anyone.
    """

    def __init__(
        self,
        entity_type: str,
        states: Iterable[Enum],
        initial_state: Enum,
        transitions: Iterable[Transition],
        *,
        owner_editable: Iterable[Enum] = (),
        delete_guarded: Iterable[Enum] = (),
        frozen: Iterable[Enum] = (),
    ):
        self.entity_type = entity_type
        self.states = frozenset(s.value for s in states)
        self.initial_state = initial_state.value
        self.transitions = tuple(transitions)
        self.owner_editable = frozenset(s.value for s in owner_editable)
        self.delete_guarded = frozenset(s.value for s in delete_guarded)
        self.frozen = frozenset(s.value for s in frozen)

        self._by_edge: dict[tuple[str, str], Transition] = {}
        self._by_action: dict[tuple[str, Action], Transition] = {}
        for transition in self.transitions:
            self._by_edge[(transition.from_state, transition.to_state)] = transition
            self._by_action[(transition.from_state, transition.action)] = transition

    def check_state(self, status: str) -> None:
        """Reject values outside the closed status enumeration."""
        if status not in self.states:
            raise ConstraintViolationError(
                f"'{status}' is not a valid {self.entity_type} status",
                field="status",
                detail=sorted(self.states),
            )

    def find(self, from_status: str, to_status: str) -> Transition | None:
        return self._by_edge.get((from_status, to_status))

    def for_action(self, from_status: str, action: Action) -> Transition | None:
        return self._by_action.get((from_status, action))

    def can_transition(self, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        return (from_status, to_status) in self._by_edge

    def validate_transition(self, from_status: str, to_status: str) -> Transition:
        """Return the transition or raise.

        Raises ConstraintViolationError for unknown status values and
        InvalidTransitionError for known values with no edge between them.
        """
        self.check_state(to_status)
        transition = self.find(from_status, to_status)
        if transition is None:
            reason = "terminal state" if self.is_terminal(from_status) else None
            raise InvalidTransitionError(from_status, to_status, reason)
        return transition

    def get_next_statuses(self, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return [t.to_state for t in self.transitions if t.from_state == current_status]

    def is_terminal(self, status: str) -> bool:
        """No transition leaves the state (self-loops do not count)."""
        return all(t.is_self_loop for t in self.transitions if t.from_state == status)

    def is_owner_editable(self, status: str) -> bool:
        return status in self.owner_editable

    def is_delete_guarded(self, status: str) -> bool:
        return status in self.delete_guarded

    def is_frozen(self, status: str) -> bool:
        return status in self.frozen


REVIEWERS = (Actor.ADMIN, Actor.HR, Actor.MANAGER_OF_OWNER)

MEMO_MACHINE = StateMachine(
    "memo",
    MemoStatus,
    MemoStatus.DRAFT,
    [
        _t(MemoStatus.DRAFT, MemoStatus.PENDING_APPROVAL, Action.SUBMIT, Actor.OWNER),
        _t(MemoStatus.PENDING_APPROVAL, MemoStatus.PUBLISHED, Action.APPROVE, *REVIEWERS, Actor.ORG_MANAGER),
        _t(MemoStatus.PENDING_APPROVAL, MemoStatus.REJECTED, Action.REJECT, *REVIEWERS, Actor.ORG_MANAGER),
    ],
    owner_editable=(MemoStatus.DRAFT, MemoStatus.PENDING_APPROVAL),
    delete_guarded=(MemoStatus.PUBLISHED, MemoStatus.REJECTED),
)


def _review_machine(entity_type: str) -> StateMachine:
    return StateMachine(
        entity_type,
        ReviewStatus,
        ReviewStatus.PENDING,
        [
            _t(ReviewStatus.PENDING, ReviewStatus.APPROVED, Action.APPROVE, *REVIEWERS),
            _t(ReviewStatus.PENDING, ReviewStatus.REJECTED, Action.REJECT, *REVIEWERS),
        ],
        owner_editable=(ReviewStatus.PENDING,),
        delete_guarded=(ReviewStatus.APPROVED,),
    )


LEAVE_MACHINE = _review_machine("leave")
ATTENDANCE_CORRECTION_MACHINE = _review_machine("attendance_correction")

# Profile change requests are reviewed by the manager of the target profile.
# The target profile is the owner's own profile, so MANAGER_OF_OWNER applies.
PROFILE_CHANGE_MACHINE = _review_machine("profile_change")

# Approval (manager) and posting (finance/admin) are separate authorities:
# approving never touches the ledger; entering ``paid`` posts exactly once.
EXPENSE_MACHINE = StateMachine(
    "expense",
    ExpenseStatus,
    ExpenseStatus.SUBMITTED,
    [
        _t(ExpenseStatus.SUBMITTED, ExpenseStatus.APPROVED, Action.APPROVE,
           Actor.MANAGER_OF_OWNER, Actor.ADMIN, Actor.FINANCE),
        _t(ExpenseStatus.SUBMITTED, ExpenseStatus.REJECTED, Action.REJECT,
           Actor.MANAGER_OF_OWNER, Actor.ADMIN, Actor.FINANCE),
        _t(ExpenseStatus.APPROVED, ExpenseStatus.PAID, Action.PAY, Actor.FINANCE, Actor.ADMIN),
        _t(ExpenseStatus.PAID, ExpenseStatus.PAID, Action.PAY, Actor.FINANCE, Actor.ADMIN),
    ],
    owner_editable=(ExpenseStatus.SUBMITTED,),
    delete_guarded=(ExpenseStatus.APPROVED, ExpenseStatus.PAID),
    frozen=(ExpenseStatus.PAID,),
)

FORM16_MACHINE = StateMachine(
    "form16",
    Form16Status,
    Form16Status.DRAFT,
    [
        _t(Form16Status.DRAFT, Form16Status.GENERATED, Action.GENERATE, Actor.ADMIN, Actor.FINANCE),
    ],
    delete_guarded=(Form16Status.GENERATED,),
)

MACHINES: dict[str, StateMachine] = {
    machine.entity_type: machine
    for machine in (
        MEMO_MACHINE,
        LEAVE_MACHINE,
        ATTENDANCE_CORRECTION_MACHINE,
        EXPENSE_MACHINE,
        PROFILE_CHANGE_MACHINE,
        FORM16_MACHINE,
    )
}


def machine_for(entity_type: str) -> StateMachine | None:
    return MACHINES.get(entity_type)
