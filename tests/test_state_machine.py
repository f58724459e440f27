"""Tests for the per-entity workflow state machines."""

import pytest

from hr_workflow.errors import ConstraintViolationError, InvalidTransitionError
from hr_workflow.workflow.state_machine import (
    ATTENDANCE_CORRECTION_MACHINE,
    EXPENSE_MACHINE,
    FORM16_MACHINE,
    LEAVE_MACHINE,
    MACHINES,
    MEMO_MACHINE,
    PROFILE_CHANGE_MACHINE,
    Action,
    Actor,
    machine_for,
)


class TestMemoMachine:
    """Memo lifecycle: draft, review, publish or reject."""

    def test_valid_transitions(self):
        assert MEMO_MACHINE.can_transition("draft", "pending_approval") is True
        assert MEMO_MACHINE.can_transition("pending_approval", "published") is True
        assert MEMO_MACHINE.can_transition("pending_approval", "rejected") is True

    def test_cannot_skip_review(self):
        assert MEMO_MACHINE.can_transition("draft", "published") is False

    @pytest.mark.parametrize("terminal", ["published", "rejected"])
    def test_terminal_states_have_no_exit(self, terminal):
        assert MEMO_MACHINE.is_terminal(terminal)
        assert MEMO_MACHINE.get_next_statuses(terminal) == []
        for target in ("draft", "pending_approval", "published", "rejected"):
            with pytest.raises(InvalidTransitionError) as exc_info:
                MEMO_MACHINE.validate_transition(terminal, target)
            assert exc_info.value.reason == "terminal state"

    def test_submit_is_owner_only(self):
        transition = MEMO_MACHINE.for_action("draft", Action.SUBMIT)
        assert transition.actors == {Actor.OWNER}

    def test_any_org_manager_may_review(self):
        transition = MEMO_MACHINE.for_action("pending_approval", Action.APPROVE)
        assert Actor.ORG_MANAGER in transition.actors
        assert Actor.MANAGER_OF_OWNER in transition.actors
        assert Actor.FINANCE not in transition.actors


class TestReviewMachines:
    """Leave, attendance correction and profile change share one shape."""

    @pytest.mark.parametrize("machine", [LEAVE_MACHINE, ATTENDANCE_CORRECTION_MACHINE, PROFILE_CHANGE_MACHINE])
    def test_pending_is_the_only_open_state(self, machine):
        assert machine.initial_state == "pending"
        assert sorted(machine.get_next_statuses("pending")) == ["approved", "rejected"]
        assert machine.is_terminal("approved")
        assert machine.is_terminal("rejected")

    @pytest.mark.parametrize("machine", [LEAVE_MACHINE, ATTENDANCE_CORRECTION_MACHINE, PROFILE_CHANGE_MACHINE])
    def test_reviewers(self, machine):
        approve = machine.for_action("pending", Action.APPROVE)
        assert approve.actors == {Actor.ADMIN, Actor.HR, Actor.MANAGER_OF_OWNER}

    def test_owner_edits_only_while_pending(self):
        assert LEAVE_MACHINE.is_owner_editable("pending")
        assert not LEAVE_MACHINE.is_owner_editable("approved")
        assert LEAVE_MACHINE.is_delete_guarded("approved")
        assert not LEAVE_MACHINE.is_delete_guarded("rejected")


class TestExpenseMachine:
    """Approval and payment are separate authorities."""

    def test_manager_cannot_pay(self):
        pay = EXPENSE_MACHINE.for_action("approved", Action.PAY)
        assert pay.actors == {Actor.FINANCE, Actor.ADMIN}
        approve = EXPENSE_MACHINE.for_action("submitted", Action.APPROVE)
        assert Actor.MANAGER_OF_OWNER in approve.actors

    def test_paid_reentry_is_a_self_loop(self):
        transition = EXPENSE_MACHINE.validate_transition("paid", "paid")
        assert transition.is_self_loop
        assert EXPENSE_MACHINE.is_terminal("paid")

    def test_cannot_pay_unapproved(self):
        with pytest.raises(InvalidTransitionError):
            EXPENSE_MACHINE.validate_transition("submitted", "paid")

    def test_paid_is_frozen_and_guarded(self):
        assert EXPENSE_MACHINE.is_frozen("paid")
        assert EXPENSE_MACHINE.is_delete_guarded("paid")
        assert EXPENSE_MACHINE.is_delete_guarded("approved")
        assert not EXPENSE_MACHINE.is_frozen("approved")


class TestForm16Machine:
    def test_generate(self):
        transition = FORM16_MACHINE.validate_transition("draft", "generated")
        assert transition.action is Action.GENERATE
        assert transition.actors == {Actor.ADMIN, Actor.FINANCE}

    def test_generated_is_terminal(self):
        with pytest.raises(InvalidTransitionError):
            FORM16_MACHINE.validate_transition("generated", "generated")


class TestClosedEnumerations:
    def test_unknown_status_is_a_constraint_violation(self):
        with pytest.raises(ConstraintViolationError) as exc_info:
            LEAVE_MACHINE.validate_transition("pending", "archived")
        assert exc_info.value.field == "status"

    def test_registry(self):
        assert set(MACHINES) == {
            "memo",
            "leave",
            "attendance_correction",
            "expense",
            "profile_change",
            "form16",
        }
        assert machine_for("profile") is None

    def test_one_transition_per_state_and_action(self):
        for machine in MACHINES.values():
            seen = set()
            for transition in machine.transitions:
                key = (transition.from_state, transition.action)
                assert key not in seen, f"{machine.entity_type}: duplicate {key}"
                seen.add(key)
                assert transition.from_state in machine.states
                assert transition.to_state in machine.states
