"""Workflow state machines, transition engine and delete guard."""

from hr_workflow.workflow.state_machine import (
    MACHINES,
    Action,
    Actor,
    StateMachine,
    Transition,
    machine_for,
)

__all__ = [
    "MACHINES",
    "Action",
    "Actor",
    "StateMachine",
    "Transition",
    "machine_for",
]
