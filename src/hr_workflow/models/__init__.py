"""ORM models."""

from hr_workflow.models.audit import AuditEntry
from hr_workflow.models.base import Base
from hr_workflow.models.directory import Profile, ProfileStatus, Role, RoleAssignment
from hr_workflow.models.entities import (
    AttendanceCorrection,
    Expense,
    ExpenseStatus,
    Form16Record,
    Form16Status,
    LeaveRequest,
    Memo,
    MemoStatus,
    ProfileChangeRequest,
    ReviewStatus,
    WorkflowMixin,
)
from hr_workflow.models.ledger import JournalEntry, JournalLine

__all__ = [
    "AttendanceCorrection",
    "AuditEntry",
    "Base",
    "Expense",
    "ExpenseStatus",
    "Form16Record",
    "Form16Status",
    "JournalEntry",
    "JournalLine",
    "LeaveRequest",
    "Memo",
    "MemoStatus",
    "Profile",
    "ProfileChangeRequest",
    "ProfileStatus",
    "ReviewStatus",
    "Role",
    "RoleAssignment",
    "WorkflowMixin",
]
