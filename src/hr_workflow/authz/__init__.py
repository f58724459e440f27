"""Role resolution and authorization decisions."""

from hr_workflow.authz.gate import AuthorizationGate, Basis, Decision, DenyReason
from hr_workflow.authz.resolver import Capability, Directory, PrincipalContext, RoleResolver

__all__ = [
    "AuthorizationGate",
    "Basis",
    "Capability",
    "Decision",
    "DenyReason",
    "Directory",
    "PrincipalContext",
    "RoleResolver",
]
