"""Per-session binding of the directory snapshot and its collaborators."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from hr_workflow.audit.logger import AuditLogger
from hr_workflow.authz.gate import AuthorizationGate
from hr_workflow.authz.resolver import Directory, PrincipalContext, RoleResolver


class DirectoryScope:
    """Loads one organization's directory and wires resolver, gate and audit to it.

    Services bind lazily on the first ``context()`` call, or eagerly when
    given a prebuilt ``Directory``.
    """

    def __init__(self, session: AsyncSession, directory: Directory | None = None):
        self.session = session
        self.directory: Directory | None = None
        self.resolver: RoleResolver | None = None
        self.gate: AuthorizationGate | None = None
        self.audit: AuditLogger | None = None
        if directory is not None:
            self.bind(directory)

    def bind(self, directory: Directory) -> None:
        self.directory = directory
        self.resolver = RoleResolver(directory)
        self.gate = AuthorizationGate(self.resolver)
        self.audit = AuditLogger(self.session, self.resolver)

    async def context(self, principal_id: UUID, organization_id: UUID) -> PrincipalContext:
        """Compute the caller's context, loading the directory if needed."""
        if self.directory is None or self.directory.organization_id != organization_id:
            self.bind(await Directory.load(self.session, organization_id))
        assert self.resolver is not None
        return self.resolver.context_for(principal_id, organization_id)

    async def reload(self) -> None:
        """Reload the directory after profiles or roles changed outside this scope."""
        if self.directory is not None:
            self.bind(await Directory.load(self.session, self.directory.organization_id))
