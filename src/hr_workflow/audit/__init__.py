"""Audit trail."""

from hr_workflow.audit.logger import AuditFilter, AuditListing, AuditLogger

__all__ = ["AuditFilter", "AuditListing", "AuditLogger"]
