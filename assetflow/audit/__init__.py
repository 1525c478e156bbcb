"""Audit logging package."""

from assetflow.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
