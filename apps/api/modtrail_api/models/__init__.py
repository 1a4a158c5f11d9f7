"""Database models - import all models here for Alembic discovery."""

from modtrail_api.models.audit import LedgerHead, ModerationAuditLog
from modtrail_api.models.integrity import AuditIntegrityCheck, SecurityAlert

__all__ = [
    "ModerationAuditLog",
    "LedgerHead",
    "AuditIntegrityCheck",
    "SecurityAlert",
]
