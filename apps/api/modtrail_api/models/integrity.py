"""Integrity check history and security alert models."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text

from modtrail_api.db.base import Base


class AuditIntegrityCheck(Base):
    """Permanent record of one integrity verification run."""

    __tablename__ = "audit_integrity_history"

    id = Column(Integer, primary_key=True, index=True)
    check_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    total_checked = Column(Integer, nullable=False)
    violations_found = Column(Integer, nullable=False)
    integrity_score = Column(Float, nullable=False)
    last_verified_hash = Column(String(64), nullable=True)
    passed = Column(Boolean, nullable=False, index=True)
    duration_ms = Column(Float, nullable=True)
    details = Column(Text, nullable=True)  # JSON report blob


class SecurityAlert(Base):
    """Alert raised for administrators (integrity violation or job failure)."""

    __tablename__ = "security_alerts"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(100), nullable=False, index=True)  # audit_integrity_violation, audit_integrity_job_failed
    severity = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    resolved_at = Column(DateTime, nullable=True)
