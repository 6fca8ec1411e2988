"""Comprehensive audit logging for all system actions."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, select
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON

from remvana.database import Base, get_session, utcnow
from remvana.logging_config import get_logger

logger = get_logger(__name__)


class AuditLog(Base):
    """Persistent audit log entry."""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    organization_id = Column(String(36), nullable=True, index=True)
    action = Column(String(256), nullable=False, index=True)
    module = Column(String(128), nullable=False)
    details = Column(SQLiteJSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    status = Column(String(32), default="success")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "action": self.action,
            "module": self.module,
            "details": self.details or {},
            "ip_address": self.ip_address,
            "status": self.status,
        }


async def log_action(
    user_id: str,
    action: str,
    module: str,
    details: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    status: str = "success",
    organization_id: Optional[str] = None,
) -> None:
    """Write an audit log entry to the database."""
    entry = AuditLog(
        user_id=user_id,
        organization_id=organization_id,
        action=action,
        module=module,
        details=details,
        ip_address=ip_address,
        status=status,
    )
    try:
        async with get_session() as session:
            session.add(entry)
        logger.debug("audit_logged", action=action, user_id=user_id, module=module)
    except Exception as exc:
        logger.error("audit_log_failed", action=action, error=str(exc))


async def recent_entries(
    since: Optional[dt.datetime] = None,
    organization_id: Optional[str] = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Return audit entries newest first, optionally bounded by time and organization."""
    stmt = select(AuditLog)
    if since is not None:
        stmt = stmt.where(AuditLog.timestamp >= since)
    if organization_id is not None:
        stmt = stmt.where(AuditLog.organization_id == organization_id)
    stmt = stmt.order_by(AuditLog.timestamp.desc()).limit(limit)
    async with get_session() as session:
        result = await session.execute(stmt)
        return list(result.scalars().all())
