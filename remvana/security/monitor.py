"""Security dashboard: alerts, metrics and audit summaries derived from the audit log."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy import ColumnElement, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from remvana.database import get_session, utcnow
from remvana.logging_config import get_logger
from remvana.security.audit import AuditLog, log_action, recent_entries

logger = get_logger(__name__)

ROLE_CHANGE_ACTIONS = {"role_updated", "user_role_changed"}
CRITICAL_ACTIONS = {
    "user_deleted",
    "role_created",
    "role_deleted",
    "organization_updated",
    "admin_access_granted",
}
ADMIN_MARKERS = ("admin", "delete", "role")
SUSPICIOUS_MARKERS = ("failed", "suspicious")
FAILED_LOGIN_MARKERS = ("login_failed", "auth_failed")
EXPORT_MARKERS = ("export", "download")


@dataclass
class SecurityAlert:
    """Alert raised from an audit-log pattern."""
    id: str
    type: str
    severity: str
    title: str
    description: str
    timestamp: dt.datetime
    organization_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    resolved: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
            "organization_id": self.organization_id,
            "metadata": self.metadata,
            "resolved": self.resolved,
        }


def _matches(action: str, markers: Iterable[str]) -> bool:
    return any(m in action for m in markers)


def _action_matches(markers: Iterable[str]) -> ColumnElement[bool]:
    """SQL counterpart of ``_matches``."""
    return or_(*(AuditLog.action.contains(m, autoescape=True) for m in markers))


async def _count(session: AsyncSession, *criteria: Any, distinct_column: Any = None) -> int:
    """COUNT of audit rows matching ``criteria``, or of distinct values of a column."""
    column = func.count(AuditLog.id) if distinct_column is None else func.count(distinct(distinct_column))
    result = await session.execute(select(column).where(*criteria))
    return result.scalar_one()


def calculate_security_score(
    total_users: int,
    admin_actions: int,
    suspicious_activity: int,
    failed_logins: int,
) -> int:
    """Score from 0 to 100; deductions for admin churn, suspicious activity and failed logins."""
    score = 100

    ratio = admin_actions / total_users if total_users > 0 else 0
    if ratio > 0.5:
        score -= 20
    elif ratio > 0.3:
        score -= 10
    elif ratio > 0.1:
        score -= 5

    if suspicious_activity > 10:
        score -= 30
    elif suspicious_activity > 5:
        score -= 15
    elif suspicious_activity > 0:
        score -= 5

    if failed_logins > 50:
        score -= 25
    elif failed_logins > 20:
        score -= 15
    elif failed_logins > 10:
        score -= 10
    elif failed_logins > 0:
        score -= 5

    return max(0, min(100, score))


def risk_level(score: int) -> str:
    if score > 80:
        return "low"
    if score > 60:
        return "medium"
    return "high"


def detect_alerts(
    entries: list[AuditLog],
    organization_id: Optional[str] = None,
    now: Optional[dt.datetime] = None,
) -> list[SecurityAlert]:
    """Analyze audit entries for suspicious patterns."""
    now = now or utcnow()
    stamp = int(now.timestamp())
    alerts: list[SecurityAlert] = []

    role_changes = [e for e in entries if e.action in ROLE_CHANGE_ACTIONS]
    if len(role_changes) > 5:
        alerts.append(SecurityAlert(
            id=f"priv_esc_{stamp}",
            type="privilege_escalation",
            severity="high",
            title="Multiple Privilege Changes Detected",
            description=(
                f"{len(role_changes)} privilege changes in the last 7 days. "
                "Review for unauthorized escalations."
            ),
            timestamp=now,
            organization_id=organization_id,
            metadata={"count": len(role_changes), "actions": [e.action for e in role_changes]},
        ))

    admin_actions = [e for e in entries if _matches(e.action, ADMIN_MARKERS)]
    if len(admin_actions) > 10:
        alerts.append(SecurityAlert(
            id=f"admin_activity_{stamp}",
            type="unusual_activity",
            severity="medium",
            title="High Administrative Activity",
            description=(
                f"{len(admin_actions)} administrative actions detected. "
                "Verify all changes are authorized."
            ),
            timestamp=now,
            organization_id=organization_id,
            metadata={"count": len(admin_actions)},
        ))

    exports = [e for e in entries if _matches(e.action, EXPORT_MARKERS)]
    if exports:
        alerts.append(SecurityAlert(
            id=f"data_access_{stamp}",
            type="data_access",
            severity="low",
            title="Data Export Activity",
            description=f"{len(exports)} data export operations detected.",
            timestamp=now,
            organization_id=organization_id,
            metadata={"count": len(exports)},
        ))

    return alerts


class SecurityMonitor:
    """Read-side service behind the admin security panel."""

    async def alerts(self, organization_id: str) -> list[SecurityAlert]:
        since = utcnow() - dt.timedelta(days=7)
        entries = await recent_entries(since=since, organization_id=organization_id, limit=100)
        alerts = detect_alerts(entries, organization_id)
        logger.info("security_alerts_computed", count=len(alerts))
        return alerts

    async def metrics(self, organization_id: str) -> dict[str, Any]:
        now = utcnow()
        org = AuditLog.organization_id == organization_id
        last_24h = AuditLog.timestamp >= now - dt.timedelta(hours=24)
        last_7d = AuditLog.timestamp >= now - dt.timedelta(days=7)
        last_30d = AuditLog.timestamp >= now - dt.timedelta(days=30)

        async with get_session() as session:
            total_users = await _count(session, org, last_30d, distinct_column=AuditLog.user_id)
            active_24h = await _count(session, org, last_24h, distinct_column=AuditLog.user_id)
            admin_24h = await _count(session, org, last_24h, _action_matches(ADMIN_MARKERS))
            suspicious_7d = await _count(session, org, last_7d, _action_matches(SUSPICIOUS_MARKERS))
            failed_30d = await _count(session, org, last_30d, _action_matches(FAILED_LOGIN_MARKERS))

        score = calculate_security_score(total_users, admin_24h, suspicious_7d, failed_30d)
        return {
            "security_score": score,
            "total_users": total_users,
            "active_users_24h": active_24h,
            "admin_actions_24h": admin_24h,
            "suspicious_activity_7d": suspicious_7d,
            "failed_logins_30d": failed_30d,
            "last_updated": now.isoformat(),
            "trends": {"security_trend": "stable", "risk_level": risk_level(score)},
        }

    async def audit_summary(self, organization_id: str) -> dict[str, Any]:
        """Top 20 actions of the last 7 days and the 10 latest critical actions."""
        criteria = (
            AuditLog.organization_id == organization_id,
            AuditLog.timestamp >= utcnow() - dt.timedelta(days=7),
        )
        count = func.count(AuditLog.id)
        async with get_session() as session:
            grouped = await session.execute(
                select(AuditLog.action, count, func.max(AuditLog.timestamp))
                .where(*criteria)
                .group_by(AuditLog.action)
                .order_by(count.desc(), AuditLog.action)
                .limit(20)
            )
            critical = await session.execute(
                select(AuditLog)
                .where(*criteria, AuditLog.action.in_(CRITICAL_ACTIONS))
                .order_by(AuditLog.timestamp.desc())
                .limit(10)
            )
            total = await _count(session, *criteria)

            return {
                "action_summary": [
                    {"action": action, "count": n, "last_occurrence": last.isoformat()}
                    for action, n, last in grouped.all()
                ],
                "critical_actions": [e.to_dict() for e in critical.scalars().all()],
                "total_actions": total,
            }

    async def resolve_alert(
        self,
        alert_id: str,
        user_id: str,
        resolution: str = "",
        notes: str = "",
        organization_id: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> dict[str, Any]:
        await log_action(
            user_id=user_id,
            action="security_alert_resolved",
            module="security",
            details={"alert_id": alert_id, "resolution": resolution, "notes": notes},
            ip_address=ip_address,
            organization_id=organization_id,
        )
        return {
            "success": True,
            "message": "Security alert resolved successfully",
            "resolved_at": utcnow().isoformat(),
        }
