"""
Audit logging for application status changes. Call on every status change.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import ApplicationAuditLog


async def log_audit(
    db: AsyncSession,
    student_key: str,
    application_id: Optional[int],
    action: str,
    *,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    performed_by: Optional[str] = None,
    performed_by_role: Optional[str] = None,
    remarks: Optional[str] = None,
) -> None:
    """Append one audit log entry. Caller must commit."""
    entry = ApplicationAuditLog(
        student_key=student_key,
        application_id=application_id,
        from_status=from_status,
        to_status=to_status,
        action=action,
        performed_by=performed_by,
        performed_by_role=performed_by_role,
        remarks=remarks,
        timestamp=datetime.utcnow(),
    )
    db.add(entry)
