"""
Per-student rollup ("pdf_info") of the latest generation: canonical payloads and a mirrored status.
Used as the regeneration gate. Never deleted.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from app.core.enums import ApplicationStatus
from app.db.session import Base


class AggregateStatus(Base):
    __tablename__ = "pdf_info"

    student_key = Column(String(50), primary_key=True)
    solicitud_payload = Column(Text, nullable=True)
    preliminary_payload = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=ApplicationStatus.PENDING.value)
    updated_by = Column(String(100), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
