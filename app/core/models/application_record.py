"""
Application record ("solicitud"): one submission by a student for one project/company.
STATUS mutable only by a reviewer action; a resubmission after rejection creates a new record.
Never hard-deleted.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.enums import ApplicationStatus
from app.db.session import Base


class ApplicationRecord(Base):
    __tablename__ = "solicitudes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_key = Column(String(50), nullable=False, index=True)
    project_name = Column(String(255), nullable=False)
    company_id = Column(Integer, nullable=True, index=True)
    submitted_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    period = Column(String(50), nullable=True)
    year = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=ApplicationStatus.PENDING.value, index=True)

    external_advisor_name = Column(String(255), nullable=True)
    external_advisor_position = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    phone = Column(String(50), nullable=True)
    career_coordination = Column(String(255), nullable=True)
    residents_count = Column(Integer, nullable=False, default=1)
    chosen_option = Column(String(100), nullable=True)
    remarks = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    artifacts = relationship("Artifact", back_populates="application", order_by="Artifact.id")
    comments = relationship("ApplicationComment", back_populates="application", order_by="ApplicationComment.id")
