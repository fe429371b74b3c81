from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from app.core.enums import NotificationType
from app.db.session import Base


class Notification(Base):
    __tablename__ = "notificaciones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(Integer, ForeignKey("solicitudes.id"), nullable=True, index=True)
    # Student key, or a role-scoped key for staff (JEFE / ADMIN)
    recipient = Column(String(50), nullable=False, index=True)
    type = Column(String(20), nullable=False, default=NotificationType.INFO.value)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
