"""
Generated files. Artifact rows are the current generation; ArchivedArtifact rows are the
append-only history of retired ones, each with a reason code.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.core.enums import ArtifactType
from app.db.session import Base


def artifact_type_for(filename: str) -> ArtifactType:
    """Logical type follows the filename convention: '<key>_preliminar_<ts>.pdf' vs the request."""
    if "_preliminar" in (filename or "").lower():
        return ArtifactType.PRELIMINARY_REPORT
    return ArtifactType.REQUEST


class Artifact(Base):
    __tablename__ = "solicitud_pdfs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(Integer, ForeignKey("solicitudes.id"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    filepath = Column(String(1024), nullable=False)
    uploaded_by = Column(String(100), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    application = relationship("ApplicationRecord", back_populates="artifacts")

    @property
    def artifact_type(self) -> ArtifactType:
        return artifact_type_for(self.filename)


class ArchivedArtifact(Base):
    __tablename__ = "solicitud_pdfs_archive"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(Integer, ForeignKey("solicitudes.id"), nullable=False, index=True)
    # Weak reference: the active row is deleted once archived
    original_artifact_id = Column(Integer, nullable=True)
    filename = Column(String(255), nullable=False)
    filepath = Column(String(1024), nullable=True)
    uploaded_by = Column(String(100), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=True)
    archived_by = Column(String(100), nullable=True)
    archived_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    reason = Column(String(30), nullable=False)

    @property
    def artifact_type(self) -> ArtifactType:
        return artifact_type_for(self.filename)
