from app.core.models.application_record import ApplicationRecord
from app.core.models.aggregate_status import AggregateStatus
from app.core.models.artifact import ArchivedArtifact, Artifact, artifact_type_for
from app.core.models.application_comment import ApplicationComment
from app.core.models.audit_log import ApplicationAuditLog
from app.core.models.catalog import Advisor, Career, Company, Student
from app.core.models.notification import Notification

__all__ = [
    "ApplicationRecord",
    "AggregateStatus",
    "Artifact",
    "ArchivedArtifact",
    "artifact_type_for",
    "ApplicationComment",
    "ApplicationAuditLog",
    "Advisor",
    "Career",
    "Company",
    "Student",
    "Notification",
]
