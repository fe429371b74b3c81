from enum import Enum


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ArchiveReason(str, Enum):
    RESUBMISSION = "resubmission"
    REJECTION = "rejection"
    ADMIN_DELETE = "admin_delete"
    ADMIN_REPLACE = "admin_replace"


class ArtifactType(str, Enum):
    REQUEST = "request"
    PRELIMINARY_REPORT = "preliminary_report"


class ConversionMethod(str, Enum):
    NATIVE_LIBRARY = "native-library"
    CLI_FALLBACK = "cli-fallback"
    SOURCE_ONLY = "source-only"


class NotificationType(str, Enum):
    INFO = "info"
    APPROVAL = "approval"
    REJECTION = "rejection"
    COMMENT = "comment"


class UserRole(str, Enum):
    STUDENT = "student"
    DEPARTMENT_HEAD = "department_head"
    ADMIN = "admin"
