from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TemplateNotFound(ServiceError):
    """Template file is missing. Fatal for that render, never retried."""

    code = "template-not-found"

    def __init__(self, template_path: str) -> None:
        super().__init__(f"Template not found: {template_path}", status.HTTP_404_NOT_FOUND)
        self.template_path = template_path


class ConversionFailed(ServiceError):
    """Every conversion step failed and not even the source document could be published."""

    code = "conversion-failed"

    def __init__(self, message: str = "Document conversion failed") -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class RegenerationDenied(ServiceError):
    """A document is already in front of a reviewer; carries the blocking status."""

    code = "regeneration-denied"

    def __init__(self, current_status: str, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or (
                f"Generation denied: a document with status '{current_status}' already exists. "
                "Contact the department head for authorization."
            ),
            status.HTTP_403_FORBIDDEN,
        )
        self.current_status = current_status


class TransientFileLock(ServiceError):
    """A temp file is still held open by another process. Handled by the cleanup retry loop."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File is locked: {path}", status.HTTP_409_CONFLICT)
        self.path = path
