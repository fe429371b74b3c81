from typing import Optional

from pydantic import BaseModel

from app.core.enums import UserRole


class CurrentUser(BaseModel):
    """Authenticated caller as carried by the access token.
    student_key is the control number for students; reviewers usually have none.
    """

    user_key: str
    role: UserRole
    student_key: Optional[str] = None

    @property
    def is_reviewer(self) -> bool:
        return self.role in (UserRole.DEPARTMENT_HEAD, UserRole.ADMIN)
