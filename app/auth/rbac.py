from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import UserRole


async def require_reviewer(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Department head or admin. Used for approval, rejection and artifact administration."""
    if not current_user.is_reviewer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the department head or an admin can perform this action",
        )
    return current_user


async def require_student(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if current_user.role != UserRole.STUDENT or not current_user.student_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only students can perform this action",
        )
    return current_user
