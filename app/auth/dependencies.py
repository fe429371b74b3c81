from typing import Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from app.auth.schemas import CurrentUser
from app.auth.security import decode_access_token
from app.core.enums import UserRole


# Login lives outside this service; tokenUrl is only used for the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Query(None, include_in_schema=False),
) -> CurrentUser:
    """Resolve the caller from the bearer token (or ?access_token= for EventSource clients)."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = token or access_token
    if not token:
        raise credentials_exception
    try:
        payload = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user_key = payload.get("sub")
    role_name = payload.get("role")
    if not user_key or not role_name:
        raise credentials_exception
    try:
        role = UserRole(role_name)
    except ValueError:
        raise credentials_exception

    student_key = payload.get("student_key")
    if role == UserRole.STUDENT and not student_key:
        student_key = user_key

    return CurrentUser(user_key=str(user_key), role=role, student_key=student_key)
