from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from feeledger.auth.schemas import CurrentUser
from feeledger.core.config import settings
from feeledger.core.enums import UserRole


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth", auto_error=True)


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Resolve the caller from the access token issued by the platform's auth service."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    role_name = payload.get("role")
    if not user_id_str or not role_name:
        raise credentials_exception

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise credentials_exception

    if role_name not in {r.value for r in UserRole}:
        raise credentials_exception

    student_id = payload.get("student_id")
    if role_name == UserRole.STUDENT.value and not student_id:
        raise credentials_exception

    return CurrentUser(
        id=user_id,
        role=role_name,
        student_id=str(student_id) if student_id is not None else None,
        institution_id=payload.get("institution_id"),
    )
