from fastapi import Depends, HTTPException, status

from feeledger.auth.dependencies import get_current_user
from feeledger.auth.schemas import CurrentUser
from feeledger.core.enums import STAFF_ROLES
from feeledger.core.exceptions import Forbidden
from feeledger.core.models import FeeAccount


def require_roles(*roles: str):
    """
    Dependency factory to restrict an endpoint to the given roles.

    Example:
        Depends(require_roles("ADMIN", "ACCOUNTANT"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if current_user.role == "SUPER_ADMIN":
            return
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

    return _checker


def is_staff(current_user: CurrentUser) -> bool:
    return current_user.role in STAFF_ROLES


def ensure_account_access(current_user: CurrentUser, account: FeeAccount) -> None:
    """Staff may act on any account; a student only on their own."""
    if is_staff(current_user):
        return
    if current_user.student_id is None or current_user.student_id != account.student_id:
        raise Forbidden()
