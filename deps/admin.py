from fastapi import Depends, HTTPException, status

from deps.auth import get_current_user, CurrentUser
from settings import settings


def admin_role_names() -> set[str]:
    return {r.strip().lower() for r in (settings.ADMIN_ROLES or "").split(",") if r.strip()}


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    allowed = admin_role_names()
    if not any(r.strip().lower() in allowed for r in user.roles):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_REQUIRED",
        )
    return user
