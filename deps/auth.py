from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from security import decode_token

bearer = HTTPBearer(auto_error=False)


class CurrentUser:
    def __init__(self, user_id: str, handle: str | None = None, roles: list[str] | None = None):
        self.user_id = user_id
        self.handle = handle or user_id
        self.roles = list(roles or [])


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> CurrentUser:
    if not creds:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    # must be "Bearer"
    if (creds.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    payload = decode_token(creds.credentials)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    return CurrentUser(user_id=str(sub), handle=payload.get("handle"), roles=[str(r) for r in roles])
