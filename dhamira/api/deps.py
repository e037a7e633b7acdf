from datetime import datetime, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dhamira.core import permissions
from dhamira.core.context import bind_actor
from dhamira.core.permissions import Action
from dhamira.core.security import decode_token
from dhamira.db.session import get_db
from dhamira.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_token(credentials.credentials, expected_type="access")
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    user_sub = payload.get("sub")
    token_version = payload.get("tv")
    if not user_sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    # The role claim is informational; the stored role is authoritative.
    result = await db.execute(select(User).where(User.id == user_sub))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    if token_version is not None and user.token_version != token_version:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token revoked")

    user.last_active_at = datetime.now(timezone.utc)
    db.add(user)
    await db.commit()
    bind_actor(str(user.id), user.role)
    return user


def require_action(action: Action):
    """Dependency factory gating a route on the role policy table."""

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not permissions.is_allowed(current_user.role, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "role_not_permitted",
                    "message": f"Your role is not permitted to perform {action.value}",
                    "details": {"action": action.value, "allowed_roles": permissions.roles_for(action)},
                },
            )
        return current_user

    return dependency
