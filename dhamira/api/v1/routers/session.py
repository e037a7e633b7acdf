from fastapi import APIRouter, Depends

from dhamira.api import deps
from dhamira.core import permissions
from dhamira.models.user import User
from dhamira.schemas.users import SessionResponse, UserDTO

router = APIRouter(tags=["session"])


@router.get("/session", response_model=SessionResponse, summary="Current user and permitted actions")
async def read_session(current_user: User = Depends(deps.get_current_user)) -> SessionResponse:
    return SessionResponse(
        user=UserDTO.model_validate(current_user),
        allowed_actions=permissions.allowed_actions(current_user.role),
    )
