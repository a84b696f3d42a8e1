from typing import Any

from fastapi import APIRouter

from courseboard.api.deps import CurrentUser, SessionDep
from courseboard.core.progress import list_enrollments
from courseboard.models import ProgressesPublic, UserPublic

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserPublic)
async def read_user_me(current_user: CurrentUser) -> Any:
    """
    Get current user.
    """
    return current_user


@router.get("/me/enrollments", response_model=ProgressesPublic)
async def read_my_enrollments_route(session: SessionDep, current_user: CurrentUser) -> Any:
    """
    Progress records of every course the current user is enrolled in.
    """
    return await list_enrollments(session=session, user_id=current_user.id)
