"""
Enrollment and module progress of the current user.
"""
from typing import Any

from fastapi import APIRouter, status

from courseboard.api.deps import CurrentUser, SessionDep
from courseboard.core.progress import enroll, get_progress, mark_module_complete
from courseboard.models import (
    EnrollmentStatus,
    ModuleCompletionPatch,
    ModuleCompletionPublic,
    ProgressPublic,
)

router = APIRouter(prefix="/courses", tags=["enrollments"])


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentStatus,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_route(
    session: SessionDep, current_user: CurrentUser, course_id: str
) -> Any:
    """
    Enroll the current user in a course.
    """
    await enroll(session=session, user_id=current_user.id, course_id=course_id)
    return EnrollmentStatus()


@router.get("/{course_id}/progress", response_model=ProgressPublic)
async def read_progress_route(
    session: SessionDep, current_user: CurrentUser, course_id: str
) -> Any:
    """
    Progress of the current user in a course.
    """
    return await get_progress(session=session, user_id=current_user.id, course_id=course_id)


@router.post("/{course_id}/progress", response_model=ModuleCompletionPublic)
async def complete_module_route(
    session: SessionDep,
    current_user: CurrentUser,
    course_id: str,
    patch: ModuleCompletionPatch,
) -> Any:
    """
    Mark a module complete. Repeating the call changes nothing.
    """
    return await mark_module_complete(
        session=session, user_id=current_user.id, course_id=course_id, patch=patch
    )
