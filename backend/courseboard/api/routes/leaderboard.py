from typing import Any

from fastapi import APIRouter, Query

from courseboard.api.deps import CurrentUser, SessionDep
from courseboard.core.config import settings
from courseboard.core.ranking import course_leaderboard, global_leaderboard, user_window
from courseboard.models import (
    CourseLeaderboardPublic,
    LeaderboardPublic,
    UserRankingPublic,
)

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


@router.get("/", response_model=LeaderboardPublic)
async def read_global_leaderboard_route(
    session: SessionDep,
    limit: int = Query(
        default=settings.LEADERBOARD_DEFAULT_LIMIT,
        ge=1,
        le=settings.LEADERBOARD_MAX_LIMIT,
    ),
    skip: int = Query(default=0, ge=0),
) -> Any:
    """
    Global leaderboard, ranked by accumulated quiz score.
    """
    return await global_leaderboard(session=session, limit=limit, skip=skip)


@router.get("/ranking", response_model=UserRankingPublic)
async def read_my_global_ranking_route(session: SessionDep, current_user: CurrentUser) -> Any:
    """
    The current user and their neighbors in the global ranking.
    """
    return await user_window(session=session, user_id=current_user.id)


@router.get("/courses/{course_id}", response_model=CourseLeaderboardPublic)
async def read_course_leaderboard_route(session: SessionDep, course_id: str) -> Any:
    """
    Leaderboard of the users enrolled in a course.
    """
    return await course_leaderboard(session=session, course_id=course_id)


@router.get("/courses/{course_id}/ranking", response_model=UserRankingPublic)
async def read_my_course_ranking_route(
    session: SessionDep, current_user: CurrentUser, course_id: str
) -> Any:
    """
    The current user and their neighbors in a course ranking.
    """
    return await user_window(session=session, user_id=current_user.id, course_id=course_id)
