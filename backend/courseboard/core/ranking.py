"""
Leaderboards and user windows.

Rankings are rebuilt from attempts and completions on every query with a
read-only scan. Rows are grouped by user id before scoring, so a user shows
up once even when a write lands mid-scan.
"""
import logging
from collections import defaultdict
from collections.abc import Sequence
from typing import TypeVar

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from courseboard.core.catalog import get_course, get_course_module_ids
from courseboard.core.config import settings
from courseboard.core.errors import NotRankedError
from courseboard.core.scoring import (
    course_comparable_score,
    global_comparable_score,
    progress_percentage,
    quiz_average,
)
from courseboard.models import (
    CourseEnrollment,
    CourseLeaderboardEntry,
    CourseLeaderboardPublic,
    LeaderboardEntry,
    LeaderboardPublic,
    ModuleCompletion,
    QuizAttempt,
    User,
    UserRankingPublic,
)

logger = logging.getLogger(__name__)

EntryT = TypeVar("EntryT", bound=LeaderboardEntry)


def rank_entries(entries: Sequence[EntryT]) -> list[EntryT]:
    """Order entries by score, highest first, ties by ascending user id.

    :param entries: Unranked entries, one per user.
    :return: New entries with rank set to the 1-based position.
    """
    ordered = sorted(entries, key=lambda entry: (-entry.total_score, entry.user_id))
    return [
        entry.model_copy(update={"rank": position})
        for position, entry in enumerate(ordered, start=1)
    ]


def find_position(entries: Sequence[LeaderboardEntry], user_id: str) -> int:
    """Index of a user in a ranking.

    :raises NotRankedError: If the user is not ranked.
    """
    for index, entry in enumerate(entries):
        if entry.user_id == user_id:
            return index
    raise NotRankedError("User not found in rankings")


def window_slice(entries: Sequence[EntryT], index: int, radius: int) -> list[EntryT]:
    """Up to radius entries on each side of index, clamped to the ranking."""
    start = max(0, index - radius)
    end = min(len(entries), index + radius + 1)
    return list(entries[start:end])


async def compute_global_ranking(session: AsyncSession) -> list[LeaderboardEntry]:
    """Rank every active user by global comparable score.

    Only attempts and completions belonging to a current enrollment count.

    :param session: The database session.
    :return: Ranked entries.
    """
    users = (await session.exec(select(User).where(User.is_active))).all()

    enrollment_rows = await session.exec(
        select(CourseEnrollment.user_id, CourseEnrollment.course_id)
    )
    enrolled = {(user_id, course_id) for user_id, course_id in enrollment_rows.all()}

    scores: dict[str, list[float]] = defaultdict(list)
    attempt_rows = await session.exec(
        select(QuizAttempt.user_id, QuizAttempt.course_id, QuizAttempt.score)
    )
    for user_id, course_id, score in attempt_rows.all():
        if (user_id, course_id) in enrolled:
            scores[user_id].append(score)

    completed: dict[str, int] = defaultdict(int)
    completion_rows = await session.exec(
        select(ModuleCompletion.user_id, ModuleCompletion.course_id)
    )
    for user_id, course_id in completion_rows.all():
        if (user_id, course_id) in enrolled:
            completed[user_id] += 1

    entries = {
        user.id: LeaderboardEntry(
            user_id=user.id,
            name=user.display_name,
            total_score=global_comparable_score(scores[user.id]),
            completed_modules=completed[user.id],
        )
        for user in users
    }
    return rank_entries(list(entries.values()))


async def compute_course_ranking(
    session: AsyncSession, course_id: str
) -> list[CourseLeaderboardEntry]:
    """Rank the users enrolled in a course by course comparable score.

    :param session: The database session.
    :param course_id: The ID of the course.
    :raises NotFoundError: If the course does not exist.
    :return: Ranked entries.
    """
    await get_course(session, course_id)
    module_ids = set(await get_course_module_ids(session, course_id))

    member_rows = await session.exec(
        select(User)
        .join(CourseEnrollment, CourseEnrollment.user_id == User.id)
        .where(CourseEnrollment.course_id == course_id)
    )
    members = {user.id: user for user in member_rows.all()}

    scores: dict[str, list[float]] = defaultdict(list)
    attempt_rows = await session.exec(
        select(QuizAttempt.user_id, QuizAttempt.score).where(
            QuizAttempt.course_id == course_id
        )
    )
    for user_id, score in attempt_rows.all():
        scores[user_id].append(score)

    completed: dict[str, set[str]] = defaultdict(set)
    completion_rows = await session.exec(
        select(ModuleCompletion.user_id, ModuleCompletion.module_id).where(
            ModuleCompletion.course_id == course_id
        )
    )
    for user_id, module_id in completion_rows.all():
        if module_id in module_ids:
            completed[user_id].add(module_id)

    entries = []
    for user_id, user in members.items():
        average = quiz_average(scores[user_id])
        completed_count = len(completed[user_id])
        percentage = progress_percentage(completed_count, len(module_ids))
        entries.append(
            CourseLeaderboardEntry(
                user_id=user_id,
                name=user.display_name,
                average_score=average,
                completed_modules=completed_count,
                total_score=course_comparable_score(average, percentage),
            )
        )
    return rank_entries(entries)


async def global_leaderboard(
    session: AsyncSession,
    limit: int = settings.LEADERBOARD_DEFAULT_LIMIT,
    skip: int = 0,
) -> LeaderboardPublic:
    """Page of the global leaderboard.

    :param session: The database session.
    :param limit: Maximum number of entries.
    :param skip: Number of top entries to skip, ranks stay absolute.
    :return: LeaderboardPublic.
    """
    ranking = await compute_global_ranking(session)
    return LeaderboardPublic(entries=ranking[skip : skip + limit], count=len(ranking))


async def course_leaderboard(session: AsyncSession, course_id: str) -> CourseLeaderboardPublic:
    """Full leaderboard of a course.

    :param session: The database session.
    :param course_id: The ID of the course.
    :raises NotFoundError: If the course does not exist.
    :return: CourseLeaderboardPublic.
    """
    ranking = await compute_course_ranking(session, course_id)
    return CourseLeaderboardPublic(course_id=course_id, entries=ranking, count=len(ranking))


async def user_window(
    session: AsyncSession,
    user_id: str,
    course_id: str | None = None,
    radius: int = settings.RANKING_WINDOW_RADIUS,
) -> UserRankingPublic:
    """Neighborhood of a user in the global or a course ranking.

    :param session: The database session.
    :param user_id: The ID of the user.
    :param course_id: Course to rank in, global ranking if omitted.
    :param radius: Entries to show on each side of the user.
    :raises NotFoundError: If the course does not exist.
    :raises NotRankedError: If the user is not part of the ranking.
    :return: UserRankingPublic.
    """
    if course_id is None:
        ranking: Sequence[LeaderboardEntry] = await compute_global_ranking(session)
    else:
        ranking = await compute_course_ranking(session, course_id)

    index = find_position(ranking, user_id)
    neighbors = [
        LeaderboardEntry(
            rank=entry.rank,
            user_id=entry.user_id,
            name=entry.name,
            total_score=entry.total_score,
            completed_modules=entry.completed_modules,
        )
        for entry in window_slice(ranking, index, radius)
    ]
    logger.debug(
        "User %s ranked %d of %d (course %s)", user_id, index + 1, len(ranking), course_id
    )
    return UserRankingPublic(
        user_rank=index + 1, total_users=len(ranking), neighbors=neighbors
    )
