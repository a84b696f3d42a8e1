import pytest
from sqlalchemy import delete
from sqlmodel.ext.asyncio.session import AsyncSession

from courseboard.core.errors import NotFoundError, NotRankedError
from courseboard.core.progress import enroll, mark_module_complete
from courseboard.core.ranking import course_leaderboard, global_leaderboard, user_window
from courseboard.models import CourseEnrollment, ModuleCompletionPatch
from tests.utils.course import create_random_course
from tests.utils.quiz import add_attempt
from tests.utils.user import create_random_user

pytestmark = pytest.mark.asyncio()


async def test_global_leaderboard_tie_break(db: AsyncSession, create_course) -> None:
    course, modules = create_course
    users = [await create_random_user(db) for _ in range(3)]
    for user, score in zip(users, [90, 90, 70]):
        await enroll(db, user.id, course.id)
        await add_attempt(db, user, course, modules[0], score)

    leaderboard = await global_leaderboard(db, limit=3)

    tied = sorted(u.id for u in users[:2])
    assert [(e.rank, e.user_id) for e in leaderboard.entries] == [
        (1, tied[0]),
        (2, tied[1]),
        (3, users[2].id),
    ]
    assert [e.total_score for e in leaderboard.entries] == [90, 90, 70]
    # the course author is ranked too, with nothing earned
    assert leaderboard.count == 4


async def test_global_score_accumulates_across_courses(
    db: AsyncSession, create_course
) -> None:
    course, modules = create_course
    other_course, other_modules = await create_random_course(db, module_count=1)
    user = await create_random_user(db)
    await enroll(db, user.id, course.id)
    await enroll(db, user.id, other_course.id)
    await add_attempt(db, user, course, modules[0], 40)
    await add_attempt(db, user, course, modules[0], 60)
    await add_attempt(db, user, other_course, other_modules[0], 100)

    leaderboard = await global_leaderboard(db)

    top = leaderboard.entries[0]
    assert top.user_id == user.id
    assert top.total_score == pytest.approx(200)


async def test_global_leaderboard_paging_keeps_absolute_ranks(
    db: AsyncSession, create_course
) -> None:
    course, modules = create_course
    for score in [10, 20, 30, 40, 50]:
        user = await create_random_user(db)
        await enroll(db, user.id, course.id)
        await add_attempt(db, user, course, modules[0], score)

    page = await global_leaderboard(db, limit=2, skip=2)

    assert [e.rank for e in page.entries] == [3, 4]
    assert [e.total_score for e in page.entries] == [30, 20]


async def test_course_leaderboard_only_enrolled(db: AsyncSession, create_course) -> None:
    course, modules = create_course
    member = await create_random_user(db, full_name="Member")
    outsider = await create_random_user(db)
    await enroll(db, member.id, course.id)
    for module in modules[:2]:
        await mark_module_complete(
            db, member.id, course.id, ModuleCompletionPatch(module_id=module.id)
        )
    await add_attempt(db, member, course, modules[0], 50)

    leaderboard = await course_leaderboard(db, course.id)

    assert leaderboard.count == 1
    entry = leaderboard.entries[0]
    assert entry.user_id == member.id
    assert entry.name == "Member"
    assert entry.rank == 1
    assert entry.average_score == pytest.approx(50)
    assert entry.completed_modules == 2
    assert entry.total_score == pytest.approx(50)
    assert outsider.id not in {e.user_id for e in leaderboard.entries}


async def test_course_leaderboard_order(db: AsyncSession, create_course) -> None:
    course, modules = create_course
    low = await create_random_user(db)
    high = await create_random_user(db)
    for user in (low, high):
        await enroll(db, user.id, course.id)
    await add_attempt(db, low, course, modules[0], 20)
    await add_attempt(db, high, course, modules[0], 80)

    leaderboard = await course_leaderboard(db, course.id)

    assert [e.user_id for e in leaderboard.entries] == [high.id, low.id]
    assert leaderboard.entries[0].total_score >= leaderboard.entries[1].total_score


async def test_course_leaderboard_unknown_course(db: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await course_leaderboard(db, "missing")


async def test_user_window_clamped(db: AsyncSession, create_course) -> None:
    """Second of four enrolled users sees ranks 1 to 4."""
    course, modules = create_course
    users = []
    for score in [100, 80, 60, 40]:
        user = await create_random_user(db)
        await enroll(db, user.id, course.id)
        await add_attempt(db, user, course, modules[0], score)
        users.append(user)

    window = await user_window(db, users[1].id, course.id)

    assert window.user_rank == 2
    assert window.total_users == 4
    assert [e.rank for e in window.neighbors] == [1, 2, 3, 4]
    assert users[1].id in {e.user_id for e in window.neighbors}


async def test_user_window_global(db: AsyncSession, create_course) -> None:
    course, modules = create_course
    users = []
    for score in range(15):
        user = await create_random_user(db)
        await enroll(db, user.id, course.id)
        await add_attempt(db, user, course, modules[0], score + 1)
        users.append(user)

    # scores 1..15, the author has 0: the score-8 user is ranked 8th of 16
    window = await user_window(db, users[7].id)

    assert window.user_rank == 8
    assert window.total_users == 16
    assert len(window.neighbors) == 11
    assert [e.rank for e in window.neighbors] == list(range(3, 14))


async def test_user_window_not_enrolled(db: AsyncSession, create_course) -> None:
    course, _ = create_course
    user = await create_random_user(db)

    with pytest.raises(NotRankedError):
        await user_window(db, user.id, course.id)


async def test_global_leaderboard_skips_inactive_users(db: AsyncSession, create_course) -> None:
    course, modules = create_course
    active = await create_random_user(db)
    inactive = await create_random_user(db)
    for user in (active, inactive):
        await enroll(db, user.id, course.id)
        await add_attempt(db, user, course, modules[0], 80)
    inactive.is_active = False
    db.add(inactive)
    await db.flush()

    leaderboard = await global_leaderboard(db)

    user_ids = {entry.user_id for entry in leaderboard.entries}
    assert active.id in user_ids
    assert inactive.id not in user_ids
    with pytest.raises(NotRankedError):
        await user_window(db, inactive.id)


async def test_global_score_drops_courses_left(db: AsyncSession, create_course) -> None:
    course, modules = create_course
    other_course, other_modules = await create_random_course(db)
    user = await create_random_user(db)
    await enroll(db, user.id, course.id)
    await enroll(db, user.id, other_course.id)
    await add_attempt(db, user, course, modules[0], 60)
    await add_attempt(db, user, other_course, other_modules[0], 90)

    await db.exec(
        delete(CourseEnrollment).where(
            CourseEnrollment.user_id == user.id,
            CourseEnrollment.course_id == other_course.id,
        )
    )

    leaderboard = await global_leaderboard(db)

    entry = next(e for e in leaderboard.entries if e.user_id == user.id)
    assert entry.total_score == pytest.approx(60)


async def test_leaderboard_names_never_show_email(db: AsyncSession, create_course) -> None:
    course, modules = create_course
    user = await create_random_user(db)
    await enroll(db, user.id, course.id)
    await add_attempt(db, user, course, modules[0], 50)

    global_entries = (await global_leaderboard(db)).entries
    course_entries = (await course_leaderboard(db, course.id)).entries

    entry = next(e for e in global_entries if e.user_id == user.id)
    assert entry.name == f"Learner {user.id[-6:]}"
    for e in [*global_entries, *course_entries]:
        assert "@" not in e.name
