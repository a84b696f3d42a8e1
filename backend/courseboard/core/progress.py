import logging
from collections.abc import Sequence

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from courseboard import crud
from courseboard.core.catalog import get_course, get_course_module_ids, get_module
from courseboard.core.errors import AlreadyEnrolledError, NotEnrolledError, NotFoundError
from courseboard.core.scoring import (
    course_comparable_score,
    progress_percentage,
    quiz_average,
    summarize_modules,
)
from courseboard.models import (
    CourseEnrollment,
    ModuleCompletion,
    ModuleCompletionPatch,
    ModuleCompletionPublic,
    ProgressPublic,
    ProgressesPublic,
    QuizAttempt,
    QuizScoreSummary,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)


async def require_enrollment(
    session: AsyncSession, user_id: str, course_id: str
) -> CourseEnrollment:
    """Load the enrollment of a user or fail.

    :param session: The database session.
    :param user_id: The ID of the user.
    :param course_id: The ID of the course.
    :raises NotEnrolledError: If the user is not enrolled.
    :return: The CourseEnrollment object.
    """
    enrollment = await crud.get_enrollment(
        session=session, user_id=user_id, course_id=course_id
    )
    if not enrollment:
        raise NotEnrolledError(f"User {user_id} is not enrolled in course {course_id}")
    return enrollment


async def enroll(session: AsyncSession, user_id: str, course_id: str) -> ProgressPublic:
    """Enroll a user in a course, creating an empty progress record.

    The enrollment row is inserted with insert-or-ignore, so two concurrent
    calls create one record and the loser gets AlreadyEnrolledError.

    :param session: The database session.
    :param user_id: The ID of the user to enroll.
    :param course_id: The ID of the course.
    :raises NotFoundError: If the course or the user does not exist.
    :raises AlreadyEnrolledError: If the user is already enrolled.
    :return: The new progress record.
    """
    await get_course(session, course_id)
    if not await session.get(User, user_id):
        raise NotFoundError("User not found")

    now = utcnow()
    created = await crud.insert_or_ignore(
        session=session,
        model=CourseEnrollment,
        values={
            "course_id": course_id,
            "user_id": user_id,
            "enrolled_at": now,
            "last_accessed_at": now,
            "current_module_id": None,
        },
        index_elements=["course_id", "user_id"],
    )
    if not created:
        raise AlreadyEnrolledError("User already enrolled in this course")

    logger.info("User %s enrolled in course %s", user_id, course_id)
    return await get_progress(session, user_id, course_id)


async def mark_module_complete(
    session: AsyncSession,
    user_id: str,
    course_id: str,
    patch: ModuleCompletionPatch,
) -> ModuleCompletionPublic:
    """Mark a module of a course as completed. Repeating the call is a no-op.

    :param session: The database session.
    :param user_id: The ID of the user.
    :param course_id: The ID of the course.
    :param patch: ModuleCompletionPatch naming the module.
    :raises NotFoundError: If the course does not exist.
    :raises NotEnrolledError: If the user is not enrolled.
    :raises InvalidModuleError: If the module is not part of the course.
    :return: Completed modules and progress percentage after the update.
    """
    await get_course(session, course_id)
    await require_enrollment(session, user_id, course_id)
    await get_module(session, course_id, patch.module_id)

    now = utcnow()
    created = await crud.insert_or_ignore(
        session=session,
        model=ModuleCompletion,
        values={
            "user_id": user_id,
            "course_id": course_id,
            "module_id": patch.module_id,
            "completed_at": now,
        },
        index_elements=["user_id", "course_id", "module_id"],
    )
    if created:
        logger.info(
            "User %s completed module %s of course %s", user_id, patch.module_id, course_id
        )
    else:
        logger.debug("Module %s already completed by user %s", patch.module_id, user_id)

    await crud.touch_enrollment(
        session=session,
        user_id=user_id,
        course_id=course_id,
        module_id=patch.module_id,
        accessed_at=now,
    )

    module_ids = await get_course_module_ids(session, course_id)
    completed = await crud.get_completed_module_ids(
        session=session, user_id=user_id, course_id=course_id
    )
    completed_modules = [module_id for module_id in module_ids if module_id in completed]
    return ModuleCompletionPublic(
        completed_modules=completed_modules,
        progress_percentage=progress_percentage(len(completed_modules), len(module_ids)),
    )


def build_progress(
    enrollment: CourseEnrollment,
    module_ids: Sequence[str],
    completed: set[str],
    attempts: Sequence[QuizAttempt],
) -> ProgressPublic:
    """Assemble a progress record with its derived figures.

    Completions of modules no longer in the course are ignored, so the
    completed set stays a subset of the course modules.
    """
    completed_modules = [module_id for module_id in module_ids if module_id in completed]
    percentage = progress_percentage(len(completed_modules), len(module_ids))
    average = quiz_average([attempt.score for attempt in attempts])

    return ProgressPublic(
        user_id=enrollment.user_id,
        course_id=enrollment.course_id,
        completed_modules=completed_modules,
        quiz_scores=[
            QuizScoreSummary(
                attempt_id=attempt.id,
                module_id=attempt.module_id,
                score=attempt.score,
                timed_out=attempt.timed_out,
                completed_at=attempt.completed_at,
            )
            for attempt in attempts
        ],
        module_scores=summarize_modules(attempts),
        enrolled_at=enrollment.enrolled_at,
        last_accessed_at=enrollment.last_accessed_at,
        current_module_id=enrollment.current_module_id,
        total_modules=len(module_ids),
        progress_percentage=percentage,
        quiz_average=average,
        comparable_score=course_comparable_score(average, percentage),
    )


async def get_progress(session: AsyncSession, user_id: str, course_id: str) -> ProgressPublic:
    """Retrieve the progress record of a user in a course.

    :param session: The database session.
    :param user_id: The ID of the user.
    :param course_id: The ID of the course.
    :raises NotFoundError: If the course does not exist.
    :raises NotEnrolledError: If the user is not enrolled.
    :return: ProgressPublic.
    """
    await get_course(session, course_id)
    enrollment = await require_enrollment(session, user_id, course_id)
    module_ids = await get_course_module_ids(session, course_id)
    completed = await crud.get_completed_module_ids(
        session=session, user_id=user_id, course_id=course_id
    )
    attempts = await crud.get_attempts(session=session, user_id=user_id, course_id=course_id)
    return build_progress(enrollment, module_ids, completed, attempts)


async def list_enrollments(session: AsyncSession, user_id: str) -> ProgressesPublic:
    """Retrieve the progress records of all courses a user is enrolled in.

    :param session: The database session.
    :param user_id: The ID of the user.
    :return: ProgressesPublic, oldest enrollment first.
    """
    statement = (
        select(CourseEnrollment.course_id)
        .where(CourseEnrollment.user_id == user_id)
        .order_by(CourseEnrollment.enrolled_at, CourseEnrollment.course_id)
    )
    course_ids = (await session.exec(statement)).all()
    data = [await get_progress(session, user_id, course_id) for course_id in course_ids]
    return ProgressesPublic(data=data, count=len(data))
