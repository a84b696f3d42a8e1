from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

from courseboard.models import (
    CourseEnrollment,
    ModuleCompletion,
    QuizAttempt,
    User,
    UserCreate,
)


async def create_user(*, session: AsyncSession, user_create: UserCreate) -> User:
    """Function to create a user.

    :param session: The SQLAlchemy session object.
    :param user_create: The user data to create a User.
    :returns: User object.
    """

    db_obj = User.model_validate(user_create)
    session.add(db_obj)
    await session.flush()
    await session.refresh(db_obj)
    return db_obj


async def insert_or_ignore(
    *,
    session: AsyncSession,
    model: type[SQLModel],
    values: dict[str, Any],
    index_elements: list[str],
) -> bool:
    """Insert a row unless one with the same key exists, in a single statement.

    Concurrent callers race inside the database, so at most one of them
    creates the row.

    :param session: The SQLAlchemy session object.
    :param model: Table model to insert into.
    :param values: Column values, defaults of the model are not applied.
    :param index_elements: Columns of the conflicting unique key.
    :returns: True if the row was created, False if it already existed.
    """

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        statement = postgresql_insert(model.__table__)
    elif dialect == "sqlite":
        statement = sqlite_insert(model.__table__)
    else:
        raise NotImplementedError(f"insert_or_ignore is not supported on {dialect}")

    statement = statement.values(**values).on_conflict_do_nothing(
        index_elements=index_elements
    )
    result = await session.exec(statement)
    return result.rowcount > 0


async def get_enrollment(
    *, session: AsyncSession, user_id: str, course_id: str
) -> CourseEnrollment | None:
    """Function to get the enrollment row of a user in a course.

    :param session: The SQLAlchemy session object.
    :param user_id: The user id.
    :param course_id: The course id.
    :returns: CourseEnrollment object or None.
    """

    statement = (
        select(CourseEnrollment)
        .where(
            CourseEnrollment.user_id == user_id,
            CourseEnrollment.course_id == course_id,
        )
        .execution_options(populate_existing=True)
    )
    return (await session.exec(statement)).first()


async def touch_enrollment(
    *,
    session: AsyncSession,
    user_id: str,
    course_id: str,
    module_id: str,
    accessed_at: datetime,
) -> None:
    """Move the current module pointer and last access time of an enrollment.

    :param session: The SQLAlchemy session object.
    :param user_id: The user id.
    :param course_id: The course id.
    :param module_id: Module the user worked on.
    :param accessed_at: Time of the access.
    """

    statement = (
        update(CourseEnrollment)
        .where(
            CourseEnrollment.user_id == user_id,
            CourseEnrollment.course_id == course_id,
        )
        .values(last_accessed_at=accessed_at, current_module_id=module_id)
    )
    await session.exec(statement)
    await session.flush()


async def get_completed_module_ids(
    *, session: AsyncSession, user_id: str, course_id: str
) -> set[str]:
    """Function to get the completed module ids of a progress record.

    :param session: The SQLAlchemy session object.
    :param user_id: The user id.
    :param course_id: The course id.
    :returns: Set of module ids.
    """

    statement = select(ModuleCompletion.module_id).where(
        ModuleCompletion.user_id == user_id,
        ModuleCompletion.course_id == course_id,
    )
    return set((await session.exec(statement)).all())


async def get_attempts(
    *,
    session: AsyncSession,
    user_id: str,
    course_id: str,
    module_id: str | None = None,
) -> list[QuizAttempt]:
    """Function to get quiz attempts of a user in a course, oldest first.

    :param session: The SQLAlchemy session object.
    :param user_id: The user id.
    :param course_id: The course id.
    :param module_id: Optional module filter.
    :returns: List of QuizAttempt objects.
    """

    statement = select(QuizAttempt).where(
        QuizAttempt.user_id == user_id,
        QuizAttempt.course_id == course_id,
    )
    if module_id is not None:
        statement = statement.where(QuizAttempt.module_id == module_id)
    statement = statement.order_by(QuizAttempt.completed_at, QuizAttempt.id)
    return list((await session.exec(statement)).all())
