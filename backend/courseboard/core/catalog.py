"""
Read-only access to the course catalog and the two quiz views built from it.
"""
import random

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from courseboard.core.errors import InvalidModuleError, NotFoundError
from courseboard.models import (
    Course,
    Module,
    QuizChoicePublic,
    QuizLearnerView,
    QuizQuestionPublic,
    QuizSpec,
    User,
    UserRole,
)


async def get_course(session: AsyncSession, course_id: str) -> Course:
    """Retrieve a Course by its ID.

    :param session: The database session.
    :param course_id: The ID of the course.
    :raises NotFoundError: If the course does not exist.
    :return: The Course object.
    """
    course = await session.get(Course, course_id)
    if not course:
        raise NotFoundError("Course not found")
    return course


async def get_course_module_ids(session: AsyncSession, course_id: str) -> list[str]:
    """Retrieve the module ids of a course in module order.

    :param session: The database session.
    :param course_id: The ID of the course.
    :return: Ordered list of module ids.
    """
    statement = (
        select(Module.id).where(Module.course_id == course_id).order_by(Module.order)
    )
    return list((await session.exec(statement)).all())


async def get_module(session: AsyncSession, course_id: str, module_id: str) -> Module:
    """Retrieve a module of a course.

    :param session: The database session.
    :param course_id: The ID of the course the module must belong to.
    :param module_id: The ID of the module.
    :raises InvalidModuleError: If the module is not part of the course.
    :return: The Module object.
    """
    module = await session.get(Module, module_id)
    if not module or module.course_id != course_id:
        raise InvalidModuleError(
            f"Module {module_id} does not belong to course {course_id}"
        )
    return module


async def get_quiz_spec(session: AsyncSession, course_id: str, module_id: str) -> QuizSpec:
    """Retrieve the quiz specification of a module.

    :param session: The database session.
    :param course_id: The ID of the course.
    :param module_id: The ID of the module.
    :raises NotFoundError: If the course does not exist or the module has no quiz.
    :raises InvalidModuleError: If the module is not part of the course.
    :return: A validated QuizSpec, detached from the stored JSON. Its id is
        the stored one, or the module id when the stored quiz has none.
    """
    await get_course(session, course_id)
    module = await get_module(session, course_id, module_id)
    if not module.quiz:
        raise NotFoundError("Quiz not found")
    # quizzes stored without an id are identified by their module
    return QuizSpec.model_validate({"id": module.id, **module.quiz})


def can_view_answer_key(user: User, course: Course) -> bool:
    return user.role in (UserRole.INSTRUCTOR.value, UserRole.ADMIN.value) or (
        course.author_id == user.id
    )


def author_view(quiz: QuizSpec) -> QuizSpec:
    """Full quiz including answer keys, as a copy."""
    return quiz.model_copy(deep=True)


def learner_view(quiz: QuizSpec, rng: random.Random | None = None) -> QuizLearnerView:
    """Quiz without answer keys or explanations.

    Questions and choices are shuffled when the quiz asks for it. Grading
    matches on ids, so the served order does not matter.

    :param quiz: The quiz specification, left untouched.
    :param rng: Random generator used for shuffling.
    :return: QuizLearnerView.
    """
    rng = rng or random.Random()

    questions = []
    for question in quiz.questions:
        choices = [QuizChoicePublic(id=c.id, text=c.text) for c in question.choices]
        if quiz.shuffle_choices:
            rng.shuffle(choices)
        questions.append(
            QuizQuestionPublic(
                id=question.id,
                text=question.text,
                points=question.points,
                choices=choices,
            )
        )
    if quiz.shuffle_questions:
        rng.shuffle(questions)

    return QuizLearnerView(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        time_limit=quiz.time_limit,
        passing_score=quiz.passing_score,
        questions=questions,
    )
