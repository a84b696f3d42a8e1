"""
Module quizzes: served views, submissions and attempt history of the current user.
"""
from typing import Any

from fastapi import APIRouter

from courseboard.api.deps import CurrentUser, SessionDep
from courseboard.core.catalog import (
    author_view,
    can_view_answer_key,
    get_course,
    get_quiz_spec,
    learner_view,
)
from courseboard.core.grading import list_attempts, submit_quiz
from courseboard.models import (
    QuizAttemptsPublic,
    QuizLearnerView,
    QuizResultPublic,
    QuizSpec,
    QuizSubmission,
)

router = APIRouter(
    prefix="/courses/{course_id}/modules/{module_id}/quiz", tags=["quizzes"]
)


@router.get("/", response_model=None)
async def read_quiz_route(
    session: SessionDep, current_user: CurrentUser, course_id: str, module_id: str
) -> QuizSpec | QuizLearnerView:
    """
    Quiz of a module. Answer keys are only shown to instructors, admins and the course author.
    """
    course = await get_course(session, course_id)
    quiz = await get_quiz_spec(session, course_id, module_id)
    if can_view_answer_key(current_user, course):
        return author_view(quiz)
    return learner_view(quiz)


@router.post("/submit", response_model=QuizResultPublic)
async def submit_quiz_route(
    session: SessionDep,
    current_user: CurrentUser,
    course_id: str,
    module_id: str,
    submission: QuizSubmission,
) -> Any:
    """
    Submit answers. Every submission is graded and kept as a new attempt.
    """
    return await submit_quiz(
        session=session,
        user_id=current_user.id,
        course_id=course_id,
        module_id=module_id,
        submission=submission,
    )


@router.get("/attempts", response_model=QuizAttemptsPublic)
async def read_attempts_route(
    session: SessionDep, current_user: CurrentUser, course_id: str, module_id: str
) -> Any:
    """
    Attempts of the current user on this quiz, oldest first.
    """
    return await list_attempts(
        session=session, user_id=current_user.id, course_id=course_id, module_id=module_id
    )
