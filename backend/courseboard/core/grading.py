import logging
from collections.abc import Sequence
from datetime import timedelta

from sqlmodel.ext.asyncio.session import AsyncSession

from courseboard import crud
from courseboard.core.catalog import get_course, get_module, get_quiz_spec
from courseboard.core.config import settings
from courseboard.core.errors import InvalidSubmissionError
from courseboard.core.progress import require_enrollment
from courseboard.models import (
    GradedQuiz,
    QuestionResult,
    QuizAnswer,
    QuizAttempt,
    QuizAttemptPublic,
    QuizAttemptsPublic,
    QuizResultPublic,
    QuizSpec,
    QuizSubmission,
    utcnow,
)

logger = logging.getLogger(__name__)

# longest claimed duration used to back-date started_at
MAX_RECORDED_ELAPSED_SECONDS = 7 * 24 * 60 * 60


def grade(
    quiz: QuizSpec,
    answers: Sequence[QuizAnswer],
    elapsed_seconds: float = 0,
    grace_seconds: float = 0,
) -> GradedQuiz:
    """Grade answers against the answer key of a quiz.

    Answers are matched on question and choice ids, not positions. An
    unanswered question, or an answer naming an unknown choice, is incorrect.
    Questions weigh their points; the score is 100 * earned / possible. A
    late submission is still graded and only flagged as timed out.

    :param quiz: The quiz specification, read only.
    :param answers: Submitted answers in any order.
    :param elapsed_seconds: Time the learner spent.
    :param grace_seconds: Time tolerated past the limit.
    :raises InvalidSubmissionError: If an answer names a question outside the
        quiz or a question is answered twice.
    :return: GradedQuiz.
    """
    selected: dict[str, str | None] = {}
    for answer in answers:
        if quiz.get_question(answer.question_id) is None:
            raise InvalidSubmissionError(
                f"Question {answer.question_id} is not part of quiz {quiz.id}"
            )
        if answer.question_id in selected:
            raise InvalidSubmissionError(
                f"Question {answer.question_id} answered more than once"
            )
        selected[answer.question_id] = answer.choice_id

    results = []
    points_earned = 0.0
    points_possible = 0.0
    correct_count = 0
    for question in quiz.questions:
        choice_id = selected.get(question.id)
        chosen = question.get_choice(choice_id)
        correct_choice = question.correct_choice
        correct = choice_id is not None and choice_id == correct_choice.id

        points_possible += question.points
        if correct:
            points_earned += question.points
            correct_count += 1

        results.append(
            QuestionResult(
                question_id=question.id,
                question_text=question.text,
                correct=correct,
                selected_choice_id=choice_id,
                selected_choice_text=chosen.text if chosen else None,
                correct_choice_id=correct_choice.id,
                correct_choice_text=correct_choice.text,
                points=question.points if correct else 0,
            )
        )

    if points_possible > 0:
        score = 100 * points_earned / points_possible
    elif quiz.questions:
        # every question is worth zero points, fall back to counting
        score = 100 * correct_count / len(quiz.questions)
    else:
        score = 0.0

    return GradedQuiz(
        quiz_id=quiz.id,
        score=score,
        points_earned=points_earned,
        points_possible=points_possible,
        correct_count=correct_count,
        total_questions=len(quiz.questions),
        timed_out=elapsed_seconds > quiz.time_limit_seconds + grace_seconds,
        passed=score >= quiz.passing_score,
        results=results,
    )


async def submit_quiz(
    session: AsyncSession,
    user_id: str,
    course_id: str,
    module_id: str,
    submission: QuizSubmission,
) -> QuizResultPublic:
    """Grade a submission and append it to the user's progress record.

    Re-attempts are allowed and every attempt is kept. Attempts are plain
    inserts, so concurrent submissions need no lock. The claimed elapsed time
    is stored as given; started_at is back-dated by at most a week.

    :param session: The database session.
    :param user_id: The ID of the submitting user.
    :param course_id: The ID of the course.
    :param module_id: The ID of the module holding the quiz.
    :param submission: QuizSubmission with answers and elapsed time.
    :raises NotFoundError: If the course does not exist or the module has no quiz.
    :raises NotEnrolledError: If the user is not enrolled.
    :raises InvalidModuleError: If the module is not part of the course.
    :raises InvalidSubmissionError: If an answer names an unknown question.
    :return: QuizResultPublic.
    """
    await get_course(session, course_id)
    await require_enrollment(session, user_id, course_id)
    quiz = await get_quiz_spec(session, course_id, module_id)

    graded = grade(
        quiz,
        submission.answers,
        elapsed_seconds=submission.elapsed_seconds,
        grace_seconds=settings.QUIZ_TIME_GRACE_SECONDS,
    )

    completed_at = utcnow()
    recorded_elapsed = min(submission.elapsed_seconds, MAX_RECORDED_ELAPSED_SECONDS)
    attempt = QuizAttempt(
        user_id=user_id,
        course_id=course_id,
        module_id=module_id,
        quiz_id=graded.quiz_id,
        answers=graded.attempt_answers(),
        score=graded.score,
        points_earned=graded.points_earned,
        points_possible=graded.points_possible,
        started_at=completed_at - timedelta(seconds=recorded_elapsed),
        completed_at=completed_at,
        elapsed_seconds=submission.elapsed_seconds,
        timed_out=graded.timed_out,
        completed=True,
        passed=graded.passed,
    )
    session.add(attempt)
    await session.flush()

    await crud.touch_enrollment(
        session=session,
        user_id=user_id,
        course_id=course_id,
        module_id=module_id,
        accessed_at=completed_at,
    )

    if graded.timed_out:
        logger.warning(
            "Attempt %s of user %s on quiz %s ran over time (%.0fs, limit %d min)",
            attempt.id,
            user_id,
            quiz.id,
            submission.elapsed_seconds,
            quiz.time_limit,
        )
    logger.info(
        "User %s scored %.1f on quiz %s of module %s", user_id, graded.score, quiz.id, module_id
    )

    return QuizResultPublic(
        attempt_id=attempt.id,
        score=graded.score,
        total_questions=graded.total_questions,
        correct_count=graded.correct_count,
        timed_out=graded.timed_out,
        passed=graded.passed,
        per_question=graded.results,
    )


async def list_attempts(
    session: AsyncSession,
    user_id: str,
    course_id: str,
    module_id: str | None = None,
) -> QuizAttemptsPublic:
    """Retrieve the attempts of a user, oldest first.

    :param session: The database session.
    :param user_id: The ID of the user.
    :param course_id: The ID of the course.
    :param module_id: Optional module to restrict to.
    :raises NotEnrolledError: If the user is not enrolled.
    :return: QuizAttemptsPublic.
    """
    await get_course(session, course_id)
    await require_enrollment(session, user_id, course_id)
    if module_id is not None:
        await get_module(session, course_id, module_id)

    attempts = await crud.get_attempts(
        session=session, user_id=user_id, course_id=course_id, module_id=module_id
    )
    data = [
        QuizAttemptPublic(
            id=attempt.id,
            module_id=attempt.module_id,
            quiz_id=attempt.quiz_id,
            score=attempt.score,
            timed_out=attempt.timed_out,
            passed=attempt.passed,
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            answers=attempt.answers,
        )
        for attempt in attempts
    ]
    return QuizAttemptsPublic(data=data, count=len(data))
