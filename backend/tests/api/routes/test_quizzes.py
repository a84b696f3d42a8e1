import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from courseboard.core.config import settings
from courseboard.models import QuizSpec, UserRole
from tests.utils.user import create_random_user, user_authentication_headers


pytestmark = pytest.mark.asyncio()


async def _enrolled_headers(client: AsyncClient, db: AsyncSession, course) -> dict[str, str]:
    user = await create_random_user(db)
    headers = user_authentication_headers(user)
    response = await client.post(
        f"{settings.API_V1_STR}/courses/{course.id}/enroll", headers=headers
    )
    assert response.status_code == 201
    return headers


async def test_read_quiz_learner_view(
    client_with_test_db: AsyncClient, db: AsyncSession, create_course
) -> None:
    """
    Students get the quiz without answer keys.
    """
    course, modules = create_course
    user = await create_random_user(db)

    response = await client_with_test_db.get(
        f"{settings.API_V1_STR}/courses/{course.id}/modules/{modules[0].id}/quiz/",
        headers=user_authentication_headers(user),
    )

    assert response.status_code == 200
    content = response.json()
    assert len(content["questions"]) == 2
    for question in content["questions"]:
        for choice in question["choices"]:
            assert "is_correct" not in choice


async def test_read_quiz_author_view(
    client_with_test_db: AsyncClient, db: AsyncSession, create_course
) -> None:
    course, modules = create_course
    instructor = await create_random_user(db, role=UserRole.INSTRUCTOR)

    response = await client_with_test_db.get(
        f"{settings.API_V1_STR}/courses/{course.id}/modules/{modules[0].id}/quiz/",
        headers=user_authentication_headers(instructor),
    )

    assert response.status_code == 200
    content = response.json()
    correct = [c for c in content["questions"][0]["choices"] if c["is_correct"]]
    assert len(correct) == 1


async def test_read_quiz_module_of_other_course(
    client_with_test_db: AsyncClient, db: AsyncSession, create_course
) -> None:
    course, _ = create_course
    user = await create_random_user(db)

    response = await client_with_test_db.get(
        f"{settings.API_V1_STR}/courses/{course.id}/modules/unknown/quiz/",
        headers=user_authentication_headers(user),
    )

    assert response.status_code == 400


async def test_submit_quiz(
    client_with_test_db: AsyncClient, db: AsyncSession, create_course
) -> None:
    """
    Submitting one right and one wrong answer scores 50 and reports each question.
    """
    course, modules = create_course
    headers = await _enrolled_headers(client_with_test_db, db, course)
    quiz = QuizSpec.model_validate(modules[0].quiz)
    first, second = quiz.questions

    response = await client_with_test_db.post(
        f"{settings.API_V1_STR}/courses/{course.id}/modules/{modules[0].id}/quiz/submit",
        headers=headers,
        json={
            "answers": [
                {"question_id": second.id, "choice_id": f"{second.id}-c"},
                {"question_id": first.id, "choice_id": first.correct_choice.id},
            ],
            "elapsed_seconds": 42,
        },
    )

    assert response.status_code == 200
    content = response.json()
    assert content["score"] == pytest.approx(50)
    assert content["total_questions"] == 2
    assert content["timed_out"] is False
    per_question = {q["question_id"]: q for q in content["per_question"]}
    assert per_question[first.id]["correct"] is True
    assert per_question[second.id]["correct"] is False
    assert per_question[second.id]["correct_choice_id"] == second.correct_choice.id
    assert per_question[second.id]["selected_choice_id"] == f"{second.id}-c"


async def test_submit_quiz_timed_out(
    client_with_test_db: AsyncClient, db: AsyncSession, create_course
) -> None:
    course, modules = create_course
    headers = await _enrolled_headers(client_with_test_db, db, course)
    quiz = QuizSpec.model_validate(modules[0].quiz)

    response = await client_with_test_db.post(
        f"{settings.API_V1_STR}/courses/{course.id}/modules/{modules[0].id}/quiz/submit",
        headers=headers,
        json={
            "answers": [],
            "elapsed_seconds": quiz.time_limit * 60 + settings.QUIZ_TIME_GRACE_SECONDS + 1,
        },
    )

    assert response.status_code == 200
    assert response.json()["timed_out"] is True


async def test_submit_quiz_unknown_question(
    client_with_test_db: AsyncClient, db: AsyncSession, create_course
) -> None:
    course, modules = create_course
    headers = await _enrolled_headers(client_with_test_db, db, course)

    response = await client_with_test_db.post(
        f"{settings.API_V1_STR}/courses/{course.id}/modules/{modules[0].id}/quiz/submit",
        headers=headers,
        json={"answers": [{"question_id": "nope", "choice_id": "x"}]},
    )

    assert response.status_code == 422
    assert "nope" in response.json()["detail"]


async def test_submit_quiz_not_enrolled(
    client_with_test_db: AsyncClient, db: AsyncSession, create_course
) -> None:
    course, modules = create_course
    user = await create_random_user(db)

    response = await client_with_test_db.post(
        f"{settings.API_V1_STR}/courses/{course.id}/modules/{modules[0].id}/quiz/submit",
        headers=user_authentication_headers(user),
        json={"answers": []},
    )

    assert response.status_code == 404


async def test_read_attempts(
    client_with_test_db: AsyncClient, db: AsyncSession, create_course
) -> None:
    course, modules = create_course
    headers = await _enrolled_headers(client_with_test_db, db, course)
    url = f"{settings.API_V1_STR}/courses/{course.id}/modules/{modules[0].id}/quiz"

    for _ in range(2):
        await client_with_test_db.post(f"{url}/submit", headers=headers, json={"answers": []})
    response = await client_with_test_db.get(f"{url}/attempts", headers=headers)

    assert response.status_code == 200
    content = response.json()
    assert content["count"] == 2
    assert all(a["module_id"] == modules[0].id for a in content["data"])
