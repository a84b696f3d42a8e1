import random

from courseboard.core.catalog import author_view, learner_view
from tests.utils.quiz import make_quiz


def test_learner_view_strips_answer_key() -> None:
    quiz = make_quiz(question_count=2)

    view = learner_view(quiz)

    dumped = view.model_dump()
    assert [q["id"] for q in dumped["questions"]] == ["q0", "q1"]
    for question in dumped["questions"]:
        for choice in question["choices"]:
            assert set(choice) == {"id", "text"}


def test_learner_view_shuffles_without_touching_quiz() -> None:
    quiz = make_quiz(question_count=6, shuffle_questions=True, shuffle_choices=True)
    before = quiz.model_dump()

    view = learner_view(quiz, rng=random.Random(3))

    assert quiz.model_dump() == before
    assert sorted(q.id for q in view.questions) == [q.id for q in quiz.questions]
    for question in view.questions:
        assert sorted(c.id for c in question.choices) == sorted(
            c.id for c in quiz.get_question(question.id).choices
        )


def test_author_view_keeps_answer_key() -> None:
    quiz = make_quiz(question_count=2)

    view = author_view(quiz)

    assert view == quiz
    assert view is not quiz
    assert view.questions[0].correct_choice.id == "q0-a"
