"""
Comparable scores. Everything here is pure and recomputed on every read,
nothing is stored.

Course scores are a 0-100 blend, global scores an accumulating sum. The two
scales are not interchangeable and must never be sorted against each other.
"""
from collections.abc import Iterable, Sequence

from courseboard.models import ModuleScoreSummary, QuizAttempt

QUIZ_WEIGHT = 0.7
COMPLETION_WEIGHT = 0.3


def progress_percentage(completed: int, total: int) -> float:
    """100 * completed / total, 0 for a course without modules."""
    if total <= 0:
        return 0.0
    return min(100.0, max(0.0, 100.0 * completed / total))


def quiz_average(scores: Sequence[float]) -> float:
    """Mean of raw attempt scores, 0 without attempts."""
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def course_comparable_score(average: float, percentage: float) -> float:
    """Per-course score on a 0-100 scale.

    :param average: Quiz average, 0-100.
    :param percentage: Progress percentage, 0-100.
    """
    return QUIZ_WEIGHT * average + COMPLETION_WEIGHT * percentage


def global_comparable_score(scores: Iterable[float]) -> float:
    """Sum of raw attempt scores over all enrolled courses."""
    return float(sum(scores))


def best_score(scores: Sequence[float]) -> float:
    return max(scores) if scores else 0.0


def latest_score(scores: Sequence[float]) -> float:
    return scores[-1] if scores else 0.0


def summarize_modules(attempts: Sequence[QuizAttempt]) -> list[ModuleScoreSummary]:
    """Best and latest score per module.

    :param attempts: Attempts oldest first.
    :return: One summary per attempted module, in order of first attempt.
    """
    by_module: dict[str, list[float]] = {}
    for attempt in attempts:
        by_module.setdefault(attempt.module_id, []).append(attempt.score)

    return [
        ModuleScoreSummary(
            module_id=module_id,
            attempts=len(scores),
            best_score=best_score(scores),
            latest_score=latest_score(scores),
        )
        for module_id, scores in by_module.items()
    ]
