from uuid_extensions import uuid7str
from enum import Enum
from datetime import datetime, timezone
from typing import Any

from pydantic import EmailStr, model_validator
from sqlmodel import Field, SQLModel
from sqlalchemy import JSON, Column, String, CheckConstraint, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB


JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    """Enum for user roles. Only instructors and admins see quiz answer keys."""

    STUDENT: str = "student"
    INSTRUCTOR: str = "instructor"
    ADMIN: str = "admin"


# Shared properties
class UserBase(SQLModel):
    """Base model for user entities containing common attributes.

    Attributes:
        email: Unique email address with maximum length 255 characters.
        is_active: Boolean indicating user account status.
        full_name: Optional full name of the user with maximum length 255.
        role: student/instructor/admin, student is default.
    """

    email: EmailStr = Field(unique=True, index=True, max_length=255)
    is_active: bool = True
    full_name: str | None = Field(default=None, max_length=255)
    role: UserRole = UserRole.STUDENT


# Properties to receive on creation
class UserCreate(UserBase):
    """Model for user creation. Inherits from UserBase."""

    pass


# Database model, database table inferred from class name
class User(UserBase, table=True):
    """Database representation of a user entity. Inherits from UserBase.

    Users are owned by the identity subsystem, the engine only reads them.

    Attributes:
        id: Unique identifier for the user.
        role: Role string, checked against the known roles.
    """

    __tablename__ = "user"
    id: str = Field(default_factory=uuid7str, primary_key=True)
    role: str = Field(
        default=UserRole.STUDENT.value,
        sa_column=Column(
            "role",
            String,
            CheckConstraint(
                "role IN ('student', 'instructor', 'admin')",
                name="valid_user_role",
            ),
            nullable=False,
        ),
    )

    @property
    def display_name(self) -> str:
        """Name shown on leaderboards. Never the email address."""
        return self.full_name or f"Learner {self.id[-6:]}"


# Properties to return via API, id is always required
class UserPublic(UserBase):
    """Public user data model for API responses. Inherits from UserBase.

    Attributes:
        id: Unique identifier for the user.
    """

    id: str


# Contents of JWT token
class TokenPayload(SQLModel):
    """JWT token payload validation model.

    Attributes:
        sub: Optional User identifier.
    """

    sub: str | None = None


class CourseBase(SQLModel):
    """Base model for courses.

    Attributes:
        title: Title of the course.
        description: Optional description of the course.
    """
    title: str
    description: str | None = None


class Course(CourseBase, table=True):
    """Database model for a Course. Inherits from CourseBase.

    Attributes:
        id: Unique identifier for the course.
        author_id: Unique identifier for the user who created the course.
    """
    __tablename__ = "course"
    id: str = Field(default_factory=uuid7str, primary_key=True)
    author_id: str = Field(foreign_key="user.id")


class ModuleBase(SQLModel):
    """Base model for modules.

    Attributes:
        title: Title of the module.
        order: Position of the module in the course.
    """
    title: str
    order: int


class Module(ModuleBase, table=True):
    """Database model for a Module. Inherits from ModuleBase.

    Attributes:
        id: Unique identifier for the module.
        course_id: Unique identifier for the course.
        quiz: Optional quiz specification stored as JSON, see QuizSpec.
    """
    __table_args__ = (UniqueConstraint("course_id", "order", name="unique_module_order_per_course"),)
    __tablename__ = "module"
    id: str = Field(default_factory=uuid7str, primary_key=True)
    course_id: str = Field(foreign_key="course.id", nullable=False, ondelete="CASCADE", index=True)
    quiz: dict[str, Any] | None = Field(default=None, sa_column=Column(JSONType, nullable=True))


class QuizChoice(SQLModel):
    """One selectable answer of a question.

    Attributes:
        id: Stable choice id, grading matches on it.
        text: Text shown to the learner.
        is_correct: True for the single correct choice of the question.
    """

    id: str
    text: str
    is_correct: bool = False


class QuizQuestion(SQLModel):
    """A question with its choices and point value.

    Attributes:
        id: Stable question id.
        text: Question text.
        explanation: Optional explanation shown to authors.
        points: Points the question is worth, 1 by default.
        choices: Choices of the question, exactly one is correct.
    """

    id: str
    text: str
    explanation: str | None = None
    points: float = Field(default=1, ge=0)
    choices: list[QuizChoice] = Field(default_factory=list)

    @property
    def correct_choice(self) -> QuizChoice:
        return next(choice for choice in self.choices if choice.is_correct)

    def get_choice(self, choice_id: str | None) -> QuizChoice | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class QuizSpec(SQLModel):
    """Quiz specification attached to a module.

    Produced by the authoring side and trusted here: at least one question,
    at least two choices per question, exactly one correct choice.

    Attributes:
        id: Quiz id, recorded on every attempt.
        title: Title of the quiz.
        description: Optional description.
        time_limit: Time limit in minutes.
        passing_score: Score (0-100) needed to pass.
        shuffle_questions: Serve questions in random order to learners.
        shuffle_choices: Serve choices in random order to learners.
        questions: Ordered questions of the quiz.
    """

    id: str
    title: str
    description: str | None = None
    time_limit: int = Field(ge=1)
    passing_score: float = Field(default=70, ge=0, le=100)
    shuffle_questions: bool = False
    shuffle_choices: bool = False
    questions: list[QuizQuestion] = Field(default_factory=list)

    @property
    def time_limit_seconds(self) -> int:
        return self.time_limit * 60

    def get_question(self, question_id: str) -> QuizQuestion | None:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class QuizChoicePublic(SQLModel):
    """Choice as served to learners, without the correctness marker."""

    id: str
    text: str


class QuizQuestionPublic(SQLModel):
    """Question as served to learners."""

    id: str
    text: str
    points: float
    choices: list[QuizChoicePublic]


class QuizLearnerView(SQLModel):
    """Quiz as served to learners, answer keys stripped.

    Attributes:
        id: Quiz id.
        title: Title of the quiz.
        description: Optional description.
        time_limit: Time limit in minutes.
        passing_score: Score (0-100) needed to pass.
        questions: Questions in the order they are served.
    """

    id: str
    title: str
    description: str | None = None
    time_limit: int
    passing_score: float
    questions: list[QuizQuestionPublic]


# Join table: Course <-> User (enrollments)
class CourseEnrollment(SQLModel, table=True):
    """Enrollment row, the root of a progress record.

    A single row is both the course's membership entry and the user's, so the
    two sides cannot diverge.

    Attributes:
        course_id: Foreign key to the course.
        user_id: Foreign key to the user.
        enrolled_at: Timestamp of the enrollment.
        last_accessed_at: Timestamp of the last completion or submission.
        current_module_id: Module the user touched last.
    """

    __tablename__ = "courseenrollment"
    course_id: str = Field(foreign_key="course.id", primary_key=True, ondelete="CASCADE")
    user_id: str = Field(foreign_key="user.id", primary_key=True, ondelete="CASCADE")
    enrolled_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: datetime = Field(default_factory=utcnow)
    current_module_id: str | None = Field(default=None, foreign_key="module.id")


class ModuleCompletion(SQLModel, table=True):
    """Completed module of a progress record. The primary key keeps the set free of duplicates.

    Attributes:
        user_id: Unique identifier for the user.
        course_id: Unique identifier for the course.
        module_id: Unique identifier for the completed module.
        completed_at: Timestamp of the first completion.
    """

    __tablename__ = "modulecompletion"
    user_id: str = Field(foreign_key="user.id", primary_key=True, ondelete="CASCADE")
    course_id: str = Field(foreign_key="course.id", primary_key=True, ondelete="CASCADE")
    module_id: str = Field(foreign_key="module.id", primary_key=True, ondelete="CASCADE")
    completed_at: datetime = Field(default_factory=utcnow)


class QuizAttempt(SQLModel, table=True):
    """Immutable record of one graded submission. Rows are only ever inserted.

    Attributes:
        id: Unique identifier for the attempt.
        user_id: User who submitted.
        course_id: Course of the module.
        module_id: Module the quiz belongs to.
        quiz_id: Id of the quiz specification graded against.
        answers: One {question_id, selected_choice_id, is_correct} entry per quiz question.
        score: Raw score, 0-100.
        points_earned: Points earned.
        points_possible: Points possible.
        started_at: Submission time minus the claimed elapsed time.
        completed_at: Submission time.
        elapsed_seconds: Claimed elapsed time.
        timed_out: True if the time limit plus grace was exceeded.
        completed: True once graded, always the case for stored attempts.
        passed: True if the score reached the passing score.
    """

    __tablename__ = "quizattempt"
    id: str = Field(default_factory=uuid7str, primary_key=True)
    user_id: str = Field(foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True)
    course_id: str = Field(foreign_key="course.id", nullable=False, ondelete="CASCADE", index=True)
    module_id: str = Field(foreign_key="module.id", nullable=False, ondelete="CASCADE")
    quiz_id: str
    answers: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSONType))
    score: float = Field(ge=0, le=100)
    points_earned: float = 0
    points_possible: float = 0
    started_at: datetime
    completed_at: datetime = Field(default_factory=utcnow)
    elapsed_seconds: float = 0
    timed_out: bool = False
    completed: bool = True
    passed: bool = False


class EnrollmentStatus(SQLModel):
    """Response of a successful enrollment."""

    status: str = "enrolled"


class ModuleCompletionPatch(SQLModel):
    """Payload for marking a module complete. Only the module id is accepted.

    Attributes:
        module_id: Module to mark complete.
    """

    module_id: str = Field(min_length=1)


class ModuleCompletionPublic(SQLModel):
    """Completed modules after a completion event.

    Attributes:
        completed_modules: Completed module ids in course order.
        progress_percentage: 0-100.
    """

    completed_modules: list[str]
    progress_percentage: float


class QuizScoreSummary(SQLModel):
    """Attempt summary stored on a progress record.

    Attributes:
        attempt_id: Id of the attempt.
        module_id: Module of the quiz.
        score: Raw score, 0-100.
        timed_out: Whether the attempt ran over time.
        completed_at: Submission time.
    """

    attempt_id: str
    module_id: str
    score: float
    timed_out: bool = False
    completed_at: datetime


class ModuleScoreSummary(SQLModel):
    """Best and latest score of a module, derived from its attempts."""

    module_id: str
    attempts: int
    best_score: float
    latest_score: float


class ProgressPublic(SQLModel):
    """Progress record of a user in a course with derived figures.

    Attributes:
        user_id: Owner of the record.
        course_id: Course of the record.
        completed_modules: Completed module ids in course order.
        quiz_scores: Attempt summaries in submission order.
        module_scores: Best and latest score per attempted module.
        enrolled_at: Timestamp of the enrollment.
        last_accessed_at: Timestamp of the last completion or submission.
        current_module_id: Module the user touched last.
        total_modules: Number of modules in the course.
        progress_percentage: 100 * completed / total, 0 for empty courses.
        quiz_average: Mean attempt score, 0 without attempts.
        comparable_score: Per-course comparable score.
    """

    user_id: str
    course_id: str
    completed_modules: list[str]
    quiz_scores: list[QuizScoreSummary]
    module_scores: list[ModuleScoreSummary]
    enrolled_at: datetime
    last_accessed_at: datetime
    current_module_id: str | None = None
    total_modules: int
    progress_percentage: float
    quiz_average: float
    comparable_score: float


class ProgressesPublic(SQLModel):
    """List of progress records.

    Attributes:
        data: List of ProgressPublic objects.
        count: Total number of records.
    """

    data: list[ProgressPublic]
    count: int


class QuizAnswer(SQLModel):
    """One submitted answer. A missing choice counts as unanswered."""

    question_id: str
    choice_id: str | None = None


class QuizSubmission(SQLModel):
    """Payload for submitting a quiz.

    Attributes:
        answers: Answers in any order, matched on question id.
        elapsed_seconds: Time the learner spent, as claimed by the client.
    """

    answers: list[QuizAnswer] = Field(default_factory=list)
    elapsed_seconds: float = Field(default=0, ge=0)


class QuestionResult(SQLModel):
    """Graded question.

    Attributes:
        question_id: Id of the question.
        question_text: Text of the question.
        correct: Whether the selected choice is the correct one.
        selected_choice_id: Submitted choice id, None if unanswered.
        selected_choice_text: Text of the submitted choice, None if unanswered or unknown.
        correct_choice_id: Id of the correct choice.
        correct_choice_text: Text of the correct choice.
        points: Points earned on this question.
    """

    question_id: str
    question_text: str
    correct: bool
    selected_choice_id: str | None = None
    selected_choice_text: str | None = None
    correct_choice_id: str
    correct_choice_text: str
    points: float = 0


class GradedQuiz(SQLModel):
    """Outcome of grading a submission, before it is stored.

    Attributes:
        quiz_id: Id of the quiz graded against.
        score: Raw score, 0-100.
        points_earned: Points earned.
        points_possible: Points possible.
        correct_count: Number of correct questions.
        total_questions: Number of questions in the quiz.
        timed_out: True if the time limit plus grace was exceeded.
        passed: True if score >= passing score.
        results: One entry per quiz question, in quiz order.
    """

    quiz_id: str
    score: float
    points_earned: float
    points_possible: float
    correct_count: int
    total_questions: int
    timed_out: bool
    passed: bool
    results: list[QuestionResult]

    def attempt_answers(self) -> list[dict[str, Any]]:
        return [
            {
                "question_id": result.question_id,
                "selected_choice_id": result.selected_choice_id,
                "is_correct": result.correct,
            }
            for result in self.results
        ]


class QuizResultPublic(SQLModel):
    """Response of a quiz submission.

    Attributes:
        attempt_id: Id of the stored attempt.
        score: Raw score, 0-100.
        total_questions: Number of questions.
        correct_count: Number of correct questions.
        timed_out: True if the attempt ran over time.
        passed: True if the passing score was reached.
        per_question: Graded questions in quiz order.
    """

    attempt_id: str
    score: float
    total_questions: int
    correct_count: int
    timed_out: bool
    passed: bool
    per_question: list[QuestionResult]


class QuizAttemptPublic(SQLModel):
    """Public representation of a stored attempt."""

    id: str
    module_id: str
    quiz_id: str
    score: float
    timed_out: bool
    passed: bool
    started_at: datetime
    completed_at: datetime
    answers: list[dict[str, Any]]


class QuizAttemptsPublic(SQLModel):
    """List of attempts.

    Attributes:
        data: List of QuizAttemptPublic objects.
        count: Total number of attempts.
    """

    data: list[QuizAttemptPublic]
    count: int


class LeaderboardEntry(SQLModel):
    """Derived leaderboard row, recomputed on every query and never stored.

    Attributes:
        rank: 1-based absolute position.
        user_id: Ranked user.
        name: Display name.
        total_score: Comparable score the ranking is ordered by.
        completed_modules: Completed module count.
    """

    rank: int = 0
    user_id: str
    name: str
    total_score: float
    completed_modules: int = 0


class CourseLeaderboardEntry(LeaderboardEntry):
    """Course leaderboard row. Adds the quiz average behind the total score."""

    average_score: float = 0


class LeaderboardPublic(SQLModel):
    """Page of the global leaderboard.

    Attributes:
        entries: Ranked entries of the page.
        count: Number of ranked users.
    """

    entries: list[LeaderboardEntry]
    count: int


class CourseLeaderboardPublic(SQLModel):
    """Course leaderboard.

    Attributes:
        course_id: Ranked course.
        entries: Ranked entries.
        count: Number of ranked users.
    """

    course_id: str
    entries: list[CourseLeaderboardEntry]
    count: int


class UserRankingPublic(SQLModel):
    """Neighborhood of a user in a ranking.

    Attributes:
        user_rank: Absolute rank of the user.
        total_users: Number of ranked users.
        neighbors: Up to radius entries above and below, including the user.
    """

    user_rank: int
    total_users: int
    neighbors: list[LeaderboardEntry]

    @model_validator(mode="after")
    def check_ranks(self) -> "UserRankingPublic":
        for entry in self.neighbors:
            if not 1 <= entry.rank <= self.total_users:
                raise ValueError(f"Rank {entry.rank} out of range 1..{self.total_users}")
        return self
