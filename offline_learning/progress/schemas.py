"""Pydantic schemas for learner progress tracking.

Request and response models for:
- Content view/completion
- Module progress and course summaries
- Quiz attempts, answers and scoring
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    ContentProgress,
    ModuleProgress,
    ModuleProgressStatus,
    QuizAnswer,
    QuizAttempt,
    QuizAttemptStatus,
)


# ==============================================================================
# Content Progress Schemas
# ==============================================================================


class ContentProgressResponse(BaseModel):
    """Content progress response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    enrollment_id: str
    content_id: str
    is_completed: bool
    viewed_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ContentProgress) -> "ContentProgressResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


# ==============================================================================
# Module Progress Schemas
# ==============================================================================


class ModuleProgressResponse(BaseModel):
    """Module progress response (aggregated)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    enrollment_id: str
    module_id: str
    status: ModuleProgressStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    auto_completed: bool = False
    completed_content_count: int = 0
    total_content_count: int = 0
    content_completion_percentage: int = Field(0, description="0-100 percentage")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ModuleProgress) -> "ModuleProgressResponse":
        """Create response from entity."""
        return cls(
            id=entity.id,
            enrollment_id=entity.enrollment_id,
            module_id=entity.module_id,
            status=ModuleProgressStatus(entity.status),
            started_at=entity.started_at,
            completed_at=entity.completed_at,
            auto_completed=entity.auto_completed,
            completed_content_count=entity.completed_content_count,
            total_content_count=entity.total_content_count,
            content_completion_percentage=entity.content_completion_percentage,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class ContentCompletionResponse(BaseModel):
    """Result of completing a content block, including the cascade outcome."""

    content: ContentProgressResponse
    module: ModuleProgressResponse
    module_auto_completed: bool = Field(
        False, description="True only on the call that completed the module"
    )


class CourseProgressSummary(BaseModel):
    """Module counts for an enrollment."""

    enrollment_id: str
    total_modules: int = 0
    completed_modules: int = 0
    in_progress_modules: int = 0
    not_started_modules: int = 0
    completion_percentage: float = Field(0.0, description="Rounded to 2 places")


# ==============================================================================
# Quiz Schemas
# ==============================================================================


class RecordQuizAttemptRequest(BaseModel):
    """Request to record (insert or update) a quiz attempt.

    ``attempt_number`` is assigned as the next number for the student/quiz
    pair when omitted.
    """

    id: str | None = Field(None, min_length=1, description="Attempt id")
    student_id: str = Field(..., min_length=1)
    quiz_id: str = Field(..., min_length=1)
    attempt_number: int | None = Field(None, ge=1)
    status: QuizAttemptStatus = QuizAttemptStatus.IN_PROGRESS
    started_at: datetime | None = None
    completed_at: datetime | None = None
    score: float | None = Field(None, ge=0)
    passed: bool | None = None
    time_remaining_seconds: int | None = Field(None, ge=0)


class UpdateQuizAttemptStatusRequest(BaseModel):
    """Request to change the status of an attempt."""

    status: QuizAttemptStatus


class QuizAttemptResponse(BaseModel):
    """Quiz attempt response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    quiz_id: str
    attempt_number: int
    status: QuizAttemptStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    score: float | None = None
    passed: bool | None = None
    time_remaining_seconds: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: QuizAttempt) -> "QuizAttemptResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class QuizAttemptResultResponse(BaseModel):
    """Recorded attempt plus the module it gates, when the cascade ran."""

    attempt: QuizAttemptResponse
    module: ModuleProgressResponse | None = None
    module_auto_completed: bool = False


class RecordQuizAnswerRequest(BaseModel):
    """Request to record the answer to one question."""

    id: str | None = Field(None, min_length=1, description="Answer id")
    attempt_id: str = Field(..., min_length=1)
    question_id: str = Field(..., min_length=1)
    selected_option_id: str | None = None
    is_correct: bool = False
    points_earned: float = Field(0.0, ge=0)


class QuizAnswerResponse(BaseModel):
    """Quiz answer response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    attempt_id: str
    question_id: str
    selected_option_id: str | None = None
    is_correct: bool
    points_earned: float
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: QuizAnswer) -> "QuizAnswerResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class AttemptScoreResponse(BaseModel):
    """Score computed from the stored answers of an attempt."""

    attempt_id: str
    total_questions: int = 0
    correct_answers: int = 0
    points_earned: float = 0.0
    points_possible: float = 0.0
    percentage: float = Field(0.0, description="Rounded to 2 places")
