"""Store facade.

Wires settings, the database and every service together. The progress service
is given the sync outbox, so each learner mutation recorded through the facade
queues the rows it changed, including the module and enrollment rows touched
by the completion cascade, in the same transaction as the change itself.
"""

from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from offline_learning.catalog.store import SqlCatalogStore
from offline_learning.config import Settings, get_settings
from offline_learning.core.context import OperationContext
from offline_learning.core.database import init_database, shutdown_database
from offline_learning.core.errors import InvalidInputError
from offline_learning.core.logging import configure_structlog, get_logger
from offline_learning.core.timestamps import Clock, utc_now
from offline_learning.enrollments.resolver import EnrollmentResolver
from offline_learning.media.schemas import MediaCacheResponse, UpsertMediaCacheRequest
from offline_learning.media.service import MediaCacheService
from offline_learning.offline.schemas import (
    CreateOfflineSessionRequest,
    OfflineSessionResponse,
)
from offline_learning.offline.service import OfflineSessionService
from offline_learning.progress.models import ModuleProgressStatus, QuizAttemptStatus
from offline_learning.progress.schemas import (
    ContentCompletionResponse,
    ContentProgressResponse,
    ModuleProgressResponse,
    QuizAnswerResponse,
    QuizAttemptResultResponse,
    RecordQuizAnswerRequest,
    RecordQuizAttemptRequest,
)
from offline_learning.progress.service import ProgressService
from offline_learning.sync.metadata import AppMetadataStore
from offline_learning.sync.schemas import ProgressBatchResponse, SaveProgressBatchRequest
from offline_learning.sync.service import ProgressBatchStore, SyncOutbox


logger = get_logger(__name__)

RequestT = TypeVar("RequestT", bound=BaseModel)


def parse_request(model: type[RequestT], data: RequestT | dict[str, Any]) -> RequestT:
    """Validate caller input into a request model.

    Raises:
        InvalidInputError: If the data does not match the model.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(str(e)) from e


class LearningStore:
    """Entry point to the local data core."""

    def __init__(self, settings: Settings | None = None, clock: Clock = utc_now):
        self.settings = settings or get_settings()
        self.clock = clock
        self.database = init_database(self.settings)

        self.catalog = SqlCatalogStore(self.database, clock)
        self.enrollments = EnrollmentResolver(self.database, clock)
        self.outbox = SyncOutbox(self.database, self.settings.sync_batch_size, clock)
        self.progress = ProgressService(
            self.database,
            self.catalog,
            self.enrollments,
            clock=clock,
            outbox=self.outbox,
        )
        self.offline = OfflineSessionService(
            self.database, self.settings.offline_session_ttl_days, clock
        )
        self.media = MediaCacheService(self.database, clock)
        self.batches = ProgressBatchStore(
            self.database, self.settings.progress_batch_size, clock
        )
        self.metadata = AppMetadataStore(self.database, clock)

        logger.info(
            "store_opened",
            environment=self.settings.environment,
            database=self.settings.database_path,
        )

    @classmethod
    def open(cls, settings: Settings | None = None, clock: Clock = utc_now) -> "LearningStore":
        """Configure logging, then open the store."""
        settings = settings or get_settings()
        configure_structlog(settings)
        return cls(settings, clock)

    def close(self) -> None:
        shutdown_database(self.database)

    def __enter__(self) -> "LearningStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # ==========================================================================
    # Progress (feeds the outbox)
    # ==========================================================================

    def view_content(self, enrollment_id: str, content_id: str) -> ContentProgressResponse:
        """Record a content view and queue the change for sync."""
        with OperationContext(enrollment_id=enrollment_id):
            return self.progress.record_content_viewed(enrollment_id, content_id)

    def complete_content(
        self, enrollment_id: str, content_id: str
    ) -> ContentCompletionResponse:
        """Complete a content block and queue every row the cascade touched."""
        with OperationContext(enrollment_id=enrollment_id):
            return self.progress.record_content_completed(enrollment_id, content_id)

    def set_module_status(
        self,
        enrollment_id: str,
        module_id: str,
        status: ModuleProgressStatus | str,
        allow_regression: bool = False,
    ) -> ModuleProgressResponse:
        """Explicitly set a module's status and queue the change."""
        try:
            status = ModuleProgressStatus(status)
        except ValueError as e:
            raise InvalidInputError(f"Unknown module status: {status}") from e

        with OperationContext(enrollment_id=enrollment_id):
            return self.progress.record_module_status(
                enrollment_id, module_id, status, allow_regression=allow_regression
            )

    def record_quiz_attempt(
        self, data: RecordQuizAttemptRequest | dict[str, Any]
    ) -> QuizAttemptResultResponse:
        """Record a quiz attempt and queue it plus any cascaded module change."""
        request = parse_request(RecordQuizAttemptRequest, data)
        with OperationContext(student_id=request.student_id):
            return self.progress.record_quiz_attempt(request)

    def complete_quiz_attempt(
        self, attempt_id: str, score: float, passed: bool
    ) -> QuizAttemptResultResponse:
        """Submit an attempt's final result and queue the changes."""
        with OperationContext():
            return self.progress.complete_quiz_attempt(attempt_id, score, passed)

    def abandon_quiz_attempt(self, attempt_id: str) -> QuizAttemptResultResponse:
        """Mark an attempt abandoned and queue the change."""
        with OperationContext():
            return self.progress.update_quiz_attempt_status(
                attempt_id, QuizAttemptStatus.ABANDONED
            )

    def record_quiz_answer(
        self, data: RecordQuizAnswerRequest | dict[str, Any]
    ) -> QuizAnswerResponse:
        """Record an answer and queue it for sync."""
        request = parse_request(RecordQuizAnswerRequest, data)
        with OperationContext():
            return self.progress.record_quiz_answer(request)

    # ==========================================================================
    # Offline packages and media
    # ==========================================================================

    def create_offline_session(
        self, data: CreateOfflineSessionRequest | dict[str, Any]
    ) -> OfflineSessionResponse:
        request = parse_request(CreateOfflineSessionRequest, data)
        with OperationContext(student_id=request.student_id):
            return self.offline.create(request)

    def cache_media(
        self, data: UpsertMediaCacheRequest | dict[str, Any]
    ) -> MediaCacheResponse:
        request = parse_request(UpsertMediaCacheRequest, data)
        return self.media.upsert(request)

    def save_progress_batch(
        self, data: SaveProgressBatchRequest | dict[str, Any]
    ) -> ProgressBatchResponse:
        request = parse_request(SaveProgressBatchRequest, data)
        return self.batches.save(request)

