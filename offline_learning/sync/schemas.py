"""Pydantic schemas for the sync outbox and progress batches."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .models import ProgressBatch, SyncOperation, SyncQueueItem


class EnqueueRequest(BaseModel):
    """Request to append a mutation to the outbox."""

    operation_type: SyncOperation
    table_name: str = Field(..., min_length=1)
    record_id: str = Field(..., min_length=1)
    payload: str | dict[str, Any] | list[Any] = Field(
        ..., description="Serialized body, or a JSON-compatible value to serialize"
    )

    def serialized_payload(self) -> str:
        """Payload as stored text."""
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, default=str, sort_keys=True)


class SyncQueueItemResponse(BaseModel):
    """Outbox entry response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    operation_type: SyncOperation
    table_name: str
    record_id: str
    payload: str
    created_at: datetime
    retry_count: int = 0
    last_retry_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def from_entity(cls, entity: SyncQueueItem) -> "SyncQueueItemResponse":
        """Create response from entity."""
        return cls.model_validate(entity)


class SaveProgressBatchRequest(BaseModel):
    """Request to store a progress batch captured offline."""

    session_id: str | None = None
    course_id: str = Field(..., min_length=1)
    batch_data: dict[str, Any] | list[Any]


class ProgressBatchResponse(BaseModel):
    """Progress batch response with the payload decoded."""

    id: int
    session_id: str | None = None
    course_id: str
    batch_data: Any
    created_at: datetime
    synced: bool = False
    synced_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ProgressBatch) -> "ProgressBatchResponse":
        """Create response from entity."""
        return cls(
            id=entity.id,
            session_id=entity.session_id,
            course_id=entity.course_id,
            batch_data=json.loads(entity.batch_data),
            created_at=entity.created_at,
            synced=entity.synced,
            synced_at=entity.synced_at,
        )
