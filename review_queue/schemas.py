"""
Pydantic schemas for request/response validation.

This module contains:
- QueueEntry, the value returned by queue operations
- Request models for incoming data validation
- Response models for API responses
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Domain Values
# =============================================================================

class QueueEntry(BaseModel):
    """
    Snapshot of a row in the prs table.

    Returned by QueueManager.claim and QueueManager.list; detached from any
    database session.
    """
    id: int = Field(..., description="Store-assigned key, used for ordering")
    pr: str = Field(..., description="Item identifier, unique per channel")
    channel: str = Field(..., description="Queue scope")
    reporter: str = Field(..., description="User who submitted the item")
    assigned: Optional[str] = Field(None, description="Claimant, null while queued")
    queued: Optional[datetime] = Field(None, description="Submission time")

    model_config = {
        "from_attributes": True,  # Allow creating from ORM objects
    }


# =============================================================================
# Pydantic Request Models
# =============================================================================

class InboundEvent(BaseModel):
    """
    Envelope of an inbound chat event, used only as a lock key.

    The (user, ts) pair identifies the event; text and type are stored as-is
    and never interpreted.
    """
    channel: str = Field(..., min_length=1, max_length=100, description="Channel the event came from")
    text: str = Field(..., description="Raw message text")
    type: str = Field(default="message", min_length=1, max_length=100, description="Event type")
    user: str = Field(..., min_length=1, max_length=100, description="Sender id")
    ts: datetime = Field(
        ...,
        description="Message timestamp (ISO-8601 or Unix seconds, e.g. 1571234567.000200)"
    )

    @field_validator("ts")
    @classmethod
    def normalize_to_naive_utc(cls, v: datetime) -> datetime:
        """Store timestamps as naive UTC so equal instants compare equal in the index."""
        if v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "channel": "C024BE91L",
                    "text": "pr <https://github.com/octo/repo/pull/42>",
                    "type": "message",
                    "user": "U2147483697",
                    "ts": "1571234567.000200"
                }
            ]
        }
    }


class EnqueueRequest(BaseModel):
    """Submit an item to a channel's queue."""
    pr: str = Field(..., min_length=1, max_length=100, description="Item identifier, e.g. a PR URL")
    reporter: str = Field(..., min_length=1, max_length=100, description="Submitting user")
    channel: str = Field(..., min_length=1, max_length=100, description="Queue scope")


class ClaimRequest(BaseModel):
    """Claim the oldest eligible item on behalf of `user`."""
    user: str = Field(..., min_length=1, max_length=100, description="Claimant; their own items are skipped")
    channel: Optional[str] = Field(None, description="Restrict to one channel")
    search: Optional[str] = Field(
        None,
        description="Only items whose identifier contains this text (matched literally)"
    )


class RemoveRequest(BaseModel):
    """Remove an item from every channel."""
    pr: str = Field(..., min_length=1, description="Item identifier")


# =============================================================================
# Pydantic Response Models
# =============================================================================

class EnqueueResponse(BaseModel):
    """Outcome of a submission."""
    result: str = Field(..., description="created, duplicate or failed")


class QueueListResponse(BaseModel):
    """Unclaimed items, oldest first."""
    data: list[QueueEntry] = Field(default_factory=list, description="Queued items")
    total: int = Field(..., ge=0, description="Number of queued items")


class RemoveResponse(BaseModel):
    """Number of rows deleted by a removal."""
    removed: int = Field(..., ge=0)


class ScoreResponse(BaseModel):
    """Completion ratio of a user."""
    user: str
    score: float = Field(..., ge=0.0, le=1.0, description="claimed / (claimed + submitted)")


class EventResponse(BaseModel):
    """Whether the caller may act on the event."""
    admitted: bool


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
