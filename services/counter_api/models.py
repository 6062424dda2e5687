"""
Data models for the Be There counter.

This module contains:
- CounterState: the persisted record (count, event text, voters, generation)
- Pydantic models for request/response validation
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Set

from pydantic import BaseModel, Field

DEFAULT_EVENT_TEXT = "Event Text"


@dataclass
class CounterState:
    """
    Persisted counter state.

    Attributes:
        count: Number of accepted clicks (never negative)
        event_text: Admin-editable event description, treated as opaque text
        voters: Client identities already credited with a click
            (only populated when voter tracking is enabled)
        generation: Bumped on every reset, so client-held vote markers
            issued before a reset can be told apart
    """
    count: int = 0
    event_text: str = DEFAULT_EVENT_TEXT
    voters: Set[str] = field(default_factory=set)
    generation: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the durable record shape."""
        return {
            "count": self.count,
            "eventText": self.event_text,
            "voters": sorted(self.voters),
            "generation": self.generation,
        }

    def to_json(self) -> str:
        """Convert to a JSON string for the local file."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(
        cls,
        data: Any,
        default_event_text: str = DEFAULT_EVENT_TEXT
    ) -> "CounterState":
        """
        Create CounterState from a durable record.

        Args:
            data: Decoded JSON record
            default_event_text: Text used when the record has none

        Returns:
            CounterState built from the record

        Raises:
            ValueError: If the record is not an object or its count is invalid
        """
        if not isinstance(data, dict):
            raise ValueError("Record must be a JSON object")

        count = data.get("count")
        # bool is an int subclass, reject it explicitly
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValueError(f"Invalid count: {count!r}")

        event_text = data.get("eventText")
        if not isinstance(event_text, str):
            event_text = default_event_text

        voters = data.get("voters")
        if not isinstance(voters, list):
            voters = []

        # Records written before resets were tracked have no generation
        generation = data.get("generation")
        if isinstance(generation, bool) or not isinstance(generation, int) or generation < 0:
            generation = 0

        return cls(
            count=count,
            event_text=event_text,
            voters={v for v in voters if isinstance(v, str)},
            generation=generation
        )

    @classmethod
    def from_json(
        cls,
        json_str: str,
        default_event_text: str = DEFAULT_EVENT_TEXT
    ) -> "CounterState":
        """Create CounterState from a JSON string."""
        return cls.from_dict(json.loads(json_str), default_event_text)


class StateResponse(BaseModel):
    """Current state as seen by one client."""

    count: int = Field(..., ge=0, description="Number of people who will be there")
    event_text: str = Field(..., alias="eventText", description="Event description")
    clicked: bool = Field(..., description="Whether this client already clicked")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "count": 12,
                "eventText": "Gala 2025",
                "clicked": False
            }
        }


class CountResponse(BaseModel):
    """Count-only response kept for the first API revision."""

    count: int = Field(..., ge=0, description="Number of people who will be there")


class IncrementResponse(BaseModel):
    """Response to a click."""

    count: int = Field(..., ge=0, description="Count after the click")
    clicked: bool = Field(default=True, description="Always true after a click")


class AdminRequest(BaseModel):
    """Admin action request model."""

    password: str = Field(..., description="Shared admin secret")
    event_text: Optional[str] = Field(
        default=None,
        alias="eventText",
        description="New event text, left unchanged when omitted"
    )
    reset_count: bool = Field(
        default=False,
        alias="resetCount",
        description="Reset the counter and forget all voters"
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "password": "changeme",
                "eventText": "Gala 2025",
                "resetCount": False
            }
        }


class AdminResponse(BaseModel):
    """State after an admin action."""

    count: int = Field(..., ge=0)
    event_text: str = Field(..., alias="eventText")

    class Config:
        populate_by_name = True


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., description="Overall health status")
    services: dict = Field(..., description="Status of individual backends")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "services": {
                    "local_file": "writable",
                    "redis": "connected"
                },
                "timestamp": "2025-01-15T10:30:00"
            }
        }


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict = Field(default_factory=dict, description="Additional error details")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "unauthorized",
                "message": "Invalid admin password",
                "details": {}
            }
        }
