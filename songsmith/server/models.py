"""
HTTP Request/Response Models for Songsmith Server.

Pydantic models for the JSON bodies accepted by the API. Field names are
camelCase on the wire (alias generator) and snake_case in Python.

Requests:
- RunRequest: start a lyrics workflow (optionally with human-in-the-loop)
- ApprovalRequestBody: answer a pending approval
- MelodyRequest: start a melody workflow for a stored song
"""

from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# REQUESTS
# ============================================================================

class RunRequest(_WireModel):
    """
    Body of POST /api/run and POST /api/run/stream.

    Attributes:
        lyrics: Base lyrics to build the song from.
        emotion: Emotion label driving mood, themes and tempo.
        genre: Optional genre.
        language: Output language.
        enable_human_in_loop: Pause for approval after each generated draft (stream only).
    """
    lyrics: str = Field(..., min_length=1, max_length=5000, description="Base lyrics")
    emotion: str = Field(..., min_length=1, description="Emotion label")
    genre: Optional[str] = Field(None, description="Genre")
    language: Literal["en", "pt-BR"] = Field("en", description="Output language")
    enable_human_in_loop: bool = Field(False, description="Require approval of generated content")

    def workflow_input(self) -> Dict[str, Any]:
        """Initial input record for the lyrics workflow."""
        return self.model_dump(exclude={"enable_human_in_loop"}, exclude_none=True)


class ApprovalRequestBody(_WireModel):
    approval_id: str = Field(..., min_length=1, description="Pending approval id")
    decision: Literal["approve", "reject", "regenerate"] = Field(..., description="Decision")
    feedback: Optional[str] = Field(None, description="Free-text feedback (used on regenerate)")


class MelodyRequest(_WireModel):
    """Body of POST /api/agents/melody/stream."""
    song_id: str = Field(..., min_length=1, description="Stored song to compose for")
    tempo: Optional[int] = Field(None, ge=40, le=200, description="Beats per minute")
    key: Optional[str] = Field(None, description="Key, e.g. 'A minor'")
    time_signature: Optional[str] = Field(None, description="Time signature, e.g. '3/4'")
    enable_human_in_loop: bool = Field(False, description="Require approval of generated melodies")


# ============================================================================
# RESPONSES
# ============================================================================

class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str
    timestamp: str
    version: str
    backend: str


class ApprovalResponse(_WireModel):
    success: bool
    approval_id: str
    decision: str
    feedback: Optional[str] = None


__all__ = [
    "RunRequest",
    "ApprovalRequestBody",
    "MelodyRequest",
    "HealthResponse",
    "ApprovalResponse",
]
