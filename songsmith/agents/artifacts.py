"""
Artifact Schemas for Songsmith.

Pydantic models for everything that flows through the tools:
- CreativeBrief: deterministic brief derived from raw lyrics input
- SongStructure / Section: the lyrics draft
- MelodyStructure / MidiTrack / MidiNote: the melody draft
- LyricsEvaluation / MelodyEvaluation: scored critiques
- Tool input models (generate / evaluate / improve for each workflow)

Field names are snake_case in Python and camelCase on the wire and in the
state store (alias generator). State holds plain dicts produced by to_state().
"""

from typing import List, Optional, Literal, Dict, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# BASE
# ============================================================================

class ArtifactModel(BaseModel):
    """Base model with camelCase aliases; accepts either spelling on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_state(self) -> Dict[str, Any]:
        """Serialize for the state store and the wire."""
        return self.model_dump(by_alias=True, exclude_none=True)


Tempo = Literal["slow", "moderate", "fast"]
Language = Literal["en", "pt-BR"]
SectionType = Literal["verse", "chorus", "bridge", "intro", "outro"]


# ============================================================================
# CREATIVE BRIEF
# ============================================================================

class CreativeBrief(ArtifactModel):
    """
    Deterministic creative brief.

    Attributes:
        lyrics: Base lyrics (trimmed).
        emotion: Emotion label supplied by the caller.
        genre: Optional genre.
        mood: Mood derived from emotion.
        themes: Themes derived from emotion.
        tempo: Coarse tempo class.
        style: Style hint (mirrors genre).
        language: Output language.
    """
    lyrics: str = Field(..., min_length=1, description="Base lyrics")
    emotion: str = Field(..., min_length=1, description="Emotion label")
    genre: Optional[str] = Field(None, description="Genre")
    mood: str = Field(..., description="Mood derived from emotion")
    themes: List[str] = Field(..., description="Themes derived from emotion")
    tempo: Optional[Tempo] = Field(None, description="Coarse tempo class")
    style: Optional[str] = Field(None, description="Style hint")
    language: Language = Field("en", description="Output language")


# ============================================================================
# SONG STRUCTURE
# ============================================================================

class Section(ArtifactModel):
    type: SectionType = Field(..., description="Section type")
    content: str = Field(..., description="Lyrics for this section")
    order: int = Field(..., description="Position in the song (1-based)")


class SongStructure(ArtifactModel):
    """Titled, ordered collection of lyric sections."""
    title: str = Field(..., min_length=1, description="Song title")
    sections: List[Section] = Field(..., min_length=1, description="Ordered sections")
    total_sections: int = Field(..., ge=0, description="Number of sections")


# ============================================================================
# EVALUATIONS
# ============================================================================

class Evaluation(ArtifactModel):
    """
    Scored critique of a draft.

    needs_improvement is the signal the decision policy branches on.
    """
    quality: float = Field(..., ge=0, le=10, description="Quality score 0-10")
    strengths: List[str] = Field(default_factory=list, description="What works")
    weaknesses: List[str] = Field(default_factory=list, description="What does not")
    suggestions: List[str] = Field(default_factory=list, description="Concrete suggestions")
    needs_improvement: bool = Field(..., description="Whether another improvement pass is wanted")


class LyricsEvaluation(Evaluation):
    pass


class MelodyEvaluation(Evaluation):
    pass


# ============================================================================
# MELODY STRUCTURE
# ============================================================================

class MidiNote(ArtifactModel):
    note: int = Field(..., ge=0, le=127, description="MIDI note number")
    velocity: int = Field(..., ge=0, le=127, description="MIDI velocity")
    start_time: float = Field(..., ge=0, description="Start time in beats")
    duration: float = Field(..., gt=0, description="Duration in beats")


class MidiTrack(ArtifactModel):
    name: str = Field(..., description="Track name")
    notes: List[MidiNote] = Field(..., description="Notes in start order")
    instrument: Optional[str] = Field(None, description="Instrument name")


class MelodyStructure(ArtifactModel):
    """Parameterized collection of note tracks."""
    tempo: int = Field(..., ge=40, le=200, description="Beats per minute")
    key: str = Field(..., description="Key, e.g. 'C major'")
    time_signature: str = Field(..., description="Time signature, e.g. '4/4'")
    tracks: List[MidiTrack] = Field(..., min_length=1, description="Note tracks")
    total_beats: float = Field(..., ge=0, description="Length in beats")


# ============================================================================
# TOOL INPUTS
# ============================================================================

class GenerateSongInput(CreativeBrief):
    """Creative brief plus optional approver feedback."""
    user_feedback: Optional[str] = Field(None, description="Approver feedback to incorporate")


class EvaluateLyricsInput(ArtifactModel):
    song_structure: SongStructure


class ImproveLyricsInput(ArtifactModel):
    song_structure: SongStructure
    evaluation: LyricsEvaluation
    user_feedback: Optional[str] = None


class GenerateMelodyInput(ArtifactModel):
    song_structure: SongStructure
    emotion: str = Field(..., min_length=1)
    mood: str = Field(..., min_length=1)
    tempo: Optional[int] = Field(None, ge=40, le=200)
    key: Optional[str] = None
    time_signature: Optional[str] = None
    user_feedback: Optional[str] = None


class EvaluateMelodyInput(ArtifactModel):
    melody_structure: MelodyStructure
    song_structure: SongStructure


class ImproveMelodyInput(ArtifactModel):
    melody_structure: MelodyStructure
    evaluation: MelodyEvaluation
    song_structure: SongStructure
    user_feedback: Optional[str] = None


__all__ = [
    "ArtifactModel",
    "Tempo",
    "Language",
    "SectionType",
    "CreativeBrief",
    "Section",
    "SongStructure",
    "Evaluation",
    "LyricsEvaluation",
    "MelodyEvaluation",
    "MidiNote",
    "MidiTrack",
    "MelodyStructure",
    "GenerateSongInput",
    "EvaluateLyricsInput",
    "ImproveLyricsInput",
    "GenerateMelodyInput",
    "EvaluateMelodyInput",
    "ImproveMelodyInput",
]
