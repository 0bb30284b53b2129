"""
Melody Tools for Songsmith.

- GenerateMelodyTool: SongStructure + emotion/mood (+ tempo/key/meter) -> MelodyStructure
- EvaluateMelodyTool: MelodyStructure + SongStructure -> MelodyEvaluation
- ImproveMelodyTool: MelodyStructure + MelodyEvaluation + SongStructure -> MelodyStructure

Same live/sample split as the lyrics tools. The sample composer writes six notes
over six beats per lyric line on a minor scale around A3 for sad input and a
major scale around C4 otherwise.
"""

import logging
from typing import Any, Dict, List, Optional

from songsmith.agents.artifacts import (
    GenerateMelodyInput,
    EvaluateMelodyInput,
    ImproveMelodyInput,
    MelodyStructure,
    MelodyEvaluation,
)
from songsmith.core.prompts import (
    COMPOSER_SYSTEM_PROMPT,
    MELODY_CRITIC_SYSTEM_PROMPT,
    MELODY_EDITOR_SYSTEM_PROMPT,
    build_melody_request,
    build_melody_evaluation_request,
    build_melody_improvement_request,
)
from songsmith.tools.base import Backend, ModelBackedTool, ToolKind
from songsmith.tools.lyrics import REVISION_MARKER

logger = logging.getLogger(__name__)

MELODY_IMPROVEMENT_THRESHOLD = 8.5

DEFAULT_TEMPO = 120
DEFAULT_TIME_SIGNATURE = "4/4"
BEATS_PER_LINE = 6
NOTE_DURATIONS = [0.5, 0.5, 0.75, 1.0, 0.5, 1.25]
MAJOR_SCALE = [0, 2, 4, 5, 7, 9, 11]
MINOR_SCALE = [0, 2, 3, 5, 7, 8, 10]
SAD_LABELS = {"sad", "sadness", "melancholic"}


# ============================================================================
# GENERATE
# ============================================================================

class GenerateMelodyTool(ModelBackedTool):
    kind = ToolKind.GENERATE_MELODY
    name = "GenerateMelody"
    description = "Generates a MIDI melody covering every lyric line of a song"
    input_model = GenerateMelodyInput
    output_model = MelodyStructure

    async def _execute(self, parsed_input: GenerateMelodyInput) -> Dict[str, Any]:
        song = parsed_input.song_structure.to_state()

        if self.backend is Backend.SAMPLE:
            return sample_melody(
                song,
                parsed_input.emotion,
                parsed_input.mood,
                tempo=parsed_input.tempo,
                key=parsed_input.key,
                time_signature=parsed_input.time_signature,
            )

        return await self._ask_model(
            COMPOSER_SYSTEM_PROMPT,
            build_melody_request(
                song,
                parsed_input.emotion,
                parsed_input.mood,
                tempo=parsed_input.tempo,
                key=parsed_input.key,
                time_signature=parsed_input.time_signature,
                user_feedback=parsed_input.user_feedback,
            ),
            temperature=0.9,
        )


def _lyric_lines(song: Dict[str, Any]) -> List[str]:
    sections = sorted(song["sections"], key=lambda s: s["order"])
    lines = [
        line.strip()
        for section in sections
        for line in section["content"].splitlines()
        if line.strip()
    ]
    return lines or [song["title"]]


def sample_melody(
    song: Dict[str, Any],
    emotion: str,
    mood: str,
    tempo: Optional[int] = None,
    key: Optional[str] = None,
    time_signature: Optional[str] = None,
) -> Dict[str, Any]:
    """Deterministic single-track melody, one phrase per lyric line."""
    sad = emotion.lower() in SAD_LABELS or mood.lower() in SAD_LABELS
    base_note = 57 if sad else 60
    scale = MINOR_SCALE if sad else MAJOR_SCALE

    notes = []
    lines = _lyric_lines(song)
    for line_index in range(len(lines)):
        start = float(line_index * BEATS_PER_LINE)
        for note_index, duration in enumerate(NOTE_DURATIONS):
            degree = (line_index + note_index) % len(scale)
            notes.append({
                "note": base_note + scale[degree],
                "velocity": 75 + (note_index % 5) * 4,
                "startTime": start,
                "duration": duration,
            })
            start += duration

    return {
        "tempo": tempo or DEFAULT_TEMPO,
        "key": key or ("A minor" if sad else "C major"),
        "timeSignature": time_signature or DEFAULT_TIME_SIGNATURE,
        "tracks": [{"name": "Main Melody", "instrument": "piano", "notes": notes}],
        "totalBeats": float(len(lines) * BEATS_PER_LINE),
    }


# ============================================================================
# EVALUATE
# ============================================================================

class EvaluateMelodyTool(ModelBackedTool):
    kind = ToolKind.EVALUATE_MELODY
    name = "EvaluateMelody"
    description = "Scores a melody against its lyrics"
    input_model = EvaluateMelodyInput
    output_model = MelodyEvaluation

    def __init__(self, *args, improvement_threshold: float = MELODY_IMPROVEMENT_THRESHOLD, **kwargs):
        super().__init__(*args, **kwargs)
        self.improvement_threshold = improvement_threshold

    async def _execute(self, parsed_input: EvaluateMelodyInput) -> Dict[str, Any]:
        melody = parsed_input.melody_structure.to_state()

        if self.backend is Backend.SAMPLE:
            return sample_melody_evaluation(melody, self.improvement_threshold)

        return await self._ask_model(
            MELODY_CRITIC_SYSTEM_PROMPT,
            build_melody_evaluation_request(melody, parsed_input.song_structure.to_state(), self.improvement_threshold),
            temperature=0.3,
        )


def sample_melody_evaluation(melody: Dict[str, Any], threshold: float = MELODY_IMPROVEMENT_THRESHOLD) -> Dict[str, Any]:
    revisions = melody["tracks"][0]["name"].count(REVISION_MARKER)
    quality = min(10.0, 8.0 + 1.0 * revisions)
    needs_improvement = quality < threshold

    return {
        "quality": quality,
        "strengths": ["Covers every lyric line", "Key fits the mood"],
        "weaknesses": ["Dynamics are flat"] if needs_improvement else [],
        "suggestions": ["Accent the chorus with stronger velocities"] if needs_improvement else [],
        "needsImprovement": needs_improvement,
    }


# ============================================================================
# IMPROVE
# ============================================================================

class ImproveMelodyTool(ModelBackedTool):
    kind = ToolKind.IMPROVE_MELODY
    name = "ImproveMelody"
    description = "Revises a melody using its evaluation and optional user feedback"
    input_model = ImproveMelodyInput
    output_model = MelodyStructure

    async def _execute(self, parsed_input: ImproveMelodyInput) -> Dict[str, Any]:
        melody = parsed_input.melody_structure.to_state()

        if self.backend is Backend.SAMPLE:
            return sample_improved_melody(melody)

        return await self._ask_model(
            MELODY_EDITOR_SYSTEM_PROMPT,
            build_melody_improvement_request(
                melody,
                parsed_input.evaluation.to_state(),
                parsed_input.song_structure.to_state(),
                parsed_input.user_feedback,
            ),
            temperature=0.9,
        )


def sample_improved_melody(melody: Dict[str, Any]) -> Dict[str, Any]:
    """Copy with louder notes (+5, capped at 127) and marked track names."""
    tracks = []
    for track in melody["tracks"]:
        tracks.append({
            **track,
            "name": f"{track['name']} {REVISION_MARKER}",
            "notes": [
                {**note, "velocity": min(127, note["velocity"] + 5)}
                for note in track["notes"]
            ],
        })
    return {**melody, "tracks": tracks}


__all__ = [
    "MELODY_IMPROVEMENT_THRESHOLD",
    "DEFAULT_TEMPO",
    "DEFAULT_TIME_SIGNATURE",
    "BEATS_PER_LINE",
    "GenerateMelodyTool",
    "EvaluateMelodyTool",
    "ImproveMelodyTool",
    "sample_melody",
    "sample_melody_evaluation",
    "sample_improved_melody",
]
