"""
Lyrics Tools for Songsmith.

- GenerateSongStructureTool: creative brief (+ feedback) -> SongStructure
- EvaluateLyricsTool: SongStructure -> LyricsEvaluation
- ImproveLyricsTool: SongStructure + LyricsEvaluation (+ feedback) -> SongStructure

Each tool has two backends:
- live: one JSON completion through LLMClient (prompts from songsmith.core.prompts)
- sample: deterministic output with no network access, used for demos and tests

Sample scoring: every revision appends REVISION_MARKER to the title, and the
sample evaluator scores 6.0 + 1.5 per revision, so a first draft needs exactly
one improvement pass.
"""

import logging
from typing import Any, Dict, List, Optional

from songsmith.agents.artifacts import (
    GenerateSongInput,
    EvaluateLyricsInput,
    ImproveLyricsInput,
    SongStructure,
    LyricsEvaluation,
)
from songsmith.core.prompts import (
    SONGWRITER_SYSTEM_PROMPT,
    LYRICS_CRITIC_SYSTEM_PROMPT,
    LYRICS_EDITOR_SYSTEM_PROMPT,
    build_song_request,
    build_lyrics_evaluation_request,
    build_lyrics_improvement_request,
)
from songsmith.tools.base import Backend, ModelBackedTool, ToolKind

logger = logging.getLogger(__name__)

REVISION_MARKER = "(Revised)"
LYRICS_IMPROVEMENT_THRESHOLD = 7.0


# ============================================================================
# GENERATE
# ============================================================================

class GenerateSongStructureTool(ModelBackedTool):
    kind = ToolKind.GENERATE_SONG_STRUCTURE
    name = "GenerateSongStructure"
    description = "Generates a complete song structure (title, verses, chorus, bridge) from a creative brief"
    input_model = GenerateSongInput
    output_model = SongStructure

    async def _execute(self, parsed_input: GenerateSongInput) -> Dict[str, Any]:
        brief = parsed_input.to_state()
        feedback = brief.pop("userFeedback", None)

        if self.backend is Backend.SAMPLE:
            return sample_song_structure(brief, feedback)

        return await self._ask_model(
            SONGWRITER_SYSTEM_PROMPT,
            build_song_request(brief, feedback),
            temperature=0.8,
        )


def sample_song_structure(brief: Dict[str, Any], feedback: Optional[str] = None) -> Dict[str, Any]:
    """Seven-section song built from the brief."""
    emotion = brief["emotion"]
    mood = brief["mood"]
    themes = " and ".join(brief.get("themes", []))

    lines = [line.strip() for line in brief["lyrics"].splitlines() if line.strip()][:4]
    base_lyrics = "\n".join(lines) or brief["lyrics"][:100]

    chorus = (
        f"This is my {emotion} song\n"
        f"Filled with {themes}\n"
        "Every note, every word\n"
        f"Tells the story of my {mood} world"
    )
    outro = f"So here I am, singing my {emotion} song\nForever and always, this is where I belong"
    if feedback:
        outro += f"\n{feedback}"

    sections = [
        ("intro", f"In the {mood} of the night\nI find myself thinking of you"),
        ("verse", f"{base_lyrics}\nThese words flow from my heart\nExpressing what I feel inside"),
        ("chorus", chorus),
        ("verse", f"{base_lyrics}\nThe melody carries me away\nTo a place where feelings stay"),
        ("chorus", chorus),
        ("bridge", f"And in this moment I realize\nThat {emotion} is not just a feeling\nIt's a road, it's a path\nThat leads to understanding"),
        ("outro", outro),
    ]

    return {
        "title": f"{emotion[:1].upper()}{emotion[1:]} Song",
        "sections": [
            {"type": section_type, "content": content, "order": order}
            for order, (section_type, content) in enumerate(sections, start=1)
        ],
        "totalSections": len(sections),
    }


# ============================================================================
# EVALUATE
# ============================================================================

class EvaluateLyricsTool(ModelBackedTool):
    kind = ToolKind.EVALUATE_LYRICS
    name = "EvaluateLyrics"
    description = "Scores a song structure and lists strengths, weaknesses and suggestions"
    input_model = EvaluateLyricsInput
    output_model = LyricsEvaluation

    def __init__(self, *args, improvement_threshold: float = LYRICS_IMPROVEMENT_THRESHOLD, **kwargs):
        super().__init__(*args, **kwargs)
        self.improvement_threshold = improvement_threshold

    async def _execute(self, parsed_input: EvaluateLyricsInput) -> Dict[str, Any]:
        song = parsed_input.song_structure.to_state()

        if self.backend is Backend.SAMPLE:
            return sample_lyrics_evaluation(song, self.improvement_threshold)

        return await self._ask_model(
            LYRICS_CRITIC_SYSTEM_PROMPT,
            build_lyrics_evaluation_request(song, self.improvement_threshold),
            temperature=0.3,
        )


def sample_lyrics_evaluation(song: Dict[str, Any], threshold: float = LYRICS_IMPROVEMENT_THRESHOLD) -> Dict[str, Any]:
    revisions = song["title"].count(REVISION_MARKER)
    quality = min(10.0, 6.0 + 1.5 * revisions)

    weaknesses: List[str] = []
    suggestions: List[str] = []
    if quality < threshold:
        weaknesses = ["Chorus repeats without development", "Bridge imagery is generic"]
        suggestions = ["Vary the second chorus", "Use one concrete image in the bridge"]

    return {
        "quality": quality,
        "strengths": ["Clear emotional tone", "Complete song structure"],
        "weaknesses": weaknesses,
        "suggestions": suggestions,
        "needsImprovement": quality < threshold,
    }


# ============================================================================
# IMPROVE
# ============================================================================

class ImproveLyricsTool(ModelBackedTool):
    kind = ToolKind.IMPROVE_LYRICS
    name = "ImproveLyrics"
    description = "Revises a song structure using its evaluation and optional user feedback"
    input_model = ImproveLyricsInput
    output_model = SongStructure

    async def _execute(self, parsed_input: ImproveLyricsInput) -> Dict[str, Any]:
        song = parsed_input.song_structure.to_state()
        evaluation = parsed_input.evaluation.to_state()

        if self.backend is Backend.SAMPLE:
            return sample_improved_song(song, evaluation, parsed_input.user_feedback)

        return await self._ask_model(
            LYRICS_EDITOR_SYSTEM_PROMPT,
            build_lyrics_improvement_request(song, evaluation, parsed_input.user_feedback),
            temperature=0.8,
        )


def sample_improved_song(song: Dict[str, Any], evaluation: Dict[str, Any], feedback: Optional[str] = None) -> Dict[str, Any]:
    """Copy of the song with a marked title and the suggestions folded into the bridge."""
    notes = list(evaluation.get("suggestions", []))
    if feedback:
        notes.append(feedback)

    sections = []
    for section in song["sections"]:
        section = dict(section)
        if section["type"] == "bridge" and notes:
            section["content"] = section["content"] + "\n" + "\n".join(notes)
        sections.append(section)

    return {
        "title": f"{song['title']} {REVISION_MARKER}",
        "sections": sections,
        "totalSections": len(sections),
    }


__all__ = [
    "REVISION_MARKER",
    "LYRICS_IMPROVEMENT_THRESHOLD",
    "GenerateSongStructureTool",
    "EvaluateLyricsTool",
    "ImproveLyricsTool",
    "sample_song_structure",
    "sample_lyrics_evaluation",
    "sample_improved_song",
]
