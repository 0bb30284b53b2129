"""
Centralized Prompt Registry for Songsmith.

All live-backend prompts are stored here. Tools never hardcode prompt text;
they call the build_* helpers with validated artifacts.

Every prompt asks for a single JSON object matching the tool's output model.
"""

import json
from typing import Any, Dict, List, Optional


# ============================================================================
# LYRICS PROMPTS
# ============================================================================

SONGWRITER_SYSTEM_PROMPT = """You are a professional songwriter. Build a complete song from the creative brief you are given.

The song needs a title and several sections (intro, verse, chorus, bridge, outro) whose lyrics carry the emotion, mood and themes of the brief.
Give each section real substance: four to six lines at least.
When user feedback is present it takes priority over your own preferences.

Reply with one JSON object and nothing else."""

LYRICS_CRITIC_SYSTEM_PROMPT = """You are an experienced music critic and songwriter. Judge song lyrics on:
- Emotional resonance
- Coherence and narrative flow
- Rhyme and rhythm
- Originality
- Fit with the intended emotion and genre
- Overall polish

Score the song from 0 to 10, then list strengths, weaknesses and concrete suggestions.
Be specific and constructive. Reply with one JSON object and nothing else."""

LYRICS_EDITOR_SYSTEM_PROMPT = """You are a professional songwriter revising a song after a critique.

Keep the emotional tone, genre and section layout of the original.
Fix the weaknesses the critique names and apply its suggestions.
Keep the title unless the critique suggests a better one.
When user feedback is present it takes priority over the critique.

Reply with the full revised song as one JSON object and nothing else."""

SONG_STRUCTURE_FORMAT = """{
  "title": "<song title>",
  "sections": [
    {"type": "<verse|chorus|bridge|intro|outro>", "content": "<lyrics, several lines>", "order": <number>}
  ],
  "totalSections": <number>
}"""

EVALUATION_FORMAT = """{
  "quality": <number 0-10>,
  "strengths": [<strings>],
  "weaknesses": [<strings>],
  "suggestions": [<strings>],
  "needsImprovement": <boolean, true if quality < %s or there are significant issues>
}"""


# ============================================================================
# MELODY PROMPTS
# ============================================================================

COMPOSER_SYSTEM_PROMPT = """You are a professional composer writing vocal melodies as MIDI note sequences.

Requirements:
- Dense melodies: four to eight notes per lyric line, one or two per syllable
- Varied durations (sixteenths through half notes) and shaped phrases
- Scale and mode chosen to match the emotion and mood
- Singable range with mostly stepwise motion and deliberate leaps
- Distinct character per section: restrained verses, memorable chorus hooks, contrasting bridge
- Velocity between 70 and 110, used for emphasis

MIDI conventions: note 0-127 (C4 = 60), velocity 0-127, startTime and duration in beats.
Cover every line of every section. Reply with one JSON object and nothing else."""

MELODY_CRITIC_SYSTEM_PROMPT = """You are an experienced composer and critic judging vocal melodies against professional standards.

Consider note density, phrasing, melodic contour, rhythmic variety, emotional fit with the lyrics and singability.
Sparse or simplistic melodies need improvement.
Score from 0 to 10 and list strengths, weaknesses and concrete suggestions. Reply with one JSON object and nothing else."""

MELODY_EDITOR_SYSTEM_PROMPT = """You are a professional composer revising a melody after a critique.

Address every weakness and suggestion in the critique, keep the song fully covered, and keep the same JSON layout as the original.
When user feedback is present it takes priority over the critique.
Reply with the full revised melody as one JSON object and nothing else."""

MELODY_STRUCTURE_FORMAT = """{
  "tempo": <number 40-200>,
  "key": "<e.g. 'C major' or 'A minor'>",
  "timeSignature": "<e.g. '4/4'>",
  "tracks": [
    {
      "name": "<track name>",
      "instrument": "<optional instrument>",
      "notes": [{"note": <0-127>, "velocity": <0-127>, "startTime": <beats>, "duration": <beats>}]
    }
  ],
  "totalBeats": <number>
}"""


# ============================================================================
# BUILDERS
# ============================================================================

def format_sections(song: Dict[str, Any]) -> str:
    """Render a song structure dict as ordered, labelled sections."""
    sections = sorted(song.get("sections", []), key=lambda s: s.get("order", 0))
    return "\n\n".join(
        f"{section['type'].upper()} (order {section['order']}):\n{section['content']}"
        for section in sections
    )


def _feedback_block(user_feedback: Optional[str]) -> str:
    if not user_feedback:
        return ""
    return f"\n\nUSER FEEDBACK (apply it):\n{user_feedback}"


def _joined(items: List[str]) -> str:
    return ", ".join(items) if items else "none"


def build_song_request(brief: Dict[str, Any], user_feedback: Optional[str] = None) -> str:
    lines = [
        "Write a song from this creative brief:",
        "",
        f"Lyrics (base): {brief['lyrics']}",
        f"Emotion: {brief['emotion']}",
        f"Mood: {brief['mood']}",
        f"Themes: {', '.join(brief.get('themes', []))}",
    ]
    for label, key in (("Genre", "genre"), ("Tempo", "tempo"), ("Style", "style")):
        if brief.get(key):
            lines.append(f"{label}: {brief[key]}")
    if brief.get("language") == "pt-BR":
        lines.append("Write the lyrics in Brazilian Portuguese.")
    return "\n".join(lines) + _feedback_block(user_feedback) + f"\n\nJSON format:\n{SONG_STRUCTURE_FORMAT}"


def build_lyrics_evaluation_request(song: Dict[str, Any], threshold: float = 7.0) -> str:
    return (
        f"Evaluate this song:\n\nTitle: {song['title']}\n\nSections:\n{format_sections(song)}"
        f"\n\nJSON format:\n{EVALUATION_FORMAT % threshold}"
    )


def build_lyrics_improvement_request(
    song: Dict[str, Any],
    evaluation: Dict[str, Any],
    user_feedback: Optional[str] = None,
) -> str:
    return (
        f"Revise this song.\n\nORIGINAL SONG:\nTitle: {song['title']}\n\nSections:\n{format_sections(song)}"
        f"\n\nCRITIQUE:\nQuality: {evaluation['quality']}/10"
        f"\nStrengths: {_joined(evaluation.get('strengths', []))}"
        f"\nWeaknesses: {_joined(evaluation.get('weaknesses', []))}"
        f"\nSuggestions: {_joined(evaluation.get('suggestions', []))}"
        f"{_feedback_block(user_feedback)}"
        f"\n\nJSON format:\n{SONG_STRUCTURE_FORMAT}"
    )


def build_melody_request(
    song: Dict[str, Any],
    emotion: str,
    mood: str,
    tempo: Optional[int] = None,
    key: Optional[str] = None,
    time_signature: Optional[str] = None,
    user_feedback: Optional[str] = None,
) -> str:
    preferences = [
        f"Tempo: {tempo} BPM" if tempo else "Tempo: choose one that suits the style",
        f"Key: {key}" if key else "Key: choose one that suits the emotion",
        f"Time signature: {time_signature}" if time_signature else "Time signature: 4/4",
    ]
    return (
        f"Compose a melody for this song.\n\nTitle: {song['title']}\nEmotion: {emotion}\nMood: {mood}\n"
        + "\n".join(preferences)
        + f"\n\nSections:\n{format_sections(song)}"
        + _feedback_block(user_feedback)
        + f"\n\nJSON format:\n{MELODY_STRUCTURE_FORMAT}"
    )


def _melody_summary(melody: Dict[str, Any]) -> str:
    track_lines = [
        f"- {track['name']}: {len(track.get('notes', []))} notes"
        for track in melody.get("tracks", [])
    ]
    return (
        f"Tempo: {melody['tempo']} BPM\nKey: {melody['key']}\nTime signature: {melody['timeSignature']}"
        f"\nTotal beats: {melody['totalBeats']}\nTracks:\n" + "\n".join(track_lines)
    )


def build_melody_evaluation_request(melody: Dict[str, Any], song: Dict[str, Any], threshold: float = 8.5) -> str:
    return (
        f"Evaluate this melody.\n\nMELODY:\n{_melody_summary(melody)}"
        f"\n\nNotes (JSON):\n{json.dumps(melody['tracks'])}"
        f"\n\nLYRICS:\nTitle: {song['title']}\n{format_sections(song)}"
        f"\n\nJSON format:\n{EVALUATION_FORMAT % threshold}"
    )


def build_melody_improvement_request(
    melody: Dict[str, Any],
    evaluation: Dict[str, Any],
    song: Dict[str, Any],
    user_feedback: Optional[str] = None,
) -> str:
    return (
        f"Revise this melody.\n\nORIGINAL MELODY:\n{_melody_summary(melody)}"
        f"\n\nNotes (JSON):\n{json.dumps(melody['tracks'])}"
        f"\n\nCRITIQUE:\nQuality: {evaluation['quality']}/10"
        f"\nWeaknesses: {_joined(evaluation.get('weaknesses', []))}"
        f"\nSuggestions: {_joined(evaluation.get('suggestions', []))}"
        f"\n\nLYRICS:\nTitle: {song['title']}\n{format_sections(song)}"
        f"{_feedback_block(user_feedback)}"
        f"\n\nJSON format:\n{MELODY_STRUCTURE_FORMAT}"
    )


__all__ = [
    "SONGWRITER_SYSTEM_PROMPT",
    "LYRICS_CRITIC_SYSTEM_PROMPT",
    "LYRICS_EDITOR_SYSTEM_PROMPT",
    "COMPOSER_SYSTEM_PROMPT",
    "MELODY_CRITIC_SYSTEM_PROMPT",
    "MELODY_EDITOR_SYSTEM_PROMPT",
    "format_sections",
    "build_song_request",
    "build_lyrics_evaluation_request",
    "build_lyrics_improvement_request",
    "build_melody_request",
    "build_melody_evaluation_request",
    "build_melody_improvement_request",
]
