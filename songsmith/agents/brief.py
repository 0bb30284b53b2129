"""
Creative Brief derivation for Songsmith.

Turns raw caller input (lyrics text, emotion label, optional genre, language)
into a CreativeBrief using fixed lookup tables. No model calls.
"""

from typing import Any, Dict, List, Optional

from songsmith.agents.artifacts import CreativeBrief

NEUTRAL_MOOD = "neutral"
GENERAL_THEMES = ["general"]

EMOTION_TO_MOOD: Dict[str, str] = {
    "sad": "melancholic",
    "sadness": "melancholic",
    "happy": "upbeat",
    "happiness": "upbeat",
    "joy": "upbeat",
    "joyful": "upbeat",
    "angry": "intense",
    "anger": "intense",
    "rage": "intense",
    "love": "romantic",
    "loving": "romantic",
    "romantic": "romantic",
    "anxious": "tension",
    "anxiety": "tension",
    "nervous": "tension",
    "calm": "peaceful",
    "peaceful": "peaceful",
    "serene": "peaceful",
    "excited": "energetic",
    "excitement": "energetic",
    "energetic": "energetic",
}

MOOD_TO_THEMES: Dict[str, List[str]] = {
    "melancholic": ["loss", "nostalgia", "longing", "sorrow"],
    "upbeat": ["celebration", "joy", "optimism", "gratitude"],
    "intense": ["conflict", "frustration", "defiance", "struggle"],
    "romantic": ["romance", "connection", "devotion", "affection"],
    "tension": ["uncertainty", "worry", "anticipation", "tension"],
    "peaceful": ["peace", "tranquility", "acceptance", "mindfulness"],
    "energetic": ["anticipation", "adventure", "possibility", "enthusiasm"],
}

SLOW_GENRES = {"ballad", "slow", "ambient"}
FAST_GENRES = {"rock", "metal", "punk", "electronic", "dance"}
SLOW_EMOTIONS = {"sad", "calm", "peaceful", "melancholic"}
FAST_EMOTIONS = {"excited", "energetic", "angry", "rage"}


def mood_for(emotion: str) -> str:
    return EMOTION_TO_MOOD.get(emotion.strip().lower(), NEUTRAL_MOOD)


def themes_for(emotion: str) -> List[str]:
    return list(MOOD_TO_THEMES.get(mood_for(emotion), GENERAL_THEMES))


def tempo_for(emotion: str, genre: Optional[str] = None) -> str:
    """Genre decides first; emotion breaks the tie; otherwise moderate."""
    genre_key = (genre or "").strip().lower()
    if genre_key in SLOW_GENRES:
        return "slow"
    if genre_key in FAST_GENRES:
        return "fast"

    emotion_key = emotion.strip().lower()
    if emotion_key in SLOW_EMOTIONS:
        return "slow"
    if emotion_key in FAST_EMOTIONS:
        return "fast"
    return "moderate"


def create_creative_brief(raw_input: Dict[str, Any]) -> CreativeBrief:
    """
    Build a CreativeBrief from raw run input.

    Args:
        raw_input: {"lyrics", "emotion", "genre"?, "language"?}.

    Returns:
        CreativeBrief (lyrics trimmed, style mirrors genre).

    Raises:
        pydantic.ValidationError: If lyrics or emotion are missing or blank.

    Example:
        >>> brief = create_creative_brief({"lyrics": "text", "emotion": "sad"})
        >>> (brief.mood, brief.tempo)
        ('melancholic', 'slow')
    """
    emotion = str(raw_input.get("emotion") or "")
    genre = raw_input.get("genre") or None

    return CreativeBrief(
        lyrics=str(raw_input.get("lyrics") or "").strip(),
        emotion=emotion,
        genre=genre,
        mood=mood_for(emotion),
        themes=themes_for(emotion),
        tempo=tempo_for(emotion, genre),
        style=genre,
        language=raw_input.get("language") or "en",
    )


__all__ = [
    "EMOTION_TO_MOOD",
    "MOOD_TO_THEMES",
    "NEUTRAL_MOOD",
    "GENERAL_THEMES",
    "mood_for",
    "themes_for",
    "tempo_for",
    "create_creative_brief",
]
