"""
Run-scoped key-value scratch state for Songsmith.

Two namespaces:
- artifacts: semantic keys (initialInput, creativeBrief, songStructure,
  melodyStructure, evaluation, iterationCount, userFeedback, ...)
- metadata: auxiliary run information

No type enforcement happens here. One StateStore belongs to exactly one run.
"""

import copy
from typing import Any, Dict, Optional


# Semantic artifact keys shared by policies, tools and the control loop
INITIAL_INPUT = "initialInput"
CREATIVE_BRIEF = "creativeBrief"
SONG_STRUCTURE = "songStructure"
MELODY_STRUCTURE = "melodyStructure"
EVALUATION = "evaluation"
ITERATION_COUNT = "iterationCount"
USER_FEEDBACK = "userFeedback"

# Melody workflow context
EMOTION = "emotion"
MOOD = "mood"
TEMPO = "tempo"
KEY = "key"
TIME_SIGNATURE = "timeSignature"


class StateStore:
    """
    Key-value artifact map plus a separate metadata map.

    Example:
        >>> state = StateStore()
        >>> state.set("iterationCount", 1)
        >>> state.get("iterationCount")
        1
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._artifacts: Dict[str, Any] = dict(initial or {})
        self._metadata: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._artifacts.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._artifacts[key] = value

    def has(self, key: str) -> bool:
        """True when the key holds a non-None value."""
        return self._artifacts.get(key) is not None

    def get_all(self) -> Dict[str, Any]:
        """Deep copy of the artifact map."""
        return copy.deepcopy(self._artifacts)

    def clear(self) -> None:
        """Reset both namespaces."""
        self._artifacts.clear()
        self._metadata.clear()

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self._metadata.get(key, default)

    def get_all_metadata(self) -> Dict[str, Any]:
        return copy.deepcopy(self._metadata)


__all__ = [
    "StateStore",
    "INITIAL_INPUT",
    "CREATIVE_BRIEF",
    "SONG_STRUCTURE",
    "MELODY_STRUCTURE",
    "EVALUATION",
    "ITERATION_COUNT",
    "USER_FEEDBACK",
    "EMOTION",
    "MOOD",
    "TEMPO",
    "KEY",
    "TIME_SIGNATURE",
]
