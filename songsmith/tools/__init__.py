"""
Validated tools for Songsmith.

- Lyrics: GenerateSongStructure, EvaluateLyrics, ImproveLyrics
- Melody: GenerateMelody, EvaluateMelody, ImproveMelody

Every tool validates its input and output with pydantic and runs on either the
live LLM backend or the deterministic sample backend.
"""

from songsmith.tools.base import (
    Backend,
    ToolKind,
    ToolRole,
    ToolError,
    ToolValidationError,
    ToolWorkError,
    ValidatedTool,
)
from songsmith.tools.lyrics import (
    GenerateSongStructureTool,
    EvaluateLyricsTool,
    ImproveLyricsTool,
)
from songsmith.tools.melody import (
    GenerateMelodyTool,
    EvaluateMelodyTool,
    ImproveMelodyTool,
)
from songsmith.tools.registry import (
    ToolRegistry,
    build_lyrics_tools,
    build_melody_tools,
    build_tools_from_settings,
)

__all__ = [
    # Contract
    "Backend",
    "ToolKind",
    "ToolRole",
    "ToolError",
    "ToolValidationError",
    "ToolWorkError",
    "ValidatedTool",
    # Lyrics
    "GenerateSongStructureTool",
    "EvaluateLyricsTool",
    "ImproveLyricsTool",
    # Melody
    "GenerateMelodyTool",
    "EvaluateMelodyTool",
    "ImproveMelodyTool",
    # Registry
    "ToolRegistry",
    "build_lyrics_tools",
    "build_melody_tools",
    "build_tools_from_settings",
]
