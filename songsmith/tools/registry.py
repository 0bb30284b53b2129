"""
Tool Registry for Songsmith.

Builds and indexes the validated tools of each workflow.

Architecture:
- Tools are constructed once per run with the backend chosen from settings
  (live LLM calls or deterministic sample output)
- The decision policy is bound to the registry of its workflow
- The control loop resolves tools by id through the registry only
"""

import logging
from typing import Dict, Any, Iterable, List, Optional

from songsmith.core.llm_client import LLMClient
from songsmith.core.settings import SettingsManager
from songsmith.tools.base import Backend, ToolKind, ValidatedTool
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

logger = logging.getLogger(__name__)


# ============================================================================
# TOOL REGISTRY
# ============================================================================

class ToolRegistry:
    """
    Id-indexed collection of ValidatedTools.

    Example:
        >>> registry = build_lyrics_tools(Backend.SAMPLE)
        >>> registry.get("evaluate-lyrics").name
        'EvaluateLyrics'
    """

    def __init__(self, tools: Optional[Iterable[ValidatedTool]] = None):
        self.tools: Dict[str, ValidatedTool] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: ValidatedTool) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If the tool id is already registered.
        """
        if tool.id in self.tools:
            raise ValueError(f"Tool already registered: {tool.id}")

        self.tools[tool.id] = tool
        logger.debug(f"Registered tool: {tool.id}")

    def get(self, tool_id: str) -> Optional[ValidatedTool]:
        return self.tools.get(tool_id)

    def for_kind(self, kind: ToolKind) -> Optional[ValidatedTool]:
        return self.tools.get(kind.value)

    def ids(self) -> List[str]:
        return list(self.tools.keys())

    def __contains__(self, tool_id: str) -> bool:
        return tool_id in self.tools

    def __len__(self) -> int:
        return len(self.tools)

    def list_tools(self) -> List[Dict[str, Any]]:
        """
        List registered tools with metadata.

        Example:
            >>> registry.list_tools()[0]
            {'id': 'generate-song-structure', 'name': 'GenerateSongStructure', 'role': 'generate', ...}
        """
        return [
            {
                "id": tool.id,
                "name": tool.name,
                "description": tool.description,
                "role": tool.kind.role.value,
                "requires_approval": tool.kind.content_producing,
                "backend": tool.backend.value,
            }
            for tool in self.tools.values()
        ]


# ============================================================================
# FACTORIES
# ============================================================================

def build_lyrics_tools(
    backend: Backend = Backend.SAMPLE,
    llm_client: Optional[LLMClient] = None,
    models: Optional[Dict[str, str]] = None,
    improvement_threshold: float = 7.0,
) -> ToolRegistry:
    """
    Build the three lyrics tools.

    Args:
        backend: live or sample.
        llm_client: Required for the live backend.
        models: Model per role ("generate", "evaluate", "improve").
        improvement_threshold: Score under which evaluations ask for improvement.
    """
    models = models or {}
    return ToolRegistry([
        GenerateSongStructureTool(backend, llm_client, models.get("generate")),
        EvaluateLyricsTool(backend, llm_client, models.get("evaluate"), improvement_threshold=improvement_threshold),
        ImproveLyricsTool(backend, llm_client, models.get("improve")),
    ])


def build_melody_tools(
    backend: Backend = Backend.SAMPLE,
    llm_client: Optional[LLMClient] = None,
    models: Optional[Dict[str, str]] = None,
    improvement_threshold: float = 8.5,
) -> ToolRegistry:
    """Build the three melody tools (same arguments as build_lyrics_tools)."""
    models = models or {}
    return ToolRegistry([
        GenerateMelodyTool(backend, llm_client, models.get("generate")),
        EvaluateMelodyTool(backend, llm_client, models.get("evaluate"), improvement_threshold=improvement_threshold),
        ImproveMelodyTool(backend, llm_client, models.get("improve")),
    ])


def build_tools_from_settings(workflow: str, settings: SettingsManager) -> ToolRegistry:
    """
    Build a workflow's tools from settings (backend, models, threshold).

    Args:
        workflow: "lyrics" or "melody".
        settings: Settings manager.
    """
    backend = Backend.SAMPLE if settings.use_sample_backend() else Backend.LIVE
    threshold = settings.get_guardrails(workflow)["quality_threshold"]

    llm_client = None
    models = None
    if backend is Backend.LIVE:
        llm_client = LLMClient(settings=settings)
        models = {role: settings.get_model(role) for role in ("generate", "evaluate", "improve")}

    logger.info(f"Building {workflow} tools (backend={backend.value})")
    factory = build_lyrics_tools if workflow == "lyrics" else build_melody_tools
    return factory(backend, llm_client, models, improvement_threshold=threshold)


__all__ = [
    "ToolRegistry",
    "build_lyrics_tools",
    "build_melody_tools",
    "build_tools_from_settings",
]
