"""
Validated Tool Contract for Songsmith.

Every content producer is a ValidatedTool:
1. validate raw input against the tool's input model (ToolValidationError on failure)
2. run the async work (ToolWorkError on backend failure, propagated unchanged)
3. validate the result against the output model (ToolValidationError on failure)

Nothing runs if input validation fails. Tools are stateless apart from the
backend chosen at construction.

ToolKind is the closed set of tools. Each kind carries its own static metadata
(role, committed state key, whether it produces content that may be sent for
approval, display name) so the control loop never dispatches on raw strings.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Type

from pydantic import BaseModel, ValidationError

from songsmith.core.llm_client import LLMClient, LLMError
from songsmith.core.state_store import SONG_STRUCTURE, MELODY_STRUCTURE, EVALUATION

logger = logging.getLogger(__name__)


# ============================================================================
# ERRORS
# ============================================================================

class ToolError(Exception):
    """Base class for per-tool failures (absorbed into observations by the loop)."""

    def __init__(self, tool_name: str, detail: str, message: Optional[str] = None):
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(message or f"Tool {tool_name} error: {detail}")


class ToolValidationError(ToolError):
    """Raised when tool input or output violates its schema."""

    def __init__(self, tool_name: str, detail: str):
        super().__init__(tool_name, detail, f"Tool {tool_name} validation error: {detail}")


class ToolWorkError(ToolError):
    """Raised when the tool's own work fails (LLM call, malformed model output)."""

    def __init__(self, tool_name: str, detail: str):
        super().__init__(tool_name, detail, f"Tool {tool_name} failed: {detail}")


# ============================================================================
# TOOL KINDS
# ============================================================================

class ToolRole(str, Enum):
    GENERATE = "generate"
    EVALUATE = "evaluate"
    IMPROVE = "improve"


class Backend(str, Enum):
    """How a tool produces content."""
    LIVE = "live"
    SAMPLE = "sample"


class ToolKindInfo(NamedTuple):
    role: ToolRole
    state_key: str
    display_name: str


class ToolKind(str, Enum):
    """Closed set of tool kinds; the value is the public tool id."""

    GENERATE_SONG_STRUCTURE = "generate-song-structure"
    EVALUATE_LYRICS = "evaluate-lyrics"
    IMPROVE_LYRICS = "improve-lyrics"
    GENERATE_MELODY = "generate-melody"
    EVALUATE_MELODY = "evaluate-melody"
    IMPROVE_MELODY = "improve-melody"

    @property
    def info(self) -> ToolKindInfo:
        return _KIND_INFO[self]

    @property
    def role(self) -> ToolRole:
        return self.info.role

    @property
    def state_key(self) -> str:
        """State key the tool's output is committed under."""
        return self.info.state_key

    @property
    def display_name(self) -> str:
        return self.info.display_name

    @property
    def content_producing(self) -> bool:
        """Generate and improve tools produce drafts that may go through approval."""
        return self.role in (ToolRole.GENERATE, ToolRole.IMPROVE)

    @property
    def clears_key(self) -> Optional[str]:
        """Key invalidated when this tool's output is committed."""
        return EVALUATION if self.role is ToolRole.IMPROVE else None

    @classmethod
    def parse(cls, tool_id: str) -> Optional["ToolKind"]:
        """Return the kind for a tool id, or None for unknown ids."""
        try:
            return cls(tool_id)
        except ValueError:
            return None


_KIND_INFO: Dict[ToolKind, ToolKindInfo] = {
    ToolKind.GENERATE_SONG_STRUCTURE: ToolKindInfo(ToolRole.GENERATE, SONG_STRUCTURE, "Generating Song Structure"),
    ToolKind.EVALUATE_LYRICS: ToolKindInfo(ToolRole.EVALUATE, EVALUATION, "Evaluating Lyrics Quality"),
    ToolKind.IMPROVE_LYRICS: ToolKindInfo(ToolRole.IMPROVE, SONG_STRUCTURE, "Improving Lyrics"),
    ToolKind.GENERATE_MELODY: ToolKindInfo(ToolRole.GENERATE, MELODY_STRUCTURE, "Generating Melody"),
    ToolKind.EVALUATE_MELODY: ToolKindInfo(ToolRole.EVALUATE, EVALUATION, "Evaluating Melody Quality"),
    ToolKind.IMPROVE_MELODY: ToolKindInfo(ToolRole.IMPROVE, MELODY_STRUCTURE, "Improving Melody"),
}


# ============================================================================
# VALIDATED TOOL
# ============================================================================

def describe_validation_error(error: ValidationError) -> str:
    """Compact one-line description of a pydantic ValidationError."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


class ValidatedTool(ABC):
    """
    Base class for schema-checked async tools.

    Subclasses set kind, name, description, input_model, output_model and
    implement _execute(parsed_input).

    Example:
        >>> output = await tool.execute({"songStructure": song})
        >>> output["quality"]
        7.5
    """

    kind: ToolKind
    name: str
    description: str
    input_model: Type[BaseModel]
    output_model: Type[BaseModel]

    def __init__(self, backend: Backend = Backend.SAMPLE):
        self.backend = Backend(backend)

    @property
    def id(self) -> str:
        return self.kind.value

    async def execute(self, raw_input: Any) -> Dict[str, Any]:
        """
        Validate input, run the work, validate output.

        Args:
            raw_input: Unvalidated input (dict or model).

        Returns:
            Validated output as a camelCase dict ready for the state store.

        Raises:
            ToolValidationError: Input or output schema violation.
            ToolWorkError: Backend failure.
        """
        if isinstance(raw_input, BaseModel):
            raw_input = raw_input.model_dump(by_alias=True)

        try:
            parsed = self.input_model.model_validate(raw_input)
        except ValidationError as e:
            logger.warning(f"{self.name}: input rejected")
            raise ToolValidationError(self.name, f"invalid input: {describe_validation_error(e)}") from e

        result = await self._execute(parsed)

        if isinstance(result, BaseModel):
            result = result.model_dump(by_alias=True)

        try:
            output = self.output_model.model_validate(result)
        except ValidationError as e:
            logger.warning(f"{self.name}: output rejected")
            raise ToolValidationError(self.name, f"invalid output: {describe_validation_error(e)}") from e

        return output.model_dump(by_alias=True, exclude_none=True)

    @abstractmethod
    async def _execute(self, parsed_input: Any) -> Any:
        """Tool-specific work on validated input."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, backend={self.backend.value})"


class ModelBackedTool(ValidatedTool):
    """
    ValidatedTool whose live backend calls an LLM.

    The sample backend needs no client; the live backend requires one.
    """

    def __init__(
        self,
        backend: Backend = Backend.SAMPLE,
        llm_client: Optional[LLMClient] = None,
        model: Optional[str] = None,
    ):
        super().__init__(backend)
        if self.backend is Backend.LIVE and (llm_client is None or not model):
            raise ValueError(f"{self.name}: live backend requires an LLM client and a model")
        self.llm_client = llm_client
        self.model = model

    async def _ask_model(self, system_prompt: str, user_prompt: str, temperature: float) -> Dict[str, Any]:
        """
        Run one JSON completion in a worker thread.

        Raises:
            ToolWorkError: If the call fails or the reply is not a JSON object.
        """
        try:
            return await asyncio.to_thread(
                self.llm_client.generate_json,
                self.model,
                system_prompt,
                user_prompt,
                temperature,
            )
        except (LLMError, ValueError) as e:
            logger.error(f"{self.name}: model call failed: {e}")
            raise ToolWorkError(self.name, str(e)) from e


__all__ = [
    "ToolError",
    "ToolValidationError",
    "ToolWorkError",
    "ToolRole",
    "Backend",
    "ToolKindInfo",
    "ToolKind",
    "ValidatedTool",
    "ModelBackedTool",
    "describe_validation_error",
]
