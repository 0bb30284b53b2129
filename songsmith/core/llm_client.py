"""
LLM Client Abstraction for Songsmith.

Unified JSON-producing interface over OpenAI and Anthropic, used by the live
tool backend.

Features:
- Provider selected from the model name (gpt-*/o*/ -> OpenAI, claude-* -> Anthropic)
- API keys loaded from settings (config.json first, environment fallback)
- JSON mode on OpenAI, fenced-JSON tolerant parsing for Anthropic
- Token usage tracking with cost estimation
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

import anthropic
import openai

from songsmith.core.settings import SettingsManager, get_settings_manager

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """Raised when a model call fails or returns unusable content."""
    pass


# ============================================================================
# RESPONSE MODELS
# ============================================================================

@dataclass
class TokenUsage:
    """
    Token usage with cost estimation.

    Attributes:
        prompt_tokens: Number of input tokens.
        completion_tokens: Number of output tokens.
        total_tokens: Total tokens (prompt + completion).
        estimated_cost_usd: Estimated cost in USD.
        model: Model name that was used.
    """
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    estimated_cost_usd: float
    model: str = ""


@dataclass
class LLMResponse:
    """
    Unified LLM response format.

    Attributes:
        content: Text response from the model.
        finish_reason: Reason for completion ("stop", "end_turn", ...).
        usage: Token usage with cost estimation.
    """
    content: Optional[str]
    finish_reason: str
    usage: TokenUsage


# ============================================================================
# SESSION COST TRACKER
# ============================================================================

class SessionCostTracker:
    """
    Accumulates token usage and cost across a process, with per-model breakdown.

    Example:
        >>> tracker = SessionCostTracker()
        >>> tracker.add(usage)
        >>> tracker.summary()
        '3 calls, 5,432 tokens, $0.0156'
    """

    def __init__(self):
        self.usage_by_model: Dict[str, Dict[str, Any]] = {}
        self.total_prompt_tokens: int = 0
        self.total_completion_tokens: int = 0
        self.total_cost_usd: float = 0.0
        self.call_count: int = 0

    def add(self, usage: TokenUsage) -> None:
        """Add token usage from one model call."""
        model = usage.model or "unknown"
        stats = self.usage_by_model.setdefault(model, {
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0,
            "cost_usd": 0.0,
            "call_count": 0,
        })
        stats["prompt_tokens"] += usage.prompt_tokens
        stats["completion_tokens"] += usage.completion_tokens
        stats["total_tokens"] += usage.total_tokens
        stats["cost_usd"] += usage.estimated_cost_usd
        stats["call_count"] += 1

        self.total_prompt_tokens += usage.prompt_tokens
        self.total_completion_tokens += usage.completion_tokens
        self.total_cost_usd += usage.estimated_cost_usd
        self.call_count += 1

    @property
    def total_tokens(self) -> int:
        return self.total_prompt_tokens + self.total_completion_tokens

    def get_model_breakdown(self) -> List[Dict[str, Any]]:
        return [
            {"model": model, **stats}
            for model, stats in sorted(self.usage_by_model.items())
        ]

    def reset(self) -> None:
        self.usage_by_model = {}
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        self.total_cost_usd = 0.0
        self.call_count = 0

    def summary(self) -> str:
        return f"{self.call_count} calls, {self.total_tokens:,} tokens, ${self.total_cost_usd:.4f}"


# ============================================================================
# LLM CLIENT
# ============================================================================

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class LLMClient:
    """
    Unified LLM client supporting OpenAI and Anthropic.

    Calls are blocking; async callers run them in a worker thread.

    Example:
        >>> client = LLMClient()
        >>> data = client.generate_json(
        ...     model="gpt-4o-mini",
        ...     system_prompt=SONGWRITER_SYSTEM_PROMPT,
        ...     user_prompt=build_song_request(brief),
        ... )
        >>> data["title"]
        'Empty Rooms'
    """

    # Pricing per 1M tokens (input_price, output_price) in USD, matched by prefix
    MODEL_PRICING = {
        "gpt-4o-mini": (0.15, 0.60),
        "gpt-4o": (2.50, 10.00),
        "gpt-4.1-mini": (0.40, 1.60),
        "gpt-4.1": (2.00, 8.00),
        "claude-3-5-haiku": (0.80, 4.00),
        "claude-sonnet-4": (3.00, 15.00),
        "claude-opus-4": (15.00, 75.00),
    }

    def __init__(
        self,
        settings: Optional[SettingsManager] = None,
        tracker: Optional[SessionCostTracker] = None,
    ):
        self.settings = settings or get_settings_manager()
        self.tracker = tracker or SessionCostTracker()
        self.openai_client: Optional[openai.OpenAI] = None
        self.anthropic_client: Optional[anthropic.Anthropic] = None

        logger.info("LLMClient initialized")

    def _calculate_cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        """Estimated cost in USD (0.0 for unknown models)."""
        # Longest prefix first so "gpt-4o-mini" wins over "gpt-4o"
        for prefix in sorted(self.MODEL_PRICING, key=len, reverse=True):
            if model.startswith(prefix):
                input_price, output_price = self.MODEL_PRICING[prefix]
                cost = (prompt_tokens / 1_000_000) * input_price
                cost += (completion_tokens / 1_000_000) * output_price
                return round(cost, 6)

        logger.warning(f"No pricing found for model '{model}', returning $0 cost estimate")
        return 0.0

    @staticmethod
    def get_provider(model: str) -> str:
        """
        Determine provider from model name.

        Raises:
            ValueError: If model not recognized.
        """
        if model.startswith(("gpt", "o1", "o3", "o4")):
            return "openai"
        if model.startswith("claude"):
            return "anthropic"
        raise ValueError(f"Unknown model: {model}")

    def _init_openai_client(self) -> openai.OpenAI:
        if self.openai_client is not None:
            return self.openai_client

        api_key = self.settings.get_api_key("openai")
        if not api_key:
            raise LLMError("OpenAI API key not configured. Set OPENAI_API_KEY or save it in settings.")

        self.openai_client = openai.OpenAI(api_key=api_key)
        logger.info("OpenAI client initialized")
        return self.openai_client

    def _init_anthropic_client(self) -> anthropic.Anthropic:
        if self.anthropic_client is not None:
            return self.anthropic_client

        api_key = self.settings.get_api_key("anthropic")
        if not api_key:
            raise LLMError("Anthropic API key not configured. Set ANTHROPIC_API_KEY or save it in settings.")

        self.anthropic_client = anthropic.Anthropic(api_key=api_key)
        logger.info("Anthropic client initialized")
        return self.anthropic_client

    def generate(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """
        Generate one completion expected to contain a JSON object.

        Args:
            model: Model identifier.
            system_prompt: System prompt.
            user_prompt: User message.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.

        Returns:
            LLMResponse.

        Raises:
            LLMError: If the key is missing or the API call fails.
            ValueError: If the model is unknown.
        """
        provider = self.get_provider(model)
        if provider == "openai":
            response = self._generate_openai(model, system_prompt, user_prompt, temperature, max_tokens)
        else:
            response = self._generate_anthropic(model, system_prompt, user_prompt, temperature, max_tokens)

        self.tracker.add(response.usage)
        return response

    def generate_json(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> Dict[str, Any]:
        """
        Generate a completion and parse it as a JSON object.

        Raises:
            LLMError: If the call fails or the content is not a JSON object.
        """
        response = self.generate(model, system_prompt, user_prompt, temperature, max_tokens)
        return parse_json_object(response.content)

    def _generate_openai(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        client = self._init_openai_client()

        logger.info(f"OpenAI API call: model={model}")
        try:
            response = client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.AuthenticationError as e:
            logger.error(f"OpenAI authentication failed: {e}")
            raise LLMError("Invalid OpenAI API key") from e
        except openai.RateLimitError as e:
            logger.error(f"OpenAI rate limit exceeded: {e}")
            raise LLMError("OpenAI rate limit exceeded. Please try again later.") from e
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise LLMError(f"OpenAI API error: {e}") from e

        choice = response.choices[0]
        prompt_tokens = response.usage.prompt_tokens if response.usage else 0
        completion_tokens = response.usage.completion_tokens if response.usage else 0
        usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated_cost_usd=self._calculate_cost(model, prompt_tokens, completion_tokens),
            model=model,
        )

        logger.info(f"OpenAI response: finish_reason={choice.finish_reason}, tokens={usage.total_tokens}, cost=${usage.estimated_cost_usd:.6f}")
        return LLMResponse(content=choice.message.content, finish_reason=choice.finish_reason or "", usage=usage)

    def _generate_anthropic(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        client = self._init_anthropic_client()

        logger.info(f"Anthropic API call: model={model}")
        try:
            response = client.messages.create(
                model=model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except anthropic.AuthenticationError as e:
            logger.error(f"Anthropic authentication failed: {e}")
            raise LLMError("Invalid Anthropic API key") from e
        except anthropic.RateLimitError as e:
            logger.error(f"Anthropic rate limit exceeded: {e}")
            raise LLMError("Anthropic rate limit exceeded. Please try again later.") from e
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise LLMError(f"Anthropic API error: {e}") from e

        content_text = "".join(block.text for block in response.content if block.type == "text") or None
        prompt_tokens = response.usage.input_tokens
        completion_tokens = response.usage.output_tokens
        usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated_cost_usd=self._calculate_cost(model, prompt_tokens, completion_tokens),
            model=model,
        )

        logger.info(f"Anthropic response: stop_reason={response.stop_reason}, tokens={usage.total_tokens}, cost=${usage.estimated_cost_usd:.6f}")
        return LLMResponse(content=content_text, finish_reason=response.stop_reason or "", usage=usage)


def parse_json_object(content: Optional[str]) -> Dict[str, Any]:
    """
    Parse model output as a JSON object, tolerating a ```json fence.

    Raises:
        LLMError: If content is empty, not JSON, or not an object.
    """
    if not content or not content.strip():
        raise LLMError("No response from LLM")

    text = content.strip()
    fenced = _FENCED_JSON.search(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LLMError(f"LLM returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise LLMError("LLM returned JSON that is not an object")
    return data


__all__ = [
    "LLMError",
    "TokenUsage",
    "LLMResponse",
    "SessionCostTracker",
    "LLMClient",
    "parse_json_object",
]
