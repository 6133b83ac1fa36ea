"""
Text generation provider.

Thin wrapper around Claude (via LangChain) exposing a single
generate(system_prompt, user_prompt) call that either returns content
plus usage, or raises ProviderError.
"""

from dataclasses import dataclass
from typing import Any, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage

from content_engine.config import config
from content_engine.errors import ProviderError


@dataclass
class TextGeneration:
    """Output of one text generation call."""
    content: str
    model: str
    tokens: int = 0


def _content_to_text(content: Any) -> str:
    # Anthropic responses can come back as a list of content blocks
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


class TextGenerationClient:
    """
    Text generation client.

    Args:
        model: Model id (defaults to config.TEXT_MODEL)
        temperature: Creativity level
        max_tokens: Output token cap per call
        llm: Pre-built chat model (tests inject a fake here)
    """

    provider = "anthropic"

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        llm: Optional[Any] = None
    ):
        self.model_name = model or config.TEXT_MODEL
        self.temperature = config.TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or config.TEXT_MAX_TOKENS
        self._llm = llm

    @property
    def llm(self) -> Any:
        if self._llm is None:
            if not config.ANTHROPIC_API_KEY:
                raise ProviderError("ANTHROPIC_API_KEY is not configured", provider=self.provider)
            self._llm = ChatAnthropic(
                model=self.model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                anthropic_api_key=config.ANTHROPIC_API_KEY,
                timeout=config.TEXT_TIMEOUT_SECONDS,
            )
        return self._llm

    async def generate(self, system_prompt: str, user_prompt: str) -> TextGeneration:
        """Run one completion. Raises ProviderError on any provider failure."""
        llm = self.llm

        try:
            response = await llm.ainvoke([
                SystemMessage(content=system_prompt),
                HumanMessage(content=user_prompt),
            ])
        except Exception as e:
            raise ProviderError(f"Text generation failed: {e}", provider=self.provider) from e

        content = _content_to_text(response.content).strip()
        if not content:
            raise ProviderError("Text provider returned an empty response", provider=self.provider)

        usage = getattr(response, "usage_metadata", None) or {}

        return TextGeneration(
            content=content,
            model=self.model_name,
            tokens=int(usage.get("total_tokens", 0) or 0),
        )
