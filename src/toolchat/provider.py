from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from toolchat.providers.anthropic_provider import ANTHROPIC_MODELS, AnthropicProvider
from toolchat.providers.common import StreamEvent
from toolchat.providers.openai_provider import OPENAI_MODELS, OpenAIProvider


@runtime_checkable
class LLMProvider(Protocol):
    name: str
    model: str

    def stream(self, history: list[dict], tools: list[dict]) -> AsyncIterator[StreamEvent]:
        """Stream one model response.

        ``history`` is a list of ``{"role", "content": [block, ...]}`` dicts in
        internal (Anthropic-style) block format. Yields ``TextChunk`` and
        ``ToolCallRequest`` events in emission order, terminated by exactly one
        ``Completion``. Backend failures raise ``ProviderError``.
        """
        ...


@dataclass(frozen=True)
class ProviderInfo:
    name: str
    display_name: str
    api_key_env_var: str
    models: tuple[str, ...]


AVAILABLE_PROVIDERS: tuple[ProviderInfo, ...] = (
    ProviderInfo("anthropic", "Anthropic Claude", "ANTHROPIC_API_KEY", ANTHROPIC_MODELS),
    ProviderInfo("openai", "OpenAI GPT", "OPENAI_API_KEY", OPENAI_MODELS),
)

_FACTORIES: dict[str, Callable[[str, str], LLMProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def get_provider_info(provider_name: str) -> ProviderInfo:
    name = provider_name.strip().lower()
    for info in AVAILABLE_PROVIDERS:
        if info.name == name:
            return info
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: {', '.join(_FACTORIES)}")


def create_provider(provider_name: str, model: str, api_key: str) -> LLMProvider:
    """Factory: create an LLMProvider by name."""
    info = get_provider_info(provider_name)
    if not api_key:
        raise ValueError(f"{info.api_key_env_var} is required for the {info.name} provider")
    return _FACTORIES[info.name](model, api_key)
