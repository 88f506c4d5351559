"""Фабрика транспортов (новый инстанс на каждый клиент, без глобального кэша)."""

from ai_completions.providers.base import CompletionTransport
from ai_completions.providers.mock import MockProvider
from ai_completions.providers.openai_compat import OpenAICompatibleTransport
from ai_completions.settings import Settings


def create_transport(name: str, settings: Settings) -> CompletionTransport:
    """Возвращает транспорт по имени (`mock`, `openai`)."""
    if name == "mock":
        return MockProvider()
    if name == "openai":
        return OpenAICompatibleTransport(settings)
    raise ValueError(f"Unknown provider: {name}")
