"""Provider registry: which providers are callable and which adapter serves each.

Design:
- Only providers enabled in gateway.yaml can be configured.
- An empty base url on the ProviderConfig falls back to the provider default from settings.
- custom uses the OpenAI-compatible adapter and must carry its own base url.
"""
from __future__ import annotations

from typing import Dict, Tuple, Type

from .adapters.anthropic import AnthropicAdapter
from .adapters.base import BaseChatAdapter
from .adapters.gemini import GeminiAdapter
from .adapters.ollama import OllamaAdapter
from .adapters.openai_style import OpenAIStyleAdapter
from .errors import InvalidProviderId, ValidationError
from .logging_util import get_logger
from .settings import GatewaySettings
from .types import PROVIDER_IDS, ProviderConfig

logger = get_logger(__name__)

ADAPTERS: Dict[str, Type[BaseChatAdapter]] = {
    "openai": OpenAIStyleAdapter,
    "anthropic": AnthropicAdapter,
    "google_gemini": GeminiAdapter,
    "ollama": OllamaAdapter,
    "custom": OpenAIStyleAdapter,
}

DISPLAY_NAMES: Dict[str, str] = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "google_gemini": "Google Gemini",
    "ollama": "Ollama",
    "custom": "Custom",
}

def is_enabled(settings: GatewaySettings, provider_id: str) -> Tuple[bool, str]:
    if provider_id not in PROVIDER_IDS:
        return False, f"unknown provider: {provider_id}"
    if not settings.provider(provider_id).enabled:
        return False, f"provider disabled in settings: {provider_id}"
    return True, "enabled"

def build_adapter(cfg: ProviderConfig, settings: GatewaySettings) -> BaseChatAdapter:
    cls = ADAPTERS.get(cfg.provider_id)
    if cls is None:
        raise InvalidProviderId(f"unknown provider: {cfg.provider_id}")

    ps = settings.provider(cfg.provider_id)
    base_url = cfg.base_url or ps.base_url
    if not base_url:
        raise ValidationError(f"no base url for provider {cfg.provider_id}")

    adapter = cls(api_key=cfg.api_key, base_url=base_url, model=ps.model, timeout=ps.timeout_s)
    adapter.provider_name = DISPLAY_NAMES.get(cfg.provider_id, adapter.provider_name)
    return adapter
