"""Shared types and lightweight data containers.

We avoid heavy frameworks here. The goal is:
- keep the gateway portable across backends
- keep typing clear but not over-abstract
- configuration values are frozen so a dispatched request can hold a snapshot
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Literal, Optional, Tuple

from .errors import InvalidProviderId, PolicyRejected, ValidationError

ProviderId = Literal["openai", "anthropic", "google_gemini", "ollama", "custom"]
FilterLevel = Literal["strict", "moderate", "permissive"]

PROVIDER_IDS: Tuple[str, ...] = ("openai", "anthropic", "google_gemini", "ollama", "custom")
FILTER_LEVELS: Tuple[str, ...] = ("strict", "moderate", "permissive")

# Older preference files wrote the short name.
_PROVIDER_ALIASES = {"google": "google_gemini", "gemini": "google_gemini"}

KEYLESS_PROVIDERS = ("ollama",)

def normalize_provider_id(v: Any) -> ProviderId:
    s = str(v or "").strip().lower()
    s = _PROVIDER_ALIASES.get(s, s)
    if s in PROVIDER_IDS:
        return s  # type: ignore
    raise InvalidProviderId(f"unknown provider id: {v!r}")

def normalize_filter_level(v: Any) -> FilterLevel:
    s = str(v or "").strip().lower()
    if s in FILTER_LEVELS:
        return s  # type: ignore
    raise ValidationError(f"unknown filter level: {v!r}")

def _clean_entries(values: Optional[Iterable[str]]) -> Tuple[str, ...]:
    out = []
    for v in values or ():
        s = str(v).strip()
        if s and s not in out:
            out.append(s)
    return tuple(out)

@dataclass(frozen=True)
class ProviderConfig:
    provider_id: ProviderId
    api_key: str = ""
    base_url: str = ""

    def validate(self) -> "ProviderConfig":
        if self.provider_id not in PROVIDER_IDS:
            raise InvalidProviderId(f"unknown provider id: {self.provider_id!r}")
        if not self.api_key and self.provider_id not in KEYLESS_PROVIDERS:
            raise ValidationError(f"api key is required for provider {self.provider_id}")
        if self.provider_id == "custom" and not self.base_url:
            raise ValidationError("base url is required for provider custom")
        if self.base_url and not self.base_url.startswith(("http://", "https://")):
            raise ValidationError(f"base url must start with http:// or https://: {self.base_url}")
        return self

    def __repr__(self) -> str:
        # Keep keys out of logs and tracebacks.
        return f"ProviderConfig(provider_id={self.provider_id!r}, api_key=<{len(self.api_key)} chars>, base_url={self.base_url!r})"

@dataclass(frozen=True)
class ContentPolicy:
    filter_level: FilterLevel = "moderate"
    allowed_topics: Tuple[str, ...] = ()
    blocked_topics: Tuple[str, ...] = ()
    allowed_use_cases: Tuple[str, ...] = ()
    rag_filtering_enabled: bool = True

    @classmethod
    def build(
        cls,
        filter_level: str = "moderate",
        allowed_topics: Optional[Iterable[str]] = None,
        blocked_topics: Optional[Iterable[str]] = None,
        allowed_use_cases: Optional[Iterable[str]] = None,
        rag_filtering_enabled: bool = True,
    ) -> "ContentPolicy":
        return cls(
            filter_level=normalize_filter_level(filter_level),
            allowed_topics=_clean_entries(allowed_topics),
            blocked_topics=_clean_entries(blocked_topics),
            allowed_use_cases=_clean_entries(allowed_use_cases),
            rag_filtering_enabled=bool(rag_filtering_enabled),
        )

    def overlapping_topics(self) -> Tuple[str, ...]:
        blocked = {t.lower() for t in self.blocked_topics}
        return tuple(t for t in self.allowed_topics if t.lower() in blocked)

@dataclass
class AIRequest:
    prompt: str
    context: str = ""
    documents: Tuple[str, ...] = ()
    provider: Optional[ProviderConfig] = None
    max_tokens: int = 1000
    temperature: float = 0.7
    use_case: str = "general"
    request_id: str = ""

    def validate(self) -> "AIRequest":
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise ValidationError("prompt is required")
        if not isinstance(self.max_tokens, int) or self.max_tokens <= 0:
            raise ValidationError(f"max_tokens must be a positive integer: {self.max_tokens!r}")
        if not 0.0 <= float(self.temperature) <= 2.0:
            raise ValidationError(f"temperature must be within [0, 2]: {self.temperature!r}")
        return self

@dataclass
class AIResponse:
    content: str = ""
    success: bool = False
    error: str = ""
    filtered_reason: str = ""
    confidence: float = 0.0
    error_kind: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.success

    @classmethod
    def failure(cls, error: Exception) -> "AIResponse":
        return cls(success=False, error=str(error), error_kind=getattr(error, "kind", "backend_failure"))

    @classmethod
    def rejected(cls, reason: str) -> "AIResponse":
        return cls(success=False, error="Content blocked by filter", filtered_reason=reason, error_kind=PolicyRejected.kind)

@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "PolicyDecision":
        return cls(True)

    @classmethod
    def reject(cls, reason: str) -> "PolicyDecision":
        return cls(False, reason)

@dataclass
class IndexedDocument:
    id: str
    title: str
    content: str
    source: str = "user_document"
    relevance_score: float = 0.0

@dataclass
class ChatTurn:
    content: str
    is_user: bool = False
    is_system: bool = False
    timestamp: float = field(default_factory=time.time)
