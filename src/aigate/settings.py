"""Static gateway settings loaded from YAML.

Design:
- The settings file is ./src/configs/gateway.yaml unless AIGATE_SETTINGS points elsewhere.
- A missing or broken file is logged and the built-in defaults are used.
- Relative store paths resolve against the project root.

gateway.yaml supports:
- dispatcher: max_workers, queue_capacity, submit_timeout_s, request_timeout_s
- store: path, index_path
- providers: {<provider_id>: {enabled, base_url, model, timeout_s}}
- policy: safety_screen, safety_terms: {<filter_level>: [...]}
- rag: max_results, snippet_chars
"""
from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .logging_util import get_logger
from .types import FILTER_LEVELS, PROVIDER_IDS

logger = get_logger(__name__)

# <root>/src/aigate/settings.py -> parents[2] == <root>
PROJECT_ROOT = Path(__file__).resolve().parents[2]

_DEFAULT_PROVIDERS: Dict[str, Dict[str, Any]] = {
    "openai": {"base_url": "https://api.openai.com/v1", "model": "gpt-4o-mini"},
    "anthropic": {"base_url": "https://api.anthropic.com/v1", "model": "claude-3-5-haiku-latest"},
    "google_gemini": {"base_url": "https://generativelanguage.googleapis.com/v1beta", "model": "gemini-2.5-flash-lite"},
    "ollama": {"base_url": "http://localhost:11434", "model": "llama3", "timeout_s": 60},
    "custom": {"base_url": "", "model": "default"},
}

_DEFAULT_SAFETY_TERMS: Dict[str, List[str]] = {
    "strict": ["violence", "hate", "harassment", "illegal", "harmful", "dangerous", "explicit", "nsfw", "toxic"],
    "moderate": ["violence", "hate", "harassment", "illegal", "dangerous"],
    "permissive": [],
}

@dataclass
class ProviderSettings:
    enabled: bool = True
    base_url: str = ""
    model: str = ""
    timeout_s: float = 30.0

@dataclass
class GatewaySettings:
    max_workers: int = 4
    queue_capacity: int = 16
    submit_timeout_s: float = 1.0
    request_timeout_s: Optional[float] = None
    store_path: Path = PROJECT_ROOT / "var" / "aigate_prefs.json"
    index_path: Path = PROJECT_ROOT / "var" / "document_index.json"
    providers: Dict[str, ProviderSettings] = field(default_factory=dict)
    safety_screen: bool = False
    safety_terms: Dict[str, List[str]] = field(default_factory=lambda: copy.deepcopy(_DEFAULT_SAFETY_TERMS))
    rag_max_results: int = 3
    rag_snippet_chars: int = 200

    def provider(self, provider_id: str) -> ProviderSettings:
        return self.providers.get(provider_id) or ProviderSettings(**_DEFAULT_PROVIDERS.get(provider_id, {}))

def _load_yaml(path: Path) -> Dict:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except Exception as e:
        logger.error("Failed to load YAML: %s (%s)", path, e)
        return {}
    if not isinstance(data, dict):
        logger.error("Settings file is not a mapping: %s", path)
        return {}
    return data

def _resolve_path(v: Any, default: Path) -> Path:
    s = str(v or "").strip()
    if not s:
        return default
    p = Path(s).expanduser()
    if not p.is_absolute():
        p = PROJECT_ROOT / p
    return p

def _to_int(v: Any, default: int, minimum: int = 0) -> int:
    try:
        n = int(v)
    except (TypeError, ValueError):
        return default
    return n if n >= minimum else default

def _to_float(v: Any, default: Optional[float]) -> Optional[float]:
    if v is None:
        return default
    try:
        return float(v)
    except (TypeError, ValueError):
        return default

def _parse_providers(raw: Any) -> Dict[str, ProviderSettings]:
    raw = raw if isinstance(raw, dict) else {}
    out: Dict[str, ProviderSettings] = {}
    for pid in PROVIDER_IDS:
        base = dict(_DEFAULT_PROVIDERS.get(pid, {}))
        entry = raw.get(pid)
        if isinstance(entry, dict):
            base.update({k: v for k, v in entry.items() if v is not None})
        out[pid] = ProviderSettings(
            enabled=bool(base.get("enabled", True)),
            base_url=str(base.get("base_url") or "").rstrip("/"),
            model=str(base.get("model") or ""),
            timeout_s=_to_float(base.get("timeout_s"), 30.0) or 30.0,
        )
    return out

def _parse_safety_terms(raw: Any) -> Dict[str, List[str]]:
    terms = copy.deepcopy(_DEFAULT_SAFETY_TERMS)
    if isinstance(raw, dict):
        for level in FILTER_LEVELS:
            if isinstance(raw.get(level), list):
                terms[level] = [str(t).strip() for t in raw[level] if str(t).strip()]
    return terms

def settings_path() -> Path:
    env = os.environ.get("AIGATE_SETTINGS", "").strip()
    if env:
        return Path(env).expanduser()
    return PROJECT_ROOT / "src" / "configs" / "gateway.yaml"

def load_settings(path: Optional[Path] = None) -> GatewaySettings:
    data = _load_yaml(path or settings_path())

    disp = data.get("dispatcher") or {}
    store = data.get("store") or {}
    policy = data.get("policy") or {}
    rag = data.get("rag") or {}

    defaults = GatewaySettings()
    store_path = _resolve_path(os.environ.get("AIGATE_STORE_PATH") or store.get("path"), defaults.store_path)
    index_path = _resolve_path(os.environ.get("AIGATE_INDEX_PATH") or store.get("index_path"), defaults.index_path)

    settings = GatewaySettings(
        max_workers=_to_int(disp.get("max_workers"), defaults.max_workers, minimum=1),
        queue_capacity=_to_int(disp.get("queue_capacity"), defaults.queue_capacity),
        submit_timeout_s=_to_float(disp.get("submit_timeout_s"), defaults.submit_timeout_s) or 0.0,
        request_timeout_s=_to_float(disp.get("request_timeout_s"), None),
        store_path=store_path,
        index_path=index_path,
        providers=_parse_providers(data.get("providers")),
        safety_screen=bool(policy.get("safety_screen", False)),
        safety_terms=_parse_safety_terms(policy.get("safety_terms")),
        rag_max_results=_to_int(rag.get("max_results"), defaults.rag_max_results, minimum=1),
        rag_snippet_chars=_to_int(rag.get("snippet_chars"), defaults.rag_snippet_chars, minimum=1),
    )
    logger.debug(
        "Loaded settings: workers=%d queue=%d store=%s",
        settings.max_workers, settings.queue_capacity, settings.store_path,
    )
    return settings
