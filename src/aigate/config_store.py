"""Durable key/value preferences for provider credentials and the content filter.

Design:
- One JSON object on disk. Every write goes through a temp file + fsync + os.replace,
  so the file is always either the previous or the next version.
- put_many() is the transaction unit: the in-memory view is swapped only after the
  file write succeeded, so a failed write leaves prior state intact.
- Readers get values from an immutable-by-convention dict that is replaced, never
  mutated, so a read never sees half of a put_many().
- path=None keeps everything in memory (tests, throwaway sessions).

Key layout:
- current_provider
- <provider>_api_key, <provider>_base_url
- filter_level, enable_rag_filtering
- allowed_topics, blocked_topics, allowed_use_cases (comma-joined, trimmed on load)
"""
from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ConfigError, InvalidProviderId, ValidationError
from .logging_util import get_logger
from .types import KEYLESS_PROVIDERS, ContentPolicy, ProviderConfig, normalize_filter_level, normalize_provider_id

logger = get_logger(__name__)

KEY_CURRENT_PROVIDER = "current_provider"
KEY_FILTER_LEVEL = "filter_level"
KEY_RAG_FILTERING = "enable_rag_filtering"
KEY_ALLOWED_TOPICS = "allowed_topics"
KEY_BLOCKED_TOPICS = "blocked_topics"
KEY_ALLOWED_USE_CASES = "allowed_use_cases"

def api_key_key(provider_id: str) -> str:
    return f"{provider_id}_api_key"

def base_url_key(provider_id: str) -> str:
    return f"{provider_id}_base_url"

class ConfigStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._write_lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.error("Failed to read preferences: %s (%s)", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("Preferences file is not a JSON object: %s", self.path)
            return {}
        return data

    def _write_file(self, payload: Dict[str, Any]) -> None:
        assert self.path is not None
        self.path.parent.mkdir(parents=True, exist_ok=True)

        temp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as temp_file:
                json.dump(payload, temp_file, indent=2, ensure_ascii=False, sort_keys=True)
                temp_file.flush()
                os.fsync(temp_file.fileno())
                temp_path = Path(temp_file.name)

            os.replace(temp_path, self.path)
        except Exception:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def get_str(self, key: str, default: str = "") -> str:
        v = self._data.get(key)
        return default if v is None else str(v)

    def get_bool(self, key: str, default: bool = False) -> bool:
        v = self._data.get(key)
        if v is None:
            return default
        if isinstance(v, bool):
            return v
        s = str(v).strip().lower()
        if s in ("1", "true", "y", "yes"):
            return True
        if s in ("0", "false", "n", "no"):
            return False
        return default

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._data)

    def put(self, key: str, value: Any) -> None:
        self.put_many({key: value})

    def put_many(self, values: Dict[str, Any]) -> None:
        """Apply all values (None deletes a key) durably, or none of them.

        Raises ConfigError when the file cannot be written.
        """
        with self._write_lock:
            updated = dict(self._data)
            for k, v in values.items():
                if v is None:
                    updated.pop(k, None)
                else:
                    updated[k] = v

            if self.path is not None:
                try:
                    self._write_file(updated)
                except OSError as e:
                    raise ConfigError(f"failed to persist preferences to {self.path}: {e}") from e

            self._data = updated

    def flush(self) -> None:
        if self.path is None:
            return
        with self._write_lock:
            try:
                self._write_file(self._data)
            except OSError as e:
                raise ConfigError(f"failed to persist preferences to {self.path}: {e}") from e

# ----------------------------------------------------------------------
# Comma-joined sets
# ----------------------------------------------------------------------
def join_entries(entries: Iterable[str]) -> str:
    items = [str(e).strip() for e in entries or () if str(e).strip()]
    for item in items:
        if "," in item:
            # Not escaped: such an entry loads back as several entries.
            logger.warning("Entry contains a comma and will be split on load: %r", item)
    return ",".join(items)

def split_entries(raw: Any) -> Tuple[str, ...]:
    s = str(raw or "")
    if not s.strip():
        return ()
    out: List[str] = []
    for part in s.split(","):
        part = part.strip()
        if part and part not in out:
            out.append(part)
    return tuple(out)

# ----------------------------------------------------------------------
# Policy
# ----------------------------------------------------------------------
def policy_to_values(policy: ContentPolicy) -> Dict[str, Any]:
    return {
        KEY_FILTER_LEVEL: policy.filter_level,
        KEY_RAG_FILTERING: bool(policy.rag_filtering_enabled),
        KEY_ALLOWED_TOPICS: join_entries(policy.allowed_topics),
        KEY_BLOCKED_TOPICS: join_entries(policy.blocked_topics),
        KEY_ALLOWED_USE_CASES: join_entries(policy.allowed_use_cases),
    }

def save_policy(store: ConfigStore, policy: ContentPolicy) -> None:
    store.put_many(policy_to_values(policy))

def load_policy(store: ConfigStore) -> ContentPolicy:
    level_raw = store.get_str(KEY_FILTER_LEVEL, "moderate")
    try:
        level = normalize_filter_level(level_raw)
    except ValidationError:
        logger.warning("Unknown filter level in preferences: %r (using moderate)", level_raw)
        level = "moderate"

    return ContentPolicy(
        filter_level=level,
        allowed_topics=split_entries(store.get(KEY_ALLOWED_TOPICS)),
        blocked_topics=split_entries(store.get(KEY_BLOCKED_TOPICS)),
        allowed_use_cases=split_entries(store.get(KEY_ALLOWED_USE_CASES)),
        rag_filtering_enabled=store.get_bool(KEY_RAG_FILTERING, True),
    )

# ----------------------------------------------------------------------
# Provider credentials
# ----------------------------------------------------------------------
def provider_to_values(cfg: ProviderConfig, make_current: bool = True) -> Dict[str, Any]:
    values: Dict[str, Any] = {
        api_key_key(cfg.provider_id): cfg.api_key,
        # Always written so a stale base url never pairs with a new key.
        base_url_key(cfg.provider_id): cfg.base_url or None,
    }
    if make_current:
        values[KEY_CURRENT_PROVIDER] = cfg.provider_id
    return values

def save_provider(store: ConfigStore, cfg: ProviderConfig, make_current: bool = True) -> None:
    store.put_many(provider_to_values(cfg, make_current=make_current))

def load_provider(store: ConfigStore, provider_id: str) -> Optional[ProviderConfig]:
    """Stored credentials for provider_id, or None if it has none usable."""
    data = store.snapshot()
    return _provider_from(data, provider_id)

def _provider_from(data: Dict[str, Any], provider_id: str, prefix: str = "") -> Optional[ProviderConfig]:
    prefix = prefix or provider_id
    api_key = str(data.get(api_key_key(prefix)) or "")
    base_url = str(data.get(base_url_key(prefix)) or "")
    if not api_key and provider_id not in KEYLESS_PROVIDERS:
        return None
    return ProviderConfig(provider_id=provider_id, api_key=api_key, base_url=base_url)  # type: ignore

def load_active_provider(store: ConfigStore) -> Optional[ProviderConfig]:
    """The current provider's config, or None when unconfigured.

    An unknown persisted provider id is logged and treated as unconfigured.
    """
    data = store.snapshot()
    raw = str(data.get(KEY_CURRENT_PROVIDER) or "").strip()
    if not raw:
        return None
    try:
        provider_id = normalize_provider_id(raw)
    except InvalidProviderId:
        logger.warning("Unknown provider in preferences: %r", raw)
        return None

    if provider_id != raw:
        # Legacy alias: credentials may still sit under the old key prefix.
        return _provider_from(data, provider_id) or _provider_from(data, provider_id, prefix=raw)
    return _provider_from(data, provider_id)
