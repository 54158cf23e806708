"""Adapter interface for AI providers."""
from __future__ import annotations

from typing import Any, Dict, List

from ..errors import BackendFailure

class AdapterError(BackendFailure):
    pass

class BaseChatAdapter:
    provider_name = "base"

    def __init__(self, api_key: str, base_url: str, model: str, timeout: float = 30):
        self.api_key = api_key
        self.base_url = (base_url or "").rstrip("/")
        self.model = model
        self.timeout = timeout

    def generate(self, messages: List[Dict[str, Any]], cfg: Dict[str, Any]) -> Dict[str, Any]:
        """Return an OpenAI-style dict: {"choices": [{"message": {"content": ...}}], "usage": {...}}."""
        raise NotImplementedError

    def ping(self) -> bool:
        out = self.generate([{"role": "user", "content": "Test"}], {"max_tokens": 5, "temperature": 0.0})
        return bool(out.get("choices"))

def extract_text(raw: Dict[str, Any]) -> str:
    try:
        choices = raw.get("choices") or []
        if not choices:
            return ""
        msg = choices[0].get("message") or {}
        return str(msg.get("content") or "")
    except Exception:
        return ""

def json_body(r: Any, provider: str) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError as e:
        raise AdapterError(f"{provider}: malformed response body: {e}")
    if not isinstance(data, dict):
        raise AdapterError(f"{provider}: response body is not a JSON object")
    return data
