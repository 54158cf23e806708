"""OpenAI-style chat.completions adapter (openai, custom OpenAI-compatible servers)."""
from __future__ import annotations

import requests
from typing import Any, Dict, List

from .base import AdapterError, BaseChatAdapter, json_body

class OpenAIStyleAdapter(BaseChatAdapter):
    provider_name = "OpenAI"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def generate(self, messages: List[Dict[str, Any]], cfg: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": cfg.get("model") or self.model,
            "messages": messages,
            "max_tokens": cfg.get("max_tokens", 1000),
            "temperature": cfg.get("temperature", 0.7),
            "stream": False,
        }

        try:
            r = requests.post(f"{self.base_url}/chat/completions", headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterError(f"{self.provider_name}: request failed: {e}")

        if r.status_code != 200:
            raise AdapterError(f"{self.provider_name}: http {r.status_code}: {r.text[:800]}")

        data = json_body(r, self.provider_name)
        if not isinstance(data.get("choices"), list) or not data["choices"]:
            raise AdapterError(f"{self.provider_name}: response has no choices")
        return data

    def ping(self) -> bool:
        try:
            r = requests.get(f"{self.base_url}/models", headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterError(f"{self.provider_name}: request failed: {e}")
        return r.status_code == 200
