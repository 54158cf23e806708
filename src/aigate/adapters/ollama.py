"""Ollama local model adapter (/api/generate, non-streaming)."""
from __future__ import annotations

import requests
from typing import Any, Dict, List

from .base import AdapterError, BaseChatAdapter, json_body

def _messages_to_prompt(messages: List[Dict[str, Any]]) -> str:
    system_parts: List[str] = []
    turns: List[str] = []
    for m in messages or []:
        role = (m.get("role") or "user").strip().lower()
        text = str(m.get("content") or "").strip()
        if not text:
            continue
        if role in ("system", "developer"):
            system_parts.append(text)
        else:
            turns.append(text)
    return "\n\n".join(system_parts + turns)

class OllamaAdapter(BaseChatAdapter):
    provider_name = "Ollama"

    def generate(self, messages: List[Dict[str, Any]], cfg: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": cfg.get("model") or self.model,
            "prompt": _messages_to_prompt(messages),
            "stream": False,
            "options": {
                "temperature": cfg.get("temperature", 0.7),
                "num_predict": cfg.get("max_tokens", 1000),
            },
        }

        try:
            r = requests.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterError(f"Ollama: failed to connect to {self.base_url}: {e}")

        if r.status_code != 200:
            raise AdapterError(f"Ollama: http {r.status_code}: {r.text[:800]}")

        data = json_body(r, "Ollama")
        if "response" not in data:
            raise AdapterError("Ollama: response has no 'response' field")

        prompt_tokens = data.get("prompt_eval_count", 0) or 0
        completion_tokens = data.get("eval_count", 0) or 0
        return {
            "choices": [{"message": {"role": "assistant", "content": str(data.get("response") or "")}}],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        }

    def ping(self) -> bool:
        try:
            r = requests.get(f"{self.base_url}/api/tags", timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterError(f"Ollama: failed to connect to {self.base_url}: {e}")
        return r.status_code == 200
