"""Anthropic messages adapter."""
from __future__ import annotations

import requests
from typing import Any, Dict, List

from .base import AdapterError, BaseChatAdapter, json_body

ANTHROPIC_VERSION = "2023-06-01"

def _split_system(messages: List[Dict[str, Any]]):
    system_parts: List[str] = []
    turns: List[Dict[str, Any]] = []
    for m in messages or []:
        role = (m.get("role") or "user").strip().lower()
        text = str(m.get("content") or "")
        if role in ("system", "developer"):
            if text.strip():
                system_parts.append(text.strip())
            continue
        turns.append({"role": "assistant" if role == "assistant" else "user", "content": text})
    return "\n\n".join(system_parts).strip(), turns

class AnthropicAdapter(BaseChatAdapter):
    provider_name = "Anthropic"

    def generate(self, messages: List[Dict[str, Any]], cfg: Dict[str, Any]) -> Dict[str, Any]:
        system_text, turns = _split_system(messages)

        payload: Dict[str, Any] = {
            "model": cfg.get("model") or self.model,
            "max_tokens": cfg.get("max_tokens", 1000),
            "temperature": min(float(cfg.get("temperature", 0.7)), 1.0),
            "messages": turns,
        }
        if system_text:
            payload["system"] = system_text

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

        try:
            r = requests.post(f"{self.base_url}/messages", headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterError(f"Anthropic: request failed: {e}")

        if r.status_code != 200:
            raise AdapterError(f"Anthropic: http {r.status_code}: {r.text[:800]}")

        data = json_body(r, "Anthropic")
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise AdapterError("Anthropic: response has no content blocks")
        text = "".join(str(b.get("text") or "") for b in blocks if isinstance(b, dict) and b.get("type") == "text")

        usage = data.get("usage", {}) or {}
        prompt_tokens = usage.get("input_tokens", 0) or 0
        completion_tokens = usage.get("output_tokens", 0) or 0

        return {
            "choices": [{"message": {"role": "assistant", "content": text}}],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            "anthropic_raw": data,
        }
