"""Gemini REST adapter (generateContent)."""
from __future__ import annotations

import json
import requests
from typing import Any, Dict, List

from .base import AdapterError, BaseChatAdapter, json_body

def _to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False)

def _messages_to_payload(messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    system_parts: List[str] = []
    contents: List[Dict[str, Any]] = []

    for m in messages or []:
        role = (m.get("role") or "user").strip().lower()
        text = _to_text(m.get("content", ""))

        if role in ("system", "developer"):
            if text.strip():
                system_parts.append(text.strip())
            continue

        gem_role = "model" if role == "assistant" else "user"
        contents.append({"role": gem_role, "parts": [{"text": text}]})

    system_text = "\n\n".join(system_parts).strip()

    payload: Dict[str, Any] = {"contents": contents}
    if system_text:
        payload["systemInstruction"] = {"parts": [{"text": system_text}]}
    return payload

class GeminiAdapter(BaseChatAdapter):
    provider_name = "Google Gemini"

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

    def generate(self, messages: List[Dict[str, Any]], cfg: Dict[str, Any]) -> Dict[str, Any]:
        model = cfg.get("model") or self.model
        url = f"{self.base_url}/models/{model}:generateContent"

        payload = _messages_to_payload(messages)
        payload["generationConfig"] = {
            "temperature": cfg.get("temperature", 0.7),
            "maxOutputTokens": cfg.get("max_tokens", 1000),
        }

        try:
            r = requests.post(url, headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterError(f"Gemini: request failed: {e}")

        if r.status_code != 200:
            raise AdapterError(f"Gemini: http {r.status_code}: {r.text[:800]}")

        data = json_body(r, "Gemini")
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise AdapterError("Gemini: response has no candidates")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        generated_text = "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))

        usage = data.get("usageMetadata", {}) or {}
        return {
            "choices": [{"message": {"role": "assistant", "content": generated_text}}],
            "usage": {
                "prompt_tokens": usage.get("promptTokenCount", 0) or 0,
                "completion_tokens": usage.get("candidatesTokenCount", 0) or 0,
                "total_tokens": usage.get("totalTokenCount", 0) or 0,
            },
            "gemini_raw": data,
        }

    def ping(self) -> bool:
        try:
            r = requests.get(f"{self.base_url}/models", headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise AdapterError(f"Gemini: request failed: {e}")
        return r.status_code == 200
