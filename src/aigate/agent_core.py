"""AgentCore: the engine boundary the gateway dispatches into.

Any backend can sit behind this contract: an in-process engine, a local RPC
client or a remote service. The gateway treats every call as fallible and never
assumes a call returns normally.

HttpAgentCore is the in-process engine:
- one adapter per provider, built from the ProviderConfig snapshot the request carries
- local keyword index for retrieval-augmented generation
- retrieval snippets are screened against blocked topics when the pushed policy
  has rag_filtering_enabled
"""
from __future__ import annotations

import threading
from typing import Dict, List, Optional

from .adapters.base import extract_text
from .errors import NotConfigured
from .index import LocalDocumentIndex
from .logging_util import get_logger, key_fingerprint
from .policy import ContentPolicyEngine
from .prompt_layers import apply_rag_injection, build_messages, build_rag_context, document_snippet
from .registry import build_adapter, is_enabled
from .settings import GatewaySettings
from .types import AIRequest, AIResponse, ContentPolicy, IndexedDocument, ProviderConfig

logger = get_logger(__name__)

class AgentCore:
    def configure(self, provider_id: str, api_key: str, base_url: str = "") -> bool:
        raise NotImplementedError

    def unconfigure(self, provider_id: str) -> None:
        """Drop a registration; the provider stops being active if it was."""
        raise NotImplementedError

    def set_policy(self, policy: ContentPolicy) -> None:
        raise NotImplementedError

    def process(self, request: AIRequest) -> AIResponse:
        raise NotImplementedError

    def test_connection(self) -> bool:
        raise NotImplementedError

    def list_providers(self) -> List[str]:
        raise NotImplementedError

    def index_document(self, content: str, title: str, doc_id: str) -> bool:
        raise NotImplementedError

    def search_documents(self, query: str, max_results: int = 5) -> List[IndexedDocument]:
        return []

    def remove_document(self, doc_id: str) -> bool:
        return False

    def close(self) -> None:
        pass

class HttpAgentCore(AgentCore):
    def __init__(
        self,
        settings: GatewaySettings,
        index: Optional[LocalDocumentIndex] = None,
        policy_engine: Optional[ContentPolicyEngine] = None,
    ):
        self.settings = settings
        self.index = index if index is not None else LocalDocumentIndex(settings.index_path)
        self.policy_engine = policy_engine or ContentPolicyEngine()
        self._lock = threading.Lock()
        self._providers: Dict[str, ProviderConfig] = {}
        self._active: Optional[str] = None
        self._policy = ContentPolicy()

    def configure(self, provider_id: str, api_key: str, base_url: str = "") -> bool:
        ok, reason = is_enabled(self.settings, provider_id)
        if not ok:
            logger.warning("configure refused: %s", reason)
            return False

        cfg = ProviderConfig(provider_id=provider_id, api_key=api_key or "", base_url=base_url or "")  # type: ignore
        try:
            cfg.validate()
            build_adapter(cfg, self.settings)
        except Exception as e:
            logger.warning("configure refused for %s: %s", provider_id, e)
            return False

        with self._lock:
            self._providers[provider_id] = cfg
            self._active = provider_id
        logger.info("configured provider=%s key=%s base_url=%s", provider_id, key_fingerprint(cfg.api_key), cfg.base_url or "(default)")
        return True

    def unconfigure(self, provider_id: str) -> None:
        with self._lock:
            self._providers.pop(provider_id, None)
            if self._active == provider_id:
                self._active = None

    def set_policy(self, policy: ContentPolicy) -> None:
        with self._lock:
            self._policy = policy

    def _active_config(self) -> ProviderConfig:
        with self._lock:
            if self._active is None:
                raise NotConfigured("AI provider not configured")
            return self._providers[self._active]

    def _rag_text(self, request: AIRequest, policy: ContentPolicy) -> str:
        limit = self.settings.rag_snippet_chars
        snippets = [document_snippet("", d, limit) for d in request.documents if (d or "").strip()]

        if len(self.index):
            for doc in self.index.search(request.prompt, self.settings.rag_max_results):
                snippets.append(document_snippet(doc.title, doc.content, limit))

        snippets, dropped = self.policy_engine.filter_snippets(snippets, policy)
        if dropped:
            logger.info("rag filtering dropped %d snippet(s)", dropped)
        return build_rag_context(snippets)

    def process(self, request: AIRequest) -> AIResponse:
        cfg = request.provider or self._active_config()
        with self._lock:
            policy = self._policy

        adapter = build_adapter(cfg, self.settings)
        messages = build_messages(request)
        rag_text = self._rag_text(request, policy)
        messages = apply_rag_injection(messages, provider=cfg.provider_id, rag_text=rag_text)

        raw = adapter.generate(messages, {"max_tokens": request.max_tokens, "temperature": request.temperature})
        return AIResponse(
            content=extract_text(raw),
            success=True,
            metadata={
                "provider": cfg.provider_id,
                "model": adapter.model,
                "usage": raw.get("usage") or {},
                "rag": bool(rag_text),
            },
        )

    def test_connection(self) -> bool:
        cfg = self._active_config()
        return build_adapter(cfg, self.settings).ping()

    def list_providers(self) -> List[str]:
        with self._lock:
            return list(self._providers.keys())

    def index_document(self, content: str, title: str, doc_id: str) -> bool:
        return self.index.index(IndexedDocument(id=doc_id, title=title or "", content=content or ""))

    def search_documents(self, query: str, max_results: int = 5) -> List[IndexedDocument]:
        return self.index.search(query, max_results)

    def remove_document(self, doc_id: str) -> bool:
        return self.index.remove(doc_id)
