"""Gateway: the caller-facing contract.

Thin composition of ConfigStore + ContentPolicyEngine + RequestDispatcher over an
AgentCore. Constructed explicitly by the application's composition root; open()
restores persisted configuration, close() drains the pool and releases the engine.

All asynchronous operations return concurrent.futures.Future and accept an optional
callback that is invoked exactly once with the result. Nothing raises past here.
"""
from __future__ import annotations

from concurrent.futures import Future
from typing import Callable, List, Optional

from .agent_core import AgentCore, HttpAgentCore
from .config_store import ConfigStore, load_active_provider, load_policy
from .dispatcher import RequestDispatcher
from .logging_util import get_logger
from .policy import ContentPolicyEngine
from .prompt_layers import key_points_request, question_request, summary_request, text_request
from .settings import GatewaySettings, load_settings
from .types import AIRequest, AIResponse, ContentPolicy, KEYLESS_PROVIDERS

logger = get_logger(__name__)

ResponseCallback = Optional[Callable[[AIResponse], None]]

class Gateway:
    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        store: Optional[ConfigStore] = None,
        core: Optional[AgentCore] = None,
    ):
        self.settings = settings or load_settings()
        self.store = store if store is not None else ConfigStore(self.settings.store_path)
        self.policy_engine = ContentPolicyEngine(
            safety_screen=self.settings.safety_screen,
            safety_terms=self.settings.safety_terms,
        )
        self.core = core if core is not None else HttpAgentCore(self.settings, policy_engine=self.policy_engine)
        self.dispatcher = RequestDispatcher(
            self.core,
            self.store,
            policy_engine=self.policy_engine,
            max_workers=self.settings.max_workers,
            queue_capacity=self.settings.queue_capacity,
            submit_timeout_s=self.settings.submit_timeout_s,
            request_timeout_s=self.settings.request_timeout_s,
        )
        self._opened = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> "Gateway":
        if self._opened:
            return self
        self._opened = True

        provider = load_active_provider(self.store)
        if provider is not None:
            try:
                ok = self.core.configure(provider.provider_id, provider.api_key, provider.base_url)
            except Exception as e:
                logger.error("Error restoring provider %s: %s", provider.provider_id, e)
                ok = False
            if not ok:
                logger.warning("Stored provider %s could not be restored; starting unconfigured", provider.provider_id)
                provider = None

        policy = load_policy(self.store)
        try:
            self.core.set_policy(policy)
        except Exception as e:
            logger.error("Error restoring content filter: %s", e)

        self.dispatcher.restore(provider, policy)
        logger.info("gateway ready provider=%s filter=%s", provider.provider_id if provider else "(none)", policy.filter_level)
        return self

    def close(self) -> None:
        self.dispatcher.shutdown(wait=True)
        try:
            self.core.close()
        except Exception as e:
            logger.error("Error closing engine: %s", e)
        self._opened = False

    def __enter__(self) -> "Gateway":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def configure_provider(self, provider_id: str, api_key: str, base_url: Optional[str] = None,
                           callback: Optional[Callable] = None) -> Future:
        """Resolves to (ok, message)."""
        return self.dispatcher.configure_provider(provider_id, api_key, base_url, callback=callback)

    def switch_provider(self, provider_id: str, callback: Optional[Callable] = None) -> Future:
        return self.dispatcher.switch_provider(provider_id, callback=callback)

    def set_content_filter(self, policy: ContentPolicy) -> Future:
        """Fire-and-forget; the returned future resolves to True once persisted."""
        return self.dispatcher.set_policy(policy)

    def content_filter(self) -> ContentPolicy:
        return self.dispatcher.state.policy

    def is_configured(self) -> bool:
        provider = self.dispatcher.state.provider
        if provider is None:
            return False
        return bool(provider.api_key) or provider.provider_id in KEYLESS_PROVIDERS

    def current_provider(self) -> str:
        provider = self.dispatcher.state.provider
        return provider.provider_id if provider else ""

    def list_providers(self) -> List[str]:
        return self.dispatcher.list_providers()

    def last_error(self) -> str:
        return self.dispatcher.last_error

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def generate(self, request: AIRequest, callback: ResponseCallback = None) -> Future:
        return self.dispatcher.generate(request, callback=callback)

    def generate_text(self, prompt: str, context: Optional[str] = None, callback: ResponseCallback = None) -> Future:
        return self.generate(text_request(prompt, context), callback)

    def summarize(self, text: str, callback: ResponseCallback = None) -> Future:
        return self.generate(summary_request(text), callback)

    def extract_key_points(self, text: str, callback: ResponseCallback = None) -> Future:
        return self.generate(key_points_request(text), callback)

    def answer_question(self, question: str, context: Optional[str] = None, callback: ResponseCallback = None) -> Future:
        return self.generate(question_request(question, context), callback)

    # ------------------------------------------------------------------
    # Documents & diagnostics
    # ------------------------------------------------------------------
    def index_document(self, content: str, title: str, doc_id: Optional[str] = None) -> Future:
        return self.dispatcher.index_document(content, title, doc_id)

    def search_documents(self, query: str, max_results: int = 5) -> Future:
        return self.dispatcher.search_documents(query, max_results)

    def remove_document(self, doc_id: str) -> Future:
        return self.dispatcher.remove_document(doc_id)

    def test_connection(self) -> Future:
        return self.dispatcher.test_connection()
