import threading
from typing import Callable, Dict, List, Optional

import pytest

from src.aigate.agent_core import AgentCore
from src.aigate.config_store import ConfigStore
from src.aigate.gateway import Gateway
from src.aigate.settings import GatewaySettings
from src.aigate.types import AIRequest, AIResponse, ContentPolicy, IndexedDocument


class FakeAgentCore(AgentCore):
    """Scripted engine: records every call, replies via `reply`."""

    def __init__(self, reply: Optional[Callable[[AIRequest], AIResponse]] = None):
        self.reply = reply or (lambda req: AIResponse(content=f"echo: {req.prompt}", success=True))
        self.lock = threading.Lock()
        self.processed: List[AIRequest] = []
        self.configured: List[tuple] = []
        self.registered: Dict[str, tuple] = {}
        self.active: Optional[str] = None
        self.policies: List[ContentPolicy] = []
        self.indexed: Dict[str, IndexedDocument] = {}
        self.configure_result = True
        self.connection_ok = True
        self.closed = False

    def configure(self, provider_id, api_key, base_url=""):
        with self.lock:
            self.configured.append((provider_id, api_key, base_url))
            if self.configure_result:
                self.registered[provider_id] = (provider_id, api_key, base_url)
                self.active = provider_id
        return self.configure_result

    def unconfigure(self, provider_id):
        with self.lock:
            self.registered.pop(provider_id, None)
            if self.active == provider_id:
                self.active = None

    def set_policy(self, policy):
        with self.lock:
            self.policies.append(policy)

    def process(self, request):
        with self.lock:
            self.processed.append(request)
        return self.reply(request)

    def test_connection(self):
        return self.connection_ok

    def list_providers(self):
        with self.lock:
            return sorted(self.registered)

    def index_document(self, content, title, doc_id):
        with self.lock:
            self.indexed[doc_id] = IndexedDocument(id=doc_id, title=title, content=content)
        return True

    def search_documents(self, query, max_results=5):
        return [d for d in self.indexed.values() if query.lower() in d.content.lower()][:max_results]

    def remove_document(self, doc_id):
        with self.lock:
            return self.indexed.pop(doc_id, None) is not None

    def close(self):
        self.closed = True


@pytest.fixture
def settings(tmp_path):
    return GatewaySettings(
        max_workers=4,
        queue_capacity=8,
        submit_timeout_s=0.5,
        store_path=tmp_path / "prefs.json",
        index_path=tmp_path / "index.json",
    )


@pytest.fixture
def core():
    return FakeAgentCore()


@pytest.fixture
def store(settings):
    return ConfigStore(settings.store_path)


@pytest.fixture
def gateway(settings, store, core):
    gw = Gateway(settings=settings, store=store, core=core).open()
    yield gw
    gw.close()


@pytest.fixture
def configured_gateway(gateway):
    ok, _ = gateway.configure_provider("openai", "sk-test").result(timeout=5)
    assert ok
    return gateway
