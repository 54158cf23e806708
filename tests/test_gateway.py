import threading

from src.aigate.config_store import ConfigStore
from src.aigate.gateway import Gateway
from src.aigate.types import AIRequest, AIResponse, ContentPolicy

from conftest import FakeAgentCore


def test_configure_openai_scenario(gateway, core):
    assert not gateway.is_configured()
    assert gateway.current_provider() == ""

    ok, msg = gateway.configure_provider("openai", "sk-test", None).result(timeout=5)
    assert ok, msg
    assert gateway.is_configured()
    assert gateway.current_provider() == "openai"
    assert core.configured == [("openai", "sk-test", "")]


def test_ollama_without_key_is_accepted(gateway):
    ok, msg = gateway.configure_provider("ollama", "").result(timeout=5)
    assert ok, msg
    assert gateway.is_configured()
    assert gateway.current_provider() == "ollama"


def test_openai_without_key_fails_validation(gateway, core, store):
    ok, msg = gateway.configure_provider("openai", "   ").result(timeout=5)
    assert not ok
    assert "api key" in msg
    assert core.configured == []
    assert store.get("current_provider") is None
    assert not gateway.is_configured()


def test_unknown_provider_is_reported(gateway):
    ok, msg = gateway.configure_provider("skynet", "k").result(timeout=5)
    assert not ok
    assert "unknown provider" in msg


def test_custom_requires_base_url(gateway):
    ok, _ = gateway.configure_provider("custom", "k").result(timeout=5)
    assert not ok
    ok, _ = gateway.configure_provider("custom", "k", "http://llm.local:8000/v1").result(timeout=5)
    assert ok


def test_engine_refusal_keeps_previous_config(configured_gateway, core, store):
    core.configure_result = False
    ok, msg = configured_gateway.configure_provider("anthropic", "a-key").result(timeout=5)
    assert not ok
    assert msg == "Failed to configure provider"
    assert configured_gateway.current_provider() == "openai"
    assert store.get("current_provider") == "openai"
    assert store.get("anthropic_api_key") is None


def test_configuration_is_restored_on_open(settings):
    first_core = FakeAgentCore()
    with Gateway(settings=settings, store=ConfigStore(settings.store_path), core=first_core) as gw:
        assert gw.configure_provider("anthropic", "a-key", "https://proxy.example/v1").result(timeout=5)[0]
        policy = ContentPolicy.build("strict", allowed_topics=["math"], blocked_topics=["poker"])
        assert gw.set_content_filter(policy).result(timeout=5)

    second_core = FakeAgentCore()
    with Gateway(settings=settings, store=ConfigStore(settings.store_path), core=second_core) as gw:
        assert gw.current_provider() == "anthropic"
        assert second_core.configured == [("anthropic", "a-key", "https://proxy.example/v1")]
        assert second_core.policies[-1] == policy
        assert gw.content_filter() == policy
    assert second_core.closed


def test_unknown_persisted_provider_starts_unconfigured(settings):
    store = ConfigStore(settings.store_path)
    store.put_many({"current_provider": "skynet", "skynet_api_key": "k"})
    core = FakeAgentCore()
    with Gateway(settings=settings, store=store, core=core) as gw:
        assert not gw.is_configured()
        assert core.configured == []
        assert gw.list_providers() == []


def test_switch_provider_needs_stored_credentials(configured_gateway):
    ok, msg = configured_gateway.switch_provider("anthropic").result(timeout=5)
    assert not ok
    assert "not configured" in msg

    assert configured_gateway.configure_provider("anthropic", "a-key").result(timeout=5)[0]
    ok, _ = configured_gateway.switch_provider("openai").result(timeout=5)
    assert ok
    assert configured_gateway.current_provider() == "openai"


def test_list_providers(gateway):
    assert gateway.list_providers() == []
    gateway.configure_provider("openai", "sk-test").result(timeout=5)
    gateway.configure_provider("ollama", "").result(timeout=5)
    assert gateway.list_providers() == ["ollama", "openai"]


def test_index_twice_without_id_gets_distinct_ids(gateway, core):
    assert gateway.index_document("hello world", "Doc A", None).result(timeout=5)
    assert gateway.index_document("hello world", "Doc A", None).result(timeout=5)
    assert len(core.indexed) == 2
    ids = list(core.indexed)
    assert ids[0] != ids[1]
    assert all(i.startswith("doc_") for i in ids)


def test_index_keeps_caller_id_and_skips_policy(gateway, core):
    gateway.set_content_filter(ContentPolicy.build("strict", blocked_topics=["hello"])).result(timeout=5)
    assert gateway.index_document("hello world", "Doc A", "fixed-id").result(timeout=5)
    assert core.indexed["fixed-id"].content == "hello world"


def test_search_and_remove_documents(gateway):
    gateway.index_document("quarterly budget notes", "Budget", "b1").result(timeout=5)
    docs = gateway.search_documents("budget").result(timeout=5)
    assert [d.id for d in docs] == ["b1"]
    assert gateway.remove_document("b1").result(timeout=5) is True
    assert gateway.remove_document("b1").result(timeout=5) is False


def test_test_connection(gateway, core):
    assert gateway.test_connection().result(timeout=5) is False
    gateway.configure_provider("openai", "sk-test").result(timeout=5)
    assert gateway.test_connection().result(timeout=5) is True
    core.connection_ok = False
    assert gateway.test_connection().result(timeout=5) is False


def test_convenience_wrappers_shape_requests(configured_gateway, core):
    configured_gateway.summarize("long text").result(timeout=5)
    configured_gateway.extract_key_points("long text").result(timeout=5)
    configured_gateway.answer_question("why?", "because").result(timeout=5)
    configured_gateway.answer_question("why?").result(timeout=5)
    configured_gateway.generate_text("hello").result(timeout=5)

    by_case = {r.use_case: r for r in core.processed}
    assert by_case["summarization"].max_tokens == 500
    assert by_case["summarization"].prompt.startswith("Please provide a concise summary")
    assert by_case["key_extraction"].max_tokens == 300
    assert "bulleted list" in by_case["key_extraction"].prompt
    assert by_case["text_generation"].prompt == "hello"
    answers = [r.prompt for r in core.processed if r.use_case == "question_answering"]
    assert "Context: because\n\nQuestion: why?" in answers[0]
    assert answers[1] == "why?"


def test_wrappers_go_through_policy(configured_gateway, core):
    configured_gateway.set_content_filter(
        ContentPolicy.build("moderate", allowed_use_cases=["summarization"])
    ).result(timeout=5)

    assert configured_gateway.summarize("notes").result(timeout=5).success
    resp = configured_gateway.answer_question("why?").result(timeout=5)
    assert not resp.success
    assert resp.error_kind == "policy_rejected"
    assert [r.use_case for r in core.processed] == ["summarization"]


def test_callback_receives_response_once(configured_gateway):
    seen = []
    done = threading.Event()

    def on_response(resp):
        seen.append(resp)
        done.set()

    fut = configured_gateway.generate(AIRequest(prompt="hi"), callback=on_response)
    resp = fut.result(timeout=5)
    assert done.wait(timeout=5)
    assert isinstance(resp, AIResponse)
    assert seen == [resp]


def test_nothing_raises_after_close(settings, store):
    gw = Gateway(settings=settings, store=store, core=FakeAgentCore()).open()
    gw.configure_provider("openai", "sk-test").result(timeout=5)
    gw.close()
    resp = gw.generate(AIRequest(prompt="hi")).result(timeout=5)
    assert not resp.success
    assert "shut down" in resp.error
    assert gw.index_document("x", "y").result(timeout=5) is False
