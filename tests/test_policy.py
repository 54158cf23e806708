import pytest

from src.aigate.policy import ContentPolicyEngine, check_request, check_response
from src.aigate.settings import GatewaySettings
from src.aigate.types import AIRequest, AIResponse, ContentPolicy

LEVELS = ["strict", "moderate", "permissive"]


@pytest.mark.parametrize("level", LEVELS)
@pytest.mark.parametrize("prompt", ["", "anything at all", "Explain photosynthesis"])
def test_use_case_outside_allow_list_always_rejected(level, prompt):
    policy = ContentPolicy.build(level, allowed_use_cases=["summarization"])
    decision = check_request(AIRequest(prompt=prompt, use_case="general"), policy)
    assert not decision.allowed
    assert "use case" in decision.reason


def test_use_case_on_allow_list_passes():
    policy = ContentPolicy.build("moderate", allowed_use_cases=["summarization"])
    assert check_request(AIRequest(prompt="hi", use_case="summarization"), policy).allowed


@pytest.mark.parametrize("level", LEVELS)
def test_blocked_topic_rejects_request_and_response(level):
    policy = ContentPolicy.build(level, allowed_topics=["cards"], blocked_topics=["Gambling"])

    req = AIRequest(prompt="Tips for online GAMBLING with cards")
    decision = check_request(req, policy)
    assert not decision.allowed
    assert "Gambling" in decision.reason

    resp = AIResponse(content="Sure, here is a gambling strategy", success=True)
    assert not check_response(resp, policy).allowed


def test_blocked_topic_in_context_rejects():
    policy = ContentPolicy.build("permissive", blocked_topics=["secret"])
    req = AIRequest(prompt="summarize this", context="top SECRET memo")
    assert not check_request(req, policy).allowed


def test_blocked_wins_over_allowed():
    policy = ContentPolicy.build("strict", allowed_topics=["chess"], blocked_topics=["chess"])
    assert policy.overlapping_topics() == ("chess",)
    assert not check_request(AIRequest(prompt="chess openings"), policy).allowed


def test_strict_requires_an_allowed_topic():
    policy = ContentPolicy.build("strict", allowed_topics=["education"])
    decision = check_request(AIRequest(prompt="Explain photosynthesis", use_case="general"), policy)
    assert not decision.allowed
    assert "strict" in decision.reason

    assert check_request(AIRequest(prompt="Plan an education unit on plants"), policy).allowed


def test_strict_without_allow_list_only_blocks():
    policy = ContentPolicy.build("strict", blocked_topics=["war"])
    assert check_request(AIRequest(prompt="Explain photosynthesis"), policy).allowed


@pytest.mark.parametrize("level", ["moderate", "permissive"])
def test_allow_list_not_enforced_below_strict(level):
    policy = ContentPolicy.build(level, allowed_topics=["education"])
    assert check_request(AIRequest(prompt="Explain photosynthesis"), policy).allowed


def test_empty_topic_entries_never_match():
    policy = ContentPolicy(blocked_topics=("", "  "))
    assert check_request(AIRequest(prompt="hello"), policy).allowed


def test_response_check_ignores_allow_list():
    policy = ContentPolicy.build("strict", allowed_topics=["education"])
    assert check_response(AIResponse(content="Photosynthesis converts light", success=True), policy).allowed


def test_safety_screen_is_opt_in():
    settings = GatewaySettings()
    policy = ContentPolicy.build("moderate")
    req = AIRequest(prompt="a dangerous recipe")

    assert ContentPolicyEngine().check_request(req, policy).allowed

    screened = ContentPolicyEngine(safety_screen=True, safety_terms=settings.safety_terms)
    decision = screened.check_request(req, policy)
    assert not decision.allowed
    assert "safety" in decision.reason

    permissive = ContentPolicy.build("permissive")
    assert screened.check_request(req, permissive).allowed


def test_filter_snippets_respects_rag_flag():
    engine = ContentPolicyEngine()
    snippets = ["notes on poker nights", "notes on algebra"]

    on = ContentPolicy.build("moderate", blocked_topics=["poker"], rag_filtering_enabled=True)
    kept, dropped = engine.filter_snippets(snippets, on)
    assert kept == ["notes on algebra"]
    assert dropped == 1

    off = ContentPolicy.build("moderate", blocked_topics=["poker"], rag_filtering_enabled=False)
    kept, dropped = engine.filter_snippets(snippets, off)
    assert kept == snippets
    assert dropped == 0
