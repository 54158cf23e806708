"""Content policy evaluation.

Rules:
- Pure evaluation: no I/O, no state beyond the optional safety term lists.
- Topic matching is a case-insensitive substring match of each topic entry against
  the text. Empty entries never match.
- Use-case gate: a non-empty allowed_use_cases list rejects any request whose
  use_case is not on it, at every filter level.
- Blocked topics are checked first at every level, so a topic present in both
  lists is effectively blocked.
- strict: with a non-empty allowed_topics list, the prompt/context must mention at
  least one allowed topic.
- moderate: blocked topics + use-case gate.
- permissive: blocked topics + use-case gate, nothing else.
- Responses get the blocked-topic scan only.
- Optional safety screen (off by default): a fixed term list per filter level,
  checked after blocked topics.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .logging_util import get_logger
from .types import AIRequest, AIResponse, ContentPolicy, PolicyDecision

logger = get_logger(__name__)

REASON_USE_CASE = "Request blocked by use case filter: {use_case!r} is not an allowed use case"
REASON_BLOCKED = "Content blocked by topic filter: mentions blocked topic {topic!r}"
REASON_NOT_ALLOWED = "Content blocked by topic filter: no allowed topic mentioned (strict mode)"
REASON_SAFETY = "Content blocked by safety filter: {term!r}"

def find_topic(text: str, topics: Iterable[str]) -> Optional[str]:
    """First topic contained in text (case-insensitive), or None."""
    lowered = (text or "").lower()
    if not lowered:
        return None
    for topic in topics or ():
        t = (topic or "").strip().lower()
        if t and t in lowered:
            return topic
    return None

def _request_text(request: AIRequest) -> str:
    return "\n".join(p for p in (request.prompt, request.context) if p)

class ContentPolicyEngine:
    def __init__(self, safety_screen: bool = False, safety_terms: Optional[Dict[str, List[str]]] = None):
        self.safety_screen = safety_screen
        self.safety_terms = dict(safety_terms or {})

    def _safety_hit(self, text: str, policy: ContentPolicy) -> Optional[str]:
        if not self.safety_screen:
            return None
        return find_topic(text, self.safety_terms.get(policy.filter_level) or ())

    def check_request(self, request: AIRequest, policy: ContentPolicy) -> PolicyDecision:
        if policy.allowed_use_cases and request.use_case not in policy.allowed_use_cases:
            return PolicyDecision.reject(REASON_USE_CASE.format(use_case=request.use_case))

        text = _request_text(request)

        blocked = find_topic(text, policy.blocked_topics)
        if blocked is not None:
            return PolicyDecision.reject(REASON_BLOCKED.format(topic=blocked))

        term = self._safety_hit(text, policy)
        if term is not None:
            return PolicyDecision.reject(REASON_SAFETY.format(term=term))

        if policy.filter_level == "strict" and policy.allowed_topics:
            if find_topic(text, policy.allowed_topics) is None:
                return PolicyDecision.reject(REASON_NOT_ALLOWED)

        return PolicyDecision.allow()

    def check_response(self, response: AIResponse, policy: ContentPolicy) -> PolicyDecision:
        blocked = find_topic(response.content, policy.blocked_topics)
        if blocked is not None:
            return PolicyDecision.reject(REASON_BLOCKED.format(topic=blocked))

        term = self._safety_hit(response.content, policy)
        if term is not None:
            return PolicyDecision.reject(REASON_SAFETY.format(term=term))

        return PolicyDecision.allow()

    def filter_snippets(self, snippets: Sequence[str], policy: ContentPolicy) -> Tuple[List[str], int]:
        """Drop retrieval snippets that mention a blocked topic when RAG filtering is on."""
        if not policy.rag_filtering_enabled or not policy.blocked_topics:
            return list(snippets), 0
        kept = [s for s in snippets if find_topic(s, policy.blocked_topics) is None]
        return kept, len(snippets) - len(kept)

def check_request(request: AIRequest, policy: ContentPolicy) -> PolicyDecision:
    return ContentPolicyEngine().check_request(request, policy)

def check_response(response: AIResponse, policy: ContentPolicy) -> PolicyDecision:
    return ContentPolicyEngine().check_response(response, policy)
