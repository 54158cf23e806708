"""Prompt layer assembly and request shaping.

Rules:
- We only use system/developer/user layers.
- request.context becomes the system message; the prompt is the single user message.
- RAG injection:
  - OpenAI provider: inject as developer message
  - Other providers: merge RAG text into the last user message with tags
- The convenience builders only shape an AIRequest (template, use case, token budget);
  policy and dispatch stay in the dispatcher.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .types import AIRequest

SUMMARY_TEMPLATE = "Please provide a concise summary of the following content:\n\n{text}"
KEY_POINTS_TEMPLATE = "Extract the key points from the following content as a bulleted list:\n\n{text}"
QUESTION_TEMPLATE = "Based on the following context, answer the question:\n\nContext: {context}\n\nQuestion: {question}"

def build_messages(request: AIRequest) -> List[Dict[str, Any]]:
    messages: List[Dict[str, Any]] = []
    context = (request.context or "").strip()
    if context:
        messages.append({"role": "system", "content": context})
    messages.append({"role": "user", "content": (request.prompt or "").strip()})
    return messages

def _snippet(text: str, limit: int) -> str:
    text = (text or "").strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text

def build_rag_context(snippets: Sequence[str]) -> str:
    if not snippets:
        return ""
    lines = ["Context from relevant documents:", ""]
    for s in snippets:
        lines.append(f"- {s}")
        lines.append("")
    return "\n".join(lines).strip()

def document_snippet(title: str, content: str, limit: int) -> str:
    body = _snippet(content, limit)
    return f"{title}: {body}" if title else body

def apply_rag_injection(messages: List[Dict[str, Any]], provider: str, rag_text: str) -> List[Dict[str, Any]]:
    if not rag_text:
        return messages

    if provider == "openai":
        sys_indexes = [i for i, m in enumerate(messages) if m.get("role") == "system"]
        insert_pos = (sys_indexes[-1] + 1) if sys_indexes else 0
        out = list(messages)
        out.insert(insert_pos, {"role": "developer", "content": rag_text})
        return out

    user_indexes = [i for i, m in enumerate(messages) if m.get("role") == "user"]
    out = [dict(m) for m in messages]
    if user_indexes:
        last = user_indexes[-1]
        q = str(out[last].get("content") or "")
        out[last]["content"] = (
            "### Reference Context:\n"
            f"{rag_text}\n\n"
            "### User Question:\n"
            f"{q}"
        )
    else:
        out.append({"role": "user", "content": f"### Reference Context:\n{rag_text}"})
    return out

# ----------------------------------------------------------------------
# Request shaping
# ----------------------------------------------------------------------
def text_request(prompt: str, context: Optional[str] = None) -> AIRequest:
    return AIRequest(prompt=prompt, context=context or "", use_case="text_generation")

def summary_request(text: str) -> AIRequest:
    return AIRequest(prompt=SUMMARY_TEMPLATE.format(text=text), use_case="summarization", max_tokens=500)

def key_points_request(text: str) -> AIRequest:
    return AIRequest(prompt=KEY_POINTS_TEMPLATE.format(text=text), use_case="key_extraction", max_tokens=300)

def question_request(question: str, context: Optional[str] = None) -> AIRequest:
    if context:
        prompt = QUESTION_TEMPLATE.format(context=context, question=question)
    else:
        prompt = question
    return AIRequest(prompt=prompt, use_case="question_answering")
