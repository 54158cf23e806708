"""Command-line caller for the AI gateway.

Usage examples:
- Configure a provider (credentials are persisted):
  python cli.py configure openai --api-key sk-...
  python cli.py configure ollama --base-url http://localhost:11434

- Content filter:
  python cli.py filter --level strict --allowed-topics "education,science" --blocked-topics "gambling"

- Generation:
  python cli.py generate "Write a haiku about notes" --use-case text_generation
  python cli.py summarize @notes.txt --pretty
  python cli.py ask "What is due Friday?" --context @notes.txt

- Documents:
  python cli.py index @notes.txt --title "Week 12"
  python cli.py search "deadline"

- Interactive:
  python cli.py chat

Text arguments prefixed with @ are read from that file.
"""
import argparse
import json
import sys
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

from src.aigate.errors import ValidationError
from src.aigate.gateway import Gateway
from src.aigate.logging_util import get_logger
from src.aigate.types import AIRequest, ChatTurn, ContentPolicy

logger = get_logger(__name__)

def _read_text(spec: str) -> str:
    if spec and spec.startswith("@"):
        return Path(spec[1:]).read_text(encoding="utf-8")
    return spec or ""

def _split(v: str) -> List[str]:
    return [s.strip() for s in (v or "").split(",") if s.strip()]

def _emit(obj: Any, pretty: bool) -> None:
    if pretty:
        print(json.dumps(obj, ensure_ascii=False, indent=2))
    else:
        print(json.dumps(obj, ensure_ascii=False))

def _response_out(resp) -> Dict[str, Any]:
    out = asdict(resp)
    out["ok"] = resp.success
    return out

def _print_turn(turn: ChatTurn) -> None:
    stamp = time.strftime("%H:%M", time.localtime(turn.timestamp))
    who = "you" if turn.is_user else ("system" if turn.is_system else "ai")
    print(f"[{stamp}] {who}> {turn.content}")

def _chat(gw: Gateway) -> int:
    turns: List[ChatTurn] = []
    if not gw.is_configured():
        turns.append(ChatTurn("No AI provider configured. Run `cli.py configure` first.", is_system=True))
        _print_turn(turns[-1])
        return 1

    turns.append(ChatTurn(f"Connected to {gw.current_provider()}. Empty line or /quit exits.", is_system=True))
    _print_turn(turns[-1])
    while True:
        try:
            line = input("you> ").strip()
        except EOFError:
            break
        if not line or line == "/quit":
            break
        turns.append(ChatTurn(line, is_user=True))

        resp = gw.generate_text(line).result()
        if resp.success:
            turns.append(ChatTurn(resp.content))
        elif resp.filtered_reason:
            turns.append(ChatTurn(f"Filtered: {resp.filtered_reason}", is_system=True))
        else:
            turns.append(ChatTurn(f"Error: {resp.error}", is_system=True))
        _print_turn(turns[-1])
    return 0

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="AI gateway command line")
    ap.add_argument("--pretty", action="store_true", help="Pretty print the output JSON")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("configure", help="Configure and activate a provider")
    p.add_argument("provider", help="openai | anthropic | google_gemini | ollama | custom")
    p.add_argument("--api-key", default="")
    p.add_argument("--base-url", default=None)

    p = sub.add_parser("switch", help="Activate a provider that already has stored credentials")
    p.add_argument("provider")

    p = sub.add_parser("filter", help="Set the content filter")
    p.add_argument("--level", default="moderate", choices=["strict", "moderate", "permissive"])
    p.add_argument("--allowed-topics", default="")
    p.add_argument("--blocked-topics", default="")
    p.add_argument("--allowed-use-cases", default="")
    p.add_argument("--no-rag-filtering", action="store_true")

    p = sub.add_parser("generate", help="Generate from a prompt")
    p.add_argument("prompt", help="Text or @path")
    p.add_argument("--context", default="")
    p.add_argument("--use-case", default="general")
    p.add_argument("--max-tokens", type=int, default=1000)
    p.add_argument("--temperature", type=float, default=0.7)
    p.add_argument("--document", action="append", default=[], help="Reference text or @path (repeatable)")

    for name in ("summarize", "keypoints"):
        p = sub.add_parser(name)
        p.add_argument("text", help="Text or @path")

    p = sub.add_parser("ask", help="Answer a question")
    p.add_argument("question", help="Text or @path")
    p.add_argument("--context", default="")

    p = sub.add_parser("index", help="Index a document for retrieval")
    p.add_argument("content", help="Text or @path")
    p.add_argument("--title", default="")
    p.add_argument("--id", default=None)

    p = sub.add_parser("search", help="Search indexed documents")
    p.add_argument("query")
    p.add_argument("--max-results", type=int, default=5)

    sub.add_parser("test", help="Test the connection to the active provider")
    sub.add_parser("providers", help="List configured providers")
    sub.add_parser("status", help="Show configuration status")
    sub.add_parser("chat", help="Interactive chat")
    return ap

def main() -> int:
    args = build_parser().parse_args()

    with Gateway() as gw:
        cmd = args.command
        if cmd == "configure":
            ok, msg = gw.configure_provider(args.provider, args.api_key, args.base_url).result()
            _emit({"ok": ok, "message": msg}, args.pretty)
            return 0 if ok else 1

        if cmd == "switch":
            ok, msg = gw.switch_provider(args.provider).result()
            _emit({"ok": ok, "message": msg}, args.pretty)
            return 0 if ok else 1

        if cmd == "filter":
            try:
                policy = ContentPolicy.build(
                    filter_level=args.level,
                    allowed_topics=_split(args.allowed_topics),
                    blocked_topics=_split(args.blocked_topics),
                    allowed_use_cases=_split(args.allowed_use_cases),
                    rag_filtering_enabled=not args.no_rag_filtering,
                )
            except ValidationError as e:
                logger.error("Invalid filter: %s", e)
                return 2
            ok = gw.set_content_filter(policy).result()
            _emit({"ok": ok, "filter": asdict(policy)}, args.pretty)
            return 0 if ok else 1

        try:
            if cmd == "generate":
                req = AIRequest(
                    prompt=_read_text(args.prompt),
                    context=_read_text(args.context),
                    documents=tuple(_read_text(d) for d in args.document),
                    max_tokens=args.max_tokens,
                    temperature=args.temperature,
                    use_case=args.use_case,
                )
                fut = gw.generate(req)
            elif cmd == "summarize":
                fut = gw.summarize(_read_text(args.text))
            elif cmd == "keypoints":
                fut = gw.extract_key_points(_read_text(args.text))
            elif cmd == "ask":
                fut = gw.answer_question(_read_text(args.question), _read_text(args.context) or None)
            elif cmd == "index":
                ok = gw.index_document(_read_text(args.content), args.title, args.id).result()
                _emit({"ok": ok, "error": "" if ok else gw.last_error()}, args.pretty)
                return 0 if ok else 1
            else:
                fut = None
        except OSError as e:
            logger.error("Failed to read input: %s", e)
            return 2

        if fut is not None:
            resp = fut.result()
            _emit(_response_out(resp), args.pretty)
            return 0 if resp.success else 1

        if cmd == "search":
            docs = gw.search_documents(args.query, args.max_results).result()
            _emit([asdict(d) for d in docs], args.pretty)
            return 0
        if cmd == "test":
            ok = gw.test_connection().result()
            _emit({"ok": ok, "provider": gw.current_provider(), "error": "" if ok else gw.last_error()}, args.pretty)
            return 0 if ok else 1
        if cmd == "providers":
            _emit(gw.list_providers(), args.pretty)
            return 0
        if cmd == "status":
            _emit({
                "configured": gw.is_configured(),
                "provider": gw.current_provider(),
                "filter": asdict(gw.content_filter()),
            }, args.pretty)
            return 0
        if cmd == "chat":
            return _chat(gw)

    return 2

if __name__ == "__main__":
    sys.exit(main())
