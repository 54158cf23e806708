"""Local keyword document index used for retrieval-augmented generation.

Design:
- Documents are upserted by id; ids are never checked for collisions beyond that.
- Search: lowercase alphanumeric tokens longer than 2 chars; score is the fraction of
  query tokens present in the document; scores at or below 0.1 are dropped.
- The index persists to a JSON list when a path is given (same atomic write as the
  preferences store).
"""
from __future__ import annotations

import json
import os
import re
import tempfile
import threading
from dataclasses import asdict, replace
from pathlib import Path
from typing import Dict, List, Optional, Set

from .errors import IndexingFailure
from .logging_util import get_logger
from .types import IndexedDocument

logger = get_logger(__name__)

MIN_SCORE = 0.1

def normalize_text(text: str) -> str:
    s = re.sub(r"[^0-9a-z\s]+", "", (text or "").lower())
    return re.sub(r"\s+", " ", s).strip()

def tokenize(text: str) -> List[str]:
    return [t for t in normalize_text(text).split(" ") if len(t) > 2]

def similarity(query: str, document: str) -> float:
    q = tokenize(query)
    d: Set[str] = set(tokenize(document))
    if not q or not d:
        return 0.0
    matches = sum(1 for t in q if t in d)
    return matches / len(q)

class LocalDocumentIndex:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._docs: Dict[str, IndexedDocument] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            rows = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.error("Failed to read document index: %s (%s)", self.path, e)
            return
        for row in rows if isinstance(rows, list) else []:
            if not isinstance(row, dict) or not row.get("id"):
                continue
            self._docs[str(row["id"])] = IndexedDocument(
                id=str(row["id"]),
                title=str(row.get("title") or ""),
                content=str(row.get("content") or ""),
                source=str(row.get("source") or "user_document"),
            )
        logger.info("Loaded %d indexed documents from %s", len(self._docs), self.path)

    def _save(self) -> None:
        if self.path is None:
            return
        rows = [asdict(d) for d in self._docs.values()]
        for row in rows:
            row.pop("relevance_score", None)

        temp_path: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp", delete=False,
            ) as temp_file:
                json.dump(rows, temp_file, ensure_ascii=False)
                temp_file.flush()
                os.fsync(temp_file.fileno())
                temp_path = Path(temp_file.name)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise IndexingFailure(f"failed to persist document index: {e}") from e

    def __len__(self) -> int:
        return len(self._docs)

    def get(self, doc_id: str) -> Optional[IndexedDocument]:
        return self._docs.get(doc_id)

    def index(self, doc: IndexedDocument) -> bool:
        if not doc.id:
            raise IndexingFailure("document id is required")
        with self._lock:
            previous = self._docs.get(doc.id)
            self._docs[doc.id] = replace(doc, relevance_score=0.0)
            try:
                self._save()
            except IndexingFailure:
                if previous is None:
                    self._docs.pop(doc.id, None)
                else:
                    self._docs[doc.id] = previous
                raise
        return True

    def remove(self, doc_id: str) -> bool:
        with self._lock:
            doc = self._docs.pop(doc_id, None)
            if doc is None:
                return False
            try:
                self._save()
            except IndexingFailure:
                self._docs[doc_id] = doc
                raise
        return True

    def clear(self) -> None:
        with self._lock:
            previous = self._docs
            self._docs = {}
            try:
                self._save()
            except IndexingFailure:
                self._docs = previous
                raise

    def search(self, query: str, max_results: int = 5) -> List[IndexedDocument]:
        docs = list(self._docs.values())
        scored = []
        for doc in docs:
            score = similarity(query, doc.content)
            if score > MIN_SCORE:
                scored.append((score, doc))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [replace(doc, relevance_score=score) for score, doc in scored[:max(0, max_results)]]
