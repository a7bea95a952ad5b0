"""
Append-only store of (summary, embedding) records, searched by cosine
similarity to pull long-horizon context into each turn.

Memory is best-effort: embedding or disk failures are logged and the caller
carries on with whatever context it has.
"""

import logging
import math
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

from errors import EmbeddingError, PersistenceError
from storage import read_json_file, write_json_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemoryRecord:
    text: str
    embedding: Tuple[float, ...]

    def to_dict(self) -> dict:
        return {"text": self.text, "embedding": list(self.embedding)}


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); 0.0 when either vector has zero norm."""
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions differ: {len(a)} != {len(b)}")
    dot = norm_a = norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / math.sqrt(norm_a * norm_b)


class VectorMemoryStore:
    """Memory records persisted as one JSON array at path.

    embedder is anything with an embed(text) -> list of floats method
    (normally the LLMClient).
    """

    def __init__(self, path: Path, embedder):
        self.path = path
        self.embedder = embedder
        self._lock = threading.Lock()

    def records(self) -> List[MemoryRecord]:
        raw = read_json_file(self.path, [])
        if not isinstance(raw, list):
            logger.warning("Ignoring malformed memory file %s", self.path)
            return []
        records = []
        for entry in raw:
            try:
                records.append(MemoryRecord(
                    text=str(entry["text"]),
                    embedding=tuple(float(x) for x in entry["embedding"]),
                ))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed memory record in %s", self.path)
        return records

    def embed(self, text: str) -> List[float]:
        return self.embedder.embed(text)

    def append(self, text: str) -> bool:
        """Embed and store text. Returns False (never raises) when skipped."""
        text = (text or "").strip()
        if not text:
            return False
        try:
            vector = self.embed(text)
        except EmbeddingError as e:
            logger.warning("embedding error, memory not saved: %s", e)
            return False

        with self._lock:
            records = self.records()
            if records and len(records[0].embedding) != len(vector):
                logger.warning(
                    "Rejecting memory with %d dimensions; store uses %d",
                    len(vector), len(records[0].embedding),
                )
                return False
            records.append(MemoryRecord(text=text, embedding=tuple(vector)))
            try:
                write_json_file(self.path, [r.to_dict() for r in records])
            except PersistenceError as e:
                logger.warning("Memory not saved: %s", e)
                return False
        return True

    def search(self, prompt: str, top_k: int) -> List[Tuple[float, str]]:
        """(score, text) pairs, best first; ties keep store order."""
        if top_k <= 0:
            return []
        records = self.records()
        if not records:
            return []
        try:
            query = self.embed(prompt)
        except EmbeddingError as e:
            logger.warning("embedding error, no memories retrieved: %s", e)
            return []

        scored = []
        for record in records:
            if len(record.embedding) != len(query):
                logger.warning("Skipping memory with mismatched dimensions")
                continue
            scored.append((cosine_similarity(record.embedding, query), record.text))
        # sorted() is stable, so equal scores stay in store order
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
        return scored[:top_k]

    def query(self, prompt: str, top_k: int) -> List[str]:
        """Texts of the top_k most similar memories, most similar first."""
        return [text for _, text in self.search(prompt, top_k)]
