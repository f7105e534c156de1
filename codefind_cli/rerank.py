"""AI re-ranking of fuzzy search results, memoized per (query, limit).

The fuzzy engine is fast but shallow; re-ranking sends an oversampled
candidate set, with a few lines of code around each candidate, to an LLM
that picks and orders the best ``limit`` of them. Answers are cached for
the life of the process and concurrent requests for the same key share a
single call.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import AIRerankError
from .export import flat_payload
from .llm import StructuredLLM
from .models import SearchResult
from .search import QueryEngine

logger = logging.getLogger(__name__)

OVERSAMPLE_FACTOR = 3

RERANK_SYSTEM_PROMPT = (
    "You rank code symbols for a developer searching a codebase. "
    "You receive the search query and a JSON list of candidate symbols, "
    "each with its name, kind, owner, file path, line number and the code "
    "around it. Return the ids of the {limit} candidates most relevant to "
    "the query, most relevant first. Use only ids from the candidate list."
)

CacheKey = Tuple[str, int]


class Ranker(ABC):
    """External ranking collaborator."""

    @abstractmethod
    async def rank(self, query: str, candidates: List[Dict[str, Any]], limit: int) -> List[str]:
        """Return up to *limit* candidate ids, best first."""
        ...


def ranking_schema(candidate_ids: Sequence[str], count: int) -> Dict[str, Any]:
    """JSON schema forcing exactly *count* ids drawn from the candidates."""
    return {
        "type": "object",
        "properties": {
            "ids": {
                "type": "array",
                "items": {"type": "string", "enum": list(candidate_ids)},
                "minItems": count,
                "maxItems": count,
            },
        },
        "required": ["ids"],
        "additionalProperties": False,
    }


class LLMRanker(Ranker):
    """Ranks candidates with a schema-constrained chat completion."""

    def __init__(self, llm: StructuredLLM) -> None:
        self.llm = llm

    async def rank(self, query: str, candidates: List[Dict[str, Any]], limit: int) -> List[str]:
        schema = ranking_schema([c["id"] for c in candidates], limit)
        user_content = json.dumps({"query": query, "candidates": candidates}, ensure_ascii=False)
        data = await asyncio.to_thread(
            self.llm.complete_json,
            RERANK_SYSTEM_PROMPT.format(limit=limit),
            user_content,
            schema,
        )
        ids = data.get("ids")
        if not isinstance(ids, list):
            raise AIRerankError("Ranking response has no 'ids' list")
        return [str(i) for i in ids]


class RerankCache:
    """Memoized AI re-ranking on top of a :class:`QueryEngine`.

    Entries are never evicted: a repeated identical request is always free.
    """

    def __init__(
        self,
        engine: QueryEngine,
        ranker: Ranker,
        oversample: int = OVERSAMPLE_FACTOR,
    ) -> None:
        self.engine = engine
        self.ranker = ranker
        self.oversample = oversample
        self._cache: Dict[CacheKey, List[SearchResult]] = {}
        self._inflight: Dict[CacheKey, "asyncio.Task[List[SearchResult]]"] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache

    def cached(self, query: str, limit: int) -> Optional[List[SearchResult]]:
        hit = self._cache.get((query, limit))
        return list(hit) if hit is not None else None

    async def rerank(self, query: str, limit: int) -> List[SearchResult]:
        """Return the AI-ordered top *limit* results for *query*.

        Raises:
            AIRerankError: When the ranking collaborator fails. Failures
                are not cached; the next call retries.
        """
        key = (query, limit)
        hit = self._cache.get(key)
        if hit is not None:
            logger.debug("Rerank cache hit for %r (limit=%d)", query, limit)
            return list(hit)

        task = self._inflight.get(key)
        if task is None:
            logger.debug("Rerank cache miss for %r (limit=%d)", query, limit)
            task = asyncio.ensure_future(self._fetch(key))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._release, key))
        # Shielded so a cancelled waiter does not cancel the shared request
        results = await asyncio.shield(task)
        return list(results)

    def _release(self, key: CacheKey, task: "asyncio.Task[List[SearchResult]]") -> None:
        self._inflight.pop(key, None)
        if not task.cancelled():
            # Marks a failure as retrieved even when every waiter was cancelled
            task.exception()

    async def _fetch(self, key: CacheKey) -> List[SearchResult]:
        query, limit = key
        candidates = self.engine.search(query, round(limit * self.oversample))
        if not candidates:
            self._cache[key] = []
            return []

        by_id = {c.id: c for c in candidates}
        ids = await self.ranker.rank(query, flat_payload(candidates), min(limit, len(candidates)))

        ordered: List[SearchResult] = []
        seen = set()
        for candidate_id in ids:
            result = by_id.get(candidate_id)
            if result is None:
                logger.debug("Dropping unknown candidate id %r from ranking", candidate_id)
                continue
            if candidate_id in seen:
                continue
            seen.add(candidate_id)
            ordered.append(result)
            if len(ordered) == limit:
                break

        self._cache[key] = ordered
        return ordered
