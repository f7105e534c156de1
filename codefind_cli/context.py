"""The search context: everything built once at startup and shared by reference."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .config_manager import Settings
from .errors import AIRerankError
from .indexer import IndexReport, SourceIndexer
from .llm import StructuredLLM
from .models import CodeElement, SearchResult
from .rerank import LLMRanker, Ranker, RerankCache
from .search import QueryEngine, SearchIndex

logger = logging.getLogger(__name__)

MODE_NORMAL = "normal"
MODE_AI = "ai"


@dataclass
class SearchContext:
    settings: Settings
    report: IndexReport
    engine: QueryEngine
    reranker: RerankCache
    roots: List[Path] = field(default_factory=list)

    @property
    def elements(self) -> List[CodeElement]:
        return self.engine.index.elements


def build_context(
    roots: Iterable[Path],
    settings: Settings,
    ranker: Optional[Ranker] = None,
    indexer: Optional[SourceIndexer] = None,
) -> SearchContext:
    """Index *roots* and wire the query engine and rerank cache.

    Raises:
        IndexLoadError: When no root can be indexed, or on the first
            failing root with ``settings.fail_fast``.
    """
    roots = [Path(r) for r in roots]
    indexer = indexer or SourceIndexer(fail_fast=settings.fail_fast)
    report = indexer.index_roots(roots)
    engine = QueryEngine(SearchIndex(report.elements))
    ranker = ranker or LLMRanker(StructuredLLM(settings.llm))
    return SearchContext(
        settings=settings,
        report=report,
        engine=engine,
        reranker=RerankCache(engine, ranker),
        roots=roots,
    )


class ContextSearcher:
    """Search backend for interactive sessions.

    AI mode falls back to the plain fuzzy results when re-ranking fails,
    so a dead network never empties the result list.
    """

    def __init__(self, ctx: SearchContext) -> None:
        self.ctx = ctx

    async def __call__(self, query: str, mode: str, limit: int) -> List[SearchResult]:
        if mode == MODE_AI:
            try:
                return await self.ctx.reranker.rerank(query, limit)
            except AIRerankError as exc:
                logger.warning("AI re-ranking failed, showing fuzzy results: %s", exc)
        return self.ctx.engine.search(query, limit)
