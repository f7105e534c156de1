"""Weighted fuzzy search over indexed code elements.

The index scores four fields of every element with a pluggable
:class:`ScoringStrategy` and combines them by weight. Distances follow the
usual fuzzy-matcher convention: 0.0 is an exact match, 1.0 no match at all.
"""

from __future__ import annotations

import heapq
import logging
import os
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Sequence, Tuple

from .models import CodeElement, SearchResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchConfig:
    # (element attribute, weight)
    keys: Tuple[Tuple[str, float], ...] = (
        ("name", 0.4),
        ("searchable_text", 0.3),
        ("description", 0.2),
        ("parent_name", 0.1),
    )
    threshold: float = 0.8
    distance: int = 1000
    min_match_char_length: int = 1


DEFAULT_CONFIG = SearchConfig()


class ScoringStrategy(ABC):
    """Computes the distance between a query and one field value."""

    @abstractmethod
    def field_distance(self, query: str, text: str) -> float:
        """Return a distance in ``[0, 1]``; lower is a better match."""
        ...


class SequenceScorer(ScoringStrategy):
    """Approximate substring scorer on top of :class:`difflib.SequenceMatcher`.

    Tolerates typos and dropped characters: ``"usr servce"`` still lands
    close to ``"UserService"``. A match found further into the text costs
    ``offset / distance``, so a large ``distance`` makes position almost
    irrelevant.
    """

    def __init__(self, distance: int = 1000, min_match_char_length: int = 1) -> None:
        self.distance = distance
        self.min_match_char_length = min_match_char_length

    def field_distance(self, query: str, text: str) -> float:
        q = query.lower()
        t = text.lower()
        if not q or not t:
            return 1.0
        if q == t:
            return 0.0

        loc = t.find(q)
        if loc >= 0:
            return min(1.0, loc / self.distance)

        blocks = [
            b for b in SequenceMatcher(None, q, t, autojunk=False).get_matching_blocks()
            if b.size
        ]
        matched = sum(b.size for b in blocks)
        if matched < self.min_match_char_length:
            return 1.0

        start = min(b.b for b in blocks)
        end = max(b.b + b.size for b in blocks)
        coverage = matched / len(q)
        compactness = matched / (end - start)
        similarity = coverage * (0.5 + 0.5 * compactness)
        return min(1.0, max(0.0, 1.0 - similarity + start / self.distance))


class SearchIndex:
    """Read-only weighted index over an ordered element sequence."""

    def __init__(
        self,
        elements: Sequence[CodeElement],
        config: SearchConfig = DEFAULT_CONFIG,
        scorer: Optional[ScoringStrategy] = None,
    ) -> None:
        self.elements: List[CodeElement] = list(elements)
        self.config = config
        self.scorer = scorer or SequenceScorer(config.distance, config.min_match_char_length)

    def __len__(self) -> int:
        return len(self.elements)

    def score(self, query: str, element: CodeElement) -> Optional[float]:
        """Combined weighted distance, or None when no field matches."""
        weighted = 0.0
        total_weight = 0.0
        matched_any = False
        for attr, weight in self.config.keys:
            value = getattr(element, attr)
            if not value:
                continue
            d = self.scorer.field_distance(query, value)
            if d <= self.config.threshold:
                matched_any = True
            else:
                d = 1.0
            weighted += weight * d
            total_weight += weight
        if not matched_any or total_weight == 0:
            return None
        return weighted / total_weight

    def match(self, query: str) -> List[Tuple[float, int]]:
        """Return ``(score, position)`` for every accepted element."""
        hits: List[Tuple[float, int]] = []
        for position, element in enumerate(self.elements):
            score = self.score(query, element)
            if score is not None:
                hits.append((score, position))
        return hits


class QueryEngine:
    """Synchronous fuzzy search over a :class:`SearchIndex`."""

    def __init__(self, index: SearchIndex) -> None:
        self.index = index

    def search(self, query: str, limit: int = 20) -> List[SearchResult]:
        """Return up to *limit* results, best (lowest score) first.

        An empty or whitespace query returns the first *limit* elements in
        indexing order, all with the best possible score. Equal scores keep
        indexing order.
        """
        if limit <= 0:
            return []
        if not query.strip():
            return [SearchResult(el, 0.0) for el in self.index.elements[:limit]]

        best = heapq.nsmallest(limit, self.index.match(query))
        logger.debug("Search %r: %d results", query, len(best))
        return [SearchResult(self.index.elements[pos], score) for score, pos in best]

    def stats(self) -> Dict[str, Dict[str, int]]:
        """Element counts by type and by file extension."""
        by_type = Counter(el.type for el in self.index.elements)
        by_ext = Counter(
            os.path.splitext(el.file_path)[1].lstrip(".") or "unknown"
            for el in self.index.elements
        )
        return {
            "types": dict(by_type.most_common()),
            "extensions": dict(by_ext.most_common(10)),
        }

    def describe(self) -> Dict[str, object]:
        cfg = self.index.config
        return {
            "threshold": cfg.threshold,
            "distance": cfg.distance,
            "min_match_char_length": cfg.min_match_char_length,
            "fields": dict(cfg.keys),
            "scorer": type(self.index.scorer).__name__,
        }
