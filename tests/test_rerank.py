"""Tests for memoized AI re-ranking."""

import asyncio
import gc

import pytest

from codefind_cli.errors import AIRerankError
from codefind_cli.rerank import LLMRanker, RerankCache, ranking_schema
from codefind_cli.search import QueryEngine, SearchIndex

from conftest import FakeRanker


def _cache(elements, ranker, **kwargs):
    return RerankCache(QueryEngine(SearchIndex(elements)), ranker, **kwargs)


class TestRerankCache:
    def test_applies_ranker_order(self, sample_elements, fake_ranker):
        cache = _cache(sample_elements, fake_ranker)
        fuzzy = cache.engine.search("user", 6)

        results = asyncio.run(cache.rerank("user", 2))

        # FakeRanker answers with the candidates reversed
        assert [r.id for r in results] == [fuzzy[-1].id, fuzzy[-2].id]

    def test_second_call_is_served_from_cache(self, sample_elements, fake_ranker):
        cache = _cache(sample_elements, fake_ranker)

        async def scenario():
            first = await cache.rerank("service", 3)
            second = await cache.rerank("service", 3)
            return first, second

        first, second = asyncio.run(scenario())

        assert len(fake_ranker.calls) == 1
        assert [r.id for r in first] == [r.id for r in second]
        assert ("service", 3) in cache
        assert len(cache) == 1

    def test_different_limit_is_a_different_key(self, sample_elements, fake_ranker):
        cache = _cache(sample_elements, fake_ranker)

        async def scenario():
            await cache.rerank("service", 2)
            await cache.rerank("service", 3)

        asyncio.run(scenario())
        assert len(fake_ranker.calls) == 2

    def test_concurrent_requests_share_one_call(self, sample_elements, fake_ranker):
        cache = _cache(sample_elements, fake_ranker)

        async def scenario():
            fake_ranker.gate = asyncio.Event()
            waiters = [asyncio.ensure_future(cache.rerank("auth", 2)) for _ in range(3)]
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            fake_ranker.gate.set()
            return await asyncio.gather(*waiters)

        results = asyncio.run(scenario())

        assert len(fake_ranker.calls) == 1
        assert len({tuple(r.id for r in batch) for batch in results}) == 1

    def test_cancelled_waiter_does_not_cancel_shared_request(self, element_factory):
        ranker = FakeRanker()
        cache = _cache([element_factory("class-0", "Widget")], ranker)

        async def scenario():
            ranker.gate = asyncio.Event()
            first = asyncio.ensure_future(cache.rerank("widget", 1))
            second = asyncio.ensure_future(cache.rerank("widget", 1))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            first.cancel()
            with pytest.raises(asyncio.CancelledError):
                await first
            ranker.gate.set()
            return await second

        results = asyncio.run(scenario())

        assert [r.id for r in results] == ["class-0"]
        assert len(ranker.calls) == 1
        assert cache.cached("widget", 1) is not None

    def test_failure_with_no_waiter_left_is_not_reported(self, sample_elements):
        ranker = FakeRanker(error=AIRerankError("boom"))
        cache = _cache(sample_elements, ranker)
        reported = []

        async def scenario():
            asyncio.get_running_loop().set_exception_handler(lambda _loop, ctx: reported.append(ctx))
            ranker.gate = asyncio.Event()
            waiter = asyncio.ensure_future(cache.rerank("user", 2))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            del waiter
            ranker.gate.set()
            await asyncio.sleep(0.01)
            gc.collect()

        asyncio.run(scenario())

        assert len(ranker.calls) == 1
        assert cache.cached("user", 2) is None
        assert reported == []

    def test_oversamples_candidates(self, sample_elements, fake_ranker):
        cache = _cache(sample_elements, fake_ranker)
        asyncio.run(cache.rerank("user", 2))

        call = fake_ranker.calls[0]
        assert len(call["candidates"]) == 6
        assert call["limit"] == 2
        assert call["query"] == "user"

    def test_limit_capped_by_candidate_count(self, element_factory):
        ranker = FakeRanker()
        cache = _cache([element_factory("class-0", "Widget")], ranker)

        results = asyncio.run(cache.rerank("widget", 5))

        assert ranker.calls[0]["limit"] == 1
        assert [r.id for r in results] == ["class-0"]

    def test_payload_carries_context_window(self, element_factory):
        content = "\n".join(f"line {i}" for i in range(1, 31))
        ranker = FakeRanker()
        cache = _cache([element_factory("class-0", "Widget", line_number=15, content=content)], ranker)

        asyncio.run(cache.rerank("widget", 1))

        (candidate,) = ranker.calls[0]["candidates"]
        lines = candidate["context"].split("\n")
        assert len(lines) == 11
        assert lines[0] == "line 10"
        assert lines[-1] == "line 20"
        assert candidate["lineNumber"] == 15
        assert candidate["parentName"] is None

    def test_unknown_and_duplicate_ids_are_dropped(self, element_factory):
        elements = [element_factory(f"class-{i}", "Widget") for i in range(3)]
        ranker = FakeRanker(answer=["class-2", "bogus", "class-2", "class-0"])
        cache = _cache(elements, ranker)

        results = asyncio.run(cache.rerank("widget", 3))

        assert [r.id for r in results] == ["class-2", "class-0"]

    def test_empty_candidates_skip_the_ranker(self, element_factory):
        ranker = FakeRanker()
        cache = _cache([element_factory("class-0", "Widget", file_path="/a/b.py")], ranker)

        results = asyncio.run(cache.rerank("zzqqxx", 3))

        assert results == []
        assert ranker.calls == []
        assert cache.cached("zzqqxx", 3) == []

    def test_failures_are_not_cached(self, sample_elements):
        ranker = FakeRanker(error=AIRerankError("boom"))
        cache = _cache(sample_elements, ranker)

        with pytest.raises(AIRerankError):
            asyncio.run(cache.rerank("user", 2))
        assert cache.cached("user", 2) is None

        ranker.error = None
        results = asyncio.run(cache.rerank("user", 2))

        assert len(results) == 2
        assert len(ranker.calls) == 2

    def test_cached_returns_copies(self, sample_elements, fake_ranker):
        cache = _cache(sample_elements, fake_ranker)
        results = asyncio.run(cache.rerank("user", 2))
        results.clear()
        assert len(cache.cached("user", 2)) == 2


class _StubLLM:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def complete_json(self, system_prompt, user_content, schema):
        self.calls.append((system_prompt, user_content, schema))
        return self.reply


class TestLLMRanker:
    CANDIDATES = [{"id": "class-0", "name": "A"}, {"id": "class-1", "name": "B"}]

    def test_returns_ids_and_sends_schema(self):
        llm = _StubLLM({"ids": ["class-1", "class-0"]})

        ids = asyncio.run(LLMRanker(llm).rank("a", self.CANDIDATES, 2))

        assert ids == ["class-1", "class-0"]
        system_prompt, user_content, schema = llm.calls[0]
        assert "2 candidates" in system_prompt
        assert '"query": "a"' in user_content
        assert schema["properties"]["ids"]["items"]["enum"] == ["class-0", "class-1"]

    def test_missing_ids_raises(self):
        llm = _StubLLM({"ranking": []})
        with pytest.raises(AIRerankError):
            asyncio.run(LLMRanker(llm).rank("a", self.CANDIDATES, 2))


def test_ranking_schema_bounds():
    schema = ranking_schema(["x", "y", "z"], 2)
    ids = schema["properties"]["ids"]
    assert ids["minItems"] == 2
    assert ids["maxItems"] == 2
    assert schema["required"] == ["ids"]
    assert schema["additionalProperties"] is False
