"""Tests for similarity recall, time-window summaries and reflect."""

from datetime import timedelta

import pytest
from conftest import make_journal, make_memory, make_thought

from kira_memory.models.core import Channel, RecordKind, ScoredRecord
from kira_memory.services.retrieval import RetrievalService, rank_candidates
from kira_memory.utils.errors import EmbeddingUnavailable, StoreUnavailable, ValidationError

QUERY = [1.0, 0.0, 0.0]


@pytest.fixture
def retrieval(store, embed, memory_config):
    embed.vectors['query'] = QUERY
    return RetrievalService(store, embed, memory_config)


class TestRecall:

    def test_every_result_clears_threshold(self, retrieval, store):
        for vector in ([1.0, 0.0, 0.0], [0.8, 0.6, 0.0], [0.6, 0.8, 0.0], [0.0, 1.0, 0.0]):
            store.put(make_memory(embedding=vector))

        results = retrieval.recall('query', threshold=0.7)

        assert [round(r.score, 2) for r in results] == [1.0, 0.8]
        assert all(r.score >= 0.7 for r in results)

    def test_sorted_by_score_then_newest(self, retrieval, store):
        older = make_memory(content='older', age=timedelta(hours=3), embedding=[0.8, 0.6, 0.0])
        newer = make_memory(content='newer', age=timedelta(hours=1), embedding=[0.8, 0.6, 0.0])
        best = make_memory(content='best', age=timedelta(days=2), embedding=[1.0, 0.0, 0.0])
        for memory in (older, best, newer):
            store.put(memory)

        results = retrieval.recall('query')

        assert [r.record.content for r in results] == ['best', 'newer', 'older']

    def test_channel_filter_and_limit(self, retrieval, store):
        for _ in range(4):
            store.put(make_memory(channel=Channel.CODING, embedding=QUERY))
        store.put(make_memory(channel=Channel.X, embedding=QUERY))

        results = retrieval.recall('query', channel='coding', limit=3)

        assert len(results) == 3
        assert {r.record.channel for r in results} == {Channel.CODING}

    def test_nothing_above_threshold_is_empty_not_error(self, retrieval, store):
        store.put(make_memory(embedding=[0.0, 1.0, 0.0]))

        assert retrieval.recall('query', threshold=0.5) == []

    def test_invalid_threshold_rejected_before_embedding(self, retrieval, embed):
        with pytest.raises(ValidationError):
            retrieval.recall('query', threshold=1.5)
        assert embed.calls == []

    def test_unknown_channel_rejected(self, retrieval, embed):
        with pytest.raises(ValidationError):
            retrieval.recall('query', channel='discord')
        assert embed.calls == []

    def test_embedding_failure_propagates(self, retrieval, embed, store):
        embed.error = EmbeddingUnavailable('down')

        with pytest.raises(EmbeddingUnavailable):
            retrieval.recall('query')
        assert 'query_by_similarity' not in store.calls

    def test_store_failure_propagates(self, retrieval, store):
        store.failures['query_by_similarity'] = StoreUnavailable('index closed')

        with pytest.raises(StoreUnavailable):
            retrieval.recall('query')


class TestSummarize:

    def test_window_newest_first_and_limited(self, retrieval, store):
        store.put(make_memory(channel=Channel.CODING, content='1h', age=timedelta(hours=1)))
        store.put(make_memory(channel=Channel.CODING, content='5h', age=timedelta(hours=5)))
        store.put(make_memory(channel=Channel.CODING, content='10m', age=timedelta(minutes=10)))
        store.put(make_memory(channel=Channel.CODING, content='7h', age=timedelta(hours=7)))
        store.put(make_memory(channel=Channel.TELEGRAM, content='other', age=timedelta(minutes=5)))

        results = retrieval.summarize('coding', hours=6)
        assert [m.content for m in results] == ['10m', '1h', '5h']

        limited = retrieval.summarize('coding', hours=6, limit=2)
        assert [m.content for m in limited] == ['10m', '1h']

    def test_does_not_embed(self, retrieval, embed, store):
        store.put(make_memory(channel=Channel.CODING))

        retrieval.summarize('coding')

        assert embed.calls == []

    def test_across_excludes_target_channel(self, retrieval, store):
        store.put(make_memory(channel=Channel.TELEGRAM, content='target'))
        store.put(make_memory(channel=Channel.X, content='x', age=timedelta(minutes=30)))
        store.put(make_memory(channel=Channel.CODING, content='coding', age=timedelta(minutes=10)))
        store.put(make_memory(channel=Channel.INTERNAL, content='stale', age=timedelta(hours=3)))

        results = retrieval.summarize_across('telegram', hours=2)

        assert [m.content for m in results] == ['coding', 'x']

    def test_rejects_non_positive_hours(self, retrieval):
        with pytest.raises(ValidationError):
            retrieval.summarize('coding', hours=0)


class TestReflect:

    def test_merges_thoughts_and_journal_by_score(self, retrieval, store):
        store.put(make_thought(content='thought-high', embedding=[1.0, 0.0, 0.0]))
        store.put(make_journal(content='journal-mid', embedding=[0.8, 0.6, 0.0]))
        store.put(make_thought(content='thought-low', embedding=[0.6, 0.8, 0.0]))
        store.put(make_journal(content='journal-miss', embedding=[0.0, 1.0, 0.0]))

        results = retrieval.reflect('query', threshold=0.5)

        assert [r.record.content for r in results] == ['thought-high', 'journal-mid', 'thought-low']
        assert [r.kind for r in results] == [RecordKind.THOUGHT, RecordKind.JOURNAL, RecordKind.THOUGHT]

    def test_equal_scores_put_thought_before_journal(self, retrieval, store):
        store.put(make_journal(content='journal', age=timedelta(0), embedding=QUERY))
        store.put(make_thought(content='thought', age=timedelta(days=3), embedding=QUERY))

        results = retrieval.reflect('query')

        assert [r.record.content for r in results] == ['thought', 'journal']

    def test_single_embedding_call(self, retrieval, embed, store):
        store.put(make_thought(embedding=QUERY))
        store.put(make_journal(embedding=QUERY))

        retrieval.reflect('query', limit=1)

        assert embed.calls == ['query']


class TestRankCandidates:

    def test_truncates_after_sorting(self):
        candidates = [ScoredRecord(RecordKind.MEMORY, make_memory(content=str(score)), score) for score in (0.6, 0.9, 0.7)]

        ranked = rank_candidates(candidates, threshold=0.5, limit=2)

        assert [c.score for c in ranked] == [0.9, 0.7]

    def test_threshold_is_inclusive(self):
        candidates = [ScoredRecord(RecordKind.MEMORY, make_memory(), 0.5)]

        assert len(rank_candidates(candidates, threshold=0.5, limit=10)) == 1


class TestTimeouts:

    def test_recall_passes_caller_timeout_down(self, retrieval, store, embed):
        store.put(make_memory(embedding=QUERY))

        retrieval.recall('query', timeout=2)

        assert embed.timeouts == [2]
        assert store.timeouts == [('query_by_similarity', 2)]

    def test_reflect_and_summaries_pass_caller_timeout_down(self, retrieval, store, embed):
        retrieval.reflect('query', timeout=1.5)
        retrieval.summarize('coding', timeout=1.5)
        retrieval.summarize_across('coding', timeout=1.5)

        assert embed.timeouts == [1.5]
        assert {timeout for _, timeout in store.timeouts} == {1.5}
        assert len(store.timeouts) == 4

    def test_candidate_pool_scales_with_limit(self, retrieval, store, memory_config):
        seen = []

        def capture(kind, vector, **kwargs):
            seen.append(kwargs['limit'])
            return []

        store.query_by_similarity = capture

        retrieval.recall('query', limit=4)

        assert seen == [4 * memory_config.candidate_multiplier]
