"""Shared fixtures: an in-memory record store and a deterministic embedder."""

import copy
import math
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

import pytest

from kira_memory.models.core import Channel, JournalEntry, JournalType, Memory, RecordKind, Thought, ThoughtType
from kira_memory.utils.config import ContextConfig, MemoryConfig
from kira_memory.utils.errors import EmbeddingUnavailable, NotFound, RecordExists
from kira_memory.utils.timestamp_utils import from_iso, utc_now


def cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def _comparable(value: Any, bound: Any):
    if isinstance(value, str) and isinstance(bound, str):
        return from_iso(value), from_iso(bound)
    return value, bound


def _matches(document: Dict[str, Any], clause: Dict[str, Any]) -> bool:
    (op, body), = clause.items()
    if op == 'term':
        (field, value), = body.items()
        return document.get(field) == value
    if op == 'exists':
        return document.get(body['field']) is not None
    if op == 'range':
        (field, bounds), = body.items()
        value = document.get(field)
        if value is None:
            return False
        for name, bound in bounds.items():
            left, right = _comparable(value, bound)
            if name == 'lt' and not left < right:
                return False
            if name == 'lte' and not left <= right:
                return False
            if name == 'gt' and not left > right:
                return False
            if name == 'gte' and not left >= right:
                return False
        return True
    raise AssertionError(f'Unsupported clause {clause}')


class InMemoryStore:
    """Record store double honouring the OpenSearchClient interface."""

    def __init__(self):
        self.indexes: Dict[RecordKind, Dict[str, Dict[str, Any]]] = {kind: {} for kind in RecordKind}
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.timeouts: List[tuple] = []

    def _enter(self, method: str, timeout=None):
        self.calls.append(method)
        self.timeouts.append((method, timeout))
        if method in self.failures:
            raise self.failures[method]

    def put(self, record) -> None:
        """Seed a record directly, bypassing creation defaults."""
        self.indexes[record.kind][record.id] = record.to_document()

    def insert(self, kind, document, doc_id=None, create_only=False, timeout=None):
        self._enter('insert', timeout)
        doc_id = doc_id or str(uuid.uuid4())
        if create_only and doc_id in self.indexes[kind]:
            raise RecordExists(f'{kind.value} record already exists: {doc_id}')
        self.indexes[kind][doc_id] = copy.deepcopy(document)
        return doc_id

    def get(self, kind, doc_id, timeout=None):
        self._enter('get', timeout)
        if doc_id not in self.indexes[kind]:
            raise NotFound(kind.value, doc_id)
        document = copy.deepcopy(self.indexes[kind][doc_id])
        document.pop('embedding', None)
        return document

    def update(self, kind, doc_id, patch, timeout=None):
        self._enter('update', timeout)
        if doc_id not in self.indexes[kind]:
            raise NotFound(kind.value, doc_id)
        self.indexes[kind][doc_id].update(copy.deepcopy(patch))
        return self.get(kind, doc_id, timeout=timeout)

    def delete(self, kind, doc_id, timeout=None):
        self._enter('delete', timeout)
        return self.indexes[kind].pop(doc_id, None) is not None

    def _filtered(self, kind, filters, exclude=None):
        for doc_id, document in self.indexes[kind].items():
            if all(_matches(document, c) for c in filters or []) and not any(_matches(document, c) for c in exclude or []):
                yield doc_id, document

    def query_by_similarity(self, kind, vector, filters=None, limit=20, min_similarity=None, timeout=None):
        self._enter('query_by_similarity', timeout)
        hits = []
        for doc_id, document in self._filtered(kind, filters):
            if document.get('embedding') is None:
                continue
            score = cosine(vector, document['embedding'])
            if min_similarity is not None and score < min_similarity:
                continue
            public = copy.deepcopy(document)
            public.pop('embedding')
            hits.append((doc_id, public, score))
        hits.sort(key=lambda hit: hit[2], reverse=True)
        return hits[:limit]

    def query_by_time_range(self, kind, start, end, filters=None, exclude=None, limit=20, timeout=None):
        self._enter('query_by_time_range', timeout)
        window = [{'range': {'created_at': {'gte': start, 'lte': end}}}] + list(filters or [])
        hits = [(doc_id, copy.deepcopy(doc)) for doc_id, doc in self._filtered(kind, window, exclude)]
        hits.sort(key=lambda hit: from_iso(hit[1]['created_at']), reverse=True)
        return hits[:limit]

    def search(self, kind, filters=None, sort=None, limit=20, timeout=None):
        self._enter('search', timeout)
        hits = [(doc_id, copy.deepcopy(doc)) for doc_id, doc in self._filtered(kind, filters)]
        for key in reversed(sort or []):
            (field, order), = key.items()
            present = [h for h in hits if h[1].get(field) is not None]
            missing = [h for h in hits if h[1].get(field) is None]
            present.sort(key=lambda h: h[1][field], reverse=order['order'] == 'desc')
            hits = present + missing
        return hits[:limit]

    def delete_where(self, kind, filters, timeout=None):
        self._enter('delete_where', timeout)
        doomed = [doc_id for doc_id, _ in self._filtered(kind, filters)]
        for doc_id in doomed:
            del self.indexes[kind][doc_id]
        return len(doomed)


class FakeEmbed:
    """Deterministic embedder: registered texts map to fixed vectors."""

    model_id = 'fake-embed'

    def __init__(self):
        self.vectors: Dict[str, List[float]] = {}
        self.calls: List[str] = []
        self.error: Optional[Exception] = None
        self.timeouts: List[Optional[float]] = []

    def embed_document(self, text, timeout=None):
        self.calls.append(text)
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        return list(self.vectors.get(text, [0.0, 0.0, 1.0]))

    embed_query = embed_document
    embed = embed_document

    def health_check(self):
        return self.error is None


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def embed():
    return FakeEmbed()


@pytest.fixture
def memory_config():
    return MemoryConfig(default_importance=0.5,
                        prune_days=7,
                        prune_importance_threshold=0.4,
                        relationship_history_cap=3,
                        candidate_multiplier=3)


@pytest.fixture
def context_config():
    return ContextConfig(recall_limit=8, recall_threshold=0.4, recent_hours=4, recent_limit=15, cross_hours=2, cross_limit=20)


@pytest.fixture
def unavailable():
    return EmbeddingUnavailable('provider down')


def make_memory(channel=Channel.TELEGRAM, content='hello', age=timedelta(0), importance=0.5, embedding=None, **metadata):
    return Memory(id=str(uuid.uuid4()),
                  channel=channel,
                  content=content,
                  created_at=utc_now() - age,
                  importance=importance,
                  embedding=embedding,
                  metadata=metadata)


def make_thought(content='a thought', age=timedelta(0), embedding=None):
    return Thought(id=str(uuid.uuid4()),
                   thought_type=ThoughtType.IDEA,
                   content=content,
                   created_at=utc_now() - age,
                   embedding=embedding)


def make_journal(content='an entry', age=timedelta(0), embedding=None):
    return JournalEntry(id=str(uuid.uuid4()),
                        entry_type=JournalType.DAILY_SUMMARY,
                        content=content,
                        created_at=utc_now() - age,
                        embedding=embedding)
