"""
Retrieval service: similarity search and time-window scans over the record store.
"""

from typing import Iterable, List, Optional, Tuple

from ..models.core import Channel, Memory, RecordKind, ScoredRecord, record_from_document
from ..models.validation import parse_optional_enum, parse_enum, positive_int, positive_number, require_text, unit_interval
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.config import MemoryConfig
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient, term_filter
from ..utils.timestamp_utils import hours_ago, to_iso, utc_now

logger = get_logger(__name__)

# Cross-kind tie-break order for reflect: thoughts before journal entries
REFLECT_KINDS = (RecordKind.THOUGHT, RecordKind.JOURNAL)


def rank_candidates(candidates: Iterable[ScoredRecord],
                    threshold: float,
                    limit: int,
                    kind_order: Tuple[RecordKind, ...] = ()) -> List[ScoredRecord]:
    """Apply threshold, ordering and truncation to similarity candidates.

    Candidates scoring below ``threshold`` are dropped. The rest are sorted
    by score descending; ties go to the kind listed first in ``kind_order``,
    then to the most recent ``created_at``.

    Args:
        candidates: Scored records from one or more similarity queries
        threshold: Minimum similarity a candidate must reach
        limit: Maximum number of results
        kind_order: Kind precedence for equal scores

    Returns:
        Ranked records, at most ``limit`` long
    """
    kept = [candidate for candidate in candidates if candidate.score >= threshold]

    def precedence(candidate: ScoredRecord) -> int:
        return kind_order.index(candidate.kind) if candidate.kind in kind_order else len(kind_order)

    # Stable sorts, least significant key first
    kept.sort(key=lambda c: c.record.created_at.timestamp(), reverse=True)
    kept.sort(key=precedence)
    kept.sort(key=lambda c: c.score, reverse=True)
    return kept[:limit]


class RetrievalService:
    """Similarity search and time-window scans over memories, thoughts and journal entries."""

    def __init__(self, store: OpenSearchClient, embed: BedrockEmbed, memory_config: MemoryConfig):
        """
        Initialize the retrieval service.

        Args:
            store: Record store handle
            embed: Embedding provider
            memory_config: Retrieval defaults
        """
        self.store = store
        self.embed = embed
        self.config = memory_config

    def _similar(self,
                 kind: RecordKind,
                 vector: List[float],
                 filters: list,
                 limit: int,
                 threshold: float,
                 timeout: Optional[float]) -> List[ScoredRecord]:
        hits = self.store.query_by_similarity(kind,
                                              vector,
                                              filters=filters,
                                              limit=limit * self.config.candidate_multiplier,
                                              min_similarity=threshold,
                                              timeout=timeout)
        return [ScoredRecord(kind, record_from_document(kind, doc_id, document), score) for doc_id, document, score in hits]

    def recall(self,
               query: str,
               channel: Optional[str] = None,
               limit: int = 10,
               threshold: float = 0.5,
               timeout: Optional[float] = None) -> List[ScoredRecord]:
        """Search memories by similarity to the query text.

        Args:
            query: Natural language query
            channel: Optional channel filter
            limit: Maximum number of results (default 10)
            threshold: Minimum similarity in [0, 1] (default 0.5)
            timeout: Per-call timeout in seconds

        Returns:
            Scored memories, best first; empty when nothing clears the threshold

        Raises:
            ValidationError: If any input is invalid
            EmbeddingUnavailable: If the query cannot be embedded
            StoreUnavailable: If the store cannot be queried
        """
        require_text(query, 'query')
        channel_filter = parse_optional_enum(Channel, channel, 'channel')
        limit = positive_int(limit, 'limit')
        threshold = unit_interval(threshold, 'threshold')

        vector = self.embed.embed_query(query, timeout=timeout)
        filters = [term_filter('channel', channel_filter.value)] if channel_filter else []
        candidates = self._similar(RecordKind.MEMORY, vector, filters, limit, threshold, timeout)

        results = rank_candidates(candidates, threshold, limit)
        logger.debug(f'Recall returned {len(results)} of {len(candidates)} candidates')
        return results

    def _window(self,
                hours: float,
                limit: int,
                filters: list,
                exclude: list,
                timeout: Optional[float]) -> List[Memory]:
        now = utc_now()
        hits = self.store.query_by_time_range(RecordKind.MEMORY,
                                              start=to_iso(hours_ago(hours, now)),
                                              end=to_iso(now),
                                              filters=filters,
                                              exclude=exclude,
                                              limit=limit,
                                              timeout=timeout)
        memories = [Memory.from_document(doc_id, document) for doc_id, document in hits]
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories[:limit]

    def summarize(self, channel: str, hours: float = 6, limit: int = 20, timeout: Optional[float] = None) -> List[Memory]:
        """Recent memories in one channel, newest first.

        Args:
            channel: Channel to scan
            hours: Lookback window in hours (default 6)
            limit: Maximum number of memories (default 20)
            timeout: Per-call timeout in seconds

        Returns:
            Memories created within the window
        """
        channel = parse_enum(Channel, channel, 'channel')
        hours = positive_number(hours, 'hours')
        limit = positive_int(limit, 'limit')

        memories = self._window(hours, limit, [term_filter('channel', channel.value)], [], timeout)
        logger.debug(f'Summarize {channel.value} ({hours}h) returned {len(memories)} memories')
        return memories

    def summarize_across(self,
                         exclude_channel: str,
                         hours: float = 2,
                         limit: int = 20,
                         timeout: Optional[float] = None) -> List[Memory]:
        """Recent memories from every channel except one, newest first."""
        channel = parse_enum(Channel, exclude_channel, 'channel')
        hours = positive_number(hours, 'hours')
        limit = positive_int(limit, 'limit')

        return self._window(hours, limit, [], [term_filter('channel', channel.value)], timeout)

    def reflect(self, query: str, limit: int = 10, threshold: float = 0.5, timeout: Optional[float] = None) -> List[ScoredRecord]:
        """Search thoughts and journal entries together.

        Both kinds are queried independently with the same embedding and the
        results merged into one ranking.

        Args:
            query: Natural language query
            limit: Maximum number of results (default 10)
            threshold: Minimum similarity in [0, 1] (default 0.5)
            timeout: Per-call timeout in seconds

        Returns:
            Scored thoughts and journal entries, best first
        """
        require_text(query, 'query')
        limit = positive_int(limit, 'limit')
        threshold = unit_interval(threshold, 'threshold')

        vector = self.embed.embed_query(query, timeout=timeout)
        candidates: List[ScoredRecord] = []
        for kind in REFLECT_KINDS:
            candidates.extend(self._similar(kind, vector, [], limit, threshold, timeout))

        results = rank_candidates(candidates, threshold, limit, kind_order=REFLECT_KINDS)
        logger.debug(f'Reflect returned {len(results)} of {len(candidates)} candidates')
        return results
