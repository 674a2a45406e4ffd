"""
Lifecycle service: record creation, todo maintenance, deletion and pruning.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.core import (Channel, JournalEntry, JournalType, KnowledgeItem, KnowledgeType, Memory, Mood, Priority,
                           Record, RecordKind, Thought, ThoughtType, Todo, TodoCategory, TodoStatus)
from ..models.validation import (optional_text, parse_enum, parse_optional_enum, positive_int, positive_number,
                                 require_text, text_list, unit_interval)
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.config import MemoryConfig
from ..utils.errors import NotFound, ValidationError
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient, range_filter, term_filter
from ..utils.timestamp_utils import days_ago, from_iso, to_iso, utc_now

logger = get_logger(__name__)


def _metadata(value: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError('metadata must be a key-value map', field='metadata')
    return dict(value)


def _due_at(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return from_iso(str(value))
    except ValueError:
        raise ValidationError(f'due_at must be an ISO-8601 timestamp, got {value!r}', field='due_at')


class LifecycleService:
    """Creates records with their defaults and removes them again."""

    def __init__(self, store: OpenSearchClient, embed: BedrockEmbed, memory_config: MemoryConfig):
        """
        Initialize the lifecycle service.

        Args:
            store: Record store handle
            embed: Embedding provider
            memory_config: Creation and pruning defaults
        """
        self.store = store
        self.embed = embed
        self.config = memory_config

    def _persist(self, record: Record, timeout: Optional[float]) -> Record:
        if record.kind.embedded:
            record.embedding = self.embed.embed_document(record.content, timeout=timeout)
        self.store.insert(record.kind, record.to_document(), doc_id=record.id, create_only=True, timeout=timeout)
        logger.debug(f'Created {record.kind.value} record {record.id}')
        return record

    def _importance(self, importance: Optional[float]) -> float:
        if importance is None:
            return self.config.default_importance
        return unit_interval(importance, 'importance')

    def store_memory(self,
                     channel: str,
                     content: str,
                     importance: Optional[float] = None,
                     metadata: Optional[Dict[str, Any]] = None,
                     timeout: Optional[float] = None) -> Memory:
        """Store a channel memory.

        Args:
            channel: Channel the memory belongs to
            content: Memory text
            importance: Retention priority in [0, 1] (default 0.5)
            metadata: Open key-value map, e.g. ``{'sender': 'alice'}``
            timeout: Per-call timeout in seconds

        Returns:
            The stored memory

        Raises:
            ValidationError: If any field is invalid (before any embedding call)
            EmbeddingUnavailable: If the content cannot be embedded
            StoreUnavailable: If the store rejects the write
        """
        record = Memory(id=str(uuid.uuid4()),
                        channel=parse_enum(Channel, channel, 'channel'),
                        content=require_text(content, 'content'),
                        created_at=utc_now(),
                        importance=self._importance(importance),
                        metadata=_metadata(metadata))
        self._persist(record, timeout)
        logger.info(f'Stored memory to {record.channel.value} (importance: {record.importance})')
        return record

    def think(self,
              thought_type: str,
              content: str,
              mood: Optional[str] = None,
              tags: Optional[List[str]] = None,
              project: Optional[str] = None,
              person_id: Optional[str] = None,
              importance: Optional[float] = None,
              timeout: Optional[float] = None) -> Thought:
        record = Thought(id=str(uuid.uuid4()),
                         thought_type=parse_enum(ThoughtType, thought_type, 'type'),
                         content=require_text(content, 'content'),
                         created_at=utc_now(),
                         importance=self._importance(importance),
                         mood=parse_optional_enum(Mood, mood, 'mood'),
                         tags=text_list(tags, 'tags'),
                         project=optional_text(project),
                         person_id=optional_text(person_id))
        self._persist(record, timeout)
        logger.info(f'Stored thought (type: {record.thought_type.value}, mood: {record.mood.value if record.mood else "unset"})')
        return record

    def learn(self,
              topic: str,
              content: str,
              knowledge_type: str,
              source: Optional[str] = None,
              confidence: float = 0.5,
              tags: Optional[List[str]] = None,
              project: Optional[str] = None,
              importance: Optional[float] = None,
              timeout: Optional[float] = None) -> KnowledgeItem:
        record = KnowledgeItem(id=str(uuid.uuid4()),
                               topic=require_text(topic, 'topic'),
                               content=require_text(content, 'content'),
                               knowledge_type=parse_enum(KnowledgeType, knowledge_type, 'type'),
                               created_at=utc_now(),
                               importance=self._importance(importance),
                               source=optional_text(source),
                               confidence=unit_interval(confidence, 'confidence'),
                               tags=sorted(set(text_list(tags, 'tags'))),
                               project=optional_text(project))
        self._persist(record, timeout)
        logger.info(f'Stored knowledge: {record.topic} (type: {record.knowledge_type.value}, confidence: {record.confidence})')
        return record

    def journal(self,
                entry_type: str,
                content: str,
                mood: Optional[str] = None,
                energy: Optional[float] = None,
                highlights: Optional[List[str]] = None,
                lowlights: Optional[List[str]] = None,
                gratitude: Optional[List[str]] = None,
                people: Optional[List[str]] = None,
                projects: Optional[List[str]] = None,
                sentiment: Optional[str] = None,
                importance: Optional[float] = None,
                timeout: Optional[float] = None) -> JournalEntry:
        record = JournalEntry(id=str(uuid.uuid4()),
                              entry_type=parse_enum(JournalType, entry_type, 'type'),
                              content=require_text(content, 'content'),
                              created_at=utc_now(),
                              importance=self._importance(importance),
                              mood=parse_optional_enum(Mood, mood, 'mood'),
                              energy=unit_interval(energy, 'energy') if energy is not None else None,
                              highlights=text_list(highlights, 'highlights'),
                              lowlights=text_list(lowlights, 'lowlights'),
                              gratitude=text_list(gratitude, 'gratitude'),
                              people=text_list(people, 'people'),
                              projects=text_list(projects, 'projects'),
                              sentiment=optional_text(sentiment))
        self._persist(record, timeout)
        logger.info(f'Stored journal entry (type: {record.entry_type.value}, mood: {record.mood.value if record.mood else "unset"})')
        return record

    def add_todo(self,
                 title: str,
                 description: Optional[str] = None,
                 priority: str = Priority.P2.value,
                 category: str = TodoCategory.PERSONAL.value,
                 project: Optional[str] = None,
                 person_id: Optional[str] = None,
                 due_at: Any = None,
                 importance: Optional[float] = None,
                 timeout: Optional[float] = None) -> Todo:
        """Add a pending todo. Todos are not embedded."""
        now = utc_now()
        record = Todo(id=str(uuid.uuid4()),
                      title=require_text(title, 'title'),
                      content=description or '',
                      created_at=now,
                      updated_at=now,
                      importance=self._importance(importance),
                      priority=parse_enum(Priority, priority, 'priority'),
                      category=parse_enum(TodoCategory, category, 'category'),
                      project=optional_text(project),
                      person_id=optional_text(person_id),
                      due_at=_due_at(due_at))
        self._persist(record, timeout)
        logger.info(f'Added todo: "{record.title}" (priority: {record.priority.value}, id: {record.id})')
        return record

    def list_todos(self,
                   status: Optional[str] = None,
                   priority: Optional[str] = None,
                   category: Optional[str] = None,
                   limit: int = 20,
                   timeout: Optional[float] = None) -> List[Todo]:
        """List todos, most urgent first and newest first within a priority."""
        filters = []
        for field, enum_cls, value in (('status', TodoStatus, status), ('priority', Priority, priority),
                                       ('category', TodoCategory, category)):
            parsed = parse_optional_enum(enum_cls, value, field)
            if parsed is not None:
                filters.append(term_filter(field, parsed.value))
        limit = positive_int(limit, 'limit')

        hits = self.store.search(RecordKind.TODO,
                                 filters=filters,
                                 sort=[{
                                     'priority': {
                                         'order': 'asc'
                                     }
                                 }, {
                                     'created_at': {
                                         'order': 'desc'
                                     }
                                 }],
                                 limit=limit,
                                 timeout=timeout)
        return [Todo.from_document(doc_id, document) for doc_id, document in hits]

    def update_todo(self,
                    todo_id: str,
                    status: Optional[str] = None,
                    priority: Optional[str] = None,
                    title: Optional[str] = None,
                    timeout: Optional[float] = None) -> Todo:
        """Update a todo's status, priority or title in place.

        Raises:
            ValidationError: If nothing is supplied or a value is invalid
            NotFound: If the todo does not exist
        """
        require_text(todo_id, 'id')
        patch: Dict[str, Any] = {}
        if status is not None:
            parsed_status = parse_enum(TodoStatus, status, 'status')
            patch['status'] = parsed_status.value
            if parsed_status is TodoStatus.COMPLETED:
                patch['completed_at'] = to_iso(utc_now())
        if priority is not None:
            patch['priority'] = parse_enum(Priority, priority, 'priority').value
        if title is not None:
            patch['title'] = require_text(title, 'title')
        if not patch:
            raise ValidationError('Nothing to update; provide status, priority or title')
        patch['updated_at'] = to_iso(utc_now())

        document = self.store.update(RecordKind.TODO, todo_id, patch, timeout=timeout)
        logger.info(f'Updated todo: {todo_id}')
        return Todo.from_document(todo_id, document)

    def complete_todo(self, todo_id: str, timeout: Optional[float] = None) -> Todo:
        return self.update_todo(todo_id, status=TodoStatus.COMPLETED.value, timeout=timeout)

    def delete(self, kind: str, record_id: str, timeout: Optional[float] = None) -> None:
        """Permanently delete one record.

        Raises:
            NotFound: If the record does not exist
        """
        record_kind = parse_enum(RecordKind, kind, 'kind')
        require_text(record_id, 'id')

        if not self.store.delete(record_kind, record_id, timeout=timeout):
            raise NotFound(record_kind.value, record_id)
        logger.info(f'Deleted {record_kind.value} record {record_id}')

    def prune(self,
              days: Optional[float] = None,
              importance_threshold: Optional[float] = None,
              timeout: Optional[float] = None) -> int:
        """Permanently delete aged, low-importance memories.

        A memory is deleted only when it is older than ``days`` AND its
        importance is strictly below ``importance_threshold``. Running the
        sweep again with the same parameters deletes nothing further.

        Args:
            days: Age cutoff in days (defaults to MEMORY_PRUNE_DAYS)
            importance_threshold: Importance below which aged memories go
                (defaults to MEMORY_PRUNE_IMPORTANCE_THRESHOLD)
            timeout: Per-call timeout in seconds

        Returns:
            Number of memories deleted
        """
        if days is None:
            days = self.config.prune_days
        if importance_threshold is None:
            importance_threshold = self.config.prune_importance_threshold
        days = positive_number(days, 'days')
        importance_threshold = unit_interval(importance_threshold, 'importance_threshold')

        cutoff = to_iso(days_ago(days))
        deleted = self.store.delete_where(RecordKind.MEMORY,
                                          [range_filter('created_at', lt=cutoff),
                                           range_filter('importance', lt=importance_threshold)],
                                          timeout=timeout)

        logger.info(f'Pruned {deleted} memories older than {days} days with importance < {importance_threshold}')
        return deleted
