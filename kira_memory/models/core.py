"""
Core data models for the semantic memory system.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from ..utils.timestamp_utils import from_iso, time_ago, to_iso


class RecordKind(str, Enum):
    """Record kinds; the value is the index suffix in the record store."""
    MEMORY = 'memories'
    THOUGHT = 'thoughts'
    TODO = 'todos'
    RELATIONSHIP = 'relationships'
    JOURNAL = 'journal'
    KNOWLEDGE = 'knowledge'

    @property
    def embedded(self) -> bool:
        return self not in (RecordKind.TODO, RecordKind.RELATIONSHIP)


class Channel(str, Enum):
    STREAM_CHAT = 'stream_chat'
    TELEGRAM = 'telegram'
    X = 'x'
    CODING = 'coding'
    INTERNAL = 'internal'


class ThoughtType(str, Enum):
    IDEA = 'idea'
    REFLECTION = 'reflection'
    DREAM = 'dream'
    OBSERVATION = 'observation'
    CREATIVE = 'creative'
    FRUSTRATION = 'frustration'
    GRATITUDE = 'gratitude'
    INSIGHT = 'insight'
    QUESTION = 'question'
    SHOWER_THOUGHT = 'shower_thought'


class Mood(str, Enum):
    EXCITED = 'excited'
    HAPPY = 'happy'
    CONTENT = 'content'
    CALM = 'calm'
    CURIOUS = 'curious'
    PLAYFUL = 'playful'
    FOCUSED = 'focused'
    TIRED = 'tired'
    ANXIOUS = 'anxious'
    FRUSTRATED = 'frustrated'
    SAD = 'sad'
    GRATEFUL = 'grateful'
    INSPIRED = 'inspired'
    NOSTALGIC = 'nostalgic'


class TodoStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


class Priority(str, Enum):
    """Todo priority; p0 is the most urgent and sorts first."""
    P0 = 'p0'
    P1 = 'p1'
    P2 = 'p2'
    P3 = 'p3'
    P4 = 'p4'


class TodoCategory(str, Enum):
    PERSONAL = 'personal'
    WORK = 'work'
    CODING = 'coding'
    LEARNING = 'learning'
    COMMUNITY = 'community'
    CONTENT = 'content'


class RelationshipType(str, Enum):
    ACQUAINTANCE = 'acquaintance'
    REGULAR = 'regular'
    FRIEND = 'friend'
    CLOSE_FRIEND = 'close_friend'
    COLLABORATOR = 'collaborator'
    MENTOR = 'mentor'
    CREATOR = 'creator'


class JournalType(str, Enum):
    DAILY_SUMMARY = 'daily_summary'
    MILESTONE = 'milestone'
    MOOD_CHECK = 'mood_check'
    COMMUNITY_REFLECTION = 'community_reflection'
    WEEKLY_RECAP = 'weekly_recap'


class KnowledgeType(str, Enum):
    FACT = 'fact'
    INSIGHT = 'insight'
    SKILL = 'skill'
    LESSON = 'lesson'
    TECHNIQUE = 'technique'
    PATTERN = 'pattern'
    REFERENCE = 'reference'


def _enum_or_none(enum_cls, value):
    return enum_cls(value) if value else None


def _iso_or_none(value: Optional[datetime]) -> Optional[str]:
    return to_iso(value) if value is not None else None


@dataclass(kw_only=True)
class Record(ABC):
    """Base shape shared by every record kind.

    ``metadata`` is an explicit open map written whole at creation. In-place
    updates (todos, relationships) patch named fields only and leave it as is.
    """
    kind: ClassVar[RecordKind]

    id: str
    content: str
    created_at: datetime
    embedding: Optional[List[float]] = None
    importance: float = 0.5
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the record store document layout."""
        document = {
            'id': self.id,
            'content': self.content,
            'created_at': to_iso(self.created_at),
            'importance': self.importance,
            'metadata': dict(self.metadata),
        }
        if self.embedding is not None:
            document['embedding'] = list(self.embedding)
        document.update(self._kind_fields())
        return document

    def _kind_fields(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def _base_fields(cls, doc_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'id': document.get('id') or doc_id,
            'content': document.get('content', ''),
            'created_at': from_iso(document.get('created_at')),
            'embedding': document.get('embedding'),
            'importance': float(document.get('importance', 0.5)),
            'metadata': dict(document.get('metadata') or {}),
        }

    @classmethod
    @abstractmethod
    def from_document(cls, doc_id: str, document: Dict[str, Any]) -> 'Record':
        """Build the typed record from a store document."""


@dataclass(kw_only=True)
class Memory(Record):
    """A conversational memory scoped to a channel."""
    kind: ClassVar[RecordKind] = RecordKind.MEMORY

    channel: Channel

    def _kind_fields(self) -> Dict[str, Any]:
        return {'channel': self.channel.value}

    @classmethod
    def from_document(cls, doc_id: str, document: Dict[str, Any]) -> 'Memory':
        return cls(channel=Channel(document['channel']), **cls._base_fields(doc_id, document))


@dataclass(kw_only=True)
class Thought(Record):
    kind: ClassVar[RecordKind] = RecordKind.THOUGHT

    thought_type: ThoughtType
    mood: Optional[Mood] = None
    tags: List[str] = field(default_factory=list)
    project: Optional[str] = None
    person_id: Optional[str] = None

    def _kind_fields(self) -> Dict[str, Any]:
        return {
            'thought_type': self.thought_type.value,
            'mood': self.mood.value if self.mood else None,
            'tags': list(self.tags),
            'project': self.project,
            'person_id': self.person_id,
        }

    @classmethod
    def from_document(cls, doc_id: str, document: Dict[str, Any]) -> 'Thought':
        return cls(thought_type=ThoughtType(document['thought_type']),
                   mood=_enum_or_none(Mood, document.get('mood')),
                   tags=list(document.get('tags') or []),
                   project=document.get('project'),
                   person_id=document.get('person_id'),
                   **cls._base_fields(doc_id, document))


@dataclass(kw_only=True)
class Todo(Record):
    """A todo item; ``content`` holds the optional description."""
    kind: ClassVar[RecordKind] = RecordKind.TODO

    title: str
    status: TodoStatus = TodoStatus.PENDING
    priority: Priority = Priority.P2
    category: TodoCategory = TodoCategory.PERSONAL
    project: Optional[str] = None
    person_id: Optional[str] = None
    due_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def _kind_fields(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'status': self.status.value,
            'priority': self.priority.value,
            'category': self.category.value,
            'project': self.project,
            'person_id': self.person_id,
            'due_at': _iso_or_none(self.due_at),
            'completed_at': _iso_or_none(self.completed_at),
            'updated_at': _iso_or_none(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc_id: str, document: Dict[str, Any]) -> 'Todo':
        return cls(title=document['title'],
                   status=TodoStatus(document.get('status', TodoStatus.PENDING.value)),
                   priority=Priority(document.get('priority', Priority.P2.value)),
                   category=TodoCategory(document.get('category', TodoCategory.PERSONAL.value)),
                   project=document.get('project'),
                   person_id=document.get('person_id'),
                   due_at=from_iso(document.get('due_at')),
                   completed_at=from_iso(document.get('completed_at')),
                   updated_at=from_iso(document.get('updated_at')),
                   **cls._base_fields(doc_id, document))


@dataclass
class Moment:
    text: str
    at: datetime

    def to_document(self) -> Dict[str, Any]:
        return {'text': self.text, 'at': to_iso(self.at)}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'Moment':
        return cls(text=document['text'], at=from_iso(document['at']))


@dataclass(kw_only=True)
class RelationshipEntry(Record):
    """Per-person ledger entry, keyed uniquely by ``person_id``.

    ``content`` holds the last interaction summary.
    """
    kind: ClassVar[RecordKind] = RecordKind.RELATIONSHIP

    person_id: str
    affection: float = 0.0
    relationship_type: RelationshipType = RelationshipType.ACQUAINTANCE
    notes: List[str] = field(default_factory=list)
    moments: List[Moment] = field(default_factory=list)
    nickname: Optional[str] = None
    is_favorite: bool = False
    interaction_count: int = 0
    updated_at: Optional[datetime] = None

    def _kind_fields(self) -> Dict[str, Any]:
        return {
            'person_id': self.person_id,
            'affection': self.affection,
            'relationship_type': self.relationship_type.value,
            'notes': list(self.notes),
            'moments': [moment.to_document() for moment in self.moments],
            'nickname': self.nickname,
            'is_favorite': self.is_favorite,
            'interaction_count': self.interaction_count,
            'updated_at': _iso_or_none(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc_id: str, document: Dict[str, Any]) -> 'RelationshipEntry':
        return cls(person_id=document['person_id'],
                   affection=float(document.get('affection', 0.0)),
                   relationship_type=RelationshipType(document.get('relationship_type', RelationshipType.ACQUAINTANCE.value)),
                   notes=list(document.get('notes') or []),
                   moments=[Moment.from_document(m) for m in document.get('moments') or []],
                   nickname=document.get('nickname'),
                   is_favorite=bool(document.get('is_favorite', False)),
                   interaction_count=int(document.get('interaction_count', 0)),
                   updated_at=from_iso(document.get('updated_at')),
                   **cls._base_fields(doc_id, document))


@dataclass(kw_only=True)
class JournalEntry(Record):
    kind: ClassVar[RecordKind] = RecordKind.JOURNAL

    entry_type: JournalType
    mood: Optional[Mood] = None
    energy: Optional[float] = None
    highlights: List[str] = field(default_factory=list)
    lowlights: List[str] = field(default_factory=list)
    gratitude: List[str] = field(default_factory=list)
    people: List[str] = field(default_factory=list)
    projects: List[str] = field(default_factory=list)
    sentiment: Optional[str] = None

    def _kind_fields(self) -> Dict[str, Any]:
        return {
            'entry_type': self.entry_type.value,
            'mood': self.mood.value if self.mood else None,
            'energy': self.energy,
            'highlights': list(self.highlights),
            'lowlights': list(self.lowlights),
            'gratitude': list(self.gratitude),
            'people': list(self.people),
            'projects': list(self.projects),
            'sentiment': self.sentiment,
        }

    @classmethod
    def from_document(cls, doc_id: str, document: Dict[str, Any]) -> 'JournalEntry':
        energy = document.get('energy')
        return cls(entry_type=JournalType(document['entry_type']),
                   mood=_enum_or_none(Mood, document.get('mood')),
                   energy=float(energy) if energy is not None else None,
                   highlights=list(document.get('highlights') or []),
                   lowlights=list(document.get('lowlights') or []),
                   gratitude=list(document.get('gratitude') or []),
                   people=list(document.get('people') or []),
                   projects=list(document.get('projects') or []),
                   sentiment=document.get('sentiment'),
                   **cls._base_fields(doc_id, document))


@dataclass(kw_only=True)
class KnowledgeItem(Record):
    kind: ClassVar[RecordKind] = RecordKind.KNOWLEDGE

    topic: str
    knowledge_type: KnowledgeType
    source: Optional[str] = None
    confidence: float = 0.5
    tags: List[str] = field(default_factory=list)
    project: Optional[str] = None

    def _kind_fields(self) -> Dict[str, Any]:
        return {
            'topic': self.topic,
            'knowledge_type': self.knowledge_type.value,
            'source': self.source,
            'confidence': self.confidence,
            'tags': sorted(set(self.tags)),
            'project': self.project,
        }

    @classmethod
    def from_document(cls, doc_id: str, document: Dict[str, Any]) -> 'KnowledgeItem':
        return cls(topic=document['topic'],
                   knowledge_type=KnowledgeType(document['knowledge_type']),
                   source=document.get('source'),
                   confidence=float(document.get('confidence', 0.5)),
                   tags=list(document.get('tags') or []),
                   project=document.get('project'),
                   **cls._base_fields(doc_id, document))


RECORD_TYPES: Dict[RecordKind, type] = {
    RecordKind.MEMORY: Memory,
    RecordKind.THOUGHT: Thought,
    RecordKind.TODO: Todo,
    RecordKind.RELATIONSHIP: RelationshipEntry,
    RecordKind.JOURNAL: JournalEntry,
    RecordKind.KNOWLEDGE: KnowledgeItem,
}


def record_from_document(kind: RecordKind, doc_id: str, document: Dict[str, Any]) -> Record:
    """Build the typed record for a store document of the given kind."""
    return RECORD_TYPES[kind].from_document(doc_id, document)


@dataclass
class ScoredRecord:
    """A record returned by similarity search paired with its cosine similarity."""
    kind: RecordKind
    record: Record
    score: float

    def to_dict(self) -> Dict[str, Any]:
        document = self.record.to_document()
        document.pop('embedding', None)
        document['kind'] = self.kind.value
        document['similarity'] = round(self.score, 3)
        return document


@dataclass
class ContextBundle:
    """Merged output of the three context sub-queries.

    The three sequences are independent; a record may appear in more than one.
    """
    channel: Channel
    relevant_memories: List[ScoredRecord]
    recent_summary: List[Memory]
    cross_channel_context: List[Memory]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'channel': self.channel.value,
            'relevant_memories': [scored.to_dict() for scored in self.relevant_memories],
            'recent_summary': [_summary_dict(memory) for memory in self.recent_summary],
            'cross_channel_context': [_summary_dict(memory) for memory in self.cross_channel_context],
        }

    def render(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Prompt-ready form: relevant memories as dicts, summaries as text lines."""
        if self.recent_summary:
            recent = render_lines(self.recent_summary, now)
        else:
            recent = f'No recent activity on {self.channel.value}.'

        grouped: Dict[Channel, List[Memory]] = {}
        for memory in self.cross_channel_context:
            grouped.setdefault(memory.channel, []).append(memory)
        blocks = [f'[{ch.value}]\n{render_lines(memories, now)}' for ch, memories in grouped.items()]

        return {
            'relevant_memories': [scored.to_dict() for scored in self.relevant_memories],
            'recent_summary': recent,
            'cross_channel_context': '\n\n'.join(blocks) if blocks else 'No recent activity on other channels.',
        }


def _summary_dict(memory: Memory) -> Dict[str, Any]:
    return {
        'id': memory.id,
        'channel': memory.channel.value,
        'content': memory.content,
        'importance': memory.importance,
        'metadata': memory.metadata,
        'created_at': to_iso(memory.created_at),
    }


def render_lines(memories: List[Memory], now: Optional[datetime] = None, max_chars: int = 200) -> str:
    """One line per memory: ``[5m ago] sender: content``.

    The sender comes from ``metadata['sender']`` and falls back to the channel.
    """
    lines = []
    for memory in memories:
        sender = memory.metadata.get('sender')
        prefix = str(sender) if sender is not None else memory.channel.value
        lines.append(f'[{time_ago(memory.created_at, now)}] {prefix}: {memory.content[:max_chars]}')
    return '\n'.join(lines)
