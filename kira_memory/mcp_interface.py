"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from .models.core import Record
from .services.context_aggregator import ContextAggregator
from .services.lifecycle import LifecycleService
from .services.relationships import RelationshipLedger
from .services.retrieval import RetrievalService
from .utils.bedrock_embed import BedrockEmbed
from .utils.config import AppConfig, config
from .utils.errors import MemoryServiceError
from .utils.health_check import get_system_info
from .utils.logging_config import get_logger
from .utils.opensearch_client import OpenSearchClient

logger = get_logger(__name__)


@dataclass
class MemoryServices:
    """Explicitly constructed service graph sharing one store handle."""
    config: AppConfig
    store: OpenSearchClient
    embed: BedrockEmbed
    retrieval: RetrievalService
    context: ContextAggregator
    lifecycle: LifecycleService
    relationships: RelationshipLedger


def build_services(app_config: AppConfig, store: Optional[OpenSearchClient] = None,
                   embed: Optional[BedrockEmbed] = None) -> MemoryServices:
    """Wire the services from configuration, or from the given clients."""
    store = store or OpenSearchClient(app_config.opensearch)
    embed = embed or BedrockEmbed(app_config.bedrock_embed)
    retrieval = RetrievalService(store, embed, app_config.memory)
    return MemoryServices(config=app_config,
                          store=store,
                          embed=embed,
                          retrieval=retrieval,
                          context=ContextAggregator(retrieval, app_config.context),
                          lifecycle=LifecycleService(store, embed, app_config.memory),
                          relationships=RelationshipLedger(store, app_config.memory))


def record_dict(record: Record) -> Dict[str, Any]:
    document = record.to_document()
    document.pop('embedding', None)
    return document


def _run(operation: str, func: Callable, *args, **kwargs):
    """Invoke a service call, surfacing memory errors as structured tool errors."""
    try:
        return func(*args, **kwargs)
    except MemoryServiceError as e:
        logger.error(f'Memory error in MCP {operation}: {e}')
        raise ToolError(json.dumps(e.to_dict())) from e


def create_server(services: MemoryServices) -> FastMCP:
    """Create the FastMCP application exposing one tool per memory operation."""
    mcp = FastMCP('Kira Memory')
    lifecycle = services.lifecycle
    retrieval = services.retrieval
    relationships = services.relationships

    @mcp.tool()
    def store_memory(channel: str, content: str, importance: Optional[float] = None, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Store a memory for a channel (stream_chat, telegram, x, coding, internal)."""
        return record_dict(_run('store', lifecycle.store_memory, channel, content, importance=importance, metadata=metadata))

    @mcp.tool()
    def recall_memories(query: str, channel: Optional[str] = None, limit: int = 10, threshold: float = 0.5) -> List[Dict[str, Any]]:
        """Search memories by semantic similarity, best match first."""
        results = _run('recall', retrieval.recall, query, channel=channel, limit=limit, threshold=threshold)
        logger.debug(f'MCP recall returned {len(results)} memories')
        return [scored.to_dict() for scored in results]

    @mcp.tool()
    def summarize_channel(channel: str, hours: float = 6, limit: int = 20) -> List[Dict[str, Any]]:
        """Recent memories on a channel, newest first."""
        return [record_dict(m) for m in _run('summarize', retrieval.summarize, channel, hours=hours, limit=limit)]

    @mcp.tool()
    def get_context(channel: str, message: str) -> Dict[str, Any]:
        """Context bundle for an incoming message: relevant memories plus recent activity."""
        return _run('context', services.context.context, channel, message).render()

    @mcp.tool()
    def prune_memories(days: Optional[float] = None, importance_threshold: Optional[float] = None) -> Dict[str, Any]:
        """Delete memories older than `days` with importance below the threshold (configured defaults when omitted)."""
        deleted = _run('prune', lifecycle.prune, days=days, importance_threshold=importance_threshold)
        return {
            'deleted': deleted,
            'days': days if days is not None else lifecycle.config.prune_days,
            'importance_threshold': importance_threshold if importance_threshold is not None else lifecycle.config.prune_importance_threshold
        }

    @mcp.tool()
    def think(type: str,
              content: str,
              mood: Optional[str] = None,
              tags: Optional[List[str]] = None,
              project: Optional[str] = None,
              person_id: Optional[str] = None,
              importance: Optional[float] = None) -> Dict[str, Any]:
        """Record an inner thought (idea, reflection, dream, observation, ...)."""
        return record_dict(
            _run('think',
                 lifecycle.think,
                 type,
                 content,
                 mood=mood,
                 tags=tags,
                 project=project,
                 person_id=person_id,
                 importance=importance))

    @mcp.tool()
    def add_todo(title: str,
                 description: Optional[str] = None,
                 priority: str = 'p2',
                 category: str = 'personal',
                 project: Optional[str] = None,
                 person_id: Optional[str] = None,
                 due_at: Optional[str] = None) -> Dict[str, Any]:
        """Add a todo (priority p0 most urgent .. p4)."""
        return record_dict(
            _run('todo add',
                 lifecycle.add_todo,
                 title,
                 description=description,
                 priority=priority,
                 category=category,
                 project=project,
                 person_id=person_id,
                 due_at=due_at))

    @mcp.tool()
    def list_todos(status: Optional[str] = None,
                   priority: Optional[str] = None,
                   category: Optional[str] = None,
                   limit: int = 20) -> List[Dict[str, Any]]:
        """List todos, most urgent first."""
        todos = _run('todo list', lifecycle.list_todos, status=status, priority=priority, category=category, limit=limit)
        return [record_dict(todo) for todo in todos]

    @mcp.tool()
    def complete_todo(id: str) -> Dict[str, Any]:
        """Mark a todo completed."""
        return record_dict(_run('todo complete', lifecycle.complete_todo, id))

    @mcp.tool()
    def update_todo(id: str, status: Optional[str] = None, priority: Optional[str] = None, title: Optional[str] = None) -> Dict[str, Any]:
        """Update a todo's status, priority or title."""
        return record_dict(_run('todo update', lifecycle.update_todo, id, status=status, priority=priority, title=title))

    @mcp.tool()
    def relate(person_id: str,
               note: Optional[str] = None,
               affection: Optional[float] = None,
               affection_mode: str = 'delta',
               type: Optional[str] = None,
               moment: Optional[str] = None,
               nickname: Optional[str] = None,
               favorite: Optional[bool] = None,
               summary: Optional[str] = None) -> Dict[str, Any]:
        """Create or update the relationship entry for a person."""
        entry = _run('relate',
                     relationships.relate,
                     person_id,
                     note=note,
                     affection=affection,
                     affection_mode=affection_mode,
                     relationship_type=type,
                     moment=moment,
                     nickname=nickname,
                     favorite=favorite,
                     summary=summary)
        return record_dict(entry)

    @mcp.tool()
    def learn(topic: str,
              content: str,
              type: str,
              source: Optional[str] = None,
              confidence: float = 0.5,
              tags: Optional[List[str]] = None,
              project: Optional[str] = None) -> Dict[str, Any]:
        """Store a knowledge item (fact, insight, skill, lesson, ...)."""
        return record_dict(
            _run('learn',
                 lifecycle.learn,
                 topic,
                 content,
                 type,
                 source=source,
                 confidence=confidence,
                 tags=tags,
                 project=project))

    @mcp.tool()
    def journal(type: str,
                content: str,
                mood: Optional[str] = None,
                energy: Optional[float] = None,
                highlights: Optional[List[str]] = None,
                lowlights: Optional[List[str]] = None,
                gratitude: Optional[List[str]] = None,
                people: Optional[List[str]] = None,
                projects: Optional[List[str]] = None,
                sentiment: Optional[str] = None) -> Dict[str, Any]:
        """Write a journal entry (daily_summary, milestone, mood_check, ...)."""
        return record_dict(
            _run('journal',
                 lifecycle.journal,
                 type,
                 content,
                 mood=mood,
                 energy=energy,
                 highlights=highlights,
                 lowlights=lowlights,
                 gratitude=gratitude,
                 people=people,
                 projects=projects,
                 sentiment=sentiment))

    @mcp.tool()
    def reflect(query: str, limit: int = 10, threshold: float = 0.5) -> List[Dict[str, Any]]:
        """Search thoughts and journal entries together."""
        return [scored.to_dict() for scored in _run('reflect', retrieval.reflect, query, limit=limit, threshold=threshold)]

    @mcp.tool()
    def people(mode: str = 'favorites', limit: int = 10, favorites_only: bool = False) -> List[Dict[str, Any]]:
        """List relationships by affection ('favorites') or last update ('recent')."""
        entries = _run('people', relationships.people, mode=mode, limit=limit, favorites_only=favorites_only)
        return [record_dict(entry) for entry in entries]

    @mcp.tool()
    def delete_record(kind: str, id: str) -> Dict[str, Any]:
        """Permanently delete one record (kind: memories, thoughts, todos, relationships, journal, knowledge)."""
        _run('delete', lifecycle.delete, kind, id)
        return {'deleted': True, 'kind': kind, 'id': id}

    @mcp.tool()
    def health() -> Dict[str, Any]:
        """Report component health and configuration."""
        return get_system_info(services.config, services.store, services.embed)

    return mcp


def main() -> None:
    services = build_services(config)
    services.store.create_indexes()
    mcp = create_server(services)

    transport = config.mcp.transport
    if transport == 'stdio':
        mcp.run(transport=transport)
    else:
        mcp.run(transport=transport, host=config.mcp.host, port=config.mcp.port)


if __name__ == '__main__':
    main()
