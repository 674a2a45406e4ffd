"""
Relationship ledger: per-person upsert-merge entries and listings.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from ..models.core import Moment, RecordKind, RelationshipEntry, RelationshipType
from ..models.validation import bounded, clamp, optional_text, parse_enum, parse_optional_enum, positive_int, require_text
from ..utils.config import MemoryConfig
from ..utils.errors import NotFound, RecordExists, ValidationError
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient, term_filter
from ..utils.timestamp_utils import to_iso, utc_now

logger = get_logger(__name__)

AFFECTION_MIN = -1.0
AFFECTION_MAX = 1.0


class AffectionMode(str, Enum):
    """How a supplied affection value is applied: added to the current level or set outright."""
    DELTA = 'delta'
    SET = 'set'


class PeopleMode(str, Enum):
    FAVORITES = 'favorites'
    RECENT = 'recent'


def _capped(items: List[Any], cap: int) -> List[Any]:
    return items[-cap:] if len(items) > cap else items


class RelationshipLedger:
    """Keeps at most one entry per person and merges new observations into it.

    Concurrent calls for the same person are not locked here; the store's
    per-document update applies them with last-write-wins semantics.
    """

    def __init__(self, store: OpenSearchClient, memory_config: MemoryConfig):
        self.store = store
        self.history_cap = memory_config.relationship_history_cap

    def relate(self,
               person_id: str,
               note: Optional[str] = None,
               affection: Optional[float] = None,
               affection_mode: str = AffectionMode.DELTA.value,
               relationship_type: Optional[str] = None,
               moment: Optional[str] = None,
               nickname: Optional[str] = None,
               favorite: Optional[bool] = None,
               summary: Optional[str] = None,
               timeout: Optional[float] = None) -> RelationshipEntry:
        """Create or merge the ledger entry for a person.

        Args:
            person_id: Person identifier (unique key)
            note: Note appended to the notes history
            affection: Affection change (delta mode) or new level (set mode)
            affection_mode: 'delta' (default) or 'set'
            relationship_type: Overwrites the relationship type when supplied
            moment: Moment appended, timestamped, to the moments history
            nickname: Overwrites the nickname when supplied
            favorite: Overwrites the favorite flag when supplied
            summary: Last interaction summary
            timeout: Per-call timeout in seconds

        Returns:
            The merged entry; affection is clamped to [-1, 1]

        Raises:
            ValidationError: If any input is invalid
        """
        person_id = require_text(person_id, 'person_id')
        mode = parse_enum(AffectionMode, affection_mode, 'affection_mode')
        if affection is not None:
            low = -2.0 if mode is AffectionMode.DELTA else AFFECTION_MIN
            high = 2.0 if mode is AffectionMode.DELTA else AFFECTION_MAX
            affection = bounded(affection, 'affection', low, high)
        rel_type = parse_optional_enum(RelationshipType, relationship_type, 'relationship_type')
        note = optional_text(note)
        moment = optional_text(moment)
        if favorite is not None and not isinstance(favorite, bool):
            raise ValidationError('favorite must be a boolean', field='favorite')

        now = utc_now()
        changes = {
            'note': note,
            'affection': affection,
            'mode': mode,
            'relationship_type': rel_type,
            'moment': Moment(text=moment, at=now) if moment else None,
            'nickname': optional_text(nickname),
            'favorite': favorite,
            'summary': optional_text(summary),
        }

        try:
            current = RelationshipEntry.from_document(person_id, self.store.get(RecordKind.RELATIONSHIP, person_id, timeout=timeout))
        except NotFound:
            try:
                return self._create(person_id, changes, now, timeout)
            except RecordExists:
                # Another caller created the entry first; merge into theirs
                current = RelationshipEntry.from_document(person_id,
                                                          self.store.get(RecordKind.RELATIONSHIP, person_id, timeout=timeout))

        return self._merge(current, changes, now, timeout)

    def _apply_affection(self, current: float, changes: Dict[str, Any]) -> float:
        value = changes['affection']
        if value is None:
            return current
        if changes['mode'] is AffectionMode.DELTA:
            return clamp(current + value, AFFECTION_MIN, AFFECTION_MAX)
        return clamp(value, AFFECTION_MIN, AFFECTION_MAX)

    def _create(self, person_id: str, changes: Dict[str, Any], now, timeout: Optional[float]) -> RelationshipEntry:
        entry = RelationshipEntry(id=person_id,
                                  person_id=person_id,
                                  content=changes['summary'] or '',
                                  created_at=now,
                                  updated_at=now,
                                  affection=self._apply_affection(0.0, changes),
                                  relationship_type=changes['relationship_type'] or RelationshipType.ACQUAINTANCE,
                                  notes=[changes['note']] if changes['note'] else [],
                                  moments=[changes['moment']] if changes['moment'] else [],
                                  nickname=changes['nickname'],
                                  is_favorite=bool(changes['favorite']),
                                  interaction_count=1)
        self.store.insert(RecordKind.RELATIONSHIP, entry.to_document(), doc_id=person_id, create_only=True, timeout=timeout)
        logger.info(f'Created relationship for {person_id}')
        return entry

    def _merge(self, current: RelationshipEntry, changes: Dict[str, Any], now, timeout: Optional[float]) -> RelationshipEntry:
        patch: Dict[str, Any] = {
            'interaction_count': current.interaction_count + 1,
            'updated_at': to_iso(now),
        }
        if changes['affection'] is not None:
            patch['affection'] = self._apply_affection(current.affection, changes)
        if changes['note']:
            patch['notes'] = _capped(current.notes + [changes['note']], self.history_cap)
        if changes['moment']:
            moments = _capped(current.moments + [changes['moment']], self.history_cap)
            patch['moments'] = [m.to_document() for m in moments]
        if changes['relationship_type'] is not None:
            patch['relationship_type'] = changes['relationship_type'].value
        if changes['nickname'] is not None:
            patch['nickname'] = changes['nickname']
        if changes['favorite'] is not None:
            patch['is_favorite'] = changes['favorite']
        if changes['summary'] is not None:
            patch['content'] = changes['summary']

        document = self.store.update(RecordKind.RELATIONSHIP, current.person_id, patch, timeout=timeout)
        logger.info(f'Updated relationship for {current.person_id}')
        return RelationshipEntry.from_document(current.person_id, document)

    def people(self,
               mode: str = PeopleMode.FAVORITES.value,
               limit: int = 10,
               favorites_only: bool = False,
               timeout: Optional[float] = None) -> List[RelationshipEntry]:
        """List ledger entries.

        Args:
            mode: 'favorites' sorts by affection, 'recent' by last update
            limit: Maximum number of entries (default 10)
            favorites_only: Only entries flagged as favorite
            timeout: Per-call timeout in seconds

        Returns:
            Entries in the requested order
        """
        mode = parse_enum(PeopleMode, mode, 'mode')
        limit = positive_int(limit, 'limit')

        sort_field = 'affection' if mode is PeopleMode.FAVORITES else 'updated_at'
        filters = [term_filter('is_favorite', True)] if favorites_only else []
        hits = self.store.search(RecordKind.RELATIONSHIP,
                                 filters=filters,
                                 sort=[{
                                     sort_field: {
                                         'order': 'desc'
                                     }
                                 }, {
                                     'person_id': {
                                         'order': 'asc'
                                     }
                                 }],
                                 limit=limit,
                                 timeout=timeout)
        return [RelationshipEntry.from_document(doc_id, document) for doc_id, document in hits]
