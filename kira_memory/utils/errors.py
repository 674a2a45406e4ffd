"""
Error taxonomy shared by the memory clients and services.

Every error carries a stable ``kind`` code so callers (and the MCP layer)
can decide whether to retry, skip, or surface a message.
"""

from typing import Any, Dict, Optional


class MemoryServiceError(Exception):
    """Base exception for memory subsystem errors."""
    kind = 'memory_error'

    def to_dict(self) -> Dict[str, Any]:
        """Structured form of the error for transport to callers."""
        return {'error': self.kind, 'message': str(self)}


class EmbeddingUnavailable(MemoryServiceError):
    """Embedding provider unreachable or rejected the input."""
    kind = 'embedding_unavailable'


class StoreUnavailable(MemoryServiceError):
    """Backing record store unreachable or failed the request."""
    kind = 'store_unavailable'


class OperationTimeout(MemoryServiceError):
    """A store or embedding call exceeded its timeout."""
    kind = 'timeout'


class NotFound(MemoryServiceError):
    """Id-based lookup, update or delete on a missing record."""
    kind = 'not_found'

    def __init__(self, record_kind: str, record_id: str):
        super().__init__(f'{record_kind} record not found: {record_id}')
        self.record_kind = record_kind
        self.record_id = record_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({'record_kind': self.record_kind, 'record_id': self.record_id})
        return data


class RecordExists(MemoryServiceError):
    """Create-only insert found a record with the same id."""
    kind = 'conflict'


class ValidationError(MemoryServiceError):
    """Out-of-range numeric field, unknown enumerated value or missing required field."""
    kind = 'validation_error'

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field is not None:
            data['field'] = self.field
        return data


class PartialAggregationFailure(MemoryServiceError):
    """One of the context bundle's concurrent sub-calls failed."""
    kind = 'partial_aggregation_failure'

    def __init__(self, sub_call: str, cause: Exception):
        super().__init__(f'Context sub-call {sub_call} failed: {cause}')
        self.sub_call = sub_call
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['sub_call'] = self.sub_call
        data['cause'] = self.cause.to_dict() if isinstance(self.cause, MemoryServiceError) else {
            'error': type(self.cause).__name__,
            'message': str(self.cause)
        }
        return data
