"""
OpenSearch client wrapper acting as the record store.

One index per record kind (``<prefix>_<kind>``). Embedded kinds carry a
``knn_vector`` field scored with the exact k-NN ``knn_score`` script in
``cosinesimil`` space, whose score is ``1 + cosine``.
"""

import time
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import ConflictError, ConnectionTimeout, NotFoundError, OpenSearchException
from requests_aws4auth import AWS4Auth

from ..models.core import RecordKind
from .config import OpenSearchConfig
from .errors import MemoryServiceError, NotFound, OperationTimeout, RecordExists, StoreUnavailable
from .logging_config import get_logger

logger = get_logger(__name__)

SCORE_OFFSET = 1.0

# Default index.max_result_window; larger from+size requests are rejected
MAX_RESULT_WINDOW = 10000

_KEYWORD = {'type': 'keyword'}
_TEXT = {'type': 'text'}
_DATE = {'type': 'date'}
_FLOAT = {'type': 'float'}

KIND_PROPERTIES: Dict[RecordKind, Dict[str, Any]] = {
    RecordKind.MEMORY: {
        'channel': _KEYWORD
    },
    RecordKind.THOUGHT: {
        'thought_type': _KEYWORD,
        'mood': _KEYWORD,
        'tags': _KEYWORD,
        'project': _KEYWORD,
        'person_id': _KEYWORD
    },
    RecordKind.TODO: {
        'title': _TEXT,
        'status': _KEYWORD,
        'priority': _KEYWORD,
        'category': _KEYWORD,
        'project': _KEYWORD,
        'person_id': _KEYWORD,
        'due_at': _DATE,
        'completed_at': _DATE,
        'updated_at': _DATE
    },
    RecordKind.RELATIONSHIP: {
        'person_id': _KEYWORD,
        'affection': _FLOAT,
        'relationship_type': _KEYWORD,
        'notes': _TEXT,
        'moments': {
            'properties': {
                'text': _TEXT,
                'at': _DATE
            }
        },
        'nickname': _KEYWORD,
        'is_favorite': {
            'type': 'boolean'
        },
        'interaction_count': {
            'type': 'integer'
        },
        'updated_at': _DATE
    },
    RecordKind.JOURNAL: {
        'entry_type': _KEYWORD,
        'mood': _KEYWORD,
        'energy': _FLOAT,
        'highlights': _TEXT,
        'lowlights': _TEXT,
        'gratitude': _TEXT,
        'people': _KEYWORD,
        'projects': _KEYWORD,
        'sentiment': _KEYWORD
    },
    RecordKind.KNOWLEDGE: {
        'topic': _KEYWORD,
        'knowledge_type': _KEYWORD,
        'source': _KEYWORD,
        'confidence': _FLOAT,
        'tags': _KEYWORD,
        'project': _KEYWORD
    },
}


def term_filter(field: str, value: Any) -> Dict[str, Any]:
    return {'term': {field: value}}


def range_filter(field: str, **bounds: Any) -> Dict[str, Any]:
    """Range clause, e.g. ``range_filter('importance', lt=0.4)``."""
    return {'range': {field: bounds}}


def translate_errors(action: str):
    """Decorator translating OpenSearch failures into the memory error taxonomy."""

    def decorator(func):

        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except MemoryServiceError:
                raise
            except ConnectionTimeout as e:
                logger.error(f'OpenSearch {action} timed out: {e}')
                raise OperationTimeout(f'Failed to {action}: timed out') from e
            except OpenSearchException as e:
                logger.error(f'Error during OpenSearch {action}: {e}')
                raise StoreUnavailable(f'Failed to {action}: {e}') from e
            except Exception as e:
                logger.error(f'Unexpected error during OpenSearch {action}: {e}')
                raise StoreUnavailable(f'Unexpected error during {action}: {e}') from e

        return wrapper

    return decorator


class OpenSearchClient:
    """OpenSearch record store with AWS authentication and error handling."""

    def __init__(self, config: OpenSearchConfig, client: Optional[OpenSearch] = None):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
            client: Pre-built OpenSearch client (built from config if None)
        """
        self.config = config

        if client is None:
            # Get AWS credentials and create auth
            credentials = boto3.Session().get_credentials()
            auth = AWS4Auth(region=config.region, service=config.service, refreshable_credentials=credentials)
            endpoint = config.endpoint
            if '://' in endpoint:
                # Remove protocol if present
                endpoint = endpoint.split('://', 1)[1]

            client = OpenSearch(hosts=[{
                'host': endpoint,
                'port': config.port
            }],
                                http_auth=auth,
                                use_ssl=True,
                                verify_certs=True,
                                connection_class=RequestsHttpConnection,
                                timeout=config.timeout)
        self.client = client

        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    def index_name(self, kind: RecordKind) -> str:
        return f'{self.config.index_prefix}_{kind.value}'

    def _timeout(self, timeout: Optional[float]) -> float:
        return timeout if timeout is not None else self.config.timeout

    def _index_body(self, kind: RecordKind) -> Dict[str, Any]:
        properties = {
            'id': _KEYWORD,
            'content': _TEXT,
            'created_at': _DATE,
            'importance': _FLOAT,
            'metadata': {
                'type': 'object',
                'enabled': False
            },
        }
        properties.update(KIND_PROPERTIES[kind])
        body = {'mappings': {'properties': properties}}
        if kind.embedded:
            properties['embedding'] = {
                'type': 'knn_vector',
                'dimension': self.config.dimension,
                'method': {
                    'name': 'hnsw',
                    'space_type': 'cosinesimil',
                    'engine': 'nmslib'
                }
            }
            body['settings'] = {'index': {'knn': True, 'knn.algo_param.ef_search': 100}}
        return body

    @translate_errors('create index')
    def create_index_if_not_exists(self, kind: RecordKind) -> str:
        """
        Create the index for a record kind if it doesn't exist.

        Args:
            kind: Record kind whose index should exist

        Returns:
            'exists', 'created' or 'failed'
        """
        index_name = self.index_name(kind)
        if self.client.indices.exists(index=index_name):
            logger.debug(f'Index {index_name} already exists')
            return 'exists'

        response = self.client.indices.create(index=index_name, body=self._index_body(kind))
        if not response.get('acknowledged', False):
            logger.warning(f'Index creation for {index_name} was not acknowledged')
            return 'failed'

        logger.info(f'Created index {index_name}')
        if self.config.service == 'aoss':
            logger.info(f'Waiting 15s for index {index_name} sync-up...')
            time.sleep(15)
        return 'created'

    def create_indexes(self) -> Dict[RecordKind, str]:
        return {kind: self.create_index_if_not_exists(kind) for kind in RecordKind}

    @translate_errors('insert document')
    def insert(self,
               kind: RecordKind,
               document: Dict[str, Any],
               doc_id: Optional[str] = None,
               create_only: bool = False,
               timeout: Optional[float] = None) -> str:
        """
        Index a document.

        Args:
            kind: Record kind (selects the index)
            document: Document body
            doc_id: Explicit document id (generated by OpenSearch if None)
            create_only: Fail with RecordExists instead of overwriting
            timeout: Per-call timeout in seconds

        Returns:
            The document id
        """
        kwargs: Dict[str, Any] = {'request_timeout': self._timeout(timeout)}
        if doc_id is not None:
            kwargs['id'] = doc_id
        if create_only:
            kwargs['op_type'] = 'create'
        if self.config.refresh:
            kwargs['refresh'] = 'wait_for'

        try:
            response = self.client.index(index=self.index_name(kind), body=document, **kwargs)
        except ConflictError as e:
            logger.debug(f'Document {doc_id} already exists in {self.index_name(kind)}')
            raise RecordExists(f'{kind.value} record already exists: {doc_id}') from e

        if response.get('result') not in ('created', 'updated'):
            raise StoreUnavailable(f'Unexpected result indexing document: {response}')

        logger.debug(f'Indexed document {response["_id"]} in {self.index_name(kind)}')
        return response['_id']

    @translate_errors('get document')
    def get(self, kind: RecordKind, doc_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Get a document by id.

        Raises:
            NotFound: If no document has this id
        """
        try:
            response = self.client.get(index=self.index_name(kind),
                                       id=doc_id,
                                       _source_excludes=['embedding'],
                                       request_timeout=self._timeout(timeout))
        except NotFoundError as e:
            raise NotFound(kind.value, doc_id) from e
        return response['_source']

    @translate_errors('update document')
    def update(self, kind: RecordKind, doc_id: str, patch: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Apply a partial update and return the updated document.

        Fields present in the patch overwrite stored fields; object fields
        are merged by OpenSearch.

        Raises:
            NotFound: If no document has this id
        """
        kwargs: Dict[str, Any] = {'request_timeout': self._timeout(timeout), '_source': True}
        if self.config.refresh:
            kwargs['refresh'] = 'wait_for'

        try:
            response = self.client.update(index=self.index_name(kind), id=doc_id, body={'doc': patch}, **kwargs)
        except NotFoundError as e:
            raise NotFound(kind.value, doc_id) from e

        logger.debug(f'Updated document {doc_id} in {self.index_name(kind)}')
        source = (response.get('get') or {}).get('_source')
        if source is None:
            return self.get(kind, doc_id, timeout=timeout)
        source.pop('embedding', None)
        return source

    @translate_errors('delete document')
    def delete(self, kind: RecordKind, doc_id: str, timeout: Optional[float] = None) -> bool:
        """
        Delete a document from the index.

        Returns:
            True if the document was deleted, False if it did not exist
        """
        kwargs: Dict[str, Any] = {'request_timeout': self._timeout(timeout)}
        if self.config.refresh:
            kwargs['refresh'] = 'true'

        try:
            response = self.client.delete(index=self.index_name(kind), id=doc_id, **kwargs)
        except NotFoundError:
            logger.warning(f'Document {doc_id} not found for deletion')
            return False

        success = response.get('result') == 'deleted'
        if success:
            logger.debug(f'Deleted document {doc_id} from {self.index_name(kind)}')
        else:
            logger.warning(f'Document {doc_id} not found for deletion')
        return success

    @translate_errors('similarity search')
    def query_by_similarity(self,
                            kind: RecordKind,
                            vector: List[float],
                            filters: Optional[List[Dict[str, Any]]] = None,
                            limit: int = 20,
                            min_similarity: Optional[float] = None,
                            timeout: Optional[float] = None) -> List[Tuple[str, Dict[str, Any], float]]:
        """
        Perform exact vector similarity search over pre-filtered documents.

        Args:
            kind: Record kind to search
            vector: Query vector
            filters: Filter clauses applied before scoring
            limit: Maximum number of candidates
            min_similarity: Minimum cosine similarity pushed down to the store
            timeout: Per-call timeout in seconds

        Returns:
            List of (doc_id, document, similarity) ordered by similarity
        """
        search_body: Dict[str, Any] = {
            'size': min(limit, MAX_RESULT_WINDOW),
            'query': {
                'script_score': {
                    'query': {
                        'bool': {
                            'filter': [{
                                'exists': {
                                    'field': 'embedding'
                                }
                            }] + list(filters or [])
                        }
                    },
                    'script': {
                        'source': 'knn_score',
                        'lang': 'knn',
                        'params': {
                            'field': 'embedding',
                            'query_value': vector,
                            'space_type': 'cosinesimil'
                        }
                    }
                }
            },
            '_source': {
                'excludes': ['embedding']  # Don't return embedding in results
            }
        }
        if min_similarity is not None:
            search_body['min_score'] = min_similarity + SCORE_OFFSET

        response = self.client.search(index=self.index_name(kind), body=search_body, request_timeout=self._timeout(timeout))

        results = [(hit['_id'], hit['_source'], hit['_score'] - SCORE_OFFSET) for hit in response['hits']['hits']]
        logger.debug(f'Similarity search on {self.index_name(kind)} returned {len(results)} results')
        return results

    @translate_errors('time range query')
    def query_by_time_range(self,
                            kind: RecordKind,
                            start: str,
                            end: str,
                            filters: Optional[List[Dict[str, Any]]] = None,
                            exclude: Optional[List[Dict[str, Any]]] = None,
                            limit: int = 20,
                            timeout: Optional[float] = None) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Fetch documents created within [start, end], newest first.

        Args:
            kind: Record kind to scan
            start: Inclusive ISO-8601 lower bound on created_at
            end: Inclusive ISO-8601 upper bound on created_at
            filters: Clauses documents must match
            exclude: Clauses documents must not match
            limit: Maximum number of documents
            timeout: Per-call timeout in seconds

        Returns:
            List of (doc_id, document)
        """
        query: Dict[str, Any] = {'filter': [range_filter('created_at', gte=start, lte=end)] + list(filters or [])}
        if exclude:
            query['must_not'] = list(exclude)
        search_body = {
            'size': min(limit, MAX_RESULT_WINDOW),
            'query': {
                'bool': query
            },
            'sort': [{
                'created_at': {
                    'order': 'desc'
                }
            }],
            '_source': {
                'excludes': ['embedding']
            }
        }

        response = self.client.search(index=self.index_name(kind), body=search_body, request_timeout=self._timeout(timeout))

        results = [(hit['_id'], hit['_source']) for hit in response['hits']['hits']]
        logger.debug(f'Time range query on {self.index_name(kind)} returned {len(results)} results')
        return results

    @translate_errors('search')
    def search(self,
               kind: RecordKind,
               filters: Optional[List[Dict[str, Any]]] = None,
               sort: Optional[List[Dict[str, Any]]] = None,
               limit: int = 20,
               timeout: Optional[float] = None) -> List[Tuple[str, Dict[str, Any]]]:
        """Plain filtered listing with an explicit sort."""
        search_body: Dict[str, Any] = {
            'size': min(limit, MAX_RESULT_WINDOW),
            'query': {
                'bool': {
                    'filter': list(filters or [])
                }
            },
            '_source': {
                'excludes': ['embedding']
            }
        }
        if sort:
            search_body['sort'] = sort

        response = self.client.search(index=self.index_name(kind), body=search_body, request_timeout=self._timeout(timeout))
        return [(hit['_id'], hit['_source']) for hit in response['hits']['hits']]

    @translate_errors('delete by query')
    def delete_where(self, kind: RecordKind, filters: List[Dict[str, Any]], timeout: Optional[float] = None) -> int:
        """
        Delete every document matching all filter clauses.

        Args:
            kind: Record kind to sweep
            filters: Clauses a document must match to be deleted
            timeout: Per-call timeout in seconds

        Returns:
            Number of documents deleted
        """
        if not filters:
            raise StoreUnavailable('Refusing to delete by query without filters')

        response = self.client.delete_by_query(index=self.index_name(kind),
                                               body={'query': {
                                                   'bool': {
                                                       'filter': list(filters)
                                                   }
                                               }},
                                               conflicts='proceed',
                                               refresh=self.config.refresh,
                                               request_timeout=self._timeout(timeout))

        deleted = int(response.get('deleted', 0))
        logger.debug(f'Deleted {deleted} documents from {self.index_name(kind)}')
        return deleted

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            return bool(self.client.ping())

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
