"""
Amazon Bedrock embedding client wrapper with timeout and error handling.
"""

import json
import math
import threading
from collections import OrderedDict
from typing import List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from .config import BedrockEmbedConfig
from .errors import EmbeddingUnavailable, OperationTimeout, ValidationError
from .logging_config import get_logger

logger = get_logger(__name__)

# Runtime clients kept per distinct (whole-second) timeout
MAX_CACHED_CLIENTS = 8


def normalize_timeout(timeout: float) -> int:
    """Round a timeout up to whole seconds, at least one."""
    return max(1, math.ceil(timeout))


class BedrockEmbed:
    """Amazon Bedrock embedding client.

    Retries are left to botocore's transport layer (``retry_attempts``); this
    client performs a single logical call and translates failures. Clients
    are built from one private ``boto3.Session`` under a lock.
    """

    def __init__(self, config: BedrockEmbedConfig):
        """
        Initialize Bedrock embedding client.

        Args:
            config: BedrockEmbedConfig instance with connection parameters
        """
        self.config = config
        self.model_id = config.model_id
        self.output_embedding_length = config.dimension
        self._session = boto3.Session(region_name=config.region)
        self._clients: 'OrderedDict[int, object]' = OrderedDict()
        self._lock = threading.Lock()

        if 'cohere' in self.model_id.lower() and self.output_embedding_length != 1024:
            raise ValidationError(f'Cohere models only support 1024 dimensions, got {self.output_embedding_length}',
                                  field='dimension')

        # Create Bedrock runtime client for the default timeout
        self.bedrock = self._client_for(config.timeout)

        logger.info(f'Initialized Bedrock Embed client with model: {self.model_id}')

    def _client_for(self, timeout: float):
        """Bedrock runtime client for a timeout, least recently used evicted first."""
        key = normalize_timeout(timeout)
        with self._lock:
            client = self._clients.get(key)
            if client is not None:
                self._clients.move_to_end(key)
                return client

            client_config = Config(connect_timeout=key,
                                   read_timeout=key,
                                   retries={
                                       'max_attempts': self.config.retry_attempts,
                                       'mode': 'standard'
                                   })
            client = self._session.client(service_name='bedrock-runtime', region_name=self.config.region, config=client_config)
            self._clients[key] = client
            if len(self._clients) > MAX_CACHED_CLIENTS:
                self._clients.popitem(last=False)
            return client

    def _invoke(self, data: dict, timeout: Optional[float] = None) -> dict:
        """
        Make a Bedrock API call.

        Args:
            data: Request data dictionary
            timeout: Per-call timeout in seconds (uses config default if None)

        Returns:
            Response dictionary from Bedrock API

        Raises:
            OperationTimeout: If the call exceeds the timeout
            EmbeddingUnavailable: If the call fails
        """
        client = self._client_for(timeout if timeout is not None else self.config.timeout)
        try:
            response = client.invoke_model(body=json.dumps(data),
                                           modelId=self.model_id,
                                           accept='application/json',
                                           contentType='application/json')
            return json.loads(response.get('body').read())

        except (ReadTimeoutError, ConnectTimeoutError) as e:
            logger.error(f'Bedrock Embed request timed out: {e}')
            raise OperationTimeout(f'Bedrock Embed timed out: {e}') from e
        except (ClientError, BotoCoreError) as e:
            logger.error(f'Bedrock Embed request failed: {e}')
            raise EmbeddingUnavailable(f'Bedrock Embed failed: {e}') from e
        except Exception as e:
            logger.error(f'Unexpected error in Bedrock Embed: {e}')
            raise EmbeddingUnavailable(f'Unexpected Bedrock Embed error: {e}') from e

    def _embed(self, text: str, input_type: str, timeout: Optional[float]) -> List[float]:
        if not text or not text.strip():
            raise ValidationError('Text to embed must not be empty', field='content')

        text = text[:self.config.max_chars]

        if 'titan' in self.model_id.lower():
            response = self._invoke({'inputText': text, 'dimensions': self.output_embedding_length}, timeout)
            embedding = response.get('embedding')

        elif 'cohere' in self.model_id.lower():
            response = self._invoke({'input_type': input_type, 'texts': [text]}, timeout)
            embeddings = response.get('embeddings') or []
            embedding = embeddings[0] if embeddings else None

        else:
            raise EmbeddingUnavailable(f'Unsupported embedding model: {self.model_id}')

        if not embedding:
            raise EmbeddingUnavailable('Bedrock returned no embedding data')
        if len(embedding) != self.output_embedding_length:
            raise EmbeddingUnavailable(f'Expected {self.output_embedding_length} dimensions, got {len(embedding)}')
        return embedding

    def embed_document(self, text: str, timeout: Optional[float] = None) -> List[float]:
        """
        Generate embeddings for document text.

        Args:
            text: Text to embed
            timeout: Per-call timeout in seconds

        Returns:
            List of embedding values

        Raises:
            ValidationError: If text is empty
            EmbeddingUnavailable: If embedding generation fails
        """
        return self._embed(text, 'search_document', timeout)

    def embed_query(self, text: str, timeout: Optional[float] = None) -> List[float]:
        """
        Generate embeddings for query text.

        Args:
            text: Query text to embed
            timeout: Per-call timeout in seconds

        Returns:
            List of embedding values

        Raises:
            ValidationError: If text is empty
            EmbeddingUnavailable: If embedding generation fails
        """
        return self._embed(text, 'search_query', timeout)

    def embed(self, text: str, timeout: Optional[float] = None) -> List[float]:
        return self.embed_document(text, timeout)

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock embedding service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            test_embedding = self.embed_document('test')
            return len(test_embedding) == self.output_embedding_length

        except Exception as e:
            logger.error(f'Bedrock Embed health check failed: {e}')
            return False
