"""
Configuration management for AWS services and application settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    max_chars: int
    timeout: float


@dataclass
class OpenSearchConfig:
    """Configuration for OpenSearch."""
    endpoint: str
    port: int
    region: str
    service: str
    index_prefix: str
    dimension: int
    refresh: bool
    timeout: float


@dataclass
class MemoryConfig:
    """Configuration for memory lifecycle and retrieval defaults."""
    default_importance: float
    prune_days: int
    prune_importance_threshold: float
    relationship_history_cap: int
    candidate_multiplier: int


@dataclass
class ContextConfig:
    """Configuration for context bundle sub-queries."""
    recall_limit: int
    recall_threshold: float
    recent_hours: float
    recent_limit: int
    cross_hours: float
    cross_limit: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_embed: BedrockEmbedConfig
    opensearch: OpenSearchConfig
    memory: MemoryConfig
    context: ContextConfig
    mcp: MCPConfig


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')
    request_timeout = float(os.getenv('REQUEST_TIMEOUT_SECONDS', '10'))
    dimension = int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024'))

    # Bedrock Embed configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=dimension,
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              max_chars=int(os.getenv('BEDROCK_EMBED_MAX_CHARS', '8000')),
                                              timeout=request_timeout)

    # Record store configuration
    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         service=os.getenv('OPENSEARCH_SERVICE', 'es'),
                                         index_prefix=os.getenv('OPENSEARCH_INDEX_PREFIX', 'kira'),
                                         dimension=int(os.getenv('OPENSEARCH_DIMENSION', str(dimension))),
                                         refresh=_env_bool('OPENSEARCH_REFRESH', 'true'),
                                         timeout=request_timeout)

    # Memory configuration
    memory_config = MemoryConfig(default_importance=float(os.getenv('MEMORY_DEFAULT_IMPORTANCE', '0.5')),
                                 prune_days=int(os.getenv('MEMORY_PRUNE_DAYS', '7')),
                                 prune_importance_threshold=float(os.getenv('MEMORY_PRUNE_IMPORTANCE_THRESHOLD', '0.4')),
                                 relationship_history_cap=int(os.getenv('MEMORY_RELATIONSHIP_HISTORY_CAP', '50')),
                                 candidate_multiplier=int(os.getenv('MEMORY_CANDIDATE_MULTIPLIER', '3')))

    # Context bundle configuration
    context_config = ContextConfig(recall_limit=int(os.getenv('CONTEXT_RECALL_LIMIT', '8')),
                                   recall_threshold=float(os.getenv('CONTEXT_RECALL_THRESHOLD', '0.4')),
                                   recent_hours=float(os.getenv('CONTEXT_RECENT_HOURS', '4')),
                                   recent_limit=int(os.getenv('CONTEXT_RECENT_LIMIT', '15')),
                                   cross_hours=float(os.getenv('CONTEXT_CROSS_HOURS', '2')),
                                   cross_limit=int(os.getenv('CONTEXT_CROSS_LIMIT', '20')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_embed=bedrock_embed_config,
                     opensearch=opensearch_config,
                     memory=memory_config,
                     context=context_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
