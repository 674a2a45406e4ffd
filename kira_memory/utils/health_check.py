"""
Health check utilities for the application.
"""

from typing import Any, Dict

from .bedrock_embed import BedrockEmbed
from .config import AppConfig
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient

logger = get_logger(__name__)


def check_health(store: OpenSearchClient, embed: BedrockEmbed) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    health_status = get_health_status(store, embed)

    # Check if all components are healthy
    all_healthy = all(status.get('healthy', False) for status in health_status.values())

    if all_healthy:
        logger.info('All system components are healthy')
    else:
        logger.warning('Some system components are unhealthy')

    return all_healthy


def get_health_status(store: OpenSearchClient, embed: BedrockEmbed) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    return {
        'bedrock_embed': {
            'healthy': embed.health_check(),
            'service': 'Amazon Bedrock Embed',
            'model': embed.model_id
        },
        'opensearch': {
            'healthy': store.health_check(),
            'service': 'Amazon OpenSearch',
            'endpoint': store.config.endpoint
        },
    }


def get_system_info(config: AppConfig, store: OpenSearchClient, embed: BedrockEmbed) -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'Kira Memory',
        'version': '1.0.0',
        'configuration': {
            'environment': config.environment,
            'bedrock_embed_model': config.bedrock_embed.model_id,
            'embedding_dimension': config.opensearch.dimension,
            'index_prefix': config.opensearch.index_prefix,
            'prune_days': config.memory.prune_days,
            'prune_importance_threshold': config.memory.prune_importance_threshold,
            'aws_region': config.bedrock_embed.region
        },
        'health_status': get_health_status(store, embed)
    }
