"""
Logging setup for the memory service.

One stdout handler on the root logger at ``LOG_LEVEL``. Records carry the
thread name so the context fan-out workers (``context_0``..) can be told
apart, and the AWS/OpenSearch transport loggers are held at WARNING.
"""

import logging
import sys
from typing import Optional

from .config import AppConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s'

# Transport libraries log every request at INFO/DEBUG
QUIET_LOGGERS = ('boto3', 'botocore', 'urllib3', 'opensearch')


def resolve_level(name: str) -> int:
    """Numeric level for a level name; unknown names fall back to INFO."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _app_config(config: Optional[AppConfig]) -> AppConfig:
    if config is not None:
        return config
    from .config import config as default_config
    return default_config


def setup_logging(config: Optional[AppConfig] = None) -> None:
    """
    Configure the root logger and quiet the transport loggers.

    Args:
        config: AppConfig instance, uses default if None
    """
    level = resolve_level(_app_config(config).log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str, config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Module logger at the configured level.

    Args:
        name: Logger name (usually __name__)
        config: AppConfig instance, uses default if None
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(_app_config(config).log_level))
    return logger
