"""
Context aggregator: three concurrent retrieval calls merged into one bundle.
"""

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Optional

from ..models.core import Channel, ContextBundle
from ..models.validation import parse_enum, require_text
from ..utils.config import ContextConfig
from ..utils.errors import PartialAggregationFailure
from ..utils.logging_config import get_logger
from .retrieval import RetrievalService

logger = get_logger(__name__)


class ContextAggregator:
    """Builds context bundles for a conversation turn."""

    def __init__(self, retrieval: RetrievalService, context_config: ContextConfig):
        self.retrieval = retrieval
        self.config = context_config

    def context(self, channel: str, message: str, timeout: Optional[float] = None) -> ContextBundle:
        """Build the context bundle for a message arriving on a channel.

        Runs three sub-calls in parallel: recall over all channels, a recent
        summary of the target channel, and a recent summary of every other
        channel. All three settle before this returns.

        Args:
            channel: Target channel
            message: Incoming message text, used as the recall query
            timeout: Per-call timeout in seconds for each store/embedding call

        Returns:
            ContextBundle with the three result sequences

        Raises:
            ValidationError: If channel or message is invalid
            PartialAggregationFailure: If any sub-call failed
        """
        channel = parse_enum(Channel, channel, 'channel')
        require_text(message, 'message')
        cfg = self.config

        with ThreadPoolExecutor(max_workers=3, thread_name_prefix='context') as executor:
            futures = {
                'recall':
                executor.submit(self.retrieval.recall,
                                message,
                                limit=cfg.recall_limit,
                                threshold=cfg.recall_threshold,
                                timeout=timeout),
                'recent_summary':
                executor.submit(self.retrieval.summarize,
                                channel.value,
                                hours=cfg.recent_hours,
                                limit=cfg.recent_limit,
                                timeout=timeout),
                'cross_channel':
                executor.submit(self.retrieval.summarize_across,
                                channel.value,
                                hours=cfg.cross_hours,
                                limit=cfg.cross_limit,
                                timeout=timeout),
            }
            _, pending = wait(futures.values(), return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()

        # Leaving the executor waits for running sub-calls to settle
        for name, future in futures.items():
            if future.cancelled():
                continue
            error = future.exception()
            if error is not None:
                logger.error(f'Context sub-call {name} failed for {channel.value}: {error}')
                raise PartialAggregationFailure(name, error) from error

        bundle = ContextBundle(channel=channel,
                               relevant_memories=futures['recall'].result(),
                               recent_summary=futures['recent_summary'].result(),
                               cross_channel_context=futures['cross_channel'].result())
        logger.debug(f'Context for {channel.value}: {len(bundle.relevant_memories)} relevant, '
                     f'{len(bundle.recent_summary)} recent, {len(bundle.cross_channel_context)} cross-channel')
        return bundle
