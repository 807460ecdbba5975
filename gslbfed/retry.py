"""Retry layer: hand a failed key back to the graph layer.

The key is re-published as is. Deduplication and idempotence belong to
the stage that consumes it, and a failed publish is not retried here.
There is no attempt limit: a key is retried until it succeeds or its
object goes away.
"""

from .logging_config import get_logger
from .queues import QueueName, WorkQueueRegistry, publish_key
from .utils import extract_namespace_object_name

logger = get_logger(__name__)


def sync_from_retry_layer(key: str, queues: WorkQueueRegistry) -> None:
    """Re-enqueue a ``namespace/name`` key onto the graph layer queue."""
    logger.info("Retrieved the key in retry layer", key=key)
    tenant, gs_name = extract_namespace_object_name(key)

    shared_queue = queues.get_queue_by_name(QueueName.GRAPH_LAYER)
    publish_key(shared_queue, tenant, gs_name, "retry")


def request_retry(key: str, queues: WorkQueueRegistry) -> None:
    """Entry point for a downstream stage that failed to process key."""
    queues.get_queue_by_name(QueueName.RETRY_LAYER).publish(key, reason="downstream failure")
