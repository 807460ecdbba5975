"""Named work queues shared between pipeline stages.

Work items are keys only. A key is always routed to the same shard, so one
worker sees every event for that key, in the order it was published.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .exceptions import QueueNotFoundError
from .logging_config import get_logger, log_queue_event
from .models import WorkerConfig
from .utils import bucket

logger = get_logger(__name__)

KeyHandler = Callable[[str], Union[None, Awaitable[None]]]


class QueueName(str, Enum):
    OBJECT_INGESTION_LAYER = "ObjectIngestionLayer"
    GRAPH_LAYER = "GraphLayer"
    REST_LAYER = "RestLayer"
    RETRY_LAYER = "RetryLayer"


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class WorkQueue:
    """A logical queue made of one asyncio.Queue per worker."""

    def __init__(self, name: QueueName, num_workers: int):
        self.name = name
        self.num_workers = num_workers
        self.shards: List[asyncio.Queue] = [asyncio.Queue() for _ in range(num_workers)]
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Record the loop the workers run on, for publishes from threads."""
        self._loop = loop

    def publish(self, key: str, reason: str = "") -> None:
        shard = bucket(key, self.num_workers)
        loop = self._loop
        if loop is not None and loop.is_running() and _running_loop() is not loop:
            loop.call_soon_threadsafe(self.shards[shard].put_nowait, key)
        else:
            self.shards[shard].put_nowait(key)
        log_queue_event(logger, "published", self.name.value, key=key, shard=shard, reason=reason)

    def pending(self) -> int:
        return sum(shard.qsize() for shard in self.shards)

    def drain(self) -> List[str]:
        """Pop every queued key without processing it."""
        keys = []
        for shard in self.shards:
            while not shard.empty():
                keys.append(shard.get_nowait())
                shard.task_done()
        return keys


class WorkQueueRegistry:
    """Explicit registry of every named queue, built at startup."""

    def __init__(self, workers: Optional[WorkerConfig] = None):
        workers = workers or WorkerConfig()
        self._queues: Dict[QueueName, WorkQueue] = {
            QueueName.OBJECT_INGESTION_LAYER: WorkQueue(QueueName.OBJECT_INGESTION_LAYER, workers.ingestion),
            QueueName.GRAPH_LAYER: WorkQueue(QueueName.GRAPH_LAYER, workers.graph),
            QueueName.REST_LAYER: WorkQueue(QueueName.REST_LAYER, workers.rest),
            QueueName.RETRY_LAYER: WorkQueue(QueueName.RETRY_LAYER, workers.retry),
        }

    def get_queue_by_name(self, name: Union[QueueName, str]) -> WorkQueue:
        try:
            return self._queues[QueueName(name)]
        except (KeyError, ValueError):
            raise QueueNotFoundError(str(name)) from None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        for queue in self._queues.values():
            queue.bind(loop)

    def names(self) -> List[QueueName]:
        return list(self._queues)


def publish_key(queue: WorkQueue, namespace: str, name: str, reason: str) -> str:
    """Publish ``namespace/name`` onto queue and return the key."""
    key = namespace + "/" + name
    queue.publish(key, reason=reason)
    return key


class WorkerPool:
    """Fixed set of workers consuming one named queue.

    Stopped through a shared event; keys still queued or in flight at that
    point are abandoned.
    """

    def __init__(self, queue: WorkQueue, handler: KeyHandler, stop_event: asyncio.Event,
                 poll_interval: float = 0.5):
        self.queue = queue
        self.handler = handler
        self.stop_event = stop_event
        self.poll_interval = poll_interval
        self._tasks: List[asyncio.Task] = []

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self.queue.bind(loop)
        for worker_id in range(self.queue.num_workers):
            task = loop.create_task(self._worker(worker_id), name=f"{self.queue.name.value}-{worker_id}")
            self._tasks.append(task)
        logger.info("Worker pool started", queue=self.queue.name.value, workers=self.queue.num_workers)

    async def _worker(self, worker_id: int) -> None:
        shard = self.queue.shards[worker_id]
        while not self.stop_event.is_set():
            try:
                key = await asyncio.wait_for(shard.get(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
            log_queue_event(logger, "retrieved", self.queue.name.value, key=key, worker=worker_id)
            try:
                result: Any = self.handler(key)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Failed to process key",
                             queue=self.queue.name.value,
                             key=key,
                             worker=worker_id,
                             error=str(e))
            finally:
                shard.task_done()

    async def join(self) -> None:
        """Wait for the workers to exit after the stop event is set."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Worker pool stopped", queue=self.queue.name.value)
