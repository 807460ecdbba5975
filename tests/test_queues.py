"""Tests for work queues and worker pools."""

import asyncio
import threading

import pytest

from gslbfed.exceptions import QueueNotFoundError
from gslbfed.models import WorkerConfig
from gslbfed.queues import QueueName, WorkerPool, WorkQueue, WorkQueueRegistry, publish_key
from gslbfed.utils import bucket


class TestWorkQueue:
    """Tests for sharded queues."""

    def test_key_always_lands_on_same_shard(self):
        queue = WorkQueue(QueueName.GRAPH_LAYER, 4)
        for _ in range(3):
            queue.publish("admin/foo.com")

        shard = bucket("admin/foo.com", 4)
        assert queue.shards[shard].qsize() == 3
        assert queue.pending() == 3

    def test_drain_preserves_per_key_order(self):
        queue = WorkQueue(QueueName.GRAPH_LAYER, 1)
        for key in ("admin/a.com", "admin/b.com", "admin/a.com"):
            queue.publish(key)
        assert queue.drain() == ["admin/a.com", "admin/b.com", "admin/a.com"]
        assert queue.pending() == 0

    def test_publish_key(self):
        queue = WorkQueue(QueueName.GRAPH_LAYER, 2)
        assert publish_key(queue, "admin", "foo.com", "add") == "admin/foo.com"
        assert queue.drain() == ["admin/foo.com"]


class TestWorkQueueRegistry:

    def test_all_names_registered(self):
        registry = WorkQueueRegistry()
        assert set(registry.names()) == set(QueueName)

    def test_lookup_by_value(self):
        registry = WorkQueueRegistry(WorkerConfig(graph=3))
        queue = registry.get_queue_by_name("GraphLayer")
        assert queue is registry.get_queue_by_name(QueueName.GRAPH_LAYER)
        assert queue.num_workers == 3

    def test_unknown_queue(self):
        with pytest.raises(QueueNotFoundError):
            WorkQueueRegistry().get_queue_by_name("NoSuchLayer")


class TestWorkerPool:
    """Tests for queue consumers."""

    @pytest.mark.asyncio
    async def test_processes_every_key(self):
        queue = WorkQueue(QueueName.GRAPH_LAYER, 2)
        stop = asyncio.Event()
        seen = []
        done = asyncio.Event()

        def handler(key):
            seen.append(key)
            if len(seen) == 3:
                done.set()

        pool = WorkerPool(queue, handler, stop, poll_interval=0.05)
        pool.start()
        for suffix in ("1", "2", "3"):
            queue.publish("admin/foo.com#" + suffix)

        await asyncio.wait_for(done.wait(), timeout=2)
        stop.set()
        await pool.join()
        assert sorted(seen) == ["admin/foo.com#1", "admin/foo.com#2", "admin/foo.com#3"]

    @pytest.mark.asyncio
    async def test_same_key_sequential(self):
        queue = WorkQueue(QueueName.GRAPH_LAYER, 4)
        stop = asyncio.Event()
        seen = []

        async def handler(key):
            seen.append(key)
            await asyncio.sleep(0)

        pool = WorkerPool(queue, handler, stop, poll_interval=0.05)
        pool.start()
        for _ in range(5):
            queue.publish("admin/foo.com", reason="add")

        for _ in range(100):
            if len(seen) == 5:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await pool.join()
        assert seen == ["admin/foo.com"] * 5

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_worker(self):
        queue = WorkQueue(QueueName.RETRY_LAYER, 1)
        stop = asyncio.Event()
        seen = []

        def handler(key):
            seen.append(key)
            if key == "admin/bad.com":
                raise RuntimeError("boom")

        pool = WorkerPool(queue, handler, stop, poll_interval=0.05)
        pool.start()
        queue.publish("admin/bad.com")
        queue.publish("admin/good.com")

        for _ in range(100):
            if len(seen) == 2:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await pool.join()
        assert seen == ["admin/bad.com", "admin/good.com"]

    @pytest.mark.asyncio
    async def test_publish_from_thread(self):
        queue = WorkQueue(QueueName.OBJECT_INGESTION_LAYER, 1)
        stop = asyncio.Event()
        received = asyncio.Event()

        pool = WorkerPool(queue, lambda key: received.set(), stop, poll_interval=0.05)
        pool.start()

        t = threading.Thread(target=queue.publish, args=("c1/ns/Route/r1",))
        t.start()
        t.join()

        await asyncio.wait_for(received.wait(), timeout=2)
        stop.set()
        await pool.join()
