"""Tests for the retry layer."""

import pytest

from gslbfed.exceptions import InvalidFederationKeyError
from gslbfed.queues import QueueName, WorkQueueRegistry
from gslbfed.retry import request_retry, sync_from_retry_layer


class TestRetryLayer:

    @pytest.fixture
    def queues(self):
        return WorkQueueRegistry()

    def test_republishes_identical_key_on_graph_layer(self, queues):
        sync_from_retry_layer("admin/foo.com", queues)

        assert queues.get_queue_by_name(QueueName.GRAPH_LAYER).drain() == ["admin/foo.com"]
        assert queues.get_queue_by_name(QueueName.RETRY_LAYER).pending() == 0

    def test_each_retry_is_one_publish(self, queues):
        sync_from_retry_layer("admin/foo.com", queues)
        sync_from_retry_layer("admin/foo.com", queues)
        assert queues.get_queue_by_name(QueueName.GRAPH_LAYER).drain() == ["admin/foo.com"] * 2

    def test_malformed_key(self, queues):
        with pytest.raises(InvalidFederationKeyError):
            sync_from_retry_layer("no-separator", queues)
        assert queues.get_queue_by_name(QueueName.GRAPH_LAYER).pending() == 0

    def test_request_retry_goes_through_retry_layer(self, queues):
        request_retry("admin/foo.com", queues)
        retry_queue = queues.get_queue_by_name(QueueName.RETRY_LAYER)
        assert retry_queue.drain() == ["admin/foo.com"]
