"""Tests for the in-process queue."""

import pytest

from tasklane.tasks.inline_queue import InlineQueue, InvalidReceiptHandle


@pytest.fixture
def queues(clock):
    dlq = InlineQueue("dlq", clock=clock)
    queue = InlineQueue(
        "tasks",
        visibility_timeout=30,
        max_receive_count=3,
        dead_letter_queue=dlq,
        clock=clock,
    )
    return queue, dlq


class TestReceive:
    def test_empty_queue(self, queues):
        queue, _ = queues
        assert queue.receive() is None

    def test_receive_increments_count_and_hides(self, queues, clock):
        queue, _ = queues
        queue.send({"n": 1})

        first = queue.receive()
        assert first.body == {"n": 1}
        assert first.receive_count == 1
        assert queue.receive() is None

        clock.advance(30)
        second = queue.receive()
        assert second.message_id == first.message_id
        assert second.receive_count == 2
        assert second.receipt_handle != first.receipt_handle

    def test_delayed_send(self, queues, clock):
        queue, _ = queues
        queue.send({"n": 1}, delay_seconds=10)
        assert queue.receive() is None
        clock.advance(10)
        assert queue.receive() is not None

    def test_fifo_among_visible(self, queues):
        queue, _ = queues
        queue.send({"n": 1})
        queue.send({"n": 2})
        assert queue.receive().body == {"n": 1}
        assert queue.receive().body == {"n": 2}


class TestVisibilityAndDelete:
    def test_change_visibility_delays_redelivery(self, queues, clock):
        queue, _ = queues
        queue.send({"n": 1})
        msg = queue.receive()

        queue.request_delay(msg.receipt_handle, 5)

        clock.advance(4)
        assert queue.receive() is None
        clock.advance(1)
        assert queue.receive().receive_count == 2

    def test_delete_acknowledges(self, queues, clock):
        queue, _ = queues
        queue.send({"n": 1})
        msg = queue.receive()

        queue.delete(msg.receipt_handle)

        clock.advance(60)
        assert queue.receive() is None
        assert len(queue) == 0

    def test_stale_handle_rejected(self, queues, clock):
        queue, _ = queues
        queue.send({"n": 1})
        old = queue.receive()
        clock.advance(30)
        queue.receive()

        with pytest.raises(InvalidReceiptHandle):
            queue.change_visibility(old.receipt_handle, 5)
        with pytest.raises(InvalidReceiptHandle):
            queue.delete(old.receipt_handle)


class TestDeadLetterRedrive:
    def test_moves_after_max_receive_count(self, queues, clock):
        queue, dlq = queues
        queue.send({"task_id": "t1"})

        for expected in (1, 2, 3):
            assert queue.receive().receive_count == expected
            clock.advance(30)

        assert queue.receive() is None
        assert len(queue) == 0
        moved = dlq.receive()
        assert moved.body == {"task_id": "t1"}
        assert moved.receive_count == 1

    def test_max_receive_count_requires_dlq(self):
        with pytest.raises(ValueError, match="dead_letter_queue"):
            InlineQueue("tasks", max_receive_count=3)


def test_peek_does_not_receive(queues):
    queue, _ = queues
    queue.send({"n": 1})

    peeked = queue.peek()

    assert [m["body"] for m in peeked] == [{"n": 1}]
    assert peeked[0]["receive_count"] == 0
    assert queue.receive().receive_count == 1
