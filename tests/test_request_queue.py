"""
Tests for the bounded, retrying request queue.
"""

import threading
import time
from unittest.mock import Mock

import pytest
import requests

from mailsweep.exceptions import AuthError, TransientNetworkError
from mailsweep.provider.request_queue import RequestQueue, is_transient_error


def flaky(failures, exc_factory, result='ok'):
    """Operation failing `failures` times before returning result."""
    calls = {'count': 0}

    def operation():
        calls['count'] += 1
        if calls['count'] <= failures:
            raise exc_factory()
        return result

    operation.calls = calls
    return operation


def http_error(status):
    from googleapiclient.errors import HttpError
    resp = Mock(status=status, reason='error')
    return HttpError(resp, b'{}')


class TestTransientClassification:

    @pytest.mark.parametrize('status', [429, 500, 502, 503, 504])
    def test_retryable_http_status(self, status):
        assert is_transient_error(http_error(status))

    @pytest.mark.parametrize('status', [400, 401, 403, 404])
    def test_client_errors_are_not_transient(self, status):
        assert not is_transient_error(http_error(status))

    def test_network_errors(self):
        assert is_transient_error(requests.exceptions.ConnectionError())
        assert is_transient_error(requests.exceptions.Timeout())
        assert is_transient_error(TransientNetworkError('reset'))
        assert is_transient_error(TimeoutError())

    def test_other_errors(self):
        assert not is_transient_error(ValueError('bad'))
        assert not is_transient_error(AuthError('revoked'))


class TestRetryPolicy:

    def test_read_retries_three_times(self, queue):
        op = flaky(3, lambda: TransientNetworkError('reset'))
        assert queue.enqueue(op) == 'ok'
        assert op.calls['count'] == 4
        assert queue.stats['retries'] == 3

    def test_read_gives_up_after_cap(self, queue):
        op = flaky(10, lambda: TransientNetworkError('reset'))
        with pytest.raises(TransientNetworkError):
            queue.enqueue(op)
        assert op.calls['count'] == 4
        assert queue.stats['failures'] == 1

    def test_mutating_retries_twice(self, queue):
        op = flaky(10, lambda: TransientNetworkError('reset'))
        with pytest.raises(TransientNetworkError):
            queue.enqueue(op, mutating=True)
        assert op.calls['count'] == 3

    def test_explicit_zero_retries(self, queue):
        op = flaky(1, lambda: requests.exceptions.ConnectionError('down'))
        with pytest.raises(requests.exceptions.ConnectionError):
            queue.enqueue(op, retries=0)
        assert op.calls['count'] == 1

    def test_non_transient_error_is_not_retried(self, queue):
        op = flaky(1, lambda: ValueError('bad request'))
        with pytest.raises(ValueError):
            queue.enqueue(op)
        assert op.calls['count'] == 1

    def test_last_error_kind_is_preserved(self, queue):
        op = flaky(10, lambda: http_error(503))
        from googleapiclient.errors import HttpError
        with pytest.raises(HttpError):
            queue.enqueue(op)

    def test_retries_are_observable(self):
        events = []
        queue = RequestQueue(sleep=lambda s: None, on_retry=events.append)
        op = flaky(2, lambda: TransientNetworkError('reset'))
        queue.enqueue(op, description='list messages')

        assert [(e.attempt, e.retries_left) for e in events] == [(1, 3), (2, 2)]
        assert events[0].description == 'list messages'
        assert len(queue.retry_log) == 2

    def test_retry_log_keeps_most_recent_events(self):
        queue = RequestQueue(sleep=lambda s: None, retry_log_size=2)
        for label in ('first', 'second'):
            queue.enqueue(flaky(2, lambda: TransientNetworkError('reset')), description=label)

        assert [(e.description, e.attempt) for e in queue.retry_log] == [('second', 1), ('second', 2)]
        assert queue.stats['retries'] == 4


    def test_backoff_stays_in_window(self):
        sleeps = []
        queue = RequestQueue(min_backoff=1.0, max_backoff=4.0, sleep=sleeps.append)
        op = flaky(3, lambda: TransientNetworkError('reset'))
        queue.enqueue(op)
        assert len(sleeps) == 3
        assert all(1.0 <= s <= 4.0 for s in sleeps)


class TestConcurrencyBound:

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            RequestQueue(concurrency=0)

    def test_never_exceeds_concurrency(self):
        queue = RequestQueue(concurrency=2, sleep=lambda s: None)
        barrier_release = threading.Event()

        def slow():
            barrier_release.wait(timeout=0.2)
            return queue.active

        threads = [threading.Thread(target=queue.enqueue, args=(slow,)) for _ in range(6)]
        for t in threads:
            t.start()
        time.sleep(0.05)
        assert queue.active <= 2
        barrier_release.set()
        for t in threads:
            t.join()

        assert queue.peak_active <= 2
        assert queue.active == 0
        assert queue.stats['operations'] == 6
