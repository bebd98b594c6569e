"""Tests for the job queue, the worker loop and the event bus."""

import json
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

import module_worker
from events import COMPANY_PROVISIONED, EventBus
from jobs import HANDLERS, INSTALL_DEFAULT_MODULES
from jobs.queue import JobQueue, retry_delay


class StubDatabase:
    """Counts transactions; every one shares the same MagicMock cursor."""

    def __init__(self):
        self.cursor = MagicMock()
        self.transactions = 0
        self.rolled_back = 0

    @contextmanager
    def transaction(self):
        self.transactions += 1
        tx = MagicMock()
        tx.cursor = self.cursor
        try:
            yield tx
        except Exception:
            self.rolled_back += 1
            raise


def job(attempts=1, name=INSTALL_DEFAULT_MODULES, payload=None):
    return {
        'id': 'j1',
        'name': name,
        'attempts': attempts,
        'payload': payload if payload is not None else {'company_id': 3, 'user_id': 'u1'},
    }


class TestRetryDelay:

    @pytest.mark.parametrize('attempts,seconds', [(1, 30), (2, 60), (3, 120), (5, 480)])
    def test_exponential(self, attempts, seconds):
        assert retry_delay(attempts) == seconds


class TestJobQueue:

    def test_enqueue_commits_own_transaction(self):
        db = StubDatabase()
        db.cursor.fetchone.return_value = {'id': 'j1', 'name': INSTALL_DEFAULT_MODULES}

        created = JobQueue(db).enqueue(INSTALL_DEFAULT_MODULES, {'company_id': 3, 'user_id': 'u1'})

        assert created['id'] == 'j1'
        assert db.transactions == 1
        name, payload = db.cursor.execute.call_args[0][1]
        assert name == INSTALL_DEFAULT_MODULES
        assert json.loads(payload) == {'company_id': 3, 'user_id': 'u1'}

    def test_claim_skips_locked_and_reclaims_stale(self):
        cur = MagicMock()
        cur.fetchone.return_value = job()

        claimed = JobQueue(MagicMock(), lease_seconds=90).claim(cur)

        sql, params = cur.execute.call_args[0]
        assert 'FOR UPDATE SKIP LOCKED' in sql
        assert "status = 'running' AND locked_at <" in sql
        assert params == (90,)
        assert claimed['id'] == 'j1'

    def test_claim_empty(self):
        cur = MagicMock()
        cur.fetchone.return_value = None
        assert JobQueue(MagicMock()).claim(cur) is None

    def test_complete(self):
        cur = MagicMock()
        JobQueue(MagicMock()).complete(cur, 'j1')
        sql, params = cur.execute.call_args[0]
        assert "status = 'done'" in sql
        assert params == ('j1',)

    def test_fail_reopens_with_backoff(self):
        cur = MagicMock()

        status = JobQueue(MagicMock(), max_attempts=5).fail(cur, job(attempts=2), 'boom')

        assert status == 'open'
        assert cur.execute.call_args[0][1] == ('boom', 60, 'j1')

    def test_fail_gives_up_at_max_attempts(self):
        cur = MagicMock()

        status = JobQueue(MagicMock(), max_attempts=5).fail(cur, job(attempts=5), 'boom')

        assert status == 'failed'
        sql, params = cur.execute.call_args[0]
        assert "status = 'failed'" in sql
        assert params == ('boom', 'j1')


class TestRunOnce:

    def test_empty_queue(self):
        db, queue = StubDatabase(), MagicMock()
        queue.claim.return_value = None

        assert module_worker.run_once(db, queue) is False
        assert db.transactions == 1

    def test_success(self):
        db, queue = StubDatabase(), MagicMock()
        queue.claim.return_value = job()
        handler = MagicMock()

        assert module_worker.run_once(db, queue, handlers={INSTALL_DEFAULT_MODULES: handler}) is True

        handler.assert_called_once_with(db.cursor, company_id=3, user_id='u1')
        queue.complete.assert_called_once_with(db.cursor, 'j1')
        queue.fail.assert_not_called()

    def test_handler_failure_rolls_back_and_records(self):
        """Test a raising handler leaves no completion and records the failure."""
        db, queue = StubDatabase(), MagicMock()
        queue.claim.return_value = job()
        handler = MagicMock(side_effect=RuntimeError('db hiccup'))

        assert module_worker.run_once(db, queue, handlers={INSTALL_DEFAULT_MODULES: handler}) is True

        queue.complete.assert_not_called()
        assert db.rolled_back == 1
        failed_job, error = queue.fail.call_args[0][1:]
        assert failed_job['id'] == 'j1'
        assert error == 'db hiccup'

    def test_unknown_job_name(self):
        db, queue = StubDatabase(), MagicMock()
        queue.claim.return_value = job(name='send_newsletter')

        module_worker.run_once(db, queue, handlers={})

        assert 'send_newsletter' in queue.fail.call_args[0][2]

    def test_default_handlers(self):
        assert INSTALL_DEFAULT_MODULES in HANDLERS


class TestEventBus:

    def test_publish_to_subscribers(self):
        bus = EventBus()
        received = []
        bus.subscribe(COMPANY_PROVISIONED, lambda sender, **payload: received.append(payload))

        delivered = bus.publish(COMPANY_PROVISIONED, company={'id': 3})

        assert delivered == 1
        assert received == [{'company': {'id': 3}}]

    def test_failing_listener_is_skipped(self, caplog):
        bus = EventBus()
        healthy = MagicMock()

        def broken(sender, **payload):
            raise ValueError('listener bug')

        bus.subscribe(COMPANY_PROVISIONED, broken)
        bus.subscribe(COMPANY_PROVISIONED, healthy)

        assert bus.publish(COMPANY_PROVISIONED, company={'id': 3}) == 1
        healthy.assert_called_once_with(bus, company={'id': 3})
        assert 'failed on company-provisioned' in caplog.text

    def test_no_subscribers(self):
        assert EventBus().publish(COMPANY_PROVISIONED) == 0

    def test_buses_are_isolated(self):
        first, second = EventBus(), EventBus()
        listener = MagicMock()
        first.subscribe(COMPANY_PROVISIONED, listener)

        second.publish(COMPANY_PROVISIONED)

        listener.assert_not_called()
