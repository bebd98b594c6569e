"""
Kover Database Access

One psycopg2 connection per Flask app context (or per thread outside of one).
Store functions receive a cursor and never commit; the caller owns the
transaction through Database.transaction().
"""

import logging
import os
import threading
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from flask import g, has_app_context

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get('DATABASE_URL')
DB_CONNECT_TIMEOUT = int(os.environ.get('DB_CONNECT_TIMEOUT', 10))


class Transaction:
    """A unit of work: a cursor plus callbacks deferred until commit."""

    def __init__(self, cursor):
        self.cursor = cursor
        self._after_commit = []

    def on_commit(self, fn, *args, **kwargs):
        """Run fn(*args, **kwargs) only once the transaction has committed."""
        self._after_commit.append((fn, args, kwargs))

    def discard_hooks(self):
        self._after_commit = []

    def run_after_commit(self):
        hooks, self._after_commit = self._after_commit, []
        for fn, args, kwargs in hooks:
            try:
                fn(*args, **kwargs)
            except Exception:
                name = getattr(fn, '__qualname__', repr(fn))
                logger.exception('[DB] after-commit hook %s failed', name)


class Database:
    """Connection provider and transaction boundary."""

    def __init__(self, dsn: str = None, connect_timeout: int = DB_CONNECT_TIMEOUT):
        self.dsn = dsn or DATABASE_URL
        self.connect_timeout = connect_timeout
        self._local = threading.local()

    def connect(self):
        if not self.dsn:
            raise RuntimeError('DATABASE_URL environment variable not set')
        conn = psycopg2.connect(self.dsn, connect_timeout=self.connect_timeout)
        conn.autocommit = False
        return conn

    def get_connection(self):
        """Get the connection for the current app context or thread."""
        if has_app_context():
            if 'db' not in g:
                g.db = self.connect()
            return g.db
        conn = getattr(self._local, 'conn', None)
        if conn is None or conn.closed:
            conn = self.connect()
            self._local.conn = conn
        return conn

    def close(self, exception=None):
        """Close the app-context connection. Registered as a teardown handler."""
        conn = g.pop('db', None) if has_app_context() else None
        if conn is not None:
            conn.close()

    @contextmanager
    def transaction(self):
        """
        Run a block atomically.

        Commits when the block exits normally, rolls back and re-raises on any
        exception. Hooks registered with Transaction.on_commit run only after
        a successful commit.
        """
        conn = self.get_connection()
        tx = Transaction(conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor))
        try:
            yield tx
            conn.commit()
        except Exception:
            tx.discard_hooks()
            conn.rollback()
            raise
        finally:
            tx.cursor.close()
        tx.run_after_commit()
