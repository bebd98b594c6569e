"""
Durable Job Queue

Jobs live in the `jobs` table. Workers claim with FOR UPDATE SKIP LOCKED so
several can poll at once. A claimed job whose worker died is claimable
again once its lease runs out, so delivery is at-least-once and handlers
must be idempotent.

Job lifecycle: open -> running -> done
                          \\-> open (retry, with backoff) -> ... -> failed
"""

import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

WORKER_MAX_ATTEMPTS = int(os.environ.get('WORKER_MAX_ATTEMPTS', 5))
WORKER_LEASE_SECONDS = int(os.environ.get('WORKER_LEASE_SECONDS', 300))
RETRY_BASE_SECONDS = 30


def retry_delay(attempts: int) -> int:
    """Exponential backoff: 30s, 60s, 120s, ..."""
    return RETRY_BASE_SECONDS * (2 ** max(attempts - 1, 0))


class JobQueue:

    def __init__(self, db, max_attempts: int = WORKER_MAX_ATTEMPTS,
                 lease_seconds: int = WORKER_LEASE_SECONDS):
        self.db = db
        self.max_attempts = max_attempts
        self.lease_seconds = lease_seconds

    def enqueue(self, job_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Insert an open job and commit it immediately."""
        with self.db.transaction() as tx:
            tx.cursor.execute(
                '''INSERT INTO jobs (name, payload, status, attempts, run_at)
                   VALUES (%s, %s, 'open', 0, NOW())
                   RETURNING *''',
                (job_name, json.dumps(payload, default=str))
            )
            job = dict(tx.cursor.fetchone())

        logger.info('[JOBS] Enqueued %s job %s', job_name, job['id'])
        return job

    def claim(self, cursor) -> Optional[Dict[str, Any]]:
        """Take the oldest runnable job, or None if there is nothing to do."""
        cursor.execute(
            '''UPDATE jobs SET
                   status = 'running',
                   attempts = attempts + 1,
                   locked_at = NOW(),
                   updated_at = NOW()
               WHERE id = (
                   SELECT id FROM jobs
                   WHERE (status = 'open' AND run_at <= NOW())
                      OR (status = 'running' AND locked_at < NOW() - make_interval(secs => %s))
                   ORDER BY run_at, id
                   LIMIT 1
                   FOR UPDATE SKIP LOCKED
               )
               RETURNING *''',
            (self.lease_seconds,)
        )
        row = cursor.fetchone()
        return dict(row) if row else None

    def complete(self, cursor, job_id):
        cursor.execute(
            '''UPDATE jobs SET status = 'done', finished_at = NOW(), updated_at = NOW()
               WHERE id = %s''',
            (job_id,)
        )

    def fail(self, cursor, job: Dict[str, Any], error: str) -> str:
        """
        Record a failed attempt. Re-opens the job with backoff, or marks it
        failed once max_attempts is reached.

        Returns:
            The job's new status ('open' or 'failed')
        """
        if job['attempts'] >= self.max_attempts:
            cursor.execute(
                '''UPDATE jobs SET status = 'failed', last_error = %s,
                       finished_at = NOW(), updated_at = NOW()
                   WHERE id = %s''',
                (error, job['id'])
            )
            logger.error('[JOBS] %s job %s failed permanently after %d attempts: %s',
                         job['name'], job['id'], job['attempts'], error)
            return 'failed'

        cursor.execute(
            '''UPDATE jobs SET status = 'open', last_error = %s, locked_at = NULL,
                   run_at = NOW() + make_interval(secs => %s), updated_at = NOW()
               WHERE id = %s''',
            (error, retry_delay(job['attempts']), job['id'])
        )
        logger.warning('[JOBS] %s job %s attempt %d failed, retrying: %s',
                       job['name'], job['id'], job['attempts'], error)
        return 'open'
