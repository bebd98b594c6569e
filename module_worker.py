#!/usr/bin/env python3
"""
Background job worker.
Run as a separate Railway service: python module_worker.py

Polls the jobs table and runs each job with its registered handler
(default module installation for new companies).
"""

import logging
import os
import sys
import time

from db import Database
from jobs import HANDLERS, JobQueue

logger = logging.getLogger(__name__)

WORKER_POLL_INTERVAL = float(os.environ.get('WORKER_POLL_INTERVAL', 5))


def run_once(db, queue, handlers=HANDLERS) -> bool:
    """
    Claim and run one job.

    Returns:
        True if a job was processed (successfully or not), False if the
        queue was empty.
    """
    with db.transaction() as tx:
        job = queue.claim(tx.cursor)
    if not job:
        return False

    handler = handlers.get(job['name'])
    try:
        if handler is None:
            raise LookupError(f"No handler registered for job '{job['name']}'")
        with db.transaction() as tx:
            handler(tx.cursor, **(job['payload'] or {}))
            queue.complete(tx.cursor, job['id'])
    except Exception as e:
        logger.exception('[WORKER] %s job %s raised', job['name'], job['id'])
        with db.transaction() as tx:
            queue.fail(tx.cursor, job, str(e))
        return True

    logger.info('[WORKER] Finished %s job %s', job['name'], job['id'])
    return True


def main():
    """Poll until interrupted."""
    logging.basicConfig(
        level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )
    db = Database()
    queue = JobQueue(db)

    logger.info('[WORKER] Polling every %ss', WORKER_POLL_INTERVAL)
    try:
        while True:
            # Drain before sleeping
            while run_once(db, queue):
                pass
            time.sleep(WORKER_POLL_INTERVAL)
    except KeyboardInterrupt:
        logger.info('[WORKER] Stopped')
        sys.exit(0)


if __name__ == '__main__':
    main()
