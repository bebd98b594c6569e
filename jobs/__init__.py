"""
Kover Background Jobs

Durable job queue (Postgres-backed) and the job handlers run by
module_worker.py.
"""

from jobs.queue import JobQueue
from jobs.install_modules import DEFAULT_MODULES, INSTALL_DEFAULT_MODULES, install_default_modules

HANDLERS = {
    INSTALL_DEFAULT_MODULES: install_default_modules,
}

__all__ = ['JobQueue', 'DEFAULT_MODULES', 'INSTALL_DEFAULT_MODULES', 'install_default_modules', 'HANDLERS']
