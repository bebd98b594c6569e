"""
Default module installation for a newly provisioned company.

Safe to run more than once for the same company: already-installed modules
are left untouched.
"""

import logging

logger = logging.getLogger(__name__)

INSTALL_DEFAULT_MODULES = 'install_default_modules'

DEFAULT_MODULES = [
    'settings',
    'properties',
    'reservations',
    'front-office',
    'housekeeping',
    'pos',
    'invoicing',
]


def install_default_modules(cursor, company_id, user_id) -> int:
    """
    Install DEFAULT_MODULES for a company.

    Returns:
        Number of modules newly installed by this call
    """
    installed = 0
    for module in DEFAULT_MODULES:
        cursor.execute(
            '''INSERT INTO company_modules (company_id, module, installed_by)
               VALUES (%s, %s, %s)
               ON CONFLICT (company_id, module) DO NOTHING''',
            (company_id, module, str(user_id))
        )
        installed += cursor.rowcount

    logger.info('[JOBS] Installed %d/%d default modules for company %s',
                installed, len(DEFAULT_MODULES), company_id)
    return installed
