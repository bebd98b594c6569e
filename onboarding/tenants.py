"""
Tenant Store

Team (billing/ownership unit) and Company (operational profile) rows.
Every function takes an active cursor; the caller owns the transaction.
"""

import logging
import uuid
from typing import Any, Dict

from psycopg2 import errors as pg_errors

from errors import DuplicateResource

logger = logging.getLogger(__name__)

# What a new company declares as its reason for signing up
PRIMARY_INTEREST = 'manage_my_business'


def create_team(cursor, owner_id) -> Dict[str, Any]:
    """Create a team owned by a user, with a fresh public uuid."""
    cursor.execute(
        '''INSERT INTO teams (uuid, user_id)
           VALUES (%s, %s)
           RETURNING *''',
        (str(uuid.uuid4()), str(owner_id))
    )
    team = dict(cursor.fetchone())
    logger.info('[PROVISION] Created team %s for user %s', team['uuid'], owner_id)
    return team


def create_company(cursor, team: Dict[str, Any], owner_id, form: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create the company under a team from a validated onboarding form.

    Raises:
        DuplicateResource: another company already uses the website
    """
    try:
        cursor.execute(
            '''INSERT INTO companies
               (team_id, owner_id, name, website, city, country_id, industry,
                size, primary_interest, default_currency_id)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
               RETURNING *''',
            (team['id'], str(owner_id), form['name'], form.get('website'), form['city'],
             form['country'], form['type'], form['capacity'], PRIMARY_INTEREST, form['currency'])
        )
    except pg_errors.UniqueViolation:
        raise DuplicateResource('website', 'This website is already registered')

    company = dict(cursor.fetchone())
    logger.info('[PROVISION] Created company %s under team %s', company['id'], team['id'])
    return company


def website_exists(cursor, url: str) -> bool:
    cursor.execute('SELECT 1 FROM companies WHERE website = %s LIMIT 1', (url,))
    return cursor.fetchone() is not None


class TenantStore:
    """Groups the tenant functions so the provisioner can take them as one collaborator."""

    create_team = staticmethod(create_team)
    create_company = staticmethod(create_company)
    website_exists = staticmethod(website_exists)
