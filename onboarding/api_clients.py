"""
Company API Clients

Every new company gets one API client: a public key (stored as is, used to
identify the client) and a private key (only its sha256 is stored). The
private key is returned once, when the client is created.
"""

import hashlib
import logging
import secrets
from typing import Any, Dict, Tuple

logger = logging.getLogger(__name__)

PUBLIC_KEY_PREFIX = 'pub_'
PRIVATE_KEY_PREFIX = 'priv_'


def generate_key_pair() -> Tuple[str, str]:
    """Generate a (public_key, private_key) pair."""
    public_key = f"{PUBLIC_KEY_PREFIX}{secrets.token_urlsafe(24)}"
    private_key = f"{PRIVATE_KEY_PREFIX}{secrets.token_urlsafe(48)}"
    return public_key, private_key


def hash_key(key: str) -> str:
    """Hash a private key using SHA256."""
    return hashlib.sha256(key.encode()).hexdigest()


def create_api_client(cursor, company: Dict[str, Any]) -> Tuple[Dict[str, Any], str]:
    """
    Create the API client of a company.

    Returns:
        (client, private_key): client holds no secret material; private_key
        is the plaintext, shown once only
    """
    public_key, private_key = generate_key_pair()
    cursor.execute(
        '''INSERT INTO api_clients (company_id, name, public_key, private_key_hash)
           VALUES (%s, %s, %s, %s)
           RETURNING id, company_id, name, public_key, created_at''',
        (company['id'], f"{company['name']} Access Keys", public_key, hash_key(private_key))
    )
    client = dict(cursor.fetchone())
    logger.info('[PROVISION] Created API client %s for company %s', client['id'], company['id'])
    return client, private_key


class ApiClientStore:

    create = staticmethod(create_api_client)
