"""
Session Token Issuer

Opaque bearer tokens bound to (user, device name). Only the sha256 of a
token is stored; the plaintext is returned once, at issue time.
"""

import hashlib
import json
import logging
import os
import secrets
import uuid
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

from flask import g

from auth import bearer_token
from errors import AbilityDenied

logger = logging.getLogger(__name__)

TOKEN_PREFIX = os.environ.get('TOKEN_PREFIX', 'kov_')
DEFAULT_DEVICE = 'web'
ALL_ABILITIES = ['*']

# Abilities checked by routes
PROVISION_COMPANY = 'companies:create'
MANAGE_TOKENS = 'tokens:manage'
READ_BILLING = 'billing:read'


def generate_token() -> str:
    """Generate a new session token with the configured prefix."""
    return f"{TOKEN_PREFIX}{secrets.token_urlsafe(40)}"


def hash_token(token: str) -> str:
    """Hash token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


def mask_token(token_hash: str) -> str:
    """Create a masked preview of the token hash for display."""
    return f"{TOKEN_PREFIX}****...{token_hash[-8:]}"


def parse_token_id(token_id) -> Optional[str]:
    """Canonical uuid string for a token id, None if it is not a uuid."""
    try:
        return str(uuid.UUID(str(token_id)))
    except ValueError:
        return None


def can(token: Dict[str, Any], ability: str) -> bool:
    """Check whether a token grants an ability."""
    abilities = token.get('abilities') or []
    return '*' in abilities or ability in abilities


def require_ability(ability: str):
    """
    Decorator for views behind require_token: the current token must grant
    the ability.
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if not can(g.current_token, ability):
                raise AbilityDenied(ability)
            return f(*args, **kwargs)
        return decorated
    return decorator


class TokenIssuer:
    """Issue, look up and revoke session tokens."""

    def issue(self, cur, user: Dict[str, Any], device_name: str = None,
              abilities: List[str] = None) -> Tuple[str, Dict[str, Any]]:
        """
        Create a token for a user.

        Returns:
            (plaintext, record): plaintext is shown once only
        """
        plaintext = generate_token()
        cur.execute(
            '''INSERT INTO personal_access_tokens
               (owner_type, user_id, name, token_hash, abilities, created_at)
               VALUES ('user', %s, %s, %s, %s, NOW())
               RETURNING *''',
            (str(user['id']), device_name or DEFAULT_DEVICE, hash_token(plaintext),
             json.dumps(abilities or ALL_ABILITIES))
        )
        record = dict(cur.fetchone())
        logger.info('[TOKENS] Issued token %s for user %s (%s)',
                    record['id'], user['id'], record['name'])
        return plaintext, record

    def find(self, cur, token_id, owner_id=None) -> Optional[Dict[str, Any]]:
        """Find a token by id, optionally scoped to the owning user."""
        token_id = parse_token_id(token_id)
        if token_id is None:
            return None
        if owner_id is not None:
            cur.execute(
                'SELECT * FROM personal_access_tokens WHERE id = %s AND user_id = %s',
                (str(token_id), str(owner_id))
            )
        else:
            cur.execute('SELECT * FROM personal_access_tokens WHERE id = %s', (str(token_id),))
        row = cur.fetchone()
        return dict(row) if row else None

    def list_for_user(self, cur, user_id) -> List[Dict[str, Any]]:
        cur.execute(
            '''SELECT id, name, token_hash, abilities, created_at, last_used_at
               FROM personal_access_tokens
               WHERE user_id = %s
               ORDER BY created_at DESC''',
            (str(user_id),)
        )
        return [dict(row) for row in cur.fetchall()]

    def revoke(self, cur, token_id) -> bool:
        """Delete one token. Returns False if it did not exist."""
        token_id = parse_token_id(token_id)
        if token_id is None:
            return False
        cur.execute(
            'DELETE FROM personal_access_tokens WHERE id = %s RETURNING id',
            (str(token_id),)
        )
        return cur.fetchone() is not None

    def revoke_all(self, cur, user_id) -> int:
        """Delete every token owned by a user. Returns how many were deleted."""
        cur.execute(
            'DELETE FROM personal_access_tokens WHERE user_id = %s',
            (str(user_id),)
        )
        return cur.rowcount

    def authenticate(self, cur, plaintext: str) -> Optional[Tuple[Dict[str, Any], Dict[str, Any]]]:
        """
        Resolve a plaintext token to (user, token).

        Returns None for unknown tokens and for deactivated users.
        """
        if not plaintext or not plaintext.startswith(TOKEN_PREFIX):
            return None

        cur.execute(
            '''UPDATE personal_access_tokens SET last_used_at = NOW()
               WHERE token_hash = %s
               RETURNING *''',
            (hash_token(plaintext),)
        )
        token = cur.fetchone()
        if not token or token['owner_type'] != 'user':
            return None

        cur.execute('SELECT * FROM users WHERE id = %s', (str(token['user_id']),))
        user = cur.fetchone()
        if not user or not user['is_active']:
            return None

        return dict(user), dict(token)

    def current(self, req) -> Optional[str]:
        """The plaintext token presented by a request, if any."""
        return bearer_token(req)
