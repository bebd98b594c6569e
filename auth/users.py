"""
Credential Store

Users table access. Every function takes an active cursor; the caller owns
the transaction.
"""

from typing import Any, Dict, Optional

from psycopg2 import errors as pg_errors

from errors import DuplicateResource

# Columns callers may set through create() / update()
USER_COLUMNS = (
    'name', 'email', 'password_hash', 'is_active', 'email_verified_at',
    'remember_token', 'mfa_secret', 'company_id', 'current_company_id',
    'team_id', 'language_id', 'last_login_at',
)

# Never leave the service layer
HIDDEN_COLUMNS = ('password_hash', 'remember_token', 'mfa_secret')


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """User row without credential columns, safe to serialize."""
    data = {k: v for k, v in user.items() if k not in HIDDEN_COLUMNS}
    data['mfa_enabled'] = bool(user.get('mfa_secret'))
    return data


class UserStore:
    """Create/find/update users."""

    def find_by_id(self, cur, user_id) -> Optional[Dict[str, Any]]:
        cur.execute('SELECT * FROM users WHERE id = %s', (str(user_id),))
        row = cur.fetchone()
        return dict(row) if row else None

    def find_by_email(self, cur, email: str) -> Optional[Dict[str, Any]]:
        cur.execute('SELECT * FROM users WHERE email = %s', ((email or '').strip().lower(),))
        row = cur.fetchone()
        return dict(row) if row else None

    def create(self, cur, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a user.

        Raises:
            DuplicateResource: the email is already registered
        """
        data = {k: v for k, v in fields.items() if k in USER_COLUMNS}
        data['email'] = data['email'].strip().lower()
        columns = list(data)

        sql = f'''INSERT INTO users ({', '.join(columns)})
                  VALUES ({', '.join(['%s'] * len(columns))})
                  RETURNING *'''
        try:
            cur.execute(sql, [data[c] for c in columns])
        except pg_errors.UniqueViolation:
            raise DuplicateResource('email', 'Email already registered')
        return dict(cur.fetchone())

    def update(self, cur, user_id, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update whitelisted columns. Returns the updated row or None."""
        updates = []
        params = []

        for column, value in fields.items():
            if column not in USER_COLUMNS:
                raise ValueError(f'Unknown user column: {column}')
            updates.append(f'{column} = %s')
            params.append(value)

        if not updates:
            return self.find_by_id(cur, user_id)

        updates.append('updated_at = NOW()')
        params.append(str(user_id))

        sql = f'''UPDATE users
                  SET {', '.join(updates)}
                  WHERE id = %s
                  RETURNING *'''

        cur.execute(sql, params)
        row = cur.fetchone()
        return dict(row) if row else None
