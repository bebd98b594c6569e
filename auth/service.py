"""
Auth Workflow

Registration, login/logout, password reset/update, email verification,
social login, MFA enrollment and token revocation.

Each state-changing operation runs in one transaction and records exactly
one audit event, written after the commit.
"""

import base64
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from audit_service import AuditEvent, get_request_metadata
from auth import encrypt_secret, hash_password, verify_password
from auth.password_reset import INVALID_TOKEN, PASSWORD_RESET
from auth.social import get_provider
from auth.tokens import ALL_ABILITIES, DEFAULT_DEVICE
from auth.users import public_user
from errors import AccountDeactivated, ProviderError, TokenNotFound

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


class AuthService:

    def __init__(self, db, users, tokens, audit, password_resets, social_accounts, providers):
        self.db = db
        self.users = users
        self.tokens = tokens
        self.audit = audit
        self.password_resets = password_resets
        self.social_accounts = social_accounts
        self.providers = providers

    def _log_event(self, tx, user, event, meta=None):
        """Record an audit event once the transaction commits."""
        tx.on_commit(self.audit.record, user['id'], event, meta or {},
                     request_metadata=get_request_metadata())

    # -- registration -------------------------------------------------------

    def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        """
        Create a user with a hashed password.

        Raises:
            DuplicateResource: email already registered
        """
        with self.db.transaction() as tx:
            user = self.users.create(tx.cursor, {
                'name': name,
                'email': email,
                'password_hash': hash_password(password),
                'is_active': True,
            })
            self._log_event(tx, user, AuditEvent.REGISTER)

        logger.info('[AUTH] Registered user %s', user['id'])
        return user

    # -- sessions -----------------------------------------------------------

    def login(self, email: str, password: str, device_name: str = None) -> Optional[Dict[str, Any]]:
        """
        Check credentials and issue a token.

        Returns None on bad credentials without saying which check failed.

        Raises:
            AccountDeactivated: the credentials are right but the account is disabled
        """
        with self.db.transaction() as tx:
            user = self.users.find_by_email(tx.cursor, email)
            if not user or not verify_password(password, user.get('password_hash')):
                return None

            if not user['is_active']:
                raise AccountDeactivated()

            plaintext, _ = self.tokens.issue(tx.cursor, user, device_name, ALL_ABILITIES)
            user = self.users.update(tx.cursor, user['id'], {'last_login_at': _now()})
            self._log_event(tx, user, AuditEvent.LOGIN, {'device': device_name or DEFAULT_DEVICE})

        return {'user': user, 'token': plaintext}

    def authenticate(self, plaintext: str):
        """Resolve a bearer token to (user, token), or None."""
        with self.db.transaction() as tx:
            return self.tokens.authenticate(tx.cursor, plaintext)

    def logout(self, user: Dict[str, Any], current_token: Dict[str, Any]):
        """Delete only the token that authenticated this request."""
        with self.db.transaction() as tx:
            if current_token:
                self.tokens.revoke(tx.cursor, current_token['id'])
            self._log_event(tx, user, AuditEvent.LOGOUT)

    def logout_all_devices(self, user: Dict[str, Any]) -> int:
        """Delete every token the user owns."""
        with self.db.transaction() as tx:
            revoked = self.tokens.revoke_all(tx.cursor, user['id'])
            self._log_event(tx, user, AuditEvent.LOGOUT_ALL, {'tokens_revoked': revoked})
        return revoked

    def list_tokens(self, user: Dict[str, Any]):
        with self.db.transaction() as tx:
            return self.tokens.list_for_user(tx.cursor, user['id'])

    def revoke_token(self, token_id, owner: Dict[str, Any] = None):
        """
        Delete a token, optionally scoped to the owner making the request.

        Raises:
            TokenNotFound: no such token, or owned by someone else
        """
        with self.db.transaction() as tx:
            token = self.tokens.find(tx.cursor, token_id, owner['id'] if owner else None)
            if not token:
                raise TokenNotFound()

            self.tokens.revoke(tx.cursor, token['id'])
            if token.get('owner_type', 'user') == 'user':
                self._log_event(tx, {'id': token['user_id']}, AuditEvent.TOKEN_REVOKED,
                                {'token_id': str(token['id']), 'device': token.get('name')})

    # -- passwords ----------------------------------------------------------

    def send_password_reset_link(self, email: str) -> str:
        """Always returns the same generic status."""
        with self.db.transaction() as tx:
            status = self.password_resets.send_link(tx.cursor, email, on_commit=tx.on_commit)
            user = self.users.find_by_email(tx.cursor, email)
            if user and user['is_active']:
                self._log_event(tx, user, AuditEvent.PASSWORD_RESET_REQUESTED)
        return status

    def reset_password(self, data: Dict[str, str]) -> str:
        """
        Consume a reset token and set a new password.

        Returns PASSWORD_RESET on success, INVALID_TOKEN otherwise.
        """
        with self.db.transaction() as tx:
            user = self.password_resets.consume(tx.cursor, data.get('email'), data.get('token'))
            if not user:
                return INVALID_TOKEN

            self.users.update(tx.cursor, user['id'], {
                'password_hash': hash_password(data['password']),
                'remember_token': secrets.token_urlsafe(45),
            })
            self._log_event(tx, user, AuditEvent.PASSWORD_RESET)

        logger.info('[PASSWORD RESET] Password reset completed for user %s', user['id'])
        return PASSWORD_RESET

    def update_password(self, user: Dict[str, Any], current_password: str, new_password: str) -> bool:
        """Returns False when current_password does not match."""
        with self.db.transaction() as tx:
            fresh = self.users.find_by_id(tx.cursor, user['id'])
            if not fresh or not verify_password(current_password, fresh.get('password_hash')):
                return False

            self.users.update(tx.cursor, user['id'], {'password_hash': hash_password(new_password)})
            self._log_event(tx, user, AuditEvent.PASSWORD_UPDATED)
        return True

    def verify_email(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """Mark the email verified. No-op when it already is."""
        with self.db.transaction() as tx:
            fresh = self.users.find_by_id(tx.cursor, user['id'])
            if fresh.get('email_verified_at'):
                return fresh

            fresh = self.users.update(tx.cursor, user['id'], {'email_verified_at': _now()})
            self._log_event(tx, fresh, AuditEvent.EMAIL_VERIFIED)
        return fresh

    # -- social -------------------------------------------------------------

    def social_login(self, provider: str, token: str = None, device_name: str = None,
                     code: str = None) -> Dict[str, Any]:
        """
        Log in (or sign up) through a social identity provider.

        Token flow when token is given, code flow otherwise. The provider is
        called before the transaction opens so no connection is held across
        the network call.

        Raises:
            ProviderError: unknown provider, missing code, or resolution failure
        """
        client = get_provider(self.providers, provider)
        provider = client.name

        if token:
            identity = client.resolve_from_token(token)
        elif code:
            identity = client.resolve_from_code(code)
        else:
            raise ProviderError(provider, 'An authorization code or access token is required')

        with self.db.transaction() as tx:
            user = self.users.find_by_email(tx.cursor, identity.email)

            if not user:
                user = self.users.create(tx.cursor, {
                    'name': identity.name or identity.email.split('@')[0],
                    'email': identity.email,
                    'email_verified_at': _now(),
                    'is_active': True,
                })
                self._log_event(tx, user, AuditEvent.REGISTER_SOCIAL, {'provider': provider})
            elif not user['is_active']:
                raise AccountDeactivated()

            self.social_accounts.link(tx.cursor, user['id'], provider, identity.external_id)
            plaintext, _ = self.tokens.issue(tx.cursor, user, device_name, ALL_ABILITIES)
            self._log_event(tx, user, AuditEvent.SOCIAL_LOGIN,
                            {'provider': provider, 'device': device_name or DEFAULT_DEVICE})

        logger.info('[SOCIAL] %s login for user %s', provider, user['id'])
        return {'user': user, 'token': plaintext}

    # -- MFA ----------------------------------------------------------------

    def enable_mfa(self, user: Dict[str, Any]) -> Dict[str, str]:
        """
        Generate and store an MFA secret (encrypted at rest).

        Returns the plaintext secret once, for authenticator enrollment.
        Verification of one-time codes is not part of this service.
        """
        secret = base64.b32encode(secrets.token_bytes(20)).decode('ascii')

        with self.db.transaction() as tx:
            self.users.update(tx.cursor, user['id'], {'mfa_secret': encrypt_secret(secret)})
            self._log_event(tx, user, AuditEvent.MFA_ENABLED)

        return {'secret': secret}

    # -- profile ------------------------------------------------------------

    def me(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return public_user(user)
