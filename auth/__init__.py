"""
Auth Module for Kover
Domain: Credentials, sessions and identity
"""

import base64
import hashlib
import os
import secrets
from functools import wraps

import bcrypt
from cryptography.fernet import Fernet
from flask import current_app, g, request

from errors import AuthenticationRequired

# Secret used to derive the at-rest encryption key (MFA secrets)
APP_KEY = os.environ.get('APP_KEY', secrets.token_hex(32))
BCRYPT_ROUNDS = int(os.environ.get('BCRYPT_ROUNDS', 12))


def hash_password(password: str) -> str:
    """Hash password with bcrypt (salt embedded in the hash)."""
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against stored hash. Social-only accounts have no hash."""
    if not password or not stored_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), stored_hash.encode('utf-8'))
    except ValueError:
        return False


def get_fernet() -> Fernet:
    """Get Fernet instance derived from APP_KEY."""
    key_bytes = hashlib.sha256(APP_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_secret(value: str) -> str:
    """Encrypt a secret for storage."""
    return get_fernet().encrypt(value.encode()).decode()


def decrypt_secret(encrypted: str) -> str:
    """Decrypt a stored secret."""
    return get_fernet().decrypt(encrypted.encode()).decode()


def bearer_token(req) -> str:
    """Extract the bearer token from an Authorization header, or None."""
    auth_header = req.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    token = auth_header[7:].strip()
    return token or None


def require_token(f):
    """
    Decorator to require a valid session token.

    Sets g.current_user and g.current_token for the view.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        plaintext = bearer_token(request)
        if not plaintext:
            raise AuthenticationRequired('Authorization header required')

        services = current_app.extensions['kover']
        result = services.auth.authenticate(plaintext)
        if not result:
            raise AuthenticationRequired('Invalid or expired token')

        g.current_user, g.current_token = result
        return f(*args, **kwargs)

    return decorated
