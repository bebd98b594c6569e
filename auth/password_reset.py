"""
Password Reset Module

Reset tokens are random, stored as sha256 hashes with an expiry, and
delivered by email through Resend.
"""

import hashlib
import logging
import os
import secrets
from typing import Any, Dict, Optional

import resend
from flask import Blueprint, current_app, jsonify, request

from auth.registration import validate_password
from errors import ValidationError

logger = logging.getLogger(__name__)

# Initialize Resend
resend.api_key = os.environ.get('RESEND_API_KEY')

# Frontend URL for reset links
FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:5173')
MAIL_FROM = os.environ.get('MAIL_FROM', 'Kover <noreply@kover.app>')
PASSWORD_RESET_TTL_MINUTES = int(os.environ.get('PASSWORD_RESET_TTL_MINUTES', 60))

# Broker statuses
RESET_LINK_SENT = 'passwords.sent'
PASSWORD_RESET = 'passwords.reset'
INVALID_TOKEN = 'passwords.token'

STATUS_MESSAGES = {
    RESET_LINK_SENT: 'If an account exists with this email, a password reset link has been sent.',
    PASSWORD_RESET: 'Password has been reset successfully. You can now log in with your new password.',
    INVALID_TOKEN: 'Invalid or expired reset token',
}


def generate_reset_token() -> str:
    """Generate a secure password reset token."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Hash reset token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


def send_reset_email(email: str, raw_token: str):
    """Deliver the reset link. Failures are logged, never raised."""
    reset_url = f"{FRONTEND_URL}/reset-password?token={raw_token}&email={email}"

    try:
        if resend.api_key:
            resend.Emails.send({
                "from": MAIL_FROM,
                "to": [email],
                "subject": "Reset your Kover password",
                "html": f"""
                <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 480px; margin: 0 auto; padding: 40px 20px;">
                    <h2 style="color: #1a1a2e; margin-bottom: 24px;">Reset your password</h2>
                    <p style="color: #4a4a5a; line-height: 1.6; margin-bottom: 24px;">
                        Click the button below to reset your Kover password. This link expires in {PASSWORD_RESET_TTL_MINUTES} minutes.
                    </p>
                    <a href="{reset_url}" style="display: inline-block; background: #e85d04; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 500;">
                        Reset Password
                    </a>
                    <p style="color: #8a8a9a; font-size: 14px; margin-top: 32px;">
                        If you didn't request this, you can safely ignore this email.
                    </p>
                </div>
                """
            })
            logger.info('[PASSWORD RESET] Email sent to %s', email)
        else:
            logger.warning('[PASSWORD RESET] No RESEND_API_KEY set, reset email for %s not sent', email)
    except Exception as email_error:
        # Still report success to the caller to prevent enumeration
        logger.warning('[PASSWORD RESET] Email send failed for %s: %s', email, email_error)


class PasswordResetBroker:
    """Issue and consume password reset tokens."""

    def __init__(self, mailer=send_reset_email, ttl_minutes: int = PASSWORD_RESET_TTL_MINUTES):
        self.mailer = mailer
        self.ttl_minutes = ttl_minutes

    def send_link(self, cur, email: str, on_commit=None) -> str:
        """
        Create a reset token for an active user and mail it.

        Always returns RESET_LINK_SENT so callers cannot enumerate accounts.
        The mail goes out through on_commit when given, so it is only sent
        once the token row is durable.
        """
        cur.execute(
            'SELECT id, email FROM users WHERE email = %s AND is_active = true',
            ((email or '').strip().lower(),)
        )
        user = cur.fetchone()
        if not user:
            return RESET_LINK_SENT

        raw_token = generate_reset_token()

        # Invalidate any existing tokens for this user
        cur.execute(
            'UPDATE password_reset_tokens SET used_at = NOW() WHERE user_id = %s AND used_at IS NULL',
            (str(user['id']),)
        )
        cur.execute(
            '''INSERT INTO password_reset_tokens (user_id, token_hash, expires_at)
               VALUES (%s, %s, NOW() + make_interval(mins => %s))''',
            (str(user['id']), hash_token(raw_token), self.ttl_minutes)
        )

        if on_commit:
            on_commit(self.mailer, user['email'], raw_token)
        else:
            self.mailer(user['email'], raw_token)
        return RESET_LINK_SENT

    def consume(self, cur, email: str, token: str) -> Optional[Dict[str, Any]]:
        """
        Validate a (email, token) pair and mark the token used.

        Returns the user row, or None if the token is unknown, used, expired
        or belongs to another email.
        """
        if not email or not token:
            return None

        cur.execute(
            '''SELECT prt.id AS token_id, u.*
               FROM password_reset_tokens prt
               JOIN users u ON prt.user_id = u.id
               WHERE prt.token_hash = %s
                 AND u.email = %s
                 AND prt.used_at IS NULL
                 AND prt.expires_at > NOW()''',
            (hash_token(token), email.strip().lower())
        )
        record = cur.fetchone()
        if not record:
            return None

        cur.execute(
            'UPDATE password_reset_tokens SET used_at = NOW() WHERE id = %s',
            (str(record['token_id']),)
        )
        user = dict(record)
        user.pop('token_id')
        return user


def init_password_reset():
    """Build the password reset routes."""
    password_reset_bp = Blueprint('password_reset', __name__, url_prefix='/v1/auth/password')

    @password_reset_bp.route('/forgot', methods=['POST'])
    def forgot_password():
        """
        Request a password reset.

        Request body:
        {
            "email": "user@example.com"
        }

        Note: Always returns success to prevent email enumeration.
        """
        data = request.get_json(silent=True) or {}
        email = (data.get('email') or '').strip().lower()

        if not email:
            raise ValidationError('Email required', errors={'email': 'required'})

        status = current_app.extensions['kover'].auth.send_password_reset_link(email)
        return jsonify({'status': status, 'message': STATUS_MESSAGES[status]}), 200

    @password_reset_bp.route('/reset', methods=['POST'])
    def reset_password():
        """
        Confirm password reset with token.

        Request body:
        {
            "email": "user@example.com",
            "token": "reset_token_from_email",
            "password": "NewSecurePassword123"
        }
        """
        data = request.get_json(silent=True) or {}
        email = (data.get('email') or '').strip().lower()
        token = (data.get('token') or '').strip()
        new_password = data.get('password') or ''

        if not email or not token:
            raise ValidationError('Email and reset token required')

        valid, msg = validate_password(new_password)
        if not valid:
            raise ValidationError(msg, errors={'password': msg})

        status = current_app.extensions['kover'].auth.reset_password(
            {'email': email, 'token': token, 'password': new_password}
        )
        code = 200 if status == PASSWORD_RESET else 400
        return jsonify({'status': status, 'message': STATUS_MESSAGES[status]}), code

    return password_reset_bp
