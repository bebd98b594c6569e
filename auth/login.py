"""
User Login Module

Password login, social login, logout and token revocation.
"""

from flask import Blueprint, current_app, g, jsonify, request

from auth import require_token
from auth.tokens import MANAGE_TOKENS, mask_token, require_ability
from auth.users import public_user
from errors import InvalidCredentials, ValidationError


def init_login():
    """Build the login/session routes."""
    login_bp = Blueprint('login', __name__, url_prefix='/v1/auth')

    @login_bp.route('/login', methods=['POST'])
    def login():
        """
        Authenticate user and return a session token.

        Request body:
        {
            "email": "user@example.com",
            "password": "SecurePass123",
            "device_name": "iPhone"   (optional)
        }
        """
        data = request.get_json(silent=True) or {}

        email = (data.get('email') or '').strip().lower()
        password = data.get('password') or ''
        device_name = (data.get('device_name') or '').strip() or None

        if not email or not password:
            raise ValidationError('Email and password required')

        # Same error for non-existent user AND wrong password
        result = current_app.extensions['kover'].auth.login(email, password, device_name)
        if not result:
            raise InvalidCredentials()

        return jsonify({
            'message': 'Login successful',
            'user': public_user(result['user']),
            'token': result['token'],
        }), 200

    @login_bp.route('/social/<provider>', methods=['POST'])
    def social_login(provider):
        """
        Log in or sign up through a social provider.

        Request body (one of token / code):
        {
            "token": "provider access token or id_token",
            "code": "authorization code",
            "device_name": "web"
        }
        """
        data = request.get_json(silent=True) or {}

        result = current_app.extensions['kover'].auth.social_login(
            provider,
            token=data.get('token') or None,
            device_name=data.get('device_name') or None,
            code=data.get('code') or None,
        )

        return jsonify({
            'message': 'Social login successful',
            'user': public_user(result['user']),
            'token': result['token'],
        }), 200

    @login_bp.route('/logout', methods=['POST'])
    @require_token
    def logout():
        """Revoke the token used for this request only."""
        current_app.extensions['kover'].auth.logout(g.current_user, g.current_token)
        return jsonify({'message': 'Logged out successfully'}), 200

    @login_bp.route('/logout-all', methods=['POST'])
    @require_token
    @require_ability(MANAGE_TOKENS)
    def logout_all():
        """Revoke every token of the current user."""
        revoked = current_app.extensions['kover'].auth.logout_all_devices(g.current_user)
        return jsonify({'message': 'Logged out from all devices', 'revoked': revoked}), 200

    @login_bp.route('/tokens', methods=['GET'])
    @require_token
    def list_tokens():
        """
        List the current user's tokens.

        Returns:
        [
            {
                "id": "uuid",
                "name": "iPhone",
                "token_preview": "kov_****...xxxx",
                "current": true,
                "created_at": "timestamp",
                "last_used_at": "timestamp"
            }
        ]
        """
        tokens = current_app.extensions['kover'].auth.list_tokens(g.current_user)
        current_id = str(g.current_token['id'])

        return jsonify([{
            'id': str(t['id']),
            'name': t['name'],
            'token_preview': mask_token(t['token_hash']),
            'abilities': t.get('abilities'),
            'current': str(t['id']) == current_id,
            'created_at': str(t['created_at']) if t.get('created_at') else None,
            'last_used_at': str(t['last_used_at']) if t.get('last_used_at') else None,
        } for t in tokens]), 200

    @login_bp.route('/tokens/<token_id>', methods=['DELETE'])
    @require_token
    @require_ability(MANAGE_TOKENS)
    def revoke_token(token_id):
        """Revoke one of the current user's tokens (logout a specific device)."""
        current_app.extensions['kover'].auth.revoke_token(token_id, owner=g.current_user)
        return jsonify({'message': 'Token revoked successfully'}), 200

    return login_bp
