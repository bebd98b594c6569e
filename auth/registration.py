"""
User Registration Module
"""

import re

from flask import Blueprint, current_app, g, jsonify, request

from auth import require_token
from auth.users import public_user
from errors import ValidationError


def validate_email(email: str) -> bool:
    """Basic email validation."""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_password(password: str) -> tuple[bool, str]:
    """Validate password strength."""
    if len(password) < 8:
        return False, 'Password must be at least 8 characters'
    if not re.search(r'[A-Z]', password):
        return False, 'Password must contain at least one uppercase letter'
    if not re.search(r'[a-z]', password):
        return False, 'Password must contain at least one lowercase letter'
    if not re.search(r'[0-9]', password):
        return False, 'Password must contain at least one number'
    return True, ''


def init_registration():
    """Build the registration routes."""
    registration_bp = Blueprint('registration', __name__, url_prefix='/v1/auth')

    @registration_bp.route('/register', methods=['POST'])
    def register():
        """
        Register a new user.

        Request body:
        {
            "name": "User Name",
            "email": "user@example.com",
            "password": "SecurePass123"
        }
        """
        data = request.get_json(silent=True) or {}

        name = (data.get('name') or '').strip()
        email = (data.get('email') or '').strip().lower()
        password = data.get('password') or ''

        errors = {}
        if not name:
            errors['name'] = 'name is required'
        elif len(name) > 255:
            errors['name'] = 'name is too long'
        if not email:
            errors['email'] = 'email is required'
        elif not validate_email(email):
            errors['email'] = 'Invalid email format'
        valid, msg = validate_password(password)
        if not valid:
            errors['password'] = msg
        if errors:
            raise ValidationError(errors=errors)

        user = current_app.extensions['kover'].auth.register(name, email, password)

        return jsonify({
            'message': 'Registration successful',
            'user': public_user(user),
        }), 201

    @registration_bp.route('/email/verify', methods=['POST'])
    @require_token
    def verify_email():
        """Mark the current user's email as verified."""
        user = current_app.extensions['kover'].auth.verify_email(g.current_user)
        return jsonify({
            'message': 'Email verified successfully',
            'user': public_user(user),
        }), 200

    return registration_bp
