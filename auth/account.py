"""
Account Self-Service Routes

Profile, password change, MFA enrollment and audit history for the
authenticated user.
"""

from flask import Blueprint, current_app, g, jsonify, request

from audit_service import query_audit_logs
from auth import require_token
from auth.registration import validate_password
from errors import ValidationError


def init_account():
    """Build the account routes."""
    account_bp = Blueprint('account', __name__, url_prefix='/v1/auth')

    @account_bp.route('/me', methods=['GET'])
    @require_token
    def me():
        """Current user's profile."""
        return jsonify(current_app.extensions['kover'].auth.me(g.current_user)), 200

    @account_bp.route('/password/update', methods=['POST'])
    @require_token
    def update_password():
        """
        Change the password of the authenticated user.

        Request body:
        {
            "current_password": "OldPass123",
            "new_password": "NewPass456"
        }
        """
        data = request.get_json(silent=True) or {}
        current_password = data.get('current_password') or ''
        new_password = data.get('new_password') or ''

        valid, msg = validate_password(new_password)
        if not valid:
            raise ValidationError(msg, errors={'new_password': msg})

        updated = current_app.extensions['kover'].auth.update_password(
            g.current_user, current_password, new_password
        )
        if not updated:
            return jsonify({'error': 'invalid_credentials', 'message': 'Current password is incorrect'}), 422

        return jsonify({'message': 'Password updated successfully'}), 200

    @account_bp.route('/mfa/enable', methods=['POST'])
    @require_token
    def enable_mfa():
        """Enroll MFA. The secret is shown once only."""
        result = current_app.extensions['kover'].auth.enable_mfa(g.current_user)
        return jsonify({
            'message': 'MFA enabled successfully',
            'secret': result['secret'],
            'warning': 'Save this secret now. It will not be shown again.',
        }), 200

    @account_bp.route('/audit-log', methods=['GET'])
    @require_token
    def audit_log():
        """Current user's security events, newest first."""
        try:
            limit = min(int(request.args.get('limit', 50)), 200)
            offset = max(int(request.args.get('offset', 0)), 0)
        except ValueError:
            raise ValidationError('limit and offset must be integers')

        filters = {
            'event': request.args.get('event'),
            'start_time': request.args.get('start_time'),
            'end_time': request.args.get('end_time'),
        }

        db = current_app.extensions['kover'].db
        with db.transaction() as tx:
            events = query_audit_logs(tx.cursor, g.current_user['id'], filters, limit, offset)

        return jsonify([{
            'id': str(e['id']),
            'event': e['event'],
            'ip_address': e.get('ip_address'),
            'user_agent': e.get('user_agent'),
            'meta': e.get('meta'),
            'created_at': str(e['created_at']) if e.get('created_at') else None,
        } for e in events]), 200

    return account_bp
