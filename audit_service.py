"""
Kover Audit Service
Append-only log of security-relevant account events.
"""

import json
import logging
import os

from flask import has_request_context, request

logger = logging.getLogger(__name__)

AUDIT_ENABLED = os.environ.get('AUDIT_ENABLED', 'true').lower() == 'true'


# Event kind constants
class AuditEvent:
    REGISTER = 'user.register'
    REGISTER_SOCIAL = 'user.register_social'
    LOGIN = 'user.login'
    SOCIAL_LOGIN = 'user.social_login'
    LOGOUT = 'user.logout'
    LOGOUT_ALL = 'user.logout_all'
    PASSWORD_RESET_REQUESTED = 'user.password_reset_requested'
    PASSWORD_RESET = 'user.password_reset'
    PASSWORD_UPDATED = 'user.password_updated'
    EMAIL_VERIFIED = 'user.email_verified'
    MFA_ENABLED = 'user.mfa_enabled'
    TOKEN_REVOKED = 'user.token_revoked'


def get_request_metadata():
    """Extract ip and user agent from the current request, if any."""
    if not has_request_context():
        return {'ip': None, 'user_agent': None}
    forwarded = request.headers.get('X-Forwarded-For', '')
    return {
        'ip': forwarded.split(',')[0].strip() if forwarded else request.remote_addr,
        'user_agent': request.headers.get('User-Agent', '')[:500],  # Truncate long UAs
    }


def log_audit(cursor, user_id, event, metadata=None, ip=None, user_agent=None):
    """
    Insert one audit event.

    Args:
        cursor: Database cursor
        user_id: UUID of the user the event is about
        event: Event kind (use AuditEvent constants)
        metadata: Event-specific details (device, provider, ...)
        ip: Client address
        user_agent: Client user agent
    """
    cursor.execute("""
        INSERT INTO audit_logs (user_id, event, ip_address, user_agent, meta)
        VALUES (%s, %s, %s, %s, %s)
    """, (
        str(user_id),
        event,
        ip,
        user_agent,
        json.dumps(metadata or {}, default=str),
    ))


class AuditSink:
    """
    Best-effort audit writer.

    Each event is written in its own transaction, so an audit failure never
    rolls back the action being audited.
    """

    def __init__(self, db, enabled: bool = AUDIT_ENABLED):
        self.db = db
        self.enabled = enabled

    def record(self, user_id, event, metadata=None, request_metadata=None):
        if not self.enabled:
            return
        # Request metadata is captured by the caller while the request is live
        context = request_metadata or get_request_metadata()
        try:
            with self.db.transaction() as tx:
                log_audit(tx.cursor, user_id, event, metadata,
                          ip=context.get('ip'), user_agent=context.get('user_agent'))
        except Exception as e:
            # Don't let audit logging failures break the API
            logger.warning('[AUDIT] Failed to log %s for user %s: %s', event, user_id, e)


def query_audit_logs(cursor, user_id, filters=None, limit=100, offset=0):
    """
    Query a user's audit events, newest first.

    Filters:
        - event: Filter by event kind
        - start_time: Start of time range (ISO format)
        - end_time: End of time range (ISO format)
    """
    filters = filters or {}

    query = """
        SELECT id, event, ip_address, user_agent, meta, created_at
        FROM audit_logs
        WHERE user_id = %s
    """
    params = [str(user_id)]

    if filters.get('event'):
        query += " AND event = %s"
        params.append(filters['event'])

    if filters.get('start_time'):
        query += " AND created_at >= %s"
        params.append(filters['start_time'])

    if filters.get('end_time'):
        query += " AND created_at <= %s"
        params.append(filters['end_time'])

    query += " ORDER BY created_at DESC LIMIT %s OFFSET %s"
    params.extend([limit, offset])

    cursor.execute(query, params)
    return [dict(row) for row in cursor.fetchall()]
