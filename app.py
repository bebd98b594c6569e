#!/usr/bin/env python3
"""
Kover API - accounts, sessions and tenant onboarding
PostgreSQL version with multi-tenant support
"""

import logging
import os
from types import SimpleNamespace

from flask import Flask, jsonify
from flask_cors import CORS

from audit_service import AuditSink
from auth.account import init_account
from auth.login import init_login
from auth.password_reset import PasswordResetBroker, init_password_reset
from auth.registration import init_registration
from auth.roles import RoleStore
from auth.service import AuthService
from auth.social import SocialAccountStore, default_providers
from auth.tokens import TokenIssuer
from auth.users import UserStore
from billing.db import BillingService
from billing.plans import PlanCatalog
from billing.stripe_handler import init_billing
from db import Database
from errors import KoverError
from events import EventBus
from jobs.queue import JobQueue
from onboarding.api_clients import ApiClientStore
from onboarding.routes import init_onboarding
from onboarding.service import OnboardingService
from onboarding.tenants import TenantStore

logger = logging.getLogger(__name__)

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
SERVICE_VERSION = '1.0.0'


def build_services(db: Database) -> SimpleNamespace:
    """Wire stores and services around one Database."""
    users = UserStore()
    queue = JobQueue(db)
    events = EventBus()

    auth = AuthService(
        db,
        users=users,
        tokens=TokenIssuer(),
        audit=AuditSink(db),
        password_resets=PasswordResetBroker(),
        social_accounts=SocialAccountStore(),
        providers=default_providers(),
    )
    onboarding = OnboardingService(
        db,
        tenants=TenantStore(),
        api_clients=ApiClientStore(),
        plans=PlanCatalog(),
        billing=BillingService(),
        users=users,
        roles=RoleStore(),
        queue=queue,
        events=events,
    )
    return SimpleNamespace(db=db, auth=auth, onboarding=onboarding, queue=queue, events=events)


def create_app(services: SimpleNamespace = None) -> Flask:
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )

    app = Flask(__name__)
    CORS(app)

    if services is None:
        services = build_services(Database())
    app.extensions['kover'] = services

    @app.teardown_appcontext
    def close_db(exception):
        """Close database connection at end of request."""
        services.db.close(exception)

    @app.errorhandler(KoverError)
    def handle_kover_error(e):
        if e.status_code >= 500:
            logger.error('[API] %s: %s', e.code, e.message)
        return jsonify(e.to_dict()), e.status_code

    # =========================================================================
    # AUTH
    # =========================================================================

    app.register_blueprint(init_registration())
    app.register_blueprint(init_login())
    app.register_blueprint(init_password_reset())
    app.register_blueprint(init_account())

    # =========================================================================
    # ONBOARDING + BILLING
    # =========================================================================

    app.register_blueprint(init_onboarding())
    app.register_blueprint(init_billing())

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint."""
        return jsonify({
            'status': 'ok',
            'service': 'kover-api',
            'version': SERVICE_VERSION,
            'database': 'postgres',
        }), 200

    return app


app = create_app()


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8080))
    app.run(host='0.0.0.0', port=port, debug=False)
