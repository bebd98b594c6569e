"""
Onboarding Routes

GET  /v1/onboarding/options        - Form choices (public)
GET  /v1/onboarding/check-website  - Website availability (public, rate-limited)
POST /v1/onboarding                - Provision a company (token auth, rate-limited)
"""

import time

from flask import Blueprint, current_app, g, jsonify, request

from auth import require_token
from auth.tokens import PROVISION_COMPANY, require_ability
from errors import ValidationError
from onboarding.validation import validate_onboarding_form


# ============================================================================
# Simple in-memory rate limiters for the onboarding endpoints
# ============================================================================

_provision_rate = {}                 # ip -> [timestamp, ...]
_website_check_rate = {}             # ip -> [timestamp, ...], separate budget
PROVISION_RATE_LIMIT = 5             # max provisions
WEBSITE_CHECK_RATE_LIMIT = 30        # max availability checks
RATE_WINDOW = 3600                   # per 1 hour (seconds)


def _is_rate_limited(buckets: dict, ip: str, limit: int) -> bool:
    """Check and enforce a per-IP limit on one bucket."""
    now = time.time()
    window_start = now - RATE_WINDOW
    # Purge old entries, and IPs with nothing left in the window
    for key in [k for k, stamps in buckets.items() if stamps[-1] <= window_start]:
        del buckets[key]
    recent = [t for t in buckets.get(ip, []) if t > window_start]
    if len(recent) >= limit:
        buckets[ip] = recent
        return True
    recent.append(now)
    buckets[ip] = recent
    return False


def _rate_limited_response():
    return jsonify({'error': 'rate_limited', 'message': 'Rate limit exceeded. Try again later.'}), 429


def init_onboarding():
    """Build the onboarding blueprint."""
    onboarding_bp = Blueprint('onboarding', __name__, url_prefix='/v1/onboarding')

    @onboarding_bp.route('/options', methods=['GET'])
    def options():
        return jsonify(current_app.extensions['kover'].onboarding.options()), 200

    @onboarding_bp.route('/check-website', methods=['GET'])
    def check_website():
        """
        Check whether a website is still free.

        Query: ?url=https://grandhotel.example
        Returns 200: {"url": "...", "available": true}
        """
        if _is_rate_limited(_website_check_rate, request.remote_addr or 'unknown', WEBSITE_CHECK_RATE_LIMIT):
            return _rate_limited_response()

        url = (request.args.get('url') or '').strip()
        if not url:
            raise ValidationError('url is required', errors={'url': 'required'})

        exists = current_app.extensions['kover'].onboarding.website_exists(url)
        return jsonify({'url': url, 'available': not exists}), 200

    @onboarding_bp.route('', methods=['POST'])
    @require_token
    @require_ability(PROVISION_COMPANY)
    def provision():
        """
        Provision the current user's company.

        Request body:
            {
              "name": "Grand Hotel", "type": "hotel", "language": 1,
              "currency": 1, "rooms": 12, "city": "Lusaka", "country": 1,
              "website": "https://grandhotel.example", "role": "owner",
              "billing_cycle": "monthly"
            }

        Returns 201:
            {
              "company": {...},
              "subscription": {...},
              "plan_tag": "starter-monthly",
              "api_client": {"public_key": "pub_...", "private_key": "priv_...", ...}
            }

        The private key is only ever shown in this response.
        """
        # Rate limit by IP
        if _is_rate_limited(_provision_rate, request.remote_addr or 'unknown', PROVISION_RATE_LIMIT):
            return _rate_limited_response()

        form, errors = validate_onboarding_form(request.get_json(silent=True) or {})
        if errors:
            raise ValidationError(errors=errors)

        result = current_app.extensions['kover'].onboarding.provision(g.current_user, form)

        return jsonify({
            'message': 'Company provisioned',
            'company': result['company'],
            'subscription': result['subscription'],
            'plan_tag': result['plan_tag'],
            'api_client': result['api_client'],
        }), 201

    return onboarding_bp
