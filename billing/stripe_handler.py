"""
Kover Stripe Webhook Handler

Handles Stripe webhook events for subscription lifecycle:
- checkout.session.completed: team paid, activate its main subscription
- customer.subscription.updated: plan changed or renewed
- customer.subscription.deleted: subscription cancelled

Also serves the current user's subscription status.
"""

import logging
import os
from datetime import datetime, timezone

import stripe
from flask import Blueprint, current_app, g, jsonify, request

from auth import require_token
from auth.tokens import READ_BILLING, require_ability
from billing.db import activate_subscription, get_subscription, subscription_grants_access, update_subscription
from billing.plans import get_plan_by_stripe_price

logger = logging.getLogger(__name__)

# Initialize Stripe with secret key
stripe.api_key = os.environ.get('STRIPE_SECRET_KEY')
WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')


def _timestamp(value):
    return datetime.fromtimestamp(value, tz=timezone.utc) if value else None


def get_plan_tag_from_price(price_id: str):
    """Map Stripe price ID to internal plan tag (None if unknown)."""
    plan = get_plan_by_stripe_price(price_id)
    return plan['tag'] if plan else None


def _price_id(subscription):
    items = subscription['items']['data']
    return items[0]['price']['id'] if items else None


def handle_checkout_completed(cur, session):
    """
    Handle successful checkout session.
    Activates the main subscription of the team referenced by the session.
    """
    customer_id = session.get('customer')
    subscription_id = session.get('subscription')
    team_uuid = session.get('client_reference_id')

    if not subscription_id or not team_uuid:
        logger.warning('[STRIPE] checkout.session.completed without subscription or client_reference_id')
        return None

    # Fetch full subscription details from Stripe
    subscription = stripe.Subscription.retrieve(subscription_id)

    row = activate_subscription(
        cur,
        team_uuid,
        customer_id,
        subscription_id,
        status=subscription['status'],
        plan_tag=get_plan_tag_from_price(_price_id(subscription)),
        current_period_start=_timestamp(subscription.get('current_period_start')),
        current_period_end=_timestamp(subscription.get('current_period_end')),
    )

    if row:
        logger.info('[STRIPE] Activated subscription for team %s: %s', team_uuid, row['plan_tag'])
    else:
        logger.warning('[STRIPE] No main subscription for team %s', team_uuid)
    return row


def handle_subscription_updated(cur, subscription):
    """
    Handle subscription updates (plan changes, renewals).
    """
    subscription_id = subscription['id']
    status = subscription['status']

    row = update_subscription(
        cur,
        subscription_id,
        status=status,
        plan_tag=get_plan_tag_from_price(_price_id(subscription)),
        current_period_start=_timestamp(subscription.get('current_period_start')),
        current_period_end=_timestamp(subscription.get('current_period_end')),
    )

    if row:
        logger.info('[STRIPE] Updated subscription %s: %s (%s)', subscription_id, row['plan_tag'], status)
    else:
        logger.warning('[STRIPE] Subscription %s not found in database', subscription_id)
    return row


def handle_subscription_deleted(cur, subscription):
    """
    Handle subscription cancellation.
    """
    subscription_id = subscription['id']

    row = update_subscription(
        cur,
        subscription_id,
        status='canceled',
        canceled_at=datetime.now(timezone.utc),
    )

    if row:
        logger.info('[STRIPE] Subscription %s canceled', subscription_id)
    else:
        logger.warning('[STRIPE] Subscription %s not found for cancellation', subscription_id)
    return row


EVENT_HANDLERS = {
    'checkout.session.completed': handle_checkout_completed,
    'customer.subscription.updated': handle_subscription_updated,
    'customer.subscription.deleted': handle_subscription_deleted,
}


def init_billing(webhook_secret: str = None):
    """Build the billing routes."""
    billing_bp = Blueprint('billing', __name__, url_prefix='/v1/billing')
    secret = webhook_secret or WEBHOOK_SECRET

    @billing_bp.route('/webhook', methods=['POST'])
    def stripe_webhook():
        """
        Handle Stripe webhook events.

        Stripe sends events to this endpoint when subscription changes occur.
        We verify the signature and process accordingly.
        """
        payload = request.get_data()
        sig_header = request.headers.get('Stripe-Signature')

        if not secret:
            logger.warning('[STRIPE] STRIPE_WEBHOOK_SECRET not configured')
            return jsonify({'error': 'Webhook secret not configured'}), 500

        try:
            event = stripe.Webhook.construct_event(payload, sig_header, secret)
        except ValueError as e:
            logger.warning('[STRIPE] Invalid payload: %s', e)
            return jsonify({'error': 'Invalid payload'}), 400
        except stripe.SignatureVerificationError as e:
            logger.warning('[STRIPE] Invalid signature: %s', e)
            return jsonify({'error': 'Invalid signature'}), 400

        event_type = event['type']
        event_data = event['data']['object']

        logger.info('[STRIPE] Received event: %s', event_type)

        handler = EVENT_HANDLERS.get(event_type)
        if handler is None:
            logger.info('[STRIPE] Unhandled event type: %s', event_type)
            return jsonify({'status': 'ignored'}), 200

        try:
            with current_app.extensions['kover'].db.transaction() as tx:
                handler(tx.cursor, event_data)
        except Exception as e:
            logger.exception('[STRIPE] Error processing %s', event_type)
            return jsonify({'error': str(e)}), 500

        return jsonify({'status': 'success'}), 200

    @billing_bp.route('/subscription', methods=['GET'])
    @require_token
    @require_ability(READ_BILLING)
    def subscription_status():
        """
        The main subscription of the current user's team.

        Returns 200:
            {"subscription": {...} | null, "active": true}
        """
        team_id = g.current_user.get('team_id')
        if not team_id:
            return jsonify({'subscription': None, 'active': False}), 200

        with current_app.extensions['kover'].db.transaction() as tx:
            subscription = get_subscription(tx.cursor, team_id)

        return jsonify({
            'subscription': subscription,
            'active': subscription_grants_access(subscription),
        }), 200

    return billing_bp
