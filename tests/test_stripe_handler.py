"""Tests for the Stripe webhook endpoint and event handlers."""

from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe
from flask import Flask

from billing import stripe_handler
from billing.stripe_handler import init_billing


class StubDatabase:

    def __init__(self):
        self.cursor = MagicMock()
        self.cursor.fetchone.return_value = {'id': 1, 'plan_tag': 'spark-monthly', 'status': 'active'}

    @contextmanager
    def transaction(self):
        tx = MagicMock()
        tx.cursor = self.cursor
        yield tx


@pytest.fixture
def stub_db():
    return StubDatabase()


@pytest.fixture
def webhook_client(stub_db):
    app = Flask(__name__)
    app.extensions['kover'] = SimpleNamespace(db=stub_db)
    app.register_blueprint(init_billing(webhook_secret='whsec_test'))
    return app.test_client()


def stripe_event(event_type, obj):
    return {'type': event_type, 'data': {'object': obj}}


def stripe_subscription(price_id='price_spark', status='active'):
    return {
        'id': 'sub_1',
        'status': status,
        'items': {'data': [{'price': {'id': price_id}}]},
        'current_period_start': 1767225600,
        'current_period_end': 1769904000,
    }


class TestWebhookEndpoint:

    def test_missing_secret(self, monkeypatch):
        monkeypatch.setattr(stripe_handler, 'WEBHOOK_SECRET', None)
        app = Flask(__name__)
        app.register_blueprint(init_billing())

        resp = app.test_client().post('/v1/billing/webhook', data=b'{}')

        assert resp.status_code == 500

    @patch('billing.stripe_handler.stripe.Webhook.construct_event')
    def test_bad_signature(self, mock_construct, webhook_client):
        mock_construct.side_effect = stripe.SignatureVerificationError('bad sig', 't=1,v1=x')

        resp = webhook_client.post('/v1/billing/webhook', data=b'{}', headers={'Stripe-Signature': 't=1,v1=x'})

        assert resp.status_code == 400
        assert resp.get_json() == {'error': 'Invalid signature'}

    @patch('billing.stripe_handler.stripe.Webhook.construct_event')
    def test_bad_payload(self, mock_construct, webhook_client):
        mock_construct.side_effect = ValueError('not json')

        resp = webhook_client.post('/v1/billing/webhook', data=b'garbage')

        assert resp.status_code == 400

    @patch('billing.stripe_handler.stripe.Webhook.construct_event')
    def test_unhandled_event_is_ignored(self, mock_construct, webhook_client, stub_db):
        mock_construct.return_value = stripe_event('invoice.created', {})

        resp = webhook_client.post('/v1/billing/webhook', data=b'{}')

        assert resp.get_json() == {'status': 'ignored'}
        stub_db.cursor.execute.assert_not_called()

    @patch('billing.stripe_handler.stripe.Subscription.retrieve')
    @patch('billing.stripe_handler.stripe.Webhook.construct_event')
    def test_checkout_activates_team_subscription(self, mock_construct, mock_retrieve, webhook_client, stub_db):
        mock_construct.return_value = stripe_event('checkout.session.completed', {
            'customer': 'cus_1', 'subscription': 'sub_1', 'client_reference_id': 'team-uuid',
        })
        mock_retrieve.return_value = stripe_subscription()

        with patch('billing.stripe_handler.get_plan_by_stripe_price', return_value={'tag': 'spark-monthly'}):
            resp = webhook_client.post('/v1/billing/webhook', data=b'{}')

        assert resp.status_code == 200
        assert resp.get_json() == {'status': 'success'}
        params = stub_db.cursor.execute.call_args[0][1]
        assert params[:4] == ('cus_1', 'sub_1', 'active', 'spark-monthly')
        assert params[-2:] == ('team-uuid', 'main')

    @patch('billing.stripe_handler.stripe.Webhook.construct_event')
    def test_handler_error(self, mock_construct, webhook_client, stub_db):
        mock_construct.return_value = stripe_event('customer.subscription.deleted', {'id': 'sub_1'})
        stub_db.cursor.execute.side_effect = RuntimeError('db down')

        resp = webhook_client.post('/v1/billing/webhook', data=b'{}')

        assert resp.status_code == 500


class TestHandlers:

    def test_checkout_without_team_reference(self):
        cur = MagicMock()
        assert stripe_handler.handle_checkout_completed(cur, {'subscription': 'sub_1'}) is None
        cur.execute.assert_not_called()

    def test_subscription_updated_unknown_price(self):
        cur = MagicMock()
        cur.fetchone.return_value = {'id': 1, 'plan_tag': 'starter-monthly'}

        stripe_handler.handle_subscription_updated(cur, stripe_subscription(price_id='price_unknown', status='past_due'))

        sql, params = cur.execute.call_args[0]
        assert 'plan_tag' not in sql.split('WHERE')[0]
        assert params[0] == 'past_due'
        assert params[-1] == 'sub_1'

    def test_subscription_deleted(self):
        cur = MagicMock()
        cur.fetchone.return_value = None

        assert stripe_handler.handle_subscription_deleted(cur, {'id': 'sub_gone'}) is None

        params = cur.execute.call_args[0][1]
        assert params[0] == 'canceled'
        assert params[-1] == 'sub_gone'
