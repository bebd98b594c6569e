"""In-memory stand-ins for the Postgres-backed stores.

FakeDatabase.transaction() snapshots every table on entry and restores the
snapshot when the block raises, so a rolled-back operation leaves no rows
behind. After-commit hooks run through the real db.Transaction.
"""

import copy
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from auth.password_reset import RESET_LINK_SENT, generate_reset_token, hash_token as hash_reset_token
from auth.social import SocialIdentity
from auth.tokens import ALL_ABILITIES, DEFAULT_DEVICE, generate_token, hash_token, parse_token_id
from db import Transaction
from errors import DuplicateResource, ProviderError
from onboarding.api_clients import generate_key_pair, hash_key


def _now():
    return datetime.now(timezone.utc)


class FakeDatabase:

    def __init__(self):
        self.tables = defaultdict(list)
        self.commits = 0
        self.rollbacks = 0
        self.in_transaction = False

    def close(self, exception=None):
        pass

    def rows(self, table, **match):
        return [r for r in self.tables[table] if all(r.get(k) == v for k, v in match.items())]

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy(dict(self.tables))
        tx = Transaction(self)
        self.in_transaction = True
        try:
            yield tx
            self.commits += 1
        except Exception:
            tx.discard_hooks()
            self.tables = defaultdict(list, snapshot)
            self.rollbacks += 1
            raise
        finally:
            self.in_transaction = False
        tx.run_after_commit()


class FakeUserStore:

    def find_by_id(self, cur, user_id):
        for user in cur.tables['users']:
            if user['id'] == user_id:
                return dict(user)
        return None

    def find_by_email(self, cur, email):
        email = (email or '').strip().lower()
        for user in cur.tables['users']:
            if user['email'] == email:
                return dict(user)
        return None

    def create(self, cur, fields):
        email = fields['email'].strip().lower()
        if self.find_by_email(cur, email):
            raise DuplicateResource('email', 'Email already registered')
        user = {
            'id': str(uuid4()), 'name': None, 'password_hash': None, 'is_active': True,
            'email_verified_at': None, 'remember_token': None, 'mfa_secret': None,
            'company_id': None, 'current_company_id': None, 'team_id': None,
            'language_id': None, 'last_login_at': None,
            'created_at': _now(), 'updated_at': _now(),
        }
        user.update(fields)
        user['email'] = email
        cur.tables['users'].append(user)
        return dict(user)

    def update(self, cur, user_id, fields):
        for user in cur.tables['users']:
            if user['id'] == user_id:
                user.update(fields)
                user['updated_at'] = _now()
                return dict(user)
        return None


class FakeTokenIssuer:

    def issue(self, cur, user, device_name=None, abilities=None):
        plaintext = generate_token()
        record = {
            'id': str(uuid4()), 'owner_type': 'user', 'user_id': user['id'],
            'name': device_name or DEFAULT_DEVICE, 'token_hash': hash_token(plaintext),
            'abilities': abilities or ALL_ABILITIES, 'created_at': _now(), 'last_used_at': None,
        }
        cur.tables['personal_access_tokens'].append(record)
        return plaintext, dict(record)

    def find(self, cur, token_id, owner_id=None):
        token_id = parse_token_id(token_id)
        for token in cur.tables['personal_access_tokens']:
            if token['id'] == token_id and (owner_id is None or token['user_id'] == owner_id):
                return dict(token)
        return None

    def list_for_user(self, cur, user_id):
        return [dict(t) for t in cur.tables['personal_access_tokens'] if t['user_id'] == user_id]

    def revoke(self, cur, token_id):
        token_id = parse_token_id(token_id)
        tokens = cur.tables['personal_access_tokens']
        kept = [t for t in tokens if t['id'] != token_id]
        cur.tables['personal_access_tokens'] = kept
        return len(kept) != len(tokens)

    def revoke_all(self, cur, user_id):
        tokens = cur.tables['personal_access_tokens']
        kept = [t for t in tokens if t['user_id'] != user_id]
        cur.tables['personal_access_tokens'] = kept
        return len(tokens) - len(kept)

    def authenticate(self, cur, plaintext):
        digest = hash_token(plaintext or '')
        for token in cur.tables['personal_access_tokens']:
            if token['token_hash'] == digest and token['owner_type'] == 'user':
                token['last_used_at'] = _now()
                user = FakeUserStore().find_by_id(cur, token['user_id'])
                if not user or not user['is_active']:
                    return None
                return user, dict(token)
        return None


class FakeAuditSink:
    """Writes events straight into the audit_logs table once called."""

    def __init__(self, db, fail=False):
        self.db = db
        self.fail = fail

    def record(self, user_id, event, metadata=None, request_metadata=None):
        if self.fail:
            raise RuntimeError('audit store unavailable')
        self.db.tables['audit_logs'].append({
            'user_id': user_id,
            'event': event,
            'meta': metadata or {},
            'request': request_metadata or {},
        })


class FakePasswordResets:

    def __init__(self):
        self.sent = []

    def send_link(self, cur, email, on_commit=None):
        user = FakeUserStore().find_by_email(cur, email)
        if not user or not user['is_active']:
            return RESET_LINK_SENT

        for row in cur.tables['password_reset_tokens']:
            if row['user_id'] == user['id']:
                row['used'] = True

        raw = generate_reset_token()
        cur.tables['password_reset_tokens'].append({
            'user_id': user['id'], 'email': user['email'],
            'token_hash': hash_reset_token(raw), 'used': False,
        })
        deliver = on_commit or (lambda fn, *args: fn(*args))
        deliver(self._deliver, user['email'], raw)
        return RESET_LINK_SENT

    def _deliver(self, email, raw):
        self.sent.append((email, raw))

    def consume(self, cur, email, token):
        if not email or not token:
            return None
        digest = hash_reset_token(token)
        for row in cur.tables['password_reset_tokens']:
            if row['token_hash'] == digest and row['email'] == email.lower() and not row['used']:
                row['used'] = True
                return FakeUserStore().find_by_id(cur, row['user_id'])
        return None


class FakeSocialAccounts:

    def link(self, cur, user_id, provider, provider_id):
        for row in cur.tables['social_accounts']:
            if row['user_id'] == user_id and row['provider'] == provider:
                row['provider_id'] = provider_id
                return dict(row)
        row = {'user_id': user_id, 'provider': provider, 'provider_id': provider_id}
        cur.tables['social_accounts'].append(row)
        return dict(row)


class FakeProvider:

    def __init__(self, name, identity=None, error=None):
        self.name = name
        self.identity = identity
        self.error = error
        self.calls = []

    def _resolve(self, kind, value):
        self.calls.append((kind, value))
        if self.error:
            raise ProviderError(self.name, self.error)
        return self.identity

    def resolve_from_token(self, token):
        return self._resolve('token', token)

    def resolve_from_code(self, code):
        return self._resolve('code', code)


def github_identity(email='ada@example.com', external_id='gh-42', name='Ada Lovelace'):
    return SocialIdentity(external_id, email, name)


class FakeTenantStore:

    def create_team(self, cur, owner_id):
        team = {'id': len(cur.tables['teams']) + 1, 'uuid': str(uuid4()), 'user_id': owner_id}
        cur.tables['teams'].append(team)
        return dict(team)

    def create_company(self, cur, team, owner_id, form):
        if form.get('website') and self.website_exists(cur, form['website']):
            raise DuplicateResource('website', 'This website is already registered')
        company = {
            'id': len(cur.tables['companies']) + 1,
            'team_id': team['id'], 'owner_id': owner_id, 'name': form['name'],
            'website': form.get('website'), 'city': form['city'], 'country_id': form['country'],
            'industry': form['type'], 'size': form['capacity'],
            'primary_interest': 'manage_my_business', 'default_currency_id': form['currency'],
        }
        cur.tables['companies'].append(company)
        return dict(company)

    def website_exists(self, cur, url):
        return any(c['website'] == url for c in cur.tables['companies'])


class FakeApiClients:

    def create(self, cur, company):
        public_key, private_key = generate_key_pair()
        client = {
            'id': str(uuid4()), 'company_id': company['id'],
            'name': f"{company['name']} Access Keys", 'public_key': public_key,
            'created_at': _now(),
        }
        cur.tables['api_clients'].append(dict(client, private_key_hash=hash_key(private_key)))
        return client, private_key


class FakeBilling:

    def create_subscription(self, cur, team, plan, status='free'):
        subscription = {
            'id': len(cur.tables['subscriptions']) + 1, 'team_id': team['id'], 'slug': 'main',
            'plan_tag': plan['tag'], 'status': status,
            'trial_ends_at': _now() + timedelta(days=plan.get('trial_days') or 0),
        }
        cur.tables['subscriptions'].append(subscription)
        return dict(subscription)


class FakeRoleStore:

    def assign_role(self, cur, user_id, role):
        if not any(r['user_id'] == user_id and r['role'] == role for r in cur.tables['user_roles']):
            cur.tables['user_roles'].append({'user_id': user_id, 'role': role})

    def grant_permission(self, cur, user_id, permission):
        rows = cur.tables['user_permissions']
        if not any(r['user_id'] == user_id and r['permission'] == permission for r in rows):
            rows.append({'user_id': user_id, 'permission': permission})


class FakeQueue:
    """Durable queue double. Records whether enqueue happened inside a transaction."""

    def __init__(self, db, fail=False):
        self.db = db
        self.fail = fail
        self.jobs = []

    def enqueue(self, job_name, payload):
        if self.fail:
            raise RuntimeError('queue unavailable')
        job = {'name': job_name, 'payload': payload, 'inside_transaction': self.db.in_transaction}
        self.jobs.append(job)
        return job
