"""
Social Identity Providers

Resolve a provider identity (code flow or token flow) to a SocialIdentity.
Every outbound call has a timeout; any failure surfaces as ProviderError.
"""

import logging
import os
from collections import namedtuple
from typing import Dict

import jwt
import requests
from jwt import PyJWKClient

from errors import ProviderError

logger = logging.getLogger(__name__)

SOCIAL_PROVIDER_TIMEOUT = float(os.environ.get('SOCIAL_PROVIDER_TIMEOUT', 10))

GITHUB_CLIENT_ID = os.environ.get('GITHUB_CLIENT_ID', '')
GITHUB_CLIENT_SECRET = os.environ.get('GITHUB_CLIENT_SECRET', '')

GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID', '')
GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_CLIENT_SECRET', '')
GOOGLE_REDIRECT_URI = os.environ.get('GOOGLE_REDIRECT_URI', '')

SocialIdentity = namedtuple('SocialIdentity', ['external_id', 'email', 'name'])


def _is_jwt_format(token: str) -> bool:
    """Check if token looks like a JWT (three dot-separated base64url parts)."""
    parts = token.split('.')
    return len(parts) == 3 and all(len(p) > 0 for p in parts)


class IdentityProvider:
    """Base class: HTTP plumbing shared by providers."""

    name = None

    def __init__(self, timeout: float = SOCIAL_PROVIDER_TIMEOUT, session=None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve_from_code(self, code: str) -> SocialIdentity:
        raise NotImplementedError

    def resolve_from_token(self, token: str) -> SocialIdentity:
        raise NotImplementedError

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            raise ProviderError(self.name, f'{self.name} did not respond within {self.timeout}s')
        except requests.RequestException as e:
            raise ProviderError(self.name, f'{self.name} request failed: {e}')

        if response.status_code >= 400:
            logger.warning('[SOCIAL] %s %s returned %s', self.name, url, response.status_code)
            raise ProviderError(self.name, f'{self.name} rejected the credentials ({response.status_code})')

        try:
            return response.json()
        except ValueError:
            raise ProviderError(self.name, f'{self.name} returned an invalid response')

    def _identity(self, external_id, email, name) -> SocialIdentity:
        if not external_id or not email:
            raise ProviderError(self.name, f'{self.name} account has no verified email')
        return SocialIdentity(str(external_id), email.strip().lower(), name)


class GitHubProvider(IdentityProvider):
    name = 'github'

    TOKEN_URL = 'https://github.com/login/oauth/access_token'
    USER_URL = 'https://api.github.com/user'
    EMAILS_URL = 'https://api.github.com/user/emails'

    def __init__(self, client_id: str = GITHUB_CLIENT_ID, client_secret: str = GITHUB_CLIENT_SECRET, **kwargs):
        super().__init__(**kwargs)
        self.client_id = client_id
        self.client_secret = client_secret

    def resolve_from_code(self, code: str) -> SocialIdentity:
        data = self._request('POST', self.TOKEN_URL, headers={'Accept': 'application/json'}, data={
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'code': code,
        })
        access_token = data.get('access_token')
        if not access_token:
            raise ProviderError(self.name, data.get('error_description') or 'Invalid or expired code')
        return self.resolve_from_token(access_token)

    def resolve_from_token(self, token: str) -> SocialIdentity:
        headers = {'Authorization': f'Bearer {token}', 'Accept': 'application/vnd.github+json'}
        profile = self._request('GET', self.USER_URL, headers=headers)

        email = profile.get('email')
        if not email:
            # Private email: pick the primary verified one
            emails = self._request('GET', self.EMAILS_URL, headers=headers)
            primary = [e for e in emails if e.get('primary') and e.get('verified')]
            email = primary[0]['email'] if primary else None

        return self._identity(profile.get('id'), email, profile.get('name') or profile.get('login'))


class GoogleProvider(IdentityProvider):
    name = 'google'

    TOKEN_URL = 'https://oauth2.googleapis.com/token'
    USERINFO_URL = 'https://openidconnect.googleapis.com/v1/userinfo'
    JWKS_URL = 'https://www.googleapis.com/oauth2/v3/certs'
    ISSUERS = ('https://accounts.google.com', 'accounts.google.com')

    def __init__(self, client_id: str = GOOGLE_CLIENT_ID, client_secret: str = GOOGLE_CLIENT_SECRET,
                 redirect_uri: str = GOOGLE_REDIRECT_URI, jwks_client=None, **kwargs):
        super().__init__(**kwargs)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._jwks_client = jwks_client

    @property
    def jwks_client(self):
        """Lazy-init JWKS client."""
        if self._jwks_client is None:
            self._jwks_client = PyJWKClient(self.JWKS_URL, cache_keys=True, lifespan=3600,
                                            timeout=int(self.timeout))
        return self._jwks_client

    def resolve_from_code(self, code: str) -> SocialIdentity:
        data = self._request('POST', self.TOKEN_URL, data={
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'redirect_uri': self.redirect_uri,
            'grant_type': 'authorization_code',
            'code': code,
        })
        if data.get('id_token'):
            return self.resolve_from_token(data['id_token'])
        if data.get('access_token'):
            return self.resolve_from_token(data['access_token'])
        raise ProviderError(self.name, 'Invalid or expired code')

    def resolve_from_token(self, token: str) -> SocialIdentity:
        if _is_jwt_format(token):
            return self._from_id_token(token)
        info = self._request('GET', self.USERINFO_URL, headers={'Authorization': f'Bearer {token}'})
        if info.get('email_verified') is False:
            raise ProviderError(self.name, 'google email is not verified')
        return self._identity(info.get('sub'), info.get('email'), info.get('name'))

    def _from_id_token(self, token: str) -> SocialIdentity:
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=['RS256'],
                audience=self.client_id,
                options={'verify_iss': False},
            )
        except jwt.PyJWTError as e:
            raise ProviderError(self.name, f'Invalid id_token: {e}')

        if claims.get('iss') not in self.ISSUERS:
            raise ProviderError(self.name, 'Invalid id_token issuer')
        if claims.get('email_verified') is False:
            raise ProviderError(self.name, 'google email is not verified')
        return self._identity(claims.get('sub'), claims.get('email'), claims.get('name'))


PROVIDER_CLASSES = {
    'github': GitHubProvider,
    'google': GoogleProvider,
}


def default_providers() -> Dict[str, IdentityProvider]:
    return {name: cls() for name, cls in PROVIDER_CLASSES.items()}


def get_provider(providers: Dict[str, IdentityProvider], name: str) -> IdentityProvider:
    provider = providers.get((name or '').lower())
    if provider is None:
        raise ProviderError(name or 'unknown', f'Unsupported provider: {name}')
    return provider


class SocialAccountStore:
    """(user, provider) -> provider user id mapping."""

    def link(self, cur, user_id, provider: str, provider_id: str):
        cur.execute(
            '''INSERT INTO social_accounts (user_id, provider, provider_id)
               VALUES (%s, %s, %s)
               ON CONFLICT (user_id, provider) DO UPDATE SET
                   provider_id = EXCLUDED.provider_id,
                   updated_at = NOW()
               RETURNING *''',
            (str(user_id), provider, provider_id)
        )
        return dict(cur.fetchone())
