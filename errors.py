"""
Kover Error Taxonomy

Expected, user-facing failures are raised as these typed errors and rendered
by the Flask error handler in app.py. Anything else is an unexpected failure
and propagates as a 500.
"""


class KoverError(Exception):
    """Base class for every typed failure in the service."""

    status_code = 500
    code = 'internal_error'

    def __init__(self, message: str = None, **context):
        self.message = message or self.default_message()
        self.context = context
        super().__init__(self.message)

    def default_message(self) -> str:
        return 'Internal error'

    def to_dict(self) -> dict:
        return {'error': self.code, 'message': self.message}


class ValidationError(KoverError):
    status_code = 400
    code = 'validation_error'

    def __init__(self, message: str = None, errors: dict = None, **context):
        self.errors = errors or {}
        super().__init__(message, **context)

    def default_message(self) -> str:
        return 'The given data was invalid'

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.errors:
            body['errors'] = self.errors
        return body


class DuplicateResource(ValidationError):
    """A unique field (email, website) is already taken."""

    status_code = 409
    code = 'conflict'

    def __init__(self, field: str, message: str = None, **context):
        self.field = field
        super().__init__(message or f'{field} is already in use', errors={field: 'taken'}, **context)


class InvalidCredentials(KoverError):
    status_code = 401
    code = 'invalid_credentials'

    def default_message(self) -> str:
        return 'Invalid credentials'


class AccountDeactivated(KoverError):
    status_code = 403
    code = 'account_deactivated'

    def default_message(self) -> str:
        return 'Account disabled'


class AuthenticationRequired(KoverError):
    status_code = 401
    code = 'unauthenticated'

    def default_message(self) -> str:
        return 'Valid authentication required'


class PlanNotFoundError(KoverError):
    """No billing plan matches a resolved plan tag. Configuration problem."""

    code = 'plan_not_found'

    def __init__(self, tag: str, **context):
        self.tag = tag
        super().__init__(f'Plan not found for tag: {tag}', tag=tag, **context)


class ProviderError(KoverError):
    """A social identity provider could not resolve the user."""

    status_code = 502
    code = 'provider_error'

    def __init__(self, provider: str, message: str = None, **context):
        self.provider = provider
        super().__init__(message or f'{provider} identity resolution failed', provider=provider, **context)


class TokenNotFound(KoverError):
    status_code = 404
    code = 'token_not_found'

    def default_message(self) -> str:
        return 'Token not found or already revoked'


class AbilityDenied(KoverError):
    """The session token is valid but not scoped for this action."""

    status_code = 403
    code = 'forbidden'

    def __init__(self, ability: str, **context):
        self.ability = ability
        super().__init__(f'Token lacks the {ability} ability', ability=ability, **context)
