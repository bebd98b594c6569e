"""
Onboarding form validation.
"""

import re
from typing import Any, Dict, Tuple

from auth.roles import ROLES
from billing.plans import BILLING_CYCLES

COMPANY_TYPES = {
    'hotel': 'Hotel',
    'lodge': 'Lodge',
    'guesthouse-bnb': 'Guesthouse / B&B',
    'hostel': 'Hostel',
    'serviced-apartment': 'Serviced Apartment',
    'holiday-home': 'Holiday Home',
}

NAME_MAX_LENGTH = 120
CITY_MAX_LENGTH = 50

_URL_PATTERN = re.compile(r'^https?://[^\s/$.?#][^\s]*\.[^\s]{2,}$', re.IGNORECASE)


def _positive_int(value):
    """Parse a positive integer, None if it isn't one."""
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    if isinstance(value, float) and value != number:
        return None
    return number if number >= 1 else None


def _required_string(data, field, max_length, errors):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        errors[field] = f'{field} is required'
        return None
    value = value.strip()
    if len(value) > max_length:
        errors[field] = f'{field} may not be greater than {max_length} characters'
        return None
    return value


def validate_onboarding_form(data: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """
    Validate the getting-started form.

    Returns:
        (form, errors): form holds the normalized fields; errors maps field
        name to message and is empty when the form is valid.
    """
    data = data or {}
    errors = {}
    form = {}

    form['name'] = _required_string(data, 'name', NAME_MAX_LENGTH, errors)
    form['city'] = _required_string(data, 'city', CITY_MAX_LENGTH, errors)

    company_type = data.get('type')
    if company_type not in COMPANY_TYPES:
        errors['type'] = 'The selected type is invalid'
    form['type'] = company_type

    for field in ('language', 'currency', 'country'):
        form[field] = _positive_int(data.get(field))
        if form[field] is None:
            errors[field] = f'{field} must be a valid id'

    form['capacity'] = _positive_int(data.get('rooms'))
    if form['capacity'] is None:
        errors['rooms'] = 'rooms must be at least 1'

    website = (data.get('website') or '').strip() or None
    if website and not _URL_PATTERN.match(website):
        errors['website'] = 'website must be a valid URL'
    form['website'] = website

    role = data.get('role')
    if role not in ROLES:
        errors['role'] = 'The selected role is invalid'
    form['role'] = role

    billing_cycle = data.get('billing_cycle') or None
    if billing_cycle is not None and billing_cycle not in BILLING_CYCLES:
        errors['billing_cycle'] = 'The selected billing cycle is invalid'
    form['billing_cycle'] = billing_cycle

    return form, errors
