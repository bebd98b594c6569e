"""
Kover Plan Definitions

Plan tiers:
- Starter: small properties, up to 20 rooms
- Spark: everything above 20 rooms

Each tier is sold monthly or yearly; a plan is addressed by its tag
"{tier}-{billing_cycle}".
"""

import os
from typing import Optional, Dict, Any

# Stripe Price IDs from environment
STRIPE_PRICE_STARTER_MONTHLY = os.environ.get('STRIPE_PRICE_STARTER_MONTHLY', 'price_test_starter_monthly')
STRIPE_PRICE_STARTER_YEARLY = os.environ.get('STRIPE_PRICE_STARTER_YEARLY', 'price_test_starter_yearly')
STRIPE_PRICE_SPARK_MONTHLY = os.environ.get('STRIPE_PRICE_SPARK_MONTHLY', 'price_test_spark_monthly')
STRIPE_PRICE_SPARK_YEARLY = os.environ.get('STRIPE_PRICE_SPARK_YEARLY', 'price_test_spark_yearly')

TRIAL_DAYS = int(os.environ.get('TRIAL_DAYS', 14))

BILLING_CYCLES = ('monthly', 'yearly')
DEFAULT_BILLING_CYCLE = 'monthly'

# Largest property (in rooms) covered by the starter tier
STARTER_MAX_CAPACITY = 20


PLANS: Dict[str, Dict[str, Any]] = {
    'starter-monthly': {
        'tag': 'starter-monthly',
        'name': 'Starter',
        'description': 'For small properties getting organised',
        'price': 2900,  # cents
        'interval': 'month',
        'trial_days': TRIAL_DAYS,
        'max_capacity': STARTER_MAX_CAPACITY,
        'stripe_price_id': STRIPE_PRICE_STARTER_MONTHLY,
    },
    'starter-yearly': {
        'tag': 'starter-yearly',
        'name': 'Starter',
        'description': 'For small properties getting organised',
        'price': 29000,  # two months free
        'interval': 'year',
        'trial_days': TRIAL_DAYS,
        'max_capacity': STARTER_MAX_CAPACITY,
        'stripe_price_id': STRIPE_PRICE_STARTER_YEARLY,
    },
    'spark-monthly': {
        'tag': 'spark-monthly',
        'name': 'Spark',
        'description': 'For growing hotels and multi-team operations',
        'price': 7900,
        'interval': 'month',
        'trial_days': TRIAL_DAYS,
        'max_capacity': None,  # unlimited
        'stripe_price_id': STRIPE_PRICE_SPARK_MONTHLY,
    },
    'spark-yearly': {
        'tag': 'spark-yearly',
        'name': 'Spark',
        'description': 'For growing hotels and multi-team operations',
        'price': 79000,
        'interval': 'year',
        'trial_days': TRIAL_DAYS,
        'max_capacity': None,
        'stripe_price_id': STRIPE_PRICE_SPARK_YEARLY,
    },
}


def normalize_billing_cycle(billing_cycle: Optional[str]) -> str:
    """Anything other than a known cycle falls back to monthly."""
    return billing_cycle if billing_cycle in BILLING_CYCLES else DEFAULT_BILLING_CYCLE


def resolve_plan_tag(capacity: int, billing_cycle: Optional[str] = DEFAULT_BILLING_CYCLE) -> str:
    """
    Map a property size and billing cycle to a plan tag.

    Args:
        capacity: Number of rooms
        billing_cycle: 'monthly' or 'yearly' (anything else means monthly)

    Returns:
        Plan tag, e.g. 'starter-monthly'
    """
    cycle = normalize_billing_cycle(billing_cycle)
    tier = 'starter' if capacity <= STARTER_MAX_CAPACITY else 'spark'
    return f'{tier}-{cycle}'


def get_plan(tag: str) -> Optional[Dict[str, Any]]:
    """Get a plan by tag, or None if not found."""
    return PLANS.get(tag)


def get_plan_by_stripe_price(stripe_price_id: str) -> Optional[Dict[str, Any]]:
    """
    Look up a plan by its Stripe price ID.

    Args:
        stripe_price_id: The Stripe price ID

    Returns:
        Plan dictionary or None if not found
    """
    for plan in PLANS.values():
        if plan.get('stripe_price_id') == stripe_price_id:
            return plan
    return None


class PlanCatalog:
    """Plan lookup by tag. Takes a plan mapping so tests can shrink it."""

    def __init__(self, plans: Dict[str, Dict[str, Any]] = None):
        self.plans = PLANS if plans is None else plans

    def get_by_tag(self, tag: str) -> Optional[Dict[str, Any]]:
        return self.plans.get(tag)
