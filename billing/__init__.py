"""
Kover Billing Module

This module handles:
- Plan definitions and plan tag resolution
- Team subscriptions
- Stripe webhooks
"""

from billing.plans import PLANS, PlanCatalog, get_plan, get_plan_by_stripe_price, resolve_plan_tag
from billing.db import (
    BillingService,
    activate_subscription,
    create_subscription,
    update_subscription,
    get_subscription,
    subscription_grants_access
)

__all__ = [
    'PLANS', 'PlanCatalog', 'get_plan', 'get_plan_by_stripe_price', 'resolve_plan_tag',
    'BillingService', 'activate_subscription', 'create_subscription', 'update_subscription',
    'get_subscription', 'subscription_grants_access'
]
