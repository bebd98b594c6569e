"""
Billing Database Functions

Database operations for team subscriptions. A team has one subscription per
slug; provisioning creates the 'main' one.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any

MAIN_SUBSCRIPTION = 'main'

# Statuses that grant access
ACTIVE_STATUSES = ('active', 'trialing')


def create_subscription(
    cur,
    team_id,
    plan: Dict[str, Any],
    status: str = 'free',
    slug: str = MAIN_SUBSCRIPTION,
    name: str = 'Main subscription',
    description: str = 'Customer main subscription'
) -> Dict[str, Any]:
    """
    Create a new subscription record.

    Args:
        cur: Database cursor
        team_id: Team id
        plan: Plan dict from the catalog
        status: Initial billing state ('free' until Stripe activates it)
        slug: Subscription slug, unique per team
        name: Display name
        description: Display description

    Returns:
        Created subscription dict
    """
    cur.execute(
        '''INSERT INTO subscriptions
           (team_id, slug, name, description, plan_tag, status, trial_ends_at)
           VALUES (%s, %s, %s, %s, %s, %s, NOW() + make_interval(days => %s))
           RETURNING *''',
        (team_id, slug, name, description, plan['tag'], status, plan.get('trial_days') or 0)
    )
    return dict(cur.fetchone())


def update_subscription(
    cur,
    stripe_subscription_id: str,
    status: Optional[str] = None,
    plan_tag: Optional[str] = None,
    current_period_start: Optional[datetime] = None,
    current_period_end: Optional[datetime] = None,
    canceled_at: Optional[datetime] = None
) -> Optional[Dict[str, Any]]:
    """
    Update an existing subscription by its Stripe id.

    Returns:
        Updated subscription dict or None if not found
    """
    # Build dynamic UPDATE
    updates = []
    params = []

    if status is not None:
        updates.append('status = %s')
        params.append(status)

    if plan_tag is not None:
        updates.append('plan_tag = %s')
        params.append(plan_tag)

    if current_period_start is not None:
        updates.append('current_period_start = %s')
        params.append(current_period_start)

    if current_period_end is not None:
        updates.append('current_period_end = %s')
        params.append(current_period_end)

    if canceled_at is not None:
        updates.append('canceled_at = %s')
        params.append(canceled_at)

    if not updates:
        return None

    updates.append('updated_at = NOW()')
    params.append(stripe_subscription_id)

    sql = f'''UPDATE subscriptions
              SET {', '.join(updates)}
              WHERE stripe_subscription_id = %s
              RETURNING *'''

    cur.execute(sql, params)
    row = cur.fetchone()
    return dict(row) if row else None


def activate_subscription(
    cur,
    team_uuid: str,
    stripe_customer_id: str,
    stripe_subscription_id: str,
    status: str = 'active',
    plan_tag: Optional[str] = None,
    current_period_start: Optional[datetime] = None,
    current_period_end: Optional[datetime] = None
) -> Optional[Dict[str, Any]]:
    """
    Attach Stripe ids to a team's main subscription after checkout.

    Args:
        team_uuid: Public team uuid (the checkout client_reference_id)

    Returns:
        Updated subscription dict or None if the team has no main subscription
    """
    cur.execute(
        '''UPDATE subscriptions s SET
               stripe_customer_id = %s,
               stripe_subscription_id = %s,
               status = %s,
               plan_tag = COALESCE(%s, s.plan_tag),
               current_period_start = %s,
               current_period_end = %s,
               updated_at = NOW()
           FROM teams t
           WHERE s.team_id = t.id AND t.uuid = %s AND s.slug = %s
           RETURNING s.*''',
        (stripe_customer_id, stripe_subscription_id, status, plan_tag,
         current_period_start, current_period_end, str(team_uuid), MAIN_SUBSCRIPTION)
    )
    row = cur.fetchone()
    return dict(row) if row else None


def get_subscription(cur, team_id, slug: str = MAIN_SUBSCRIPTION) -> Optional[Dict[str, Any]]:
    """
    Get a team's subscription.

    Args:
        cur: Database cursor
        team_id: Team id
        slug: Subscription slug

    Returns:
        Subscription dict or None
    """
    cur.execute(
        'SELECT * FROM subscriptions WHERE team_id = %s AND slug = %s',
        (team_id, slug)
    )
    row = cur.fetchone()
    return dict(row) if row else None


def subscription_grants_access(subscription: Optional[Dict[str, Any]]) -> bool:
    """
    Check if a subscription gives its team access: paid/trialing, or free
    with the trial not yet ended.
    """
    if not subscription:
        return False
    if subscription.get('status') in ACTIVE_STATUSES:
        return True
    trial_ends_at = subscription.get('trial_ends_at')
    return bool(
        subscription.get('status') == 'free'
        and trial_ends_at
        and trial_ends_at > datetime.now(timezone.utc)
    )


class BillingService:
    """Billing collaborator used by the provisioner."""

    def create_subscription(self, cur, team, plan, status='free'):
        return create_subscription(cur, team['id'], plan, status)
