"""
Tenant Provisioner

Turns an authenticated user plus a validated onboarding form into a team,
its subscription, a company and the user's role, atomically.
"""

import logging
from typing import Any, Dict

from auth.roles import PLATFORM_PERMISSION, ROLES
from billing.plans import BILLING_CYCLES, resolve_plan_tag
from errors import PlanNotFoundError
from events import COMPANY_PROVISIONED
from jobs.install_modules import INSTALL_DEFAULT_MODULES
from onboarding.validation import COMPANY_TYPES

logger = logging.getLogger(__name__)


class OnboardingService:

    def __init__(self, db, tenants, api_clients, plans, billing, users, roles, queue, events):
        self.db = db
        self.tenants = tenants
        self.api_clients = api_clients
        self.plans = plans
        self.billing = billing
        self.users = users
        self.roles = roles
        self.queue = queue
        self.events = events

    def website_exists(self, url: str) -> bool:
        """Check if a company website is already taken."""
        with self.db.transaction() as tx:
            return self.tenants.website_exists(tx.cursor, url)

    def options(self) -> Dict[str, Any]:
        """Choices offered by the onboarding form."""
        return {
            'types': [{'value': k, 'label': v} for k, v in COMPANY_TYPES.items()],
            'roles': [{'value': k, 'label': v} for k, v in ROLES.items()],
            'billing_cycles': list(BILLING_CYCLES),
        }

    def provision(self, user: Dict[str, Any], form: Dict[str, Any]) -> Dict[str, Any]:
        """
        Provision a full company for a user.

        Flow:
        1. Create a new team owned by the user
        2. Resolve the billing plan from rooms and billing cycle
        3. Create the team's subscription (free until billing activates it)
        4. Create the company under the team, and its API client
        5. Schedule default module installation (after commit)
        6. Attach the company to the user, set their language
        7. Assign the chosen role and the subscription permission
        8. Publish company-provisioned (after commit)

        All writes happen in one transaction; on any failure nothing is kept.

        Raises:
            DuplicateResource: the website is already used by another company
            PlanNotFoundError: no plan matches the resolved tag
        """
        user_id = user['id']
        try:
            with self.db.transaction() as tx:
                cur = tx.cursor

                team = self.tenants.create_team(cur, user_id)

                plan_tag = resolve_plan_tag(form['capacity'], form.get('billing_cycle'))
                plan = self.plans.get_by_tag(plan_tag)
                if not plan:
                    raise PlanNotFoundError(plan_tag)

                subscription = self.billing.create_subscription(cur, team, plan, 'free')

                company = self.tenants.create_company(cur, team, user_id, form)
                api_client, private_key = self.api_clients.create(cur, company)

                tx.on_commit(self._schedule_module_install, company['id'], user_id)

                user = self.users.update(cur, user_id, {
                    'company_id': company['id'],
                    'current_company_id': company['id'],
                    'team_id': team['id'],
                    'language_id': form['language'],
                })

                self.roles.assign_role(cur, user_id, form['role'])
                self.roles.grant_permission(cur, user_id, PLATFORM_PERMISSION)

                tx.on_commit(self.events.publish, COMPANY_PROVISIONED,
                             company=company, subscription=subscription, user=user)

        except Exception as e:
            logger.error(
                '[ONBOARD] Provisioning failed: %s', e,
                exc_info=True,
                extra={'user_id': user_id, 'operation': 'provision'},
            )
            raise

        logger.info('[ONBOARD] Provisioned company %s (%s) for user %s',
                    company['id'], plan_tag, user_id)
        return {
            'company': company,
            'subscription': subscription,
            'plan_tag': plan_tag,
            'api_client': dict(api_client, private_key=private_key),
        }

    def _schedule_module_install(self, company_id, user_id):
        """Enqueue the install job. Failures are logged, never raised."""
        try:
            self.queue.enqueue(INSTALL_DEFAULT_MODULES, {'company_id': company_id, 'user_id': user_id})
        except Exception:
            logger.exception('[ONBOARD] Could not enqueue module install for company %s', company_id)
