"""Tests for plan definitions and plan tag resolution."""

import pytest

from billing.plans import PLANS, PlanCatalog, get_plan, get_plan_by_stripe_price, resolve_plan_tag


class TestResolvePlanTag:

    @pytest.mark.parametrize('capacity,cycle,expected', [
        (1, 'monthly', 'starter-monthly'),
        (15, 'monthly', 'starter-monthly'),
        (20, 'yearly', 'starter-yearly'),
        (21, 'monthly', 'spark-monthly'),
        (21, 'yearly', 'spark-yearly'),
        (500, 'yearly', 'spark-yearly'),
    ])
    def test_tier_boundary(self, capacity, cycle, expected):
        assert resolve_plan_tag(capacity, cycle) == expected

    @pytest.mark.parametrize('cycle', ['bogus', '', None, 'YEARLY', 'weekly'])
    def test_unknown_cycle_falls_back_to_monthly(self, cycle):
        assert resolve_plan_tag(5, cycle) == 'starter-monthly'

    def test_default_cycle(self):
        assert resolve_plan_tag(30) == 'spark-monthly'

    def test_every_resolved_tag_has_a_plan(self):
        """Test the resolver never produces a tag the catalog lacks."""
        for capacity in (1, 20, 21, 1000):
            for cycle in ('monthly', 'yearly', 'bogus'):
                assert resolve_plan_tag(capacity, cycle) in PLANS


class TestPlanCatalog:

    def test_get_by_tag(self):
        plan = PlanCatalog().get_by_tag('spark-yearly')
        assert plan['name'] == 'Spark'
        assert plan['interval'] == 'year'

    def test_unknown_tag(self):
        assert PlanCatalog().get_by_tag('enterprise-monthly') is None
        assert get_plan('enterprise-monthly') is None

    def test_custom_catalog(self):
        assert PlanCatalog(plans={}).get_by_tag('starter-monthly') is None

    def test_lookup_by_stripe_price(self):
        price = PLANS['starter-yearly']['stripe_price_id']
        assert get_plan_by_stripe_price(price)['tag'] == 'starter-yearly'
        assert get_plan_by_stripe_price('price_unknown') is None
