"""
Unit tests for the plan catalog.
"""

import pytest

from app.domain.plans import (
    PLAN_CATALOG,
    UNLIMITED_QUOTA,
    PlanDefinition,
    PlanTier,
    get_plan,
    list_plans,
    parse_tier,
    plan_rank,
    validate_catalog,
)
from app.infrastructure.exceptions import UnknownPlanError


class TestPlanLookup:

    def test_quotas_match_tiers(self):
        assert get_plan("basic").monthly_quota == 10
        assert get_plan("standard").monthly_quota == 20
        assert get_plan(PlanTier.PRO).monthly_quota == UNLIMITED_QUOTA

    def test_only_pro_is_unlimited_and_pro(self):
        assert [p.tier for p in list_plans() if p.is_unlimited] == [PlanTier.PRO]
        assert [p.tier for p in list_plans() if p.is_pro] == [PlanTier.PRO]

    def test_display_prices_in_pence(self):
        assert [p.display_price_pence for p in list_plans()] == [300, 500, 3000]
        assert all(p.currency == "GBP" for p in list_plans())

    def test_rank_ordering(self):
        assert plan_rank("basic") < plan_rank("standard") < plan_rank("pro")

    def test_list_plans_sorted_by_rank(self):
        assert [p.tier for p in list_plans()] == [
            PlanTier.BASIC,
            PlanTier.STANDARD,
            PlanTier.PRO,
        ]

    def test_parse_tier_normalizes_case_and_whitespace(self):
        assert parse_tier(" Standard ") == PlanTier.STANDARD

    @pytest.mark.parametrize("raw", ["free", "", "enterprise", "premium"])
    def test_unknown_tier_raises(self, raw):
        with pytest.raises(UnknownPlanError):
            get_plan(raw)

    def test_unknown_tier_carries_tier_in_details(self):
        with pytest.raises(UnknownPlanError) as exc_info:
            parse_tier("gold")
        assert exc_info.value.details["tier"] == "gold"


class TestValidateCatalog:

    def test_shipped_catalog_is_valid(self):
        validate_catalog()

    def test_missing_tier_is_rejected(self):
        catalog = {k: v for k, v in PLAN_CATALOG.items() if k != PlanTier.PRO}
        with pytest.raises(UnknownPlanError, match="missing"):
            validate_catalog(catalog)

    def test_non_positive_quota_is_rejected(self):
        catalog = dict(PLAN_CATALOG)
        catalog[PlanTier.BASIC] = PLAN_CATALOG[PlanTier.BASIC].model_copy(
            update={"monthly_quota": 0}
        )
        with pytest.raises(UnknownPlanError, match="non-positive"):
            validate_catalog(catalog)

    def test_unlimited_flag_must_match_sentinel(self):
        catalog = dict(PLAN_CATALOG)
        catalog[PlanTier.PRO] = PLAN_CATALOG[PlanTier.PRO].model_copy(
            update={"monthly_quota": 9999}
        )
        with pytest.raises(UnknownPlanError, match="unlimited"):
            validate_catalog(catalog)

    def test_duplicate_rank_is_rejected(self):
        catalog = dict(PLAN_CATALOG)
        catalog[PlanTier.STANDARD] = PLAN_CATALOG[PlanTier.STANDARD].model_copy(
            update={"rank": 1}
        )
        with pytest.raises(UnknownPlanError, match="rank"):
            validate_catalog(catalog)

    def test_mismatched_key_is_rejected(self):
        catalog = dict(PLAN_CATALOG)
        catalog[PlanTier.BASIC] = PlanDefinition(
            tier=PlanTier.STANDARD,
            name="Wrong",
            rank=9,
            monthly_quota=5,
            display_price_pence=100,
        )
        with pytest.raises(UnknownPlanError):
            validate_catalog(catalog)
