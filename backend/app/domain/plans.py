"""
Plan Catalog

Static definition of the subscription tiers. This module is the only place
quota numbers and prices live; everything else looks them up here.
"""

from enum import Enum
from typing import Mapping, Union

from pydantic import BaseModel

from app.infrastructure.exceptions import UnknownPlanError


# Stands in for "unlimited" so quota arithmetic never needs infinity.
# Fits a signed 32-bit INTEGER column.
UNLIMITED_QUOTA = 2_147_483_647


class PlanTier(str, Enum):
    """Subscription tier levels, in ascending rank."""
    BASIC = "basic"
    STANDARD = "standard"
    PRO = "pro"


class PlanDefinition(BaseModel):
    """Catalog entry for a single tier."""
    tier: PlanTier
    name: str
    rank: int
    monthly_quota: int
    is_unlimited: bool = False
    is_pro: bool = False
    display_price_pence: int
    currency: str = "GBP"
    features: list[str] = []

    model_config = {"frozen": True}


PLAN_CATALOG: Mapping[PlanTier, PlanDefinition] = {
    PlanTier.BASIC: PlanDefinition(
        tier=PlanTier.BASIC,
        name="Basic",
        rank=1,
        monthly_quota=10,
        display_price_pence=300,
        features=[
            "10 CV conversions per month",
            "Tailored to any target role",
        ],
    ),
    PlanTier.STANDARD: PlanDefinition(
        tier=PlanTier.STANDARD,
        name="Standard",
        rank=2,
        monthly_quota=20,
        display_price_pence=500,
        features=[
            "20 CV conversions per month",
            "Tailored to any target role",
            "Conversion history",
        ],
    ),
    PlanTier.PRO: PlanDefinition(
        tier=PlanTier.PRO,
        name="Pro",
        rank=3,
        monthly_quota=UNLIMITED_QUOTA,
        is_unlimited=True,
        is_pro=True,
        display_price_pence=3000,
        features=[
            "Unlimited CV conversions",
            "Interviewer analysis",
            "Organizational insights",
            "Priority support",
        ],
    ),
}


def parse_tier(value: Union[str, PlanTier]) -> PlanTier:
    """Coerce a raw tier string into a PlanTier."""
    if isinstance(value, PlanTier):
        return value
    try:
        return PlanTier(str(value).strip().lower())
    except ValueError:
        raise UnknownPlanError(f"Unknown plan tier '{value}'", tier=str(value))


def get_plan(tier: Union[str, PlanTier]) -> PlanDefinition:
    """Look up the catalog entry for a tier."""
    plan = PLAN_CATALOG.get(parse_tier(tier))
    if plan is None:
        raise UnknownPlanError(f"Plan '{tier}' is not in the catalog", tier=str(tier))
    return plan


def plan_rank(tier: Union[str, PlanTier]) -> int:
    """Catalog ordering: basic < standard < pro."""
    return get_plan(tier).rank


def list_plans() -> list[PlanDefinition]:
    """All plans ordered by rank."""
    return sorted(PLAN_CATALOG.values(), key=lambda plan: plan.rank)


def validate_catalog(catalog: Mapping[PlanTier, PlanDefinition] = PLAN_CATALOG) -> None:
    """
    Check catalog consistency. Called once at startup.

    Raises:
        UnknownPlanError: if any tier is missing or an entry is malformed
    """
    missing = [tier.value for tier in PlanTier if tier not in catalog]
    if missing:
        raise UnknownPlanError(f"Plan catalog is missing tiers: {', '.join(missing)}")

    ranks = set()
    for tier, plan in catalog.items():
        if plan.tier != tier:
            raise UnknownPlanError(
                f"Catalog key '{tier.value}' holds plan '{plan.tier.value}'",
                tier=tier.value,
            )
        if plan.monthly_quota <= 0:
            raise UnknownPlanError(
                f"Plan '{tier.value}' has a non-positive quota",
                tier=tier.value,
            )
        if plan.is_unlimited != (plan.monthly_quota == UNLIMITED_QUOTA):
            raise UnknownPlanError(
                f"Plan '{tier.value}' unlimited flag disagrees with its quota",
                tier=tier.value,
            )
        if plan.rank in ranks:
            raise UnknownPlanError(
                f"Plan '{tier.value}' shares rank {plan.rank} with another plan",
                tier=tier.value,
            )
        ranks.add(plan.rank)
