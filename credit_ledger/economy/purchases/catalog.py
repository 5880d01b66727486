from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PlanSpec:
    product_id: str
    title: str
    credits: int
    validity_days: int


PLANS: dict[str, PlanSpec] = {
    "weekly": PlanSpec(
        product_id="weekly",
        title="Weekly",
        credits=100,
        validity_days=7,
    ),
    "monthly": PlanSpec(
        product_id="monthly",
        title="Monthly",
        credits=400,
        validity_days=30,
    ),
    "yearly": PlanSpec(
        product_id="yearly",
        title="Yearly",
        credits=1000,
        validity_days=365,
    ),
}

PLAN_ALIASES: dict[str, str] = {
    "year": "yearly",
}


def normalize_product_id(product_id: str) -> str:
    key = product_id.strip().lower()
    return PLAN_ALIASES.get(key, key)


def get_plan(product_id: str | None) -> PlanSpec | None:
    if not product_id:
        return None
    return PLANS.get(normalize_product_id(product_id))


def get_plan_credits(product_id: str | None) -> int:
    plan = get_plan(product_id)
    return plan.credits if plan is not None else 0
