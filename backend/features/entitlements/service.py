"""
backend/features/entitlements/service.py

Read-side entitlement summaries for the usage endpoints.

Handles:
- Subscription status with per-class limits, usage and remaining
- Pricing plan catalogue relative to the caller's current plan

Nothing here writes usage counters. An elapsed window is reported as
reset without touching the row; the next committed generation resets it.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from backend.features.entitlements import store
from backend.features.entitlements.policy import EntitlementPolicyConfig, next_tier, period_expired
from backend.models.entitlement import Tier


logger = logging.getLogger(__name__)

RECOMMENDED_PLAN = Tier.CREATOR.value

# Prices are in cents per month. Limits come from EntitlementPolicyConfig.
PLAN_CATALOGUE: Dict[str, Dict[str, Any]] = {
    "free": {
        "display_name": "Free",
        "price": 0,
        "trial_period_days": 0,
        "has_advanced_analytics": False,
        "has_priority_support": False,
        "features": ["Draft generations", "Basic hook frameworks", "Community support"],
    },
    "starter": {
        "display_name": "Starter",
        "price": 900,
        "trial_period_days": 7,
        "has_advanced_analytics": False,
        "has_priority_support": False,
        "features": ["Premium generations", "Unlimited draft generations", "All hook frameworks", "Email support"],
    },
    "creator": {
        "display_name": "Creator",
        "price": 1500,
        "trial_period_days": 7,
        "has_advanced_analytics": True,
        "has_priority_support": False,
        "features": ["Premium generations", "Unlimited draft generations", "Advanced analytics", "Hook performance tracking"],
    },
    "pro": {
        "display_name": "Pro",
        "price": 2400,
        "trial_period_days": 7,
        "has_advanced_analytics": True,
        "has_priority_support": True,
        "features": ["Premium generations", "Unlimited draft generations", "Priority support", "Custom hook templates"],
    },
    "teams": {
        "display_name": "Teams",
        "price": None,
        "trial_period_days": 0,
        "has_advanced_analytics": True,
        "has_priority_support": True,
        "features": ["Unlimited premium generations", "Unlimited draft generations", "Team seats", "Priority support"],
    },
}


def _plan_limits(tier: Tier, config: EntitlementPolicyConfig) -> Dict[str, Optional[int]]:
    if tier == Tier.FREE:
        return {"draft": config.free_monthly_draft_limit, "premium": 0}
    return {"draft": None, "premium": config.premium_cap(tier)}


def _format_price(price: Optional[int]) -> str:
    if price is None:
        return "Contact us"
    if price == 0:
        return "Free"
    return f"${price // 100}/month"


def _remaining(limit: Optional[int], used: int) -> Optional[int]:
    if limit is None:
        return None
    return max(0, limit - used)


def get_subscription_status(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    config: Optional[EntitlementPolicyConfig] = None,
) -> Dict[str, Any]:
    """Plan, status and per-class usage for one user. Unknown users are provisioned on free."""
    cfg = config or EntitlementPolicyConfig.from_settings()
    current = now or datetime.now(timezone.utc)
    entitlement = store.get_or_create_user_entitlement(user_id, now=now)

    # Lapsed paid subscriptions are served under free limits
    effective_tier = Tier.FREE if entitlement.is_free_or_inactive else entitlement.known_tier
    expired = period_expired(entitlement.period_reset_at, current, cfg.period_days)
    draft_used = 0 if expired else entitlement.draft_generations_used
    premium_used = 0 if expired else entitlement.pro_generations_used

    if effective_tier is None:
        logger.warning(
            "[entitlement] status requested for unknown tier",
            extra={"user_id": user_id, "tier": entitlement.tier},
        )
        limits = {"draft": 0, "premium": 0}
    else:
        limits = _plan_limits(effective_tier, cfg)

    upgrade_target = next_tier(effective_tier) if effective_tier else None
    return {
        "user_id": user_id,
        "plan": entitlement.tier,
        "effective_plan": effective_tier.value if effective_tier else None,
        "status": entitlement.subscription_status or ("active" if entitlement.is_premium else "inactive"),
        "is_active": entitlement.subscription_active,
        "is_trialing": entitlement.is_trialing,
        "trial_ends_at": entitlement.current_period_end if entitlement.is_trialing else None,
        "billing_period_end": entitlement.current_period_end,
        "period_reset_at": entitlement.period_reset_at,
        "period_expired": expired,
        "limits": {
            "draft": {
                "limit": limits["draft"],
                "used": draft_used,
                "remaining": _remaining(limits["draft"], draft_used),
            },
            "premium": {
                "limit": limits["premium"],
                "used": premium_used,
                "remaining": _remaining(limits["premium"], premium_used),
            },
        },
        "can_upgrade": upgrade_target is not None,
        "next_plan": upgrade_target.value if upgrade_target else None,
    }


def get_pricing_plans(
    current_plan: Optional[str] = None,
    *,
    config: Optional[EntitlementPolicyConfig] = None,
) -> Dict[str, Any]:
    """Plan catalogue, flagged against the caller's current plan."""
    cfg = config or EntitlementPolicyConfig.from_settings()
    current = (current_plan or Tier.FREE.value).lower()
    plans = []
    for tier in Tier:
        entry = PLAN_CATALOGUE[tier.value]
        limits = _plan_limits(tier, cfg)
        plans.append({
            "name": tier.value,
            "display_name": entry["display_name"],
            "price": entry["price"],
            "price_formatted": _format_price(entry["price"]),
            "currency": "usd",
            "interval": "month",
            "draft_generations_limit": limits["draft"],
            "premium_generations_limit": limits["premium"],
            "trial_period_days": entry["trial_period_days"],
            "has_advanced_analytics": entry["has_advanced_analytics"],
            "has_priority_support": entry["has_priority_support"],
            "features": list(entry["features"]),
            "is_current": tier.value == current,
            "is_popular": tier.value == RECOMMENDED_PLAN,
        })
    return {"plans": plans, "current_plan": current, "recommended_plan": RECOMMENDED_PLAN}
