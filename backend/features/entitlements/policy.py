"""
backend/features/entitlements/policy.py

Pure entitlement decision over a freshly-read UserEntitlement.

evaluate() performs no I/O and never mutates storage. A period that has
rolled over is treated as reset for the decision only; the persistence
gateway commits the reset together with the usage increment.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional
import logging

from backend.core.config import settings, Settings
from backend.models.entitlement import ModelClass, Tier, UserEntitlement


logger = logging.getLogger(__name__)

UPGRADE_PATH = {
    Tier.FREE: Tier.STARTER,
    Tier.STARTER: Tier.CREATOR,
    Tier.CREATOR: Tier.PRO,
    Tier.PRO: Tier.TEAMS,
    Tier.TEAMS: None,
}

CONTACT_SUPPORT_REASON = "Unable to determine subscription status. Please contact support."


@dataclass(frozen=True)
class EntitlementPolicyConfig:
    """Product numbers for the tier matrix. None as a cap means unlimited."""
    free_monthly_draft_limit: int = 5
    premium_caps: Mapping[Tier, Optional[int]] = field(default_factory=lambda: {
        Tier.STARTER: 100,
        Tier.CREATOR: 200,
        Tier.PRO: 400,
        Tier.TEAMS: None,
    })
    period_days: int = 30

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "EntitlementPolicyConfig":
        cfg = cfg or settings
        return cls(
            free_monthly_draft_limit=cfg.FREE_MONTHLY_DRAFT_LIMIT,
            premium_caps={
                Tier.STARTER: cfg.STARTER_PREMIUM_CAP,
                Tier.CREATOR: cfg.CREATOR_PREMIUM_CAP,
                Tier.PRO: cfg.PRO_PREMIUM_CAP,
                Tier.TEAMS: cfg.TEAMS_PREMIUM_CAP,
            },
            period_days=cfg.USAGE_PERIOD_DAYS,
        )

    @property
    def period(self) -> timedelta:
        return timedelta(days=self.period_days)

    def premium_cap(self, tier: Tier) -> Optional[int]:
        return self.premium_caps.get(tier)


class DecisionStatus(str, Enum):
    ALLOW = "ALLOW"
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
    UPGRADE_REQUIRED = "UPGRADE_REQUIRED"
    CONTACT_SUPPORT = "CONTACT_SUPPORT"


@dataclass(frozen=True)
class UpgradeHint:
    next_tier: Optional[str]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"next_tier": self.next_tier, "message": self.message}


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    status: DecisionStatus
    reason: str
    model_class: ModelClass
    tier: str
    remaining: Optional[int]  # for the requested class; None = unlimited
    remaining_draft: Optional[int]
    remaining_premium: Optional[int]
    period_expired: bool = False
    upgrade_required: bool = False
    upgrade_hint: Optional[UpgradeHint] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "status": self.status.value,
            "reason": self.reason,
            "model_class": self.model_class.value,
            "tier": self.tier,
            "remaining": self.remaining,
            "remaining_draft": self.remaining_draft,
            "remaining_premium": self.remaining_premium,
            "period_expired": self.period_expired,
            "upgrade_required": self.upgrade_required,
            "upgrade_hint": self.upgrade_hint.to_dict() if self.upgrade_hint else None,
        }


def _normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if getattr(now, "tzinfo", None) is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def period_expired(period_reset_at: Optional[datetime], now: Optional[datetime] = None, period_days: int = 30) -> bool:
    """True when the rolling window has elapsed. A missing reset timestamp counts as expired."""
    if period_reset_at is None:
        return True
    current = _normalize_now(now)
    reset_at = _normalize_now(period_reset_at)
    return current - reset_at >= timedelta(days=period_days)


def next_tier(tier: Optional[Tier]) -> Optional[Tier]:
    if tier is None:
        return None
    return UPGRADE_PATH.get(tier)


def upgrade_hint_for(tier: Optional[Tier], config: EntitlementPolicyConfig) -> UpgradeHint:
    target = next_tier(tier)
    if target is None:
        return UpgradeHint(next_tier=None, message="You are on the highest plan. Please contact support for more capacity.")
    cap = config.premium_cap(target)
    if cap is None:
        detail = "unlimited premium generations"
    else:
        detail = f"{cap} premium generations per month"
    return UpgradeHint(next_tier=target.value, message=f"Upgrade to {target.value.capitalize()} for {detail}")


def _remaining(limit: Optional[int], used: int, expired: bool) -> Optional[int]:
    if limit is None:
        return None
    effective_used = 0 if expired else used
    return limit - effective_used


def _clamp(value: Optional[int]) -> Optional[int]:
    return None if value is None else max(0, value)


def _contact_support(entitlement: UserEntitlement, model_class: ModelClass, expired: bool) -> EntitlementDecision:
    logger.warning(
        "[entitlement] CONTACT_SUPPORT",
        extra={
            "user_id": entitlement.user_id,
            "tier": entitlement.tier,
            "subscription_status": entitlement.subscription_status,
            "is_premium": entitlement.is_premium,
        },
    )
    return EntitlementDecision(
        allowed=False,
        status=DecisionStatus.CONTACT_SUPPORT,
        reason=CONTACT_SUPPORT_REASON,
        model_class=model_class,
        tier=entitlement.tier,
        remaining=0,
        remaining_draft=0,
        remaining_premium=0,
        period_expired=expired,
        upgrade_required=False,
        upgrade_hint=None,
    )


def evaluate(
    entitlement: UserEntitlement,
    requested_model_class: ModelClass,
    *,
    now: Optional[Any] = None,
    config: Optional[EntitlementPolicyConfig] = None,
) -> EntitlementDecision:
    """Decide whether the user may run one generation of requested_model_class.

    Callers must pass a freshly-read entitlement; the decision is only as good
    as the snapshot. The persistence gateway re-validates the cap atomically.
    """
    cfg = config or EntitlementPolicyConfig.from_settings()
    model_class = ModelClass(requested_model_class)
    normalized_now = _normalize_now(now)
    expired = period_expired(entitlement.period_reset_at, normalized_now, cfg.period_days)
    tier = entitlement.known_tier

    if entitlement.is_free_or_inactive:
        if model_class == ModelClass.PREMIUM:
            hint = upgrade_hint_for(Tier.FREE, cfg)
            logger.info(
                "[entitlement] UPGRADE_REQUIRED",
                extra={"user_id": entitlement.user_id, "tier": entitlement.tier, "model_class": model_class.value},
            )
            return EntitlementDecision(
                allowed=False,
                status=DecisionStatus.UPGRADE_REQUIRED,
                reason="Premium model requires an upgrade. Free plans include draft generations only.",
                model_class=model_class,
                tier=entitlement.tier,
                remaining=0,
                remaining_draft=_clamp(_remaining(cfg.free_monthly_draft_limit, entitlement.draft_generations_used, expired)),
                remaining_premium=0,
                period_expired=expired,
                upgrade_required=True,
                upgrade_hint=hint,
            )

        remaining = _remaining(cfg.free_monthly_draft_limit, entitlement.draft_generations_used, expired)
        allowed = remaining > 0
        if not allowed:
            hint = upgrade_hint_for(Tier.FREE, cfg)
            logger.warning(
                "[entitlement] QUOTA_EXHAUSTED",
                extra={
                    "user_id": entitlement.user_id,
                    "tier": entitlement.tier,
                    "model_class": model_class.value,
                    "draft_generations_used": entitlement.draft_generations_used,
                    "limit": cfg.free_monthly_draft_limit,
                },
            )
            return EntitlementDecision(
                allowed=False,
                status=DecisionStatus.QUOTA_EXHAUSTED,
                reason="Monthly draft limit reached. Upgrade for premium generations.",
                model_class=model_class,
                tier=entitlement.tier,
                remaining=0,
                remaining_draft=0,
                remaining_premium=0,
                period_expired=expired,
                upgrade_required=True,
                upgrade_hint=hint,
            )

        return EntitlementDecision(
            allowed=True,
            status=DecisionStatus.ALLOW,
            reason=f"{remaining} draft generations remaining this period",
            model_class=model_class,
            tier=entitlement.tier,
            remaining=remaining,
            remaining_draft=remaining,
            remaining_premium=0,
            period_expired=expired,
        )

    # Active subscription from here on
    if tier is None or tier == Tier.FREE:
        return _contact_support(entitlement, model_class, expired)

    cap = cfg.premium_cap(tier)
    remaining_premium = _remaining(cap, entitlement.pro_generations_used, expired)

    if model_class == ModelClass.DRAFT:
        return EntitlementDecision(
            allowed=True,
            status=DecisionStatus.ALLOW,
            reason="Unlimited draft generations",
            model_class=model_class,
            tier=entitlement.tier,
            remaining=None,
            remaining_draft=None,
            remaining_premium=_clamp(remaining_premium),
            period_expired=expired,
        )

    if remaining_premium is not None and remaining_premium <= 0:
        hint = upgrade_hint_for(tier, cfg)
        logger.warning(
            "[entitlement] QUOTA_EXHAUSTED",
            extra={
                "user_id": entitlement.user_id,
                "tier": entitlement.tier,
                "model_class": model_class.value,
                "pro_generations_used": entitlement.pro_generations_used,
                "limit": cap,
            },
        )
        return EntitlementDecision(
            allowed=False,
            status=DecisionStatus.QUOTA_EXHAUSTED,
            reason=f"Premium limit reached ({entitlement.pro_generations_used}/{cap} this period)",
            model_class=model_class,
            tier=entitlement.tier,
            remaining=0,
            remaining_draft=None,
            remaining_premium=0,
            period_expired=expired,
            upgrade_required=True,
            upgrade_hint=hint,
        )

    reason = (
        "Unlimited premium generations"
        if remaining_premium is None
        else f"{remaining_premium} premium generations remaining this period"
    )
    return EntitlementDecision(
        allowed=True,
        status=DecisionStatus.ALLOW,
        reason=reason,
        model_class=model_class,
        tier=entitlement.tier,
        remaining=remaining_premium,
        remaining_draft=None,
        remaining_premium=remaining_premium,
        period_expired=expired,
    )
