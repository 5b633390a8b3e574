"""
backend/models/entitlement.py

Entitlement snapshot for a single user.

A UserEntitlement is the freshly-read state of one app_users row: tier,
subscription flags, usage counters and the personalization profile. It is
immutable; the policies decide over it and only the persistence gateway
writes counters back.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict


class Tier(str, Enum):
    """Known subscription tiers, cheapest first."""
    FREE = "free"
    STARTER = "starter"
    CREATOR = "creator"
    PRO = "pro"
    TEAMS = "teams"


PAID_TIERS = (Tier.STARTER, Tier.CREATOR, Tier.PRO, Tier.TEAMS)

ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})


class ModelClass(str, Enum):
    """Coarse quality/cost bucket of the generative backend."""
    DRAFT = "draft"
    PREMIUM = "premium"


class SafetyLevel(str, Enum):
    FAMILY_FRIENDLY = "family-friendly"
    STANDARD = "standard"
    EDGY = "edgy"


class PersonalizationContext(BaseModel):
    """Brand context used by the prompt builder. banned_terms is always a tuple."""
    model_config = ConfigDict(frozen=True)

    company: Optional[str] = None
    industry: Optional[str] = None
    voice: Optional[str] = None
    audience: Optional[str] = None
    banned_terms: Tuple[str, ...] = ()
    safety: SafetyLevel = SafetyLevel.STANDARD

    @property
    def has_brand_context(self) -> bool:
        return bool(self.company)


class UserEntitlement(BaseModel):
    """
    Entitlement row for one user.

    tier is kept as free text so that an unrecognized tier name read from the
    store reaches the policy (which denies it) instead of failing the read.
    used_credits may exceed free_credits; nothing clamps it.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    tier: str = Tier.FREE.value
    subscription_status: Optional[str] = None
    is_premium: bool = False
    free_credits: int = 5
    used_credits: int = 0
    draft_generations_used: int = 0
    pro_generations_used: int = 0
    period_reset_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    personalization: PersonalizationContext = PersonalizationContext()

    @property
    def subscription_active(self) -> bool:
        status = (self.subscription_status or "").lower()
        return status in ACTIVE_SUBSCRIPTION_STATUSES or self.is_premium

    @property
    def known_tier(self) -> Optional[Tier]:
        try:
            return Tier((self.tier or "").lower())
        except ValueError:
            return None

    @property
    def is_free_or_inactive(self) -> bool:
        """Free tier, or a paid tier whose subscription lapsed."""
        return not self.subscription_active

    @property
    def is_trialing(self) -> bool:
        return (self.subscription_status or "").lower() == "trialing"
