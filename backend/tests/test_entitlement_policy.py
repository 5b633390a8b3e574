"""
Tests for the entitlement policy (pure decision over a UserEntitlement).
"""
from datetime import datetime, timedelta, timezone

import pytest

from backend.features.entitlements.policy import (
    DecisionStatus,
    EntitlementPolicyConfig,
    evaluate,
    next_tier,
    period_expired,
)
from backend.models.entitlement import ModelClass, Tier, UserEntitlement

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def entitlement(**kwargs) -> UserEntitlement:
    kwargs.setdefault("user_id", "user_1")
    kwargs.setdefault("period_reset_at", NOW - timedelta(days=3))
    return UserEntitlement(**kwargs)


def paid(tier: str, **kwargs) -> UserEntitlement:
    return entitlement(tier=tier, subscription_status="active", **kwargs)


class TestFreeTier:
    def test_first_draft_is_allowed_with_full_allowance(self):
        decision = evaluate(entitlement(), ModelClass.DRAFT, now=NOW)
        assert decision.allowed
        assert decision.status == DecisionStatus.ALLOW
        assert decision.remaining == 5
        assert decision.remaining_premium == 0

    def test_last_draft_is_allowed(self):
        decision = evaluate(entitlement(draft_generations_used=4), ModelClass.DRAFT, now=NOW)
        assert decision.allowed
        assert decision.remaining == 1

    def test_exhausted_drafts_are_denied_with_starter_hint(self):
        decision = evaluate(entitlement(draft_generations_used=5), ModelClass.DRAFT, now=NOW)
        assert not decision.allowed
        assert decision.status == DecisionStatus.QUOTA_EXHAUSTED
        assert decision.remaining == 0
        assert decision.upgrade_required
        assert decision.upgrade_hint.next_tier == "starter"

    def test_overdrawn_counter_is_denied_not_negative(self):
        decision = evaluate(entitlement(draft_generations_used=9), ModelClass.DRAFT, now=NOW)
        assert not decision.allowed
        assert decision.remaining == 0

    def test_elapsed_window_restores_full_allowance(self):
        ent = entitlement(draft_generations_used=5, period_reset_at=NOW - timedelta(days=30))
        decision = evaluate(ent, ModelClass.DRAFT, now=NOW)
        assert decision.allowed
        assert decision.remaining == 5
        assert decision.period_expired

    def test_window_one_second_short_of_thirty_days_is_not_reset(self):
        ent = entitlement(draft_generations_used=5, period_reset_at=NOW - timedelta(days=30) + timedelta(seconds=1))
        decision = evaluate(ent, ModelClass.DRAFT, now=NOW)
        assert not decision.allowed
        assert not decision.period_expired

    def test_missing_reset_timestamp_counts_as_expired(self):
        ent = entitlement(draft_generations_used=5, period_reset_at=None)
        decision = evaluate(ent, ModelClass.DRAFT, now=NOW)
        assert decision.allowed
        assert decision.remaining == 5

    def test_premium_requires_upgrade(self):
        decision = evaluate(entitlement(), ModelClass.PREMIUM, now=NOW)
        assert not decision.allowed
        assert decision.status == DecisionStatus.UPGRADE_REQUIRED
        assert decision.upgrade_required
        assert decision.upgrade_hint.next_tier == "starter"
        assert "upgrade" in decision.reason.lower()

    def test_lapsed_paid_subscription_follows_free_rules(self):
        lapsed = entitlement(tier="pro", subscription_status="canceled", draft_generations_used=2)
        premium = evaluate(lapsed, ModelClass.PREMIUM, now=NOW)
        draft = evaluate(lapsed, ModelClass.DRAFT, now=NOW)
        assert premium.status == DecisionStatus.UPGRADE_REQUIRED
        assert draft.allowed
        assert draft.remaining == 3

    def test_used_credits_above_free_credits_is_tolerated(self):
        ent = entitlement(free_credits=5, used_credits=12, draft_generations_used=1)
        assert evaluate(ent, ModelClass.DRAFT, now=NOW).allowed


class TestPaidTiers:
    @pytest.mark.parametrize("tier", ["starter", "creator", "pro", "teams"])
    def test_drafts_are_unlimited(self, tier):
        decision = evaluate(paid(tier, draft_generations_used=10_000), ModelClass.DRAFT, now=NOW)
        assert decision.allowed
        assert decision.remaining is None

    @pytest.mark.parametrize("tier,cap", [("starter", 100), ("creator", 200), ("pro", 400)])
    def test_premium_is_allowed_below_cap(self, tier, cap):
        decision = evaluate(paid(tier, pro_generations_used=cap - 1), ModelClass.PREMIUM, now=NOW)
        assert decision.allowed
        assert decision.remaining == 1

    @pytest.mark.parametrize("tier,cap,upgrade", [("starter", 100, "creator"), ("creator", 200, "pro"), ("pro", 400, "teams")])
    def test_premium_at_cap_is_denied_with_next_tier_hint(self, tier, cap, upgrade):
        decision = evaluate(paid(tier, pro_generations_used=cap), ModelClass.PREMIUM, now=NOW)
        assert not decision.allowed
        assert decision.status == DecisionStatus.QUOTA_EXHAUSTED
        assert decision.upgrade_hint.next_tier == upgrade

    def test_teams_premium_is_unlimited(self):
        decision = evaluate(paid("teams", pro_generations_used=50_000), ModelClass.PREMIUM, now=NOW)
        assert decision.allowed
        assert decision.remaining is None

    def test_premium_cap_resets_with_the_window(self):
        ent = paid("starter", pro_generations_used=100, period_reset_at=NOW - timedelta(days=31))
        decision = evaluate(ent, ModelClass.PREMIUM, now=NOW)
        assert decision.allowed
        assert decision.remaining == 100

    def test_trialing_counts_as_active(self):
        ent = entitlement(tier="creator", subscription_status="trialing")
        assert evaluate(ent, ModelClass.PREMIUM, now=NOW).allowed

    def test_legacy_premium_flag_counts_as_active(self):
        ent = entitlement(tier="pro", is_premium=True)
        assert evaluate(ent, ModelClass.PREMIUM, now=NOW).allowed

    def test_caps_come_from_config(self):
        cfg = EntitlementPolicyConfig(premium_caps={Tier.STARTER: 2, Tier.CREATOR: 3, Tier.PRO: 4, Tier.TEAMS: None})
        decision = evaluate(paid("starter", pro_generations_used=2), ModelClass.PREMIUM, now=NOW, config=cfg)
        assert not decision.allowed


class TestInconsistentState:
    def test_unknown_tier_with_active_subscription_is_denied(self):
        decision = evaluate(paid("platinum"), ModelClass.DRAFT, now=NOW)
        assert not decision.allowed
        assert decision.status == DecisionStatus.CONTACT_SUPPORT
        assert "support" in decision.reason.lower()

    def test_active_subscription_on_free_tier_is_denied(self):
        decision = evaluate(paid("free"), ModelClass.DRAFT, now=NOW)
        assert decision.status == DecisionStatus.CONTACT_SUPPORT

    def test_tier_name_is_case_insensitive(self):
        assert evaluate(paid("Starter"), ModelClass.PREMIUM, now=NOW).allowed


def test_evaluate_does_not_mutate_entitlement():
    ent = entitlement(draft_generations_used=5, period_reset_at=NOW - timedelta(days=40))
    before = ent.model_dump()
    evaluate(ent, ModelClass.DRAFT, now=NOW)
    assert ent.model_dump() == before


def test_naive_now_is_treated_as_utc():
    ent = entitlement(draft_generations_used=5, period_reset_at=NOW - timedelta(days=31))
    assert evaluate(ent, ModelClass.DRAFT, now=NOW.replace(tzinfo=None)).allowed


def test_period_expired_boundaries():
    assert period_expired(None, NOW)
    assert period_expired(NOW - timedelta(days=30), NOW)
    assert not period_expired(NOW - timedelta(days=29), NOW)


def test_teams_has_no_next_tier():
    assert next_tier(Tier.TEAMS) is None
    assert next_tier(Tier.FREE) == Tier.STARTER


def test_decision_serializes_for_api():
    payload = evaluate(entitlement(), ModelClass.PREMIUM, now=NOW).to_dict()
    assert payload["status"] == "UPGRADE_REQUIRED"
    assert payload["model_class"] == "premium"
    assert payload["upgrade_hint"]["next_tier"] == "starter"
