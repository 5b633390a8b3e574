"""
Tests for the generation persistence gateway: record insert, atomic usage
claim, lost quota races and counter-update failures.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from backend.core.database import get_db_session, hook_generations, usage_reconciliation, users
from backend.core.errors import QuotaExceededError
from backend.features.entitlements.store import get_user_entitlement
from backend.features.hooks import persistence
from backend.models.entitlement import ModelClass
from backend.tests.mocks import make_record


def _generation_count(user_id="u1") -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(hook_generations).where(hook_generations.c.user_id == user_id)
        ).scalar_one()


def _counters(user_id="u1"):
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.user_id == user_id)).first()
    return row.draft_generations_used, row.pro_generations_used, row.used_credits


def test_free_draft_commit_stores_record_and_claims_usage(make_user, now, policy_config):
    ent = make_user("u1", draft_generations_used=2)
    result = persistence.commit("u1", make_record(now), ModelClass.DRAFT, entitlement=ent, now=now, config=policy_config)
    assert result.counter_updated
    assert _generation_count() == 1
    assert _counters() == (3, 0, 1)


def test_paid_premium_commit_increments_pro_counter(make_user, now, policy_config):
    ent = make_user("u1", tier="pro", subscription_status="active", pro_generations_used=10)
    persistence.commit("u1", make_record(now, model_class="premium"), ModelClass.PREMIUM, entitlement=ent, now=now, config=policy_config)
    assert _counters() == (0, 11, 0)


def test_paid_draft_is_not_capped(make_user, now, policy_config):
    ent = make_user("u1", tier="starter", subscription_status="active", draft_generations_used=5000)
    result = persistence.commit("u1", make_record(now), ModelClass.DRAFT, entitlement=ent, now=now, config=policy_config)
    assert result.counter_updated
    assert _counters()[0] == 5001


def test_expired_window_commit_resets_counter_to_one(make_user, now, policy_config):
    ent = make_user("u1", draft_generations_used=5, period_reset_at=now - timedelta(days=31))
    persistence.commit("u1", make_record(now), ModelClass.DRAFT, entitlement=ent, now=now, config=policy_config)
    assert _counters()[:2] == (1, 0)
    assert get_user_entitlement("u1").period_reset_at == now


def test_lost_quota_race_discards_record(make_user, now, policy_config):
    stale = make_user("u1", draft_generations_used=4)
    # Another request claimed the last unit after this one was approved
    persistence.commit("u1", make_record(now, record_id="gen_a"), ModelClass.DRAFT, entitlement=stale, now=now, config=policy_config)

    with pytest.raises(QuotaExceededError) as exc:
        persistence.commit("u1", make_record(now, record_id="gen_b"), ModelClass.DRAFT, entitlement=stale, now=now, config=policy_config)

    assert exc.value.upgrade_hint["next_tier"] == "starter"
    assert _generation_count() == 1
    assert _counters()[0] == 5


def test_free_user_cannot_commit_premium(make_user, now, policy_config):
    ent = make_user("u1")
    with pytest.raises(QuotaExceededError):
        persistence.commit("u1", make_record(now), ModelClass.PREMIUM, entitlement=ent, now=now, config=policy_config)
    assert _generation_count() == 0
    assert _counters() == (0, 0, 0)


def test_counter_failure_keeps_generation_and_flags_reconciliation(make_user, now, policy_config, caplog):
    ent = make_user("u1")
    failure = OperationalError("UPDATE app_users", {}, Exception("database is locked"))
    with patch("backend.features.hooks.persistence.store.claim_generation_usage", side_effect=failure):
        result = persistence.commit("u1", make_record(now), ModelClass.DRAFT, entitlement=ent, now=now, config=policy_config)

    assert result.counter_updated is False
    assert result.record.id == "gen_1"
    assert _generation_count() == 1
    assert _counters() == (0, 0, 0)
    with get_db_session() as session:
        flagged = session.execute(select(usage_reconciliation)).fetchall()
    assert len(flagged) == 1
    assert flagged[0].generation_id == "gen_1"
    assert not flagged[0].resolved
    alerts = [r for r in caplog.records if getattr(r, "alert", False)]
    assert alerts and alerts[0].levelname == "ERROR"


def test_record_insert_failure_leaves_counters_untouched(make_user, now, policy_config):
    ent = make_user("u1")
    persistence.commit("u1", make_record(now), ModelClass.DRAFT, entitlement=ent, now=now, config=policy_config)
    # Same id again: primary key violation on insert
    with pytest.raises(IntegrityError):
        persistence.commit("u1", make_record(now), ModelClass.DRAFT, entitlement=ent, now=now, config=policy_config)
    assert _counters()[0] == 1
    assert _generation_count() == 1
