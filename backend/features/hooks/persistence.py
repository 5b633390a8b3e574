"""
backend/features/hooks/persistence.py

Generation persistence gateway.

commit() runs in two steps:
1. insert the GenerationRecord in its own transaction. A failure here
   propagates and no counter is touched.
2. claim one unit of usage with the single conditional UPDATE in the
   entitlement store. The WHERE clause re-checks the cap at write time, so
   when concurrent requests race for the last unit only one claim matches.
   A claim that matches no row means this request lost the race: the
   record is deleted again and QuotaExceededError is raised.

A database error during the claim leaves a stored generation without a
counter increment. That is logged as an alert, written to
usage_reconciliation when possible, and the generation is still returned.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from sqlalchemy import delete, insert
from sqlalchemy.exc import SQLAlchemyError

from backend.core.database import get_db_session, hook_generations, usage_reconciliation
from backend.core.errors import QuotaExceededError
from backend.core.logging import log_event
from backend.features.entitlements import store
from backend.features.entitlements.policy import EntitlementPolicyConfig, upgrade_hint_for
from backend.models.entitlement import ModelClass, Tier, UserEntitlement
from backend.models.hook import GenerationRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    record: GenerationRecord
    counter_updated: bool


@dataclass(frozen=True)
class UsageClaim:
    """Counter to increment and the cap the write must respect (None = uncapped)."""
    model_class: ModelClass
    cap: Optional[int]
    count_legacy_credit: bool


def usage_claim_for(
    entitlement: UserEntitlement,
    model_class: ModelClass,
    config: EntitlementPolicyConfig,
) -> UsageClaim:
    """Map the entitlement and served class to the counter write. Raises QuotaExceededError if none is permitted."""
    model_class = ModelClass(model_class)
    if entitlement.is_free_or_inactive:
        if model_class == ModelClass.PREMIUM:
            hint = upgrade_hint_for(Tier.FREE, config)
            raise QuotaExceededError(
                "Premium model requires an upgrade",
                reason="Premium model requires an upgrade. Free plans include draft generations only.",
                upgrade_hint=hint.to_dict(),
            )
        return UsageClaim(model_class=model_class, cap=config.free_monthly_draft_limit, count_legacy_credit=True)

    tier = entitlement.known_tier
    if tier is None or tier == Tier.FREE:
        raise QuotaExceededError(
            "Unable to determine subscription status",
            reason="Unable to determine subscription status. Please contact support.",
        )
    if model_class == ModelClass.DRAFT:
        return UsageClaim(model_class=model_class, cap=None, count_legacy_credit=False)
    return UsageClaim(model_class=model_class, cap=config.premium_cap(tier), count_legacy_credit=False)


def record_values(record: GenerationRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "user_id": record.user_id,
        "platform": record.platform,
        "objective": record.objective,
        "topic": record.topic,
        "model_class": record.model_class,
        "model_name": record.model_name,
        "hooks": [hook.model_dump(mode="json") for hook in record.hooks],
        "top_variants": [hook.model_dump(mode="json") for hook in record.top_variants],
        "strategy_summary": record.strategy_summary,
        "created_at": record.created_at,
    }


def _insert_record(record: GenerationRecord) -> None:
    with get_db_session() as session:
        session.execute(insert(hook_generations).values(**record_values(record)))


def _delete_record(user_id: str, generation_id: str) -> None:
    with get_db_session() as session:
        session.execute(
            delete(hook_generations).where(
                hook_generations.c.id == generation_id,
                hook_generations.c.user_id == user_id,
            )
        )


def _flag_for_reconciliation(user_id: str, generation_id: str, model_class: ModelClass, error: Exception) -> None:
    try:
        with get_db_session() as session:
            session.execute(
                insert(usage_reconciliation).values(
                    user_id=user_id,
                    generation_id=generation_id,
                    model_class=ModelClass(model_class).value,
                    error=str(error)[:1000],
                    resolved=False,
                    created_at=datetime.now(timezone.utc),
                )
            )
    except SQLAlchemyError:
        logger.error(
            "[persistence] reconciliation write failed",
            exc_info=True,
            extra={"user_id": user_id, "generation_id": generation_id, "alert": True},
        )


def commit(
    user_id: str,
    record: GenerationRecord,
    model_class_used: ModelClass,
    *,
    entitlement: UserEntitlement,
    now: Optional[datetime] = None,
    config: Optional[EntitlementPolicyConfig] = None,
) -> CommitResult:
    """Store the generation and claim one unit of usage for model_class_used."""
    cfg = config or EntitlementPolicyConfig.from_settings()
    claim = usage_claim_for(entitlement, model_class_used, cfg)

    _insert_record(record)

    try:
        claimed = store.claim_generation_usage(
            user_id,
            claim.model_class,
            cap=claim.cap,
            count_legacy_credit=claim.count_legacy_credit,
            now=now,
            period_days=cfg.period_days,
        )
    except SQLAlchemyError as exc:
        logger.error(
            "[persistence] usage counter update failed after record insert",
            exc_info=True,
            extra={
                "user_id": user_id,
                "generation_id": record.id,
                "model_class": claim.model_class.value,
                "alert": True,
            },
        )
        _flag_for_reconciliation(user_id, record.id, claim.model_class, exc)
        return CommitResult(record=record, counter_updated=False)

    if not claimed:
        _delete_record(user_id, record.id)
        hint = upgrade_hint_for(entitlement.known_tier or Tier.FREE, cfg)
        log_event(
            "warning",
            "[persistence] quota race lost, generation discarded",
            user_id=user_id,
            generation_id=record.id,
            event_type="usage.claim_rejected",
            error_code="quota_exceeded",
            extra={"model_class": claim.model_class.value, "cap": claim.cap},
        )
        raise QuotaExceededError(
            "Generation limit reached",
            reason="Generation limit reached for this period",
            upgrade_hint=hint.to_dict(),
        )

    logger.info(
        "[persistence] generation committed",
        extra={"user_id": user_id, "generation_id": record.id, "model_class": claim.model_class.value},
    )
    return CommitResult(record=record, counter_updated=True)
