"""
backend/features/entitlements/store.py

Entitlement store adapter over the app_users table.

Handles:
- Fresh entitlement reads (no caching across calls)
- Banned-term normalization at the read boundary
- The single atomic, conditional usage-claim statement
- Subscription and personalization writes used by collaborators
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Tuple
import json
import logging

from sqlalchemy import and_, case, insert, or_, select, update
from sqlalchemy.exc import IntegrityError

from backend.core.config import settings
from backend.core.database import get_db_session, users
from backend.core.errors import NotFoundError, ValidationError
from backend.models.entitlement import ModelClass, PersonalizationContext, SafetyLevel, UserEntitlement


logger = logging.getLogger(__name__)

MAX_BANNED_TERMS = 20
MAX_BANNED_TERM_CHARS = 50


def normalize_banned_terms(value: Any) -> Tuple[str, ...]:
    """Collapse every stored representation of banned terms into a tuple.

    Accepts a list, a JSON-encoded list, a comma-separated string, or None.
    Terms are stripped and de-duplicated case-insensitively, first spelling wins.
    """
    if value is None:
        return ()
    items: Iterable[Any]
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return ()
        try:
            decoded = json.loads(text)
        except ValueError:
            decoded = None
        if isinstance(decoded, list):
            items = decoded
        elif isinstance(decoded, str):
            items = decoded.split(",")
        else:
            items = text.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = value
    else:
        logger.warning("[entitlements] unsupported banned_terms type", extra={"type": type(value).__name__})
        return ()

    seen = set()
    terms = []
    for item in items:
        if item is None:
            continue
        term = str(item).strip()
        if not term or term.lower() in seen:
            continue
        seen.add(term.lower())
        terms.append(term)
    return tuple(terms)


def normalize_safety(value: Optional[str]) -> SafetyLevel:
    try:
        return SafetyLevel((value or SafetyLevel.STANDARD.value).strip().lower())
    except ValueError:
        return SafetyLevel.STANDARD


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_entitlement(row) -> UserEntitlement:
    return UserEntitlement(
        user_id=row.user_id,
        tier=row.tier or "free",
        subscription_status=row.subscription_status,
        is_premium=bool(row.is_premium),
        free_credits=row.free_credits or 0,
        used_credits=row.used_credits or 0,
        draft_generations_used=row.draft_generations_used or 0,
        pro_generations_used=row.pro_generations_used or 0,
        period_reset_at=_as_utc(row.period_reset_at),
        current_period_end=_as_utc(row.current_period_end),
        personalization=PersonalizationContext(
            company=row.company or None,
            industry=row.industry or None,
            voice=row.voice or None,
            audience=row.audience or None,
            banned_terms=normalize_banned_terms(row.banned_terms),
            safety=normalize_safety(row.safety),
        ),
    )


def get_user_entitlement(user_id: str) -> Optional[UserEntitlement]:
    """Read the entitlement row. Always hits the store."""
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.user_id == user_id)).first()
        if not row:
            return None
        return _row_to_entitlement(row)


def create_user_entitlement(
    user_id: str,
    *,
    tier: str = "free",
    subscription_status: Optional[str] = None,
    is_premium: bool = False,
    free_credits: Optional[int] = None,
    used_credits: int = 0,
    draft_generations_used: int = 0,
    pro_generations_used: int = 0,
    period_reset_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
    **profile: Any,
) -> UserEntitlement:
    """Insert an entitlement row. The period starts now unless given."""
    created_at = _as_utc(now) or datetime.now(timezone.utc)
    values = dict(
        user_id=user_id,
        tier=tier,
        subscription_status=subscription_status,
        is_premium=is_premium,
        free_credits=settings.FREE_CREDITS_DEFAULT if free_credits is None else free_credits,
        used_credits=used_credits,
        draft_generations_used=draft_generations_used,
        pro_generations_used=pro_generations_used,
        period_reset_at=_as_utc(period_reset_at) or created_at,
        created_at=created_at,
        updated_at=created_at,
    )
    for key in ("company", "industry", "voice", "audience", "banned_terms", "safety"):
        if key in profile:
            values[key] = profile[key]
    with get_db_session() as session:
        session.execute(insert(users).values(**values))
    logger.info("[entitlements] user created", extra={"user_id": user_id, "tier": tier})
    return get_user_entitlement(user_id)


def get_or_create_user_entitlement(user_id: str, now: Optional[datetime] = None) -> UserEntitlement:
    """Fresh read; unknown users are provisioned on the free tier."""
    existing = get_user_entitlement(user_id)
    if existing:
        return existing
    try:
        return create_user_entitlement(user_id, now=now)
    except IntegrityError:
        # Concurrent first request created the row
        return get_user_entitlement(user_id)


def set_subscription(
    user_id: str,
    *,
    tier: str,
    subscription_status: Optional[str],
    current_period_end: Optional[datetime] = None,
) -> UserEntitlement:
    """Record the subscription state reported by the billing collaborator."""
    with get_db_session() as session:
        result = session.execute(
            update(users)
            .where(users.c.user_id == user_id)
            .values(
                tier=tier,
                subscription_status=subscription_status,
                current_period_end=_as_utc(current_period_end),
                updated_at=datetime.now(timezone.utc),
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"User {user_id} not found")
    return get_user_entitlement(user_id)


def update_personalization(
    user_id: str,
    *,
    company: Optional[str] = None,
    industry: Optional[str] = None,
    voice: Optional[str] = None,
    audience: Optional[str] = None,
    banned_terms: Optional[Any] = None,
    safety: Optional[str] = None,
) -> UserEntitlement:
    """Update profile fields that were passed. Banned terms are stored as a JSON list."""
    values: dict = {}
    if company is not None:
        values["company"] = company.strip() or None
    if industry is not None:
        values["industry"] = industry.strip() or None
    if voice is not None:
        values["voice"] = voice.strip() or None
    if audience is not None:
        values["audience"] = audience.strip() or None
    if banned_terms is not None:
        terms = normalize_banned_terms(banned_terms)
        if len(terms) > MAX_BANNED_TERMS:
            raise ValidationError(
                f"At most {MAX_BANNED_TERMS} banned terms are allowed",
                field="banned_terms",
                reason="too many terms",
            )
        too_long = [term for term in terms if len(term) > MAX_BANNED_TERM_CHARS]
        if too_long:
            raise ValidationError(
                f"Banned terms must be at most {MAX_BANNED_TERM_CHARS} characters",
                field="banned_terms",
                reason="term too long",
            )
        values["banned_terms"] = list(terms)
    if safety is not None:
        try:
            values["safety"] = SafetyLevel(safety.strip().lower()).value
        except ValueError:
            raise ValidationError(
                f"Unknown safety level: {safety}",
                field="safety",
                reason="must be one of family-friendly, standard, edgy",
            )
    if not values:
        existing = get_user_entitlement(user_id)
        if not existing:
            raise NotFoundError(f"User {user_id} not found")
        return existing

    values["updated_at"] = datetime.now(timezone.utc)
    with get_db_session() as session:
        result = session.execute(update(users).where(users.c.user_id == user_id).values(**values))
        if result.rowcount == 0:
            raise NotFoundError(f"User {user_id} not found")
    return get_user_entitlement(user_id)


def claim_generation_usage(
    user_id: str,
    model_class: ModelClass,
    *,
    cap: Optional[int],
    count_legacy_credit: bool,
    now: Optional[datetime] = None,
    period_days: int = 30,
) -> bool:
    """Atomically record one generation against the user's counters.

    One conditional UPDATE: the WHERE clause re-validates the cap against the
    row as it is at write time, so concurrent claims cannot overshoot. When
    the rolling window has elapsed the counter restarts at 1 and the window
    restarts at now.

    Returns False when no row matched (cap reached or unknown user).
    """
    current = _as_utc(now) or datetime.now(timezone.utc)
    cutoff = current - timedelta(days=period_days)

    if ModelClass(model_class) == ModelClass.PREMIUM:
        counter, other = users.c.pro_generations_used, users.c.draft_generations_used
    else:
        counter, other = users.c.draft_generations_used, users.c.pro_generations_used

    expired = or_(users.c.period_reset_at.is_(None), users.c.period_reset_at <= cutoff)

    values = {
        counter.name: case((expired, 1), else_=counter + 1),
        other.name: case((expired, 0), else_=other),
        "period_reset_at": case((expired, current), else_=users.c.period_reset_at),
        "updated_at": current,
    }
    if count_legacy_credit:
        values["used_credits"] = users.c.used_credits + 1

    condition = users.c.user_id == user_id
    if cap is not None:
        condition = and_(condition, or_(expired, counter < cap))

    with get_db_session() as session:
        result = session.execute(update(users).where(condition).values(**values))
        claimed = result.rowcount == 1

    logger.info(
        "[usage] claim" if claimed else "[usage] claim rejected",
        extra={
            "user_id": user_id,
            "model_class": ModelClass(model_class).value,
            "cap": cap,
            "claimed": claimed,
        },
    )
    return claimed
