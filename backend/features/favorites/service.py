"""
backend/features/favorites/service.py

Saved hooks. A favorite stores its own copy of the hook, so it survives
deletion of the generation it came from.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple
import copy
import hashlib
import logging
import uuid

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError

from backend.core.database import favorite_hooks, get_db_session
from backend.core.errors import ConflictError, NotFoundError, ValidationError
from backend.core.validation import build_page, page_offset, require_text, validate_pagination
from backend.models.hook import FavoriteHook, Page


logger = logging.getLogger(__name__)


def _snapshot_verbal_hook(snapshot: Mapping[str, Any]) -> Optional[str]:
    value = snapshot.get("verbal_hook") or snapshot.get("verbalHook")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def favorite_dedupe_key(generation_id: Optional[str], verbal_hook: str) -> str:
    """Stable key for (generation, verbal hook); unique per user in favorite_hooks."""
    material = f"{generation_id or ''}\x1f{verbal_hook.strip()}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def _row_to_favorite(row) -> FavoriteHook:
    created_at = row.created_at
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return FavoriteHook(
        id=row.id,
        user_id=row.user_id,
        generation_id=row.generation_id,
        hook_snapshot=row.hook_snapshot or {},
        framework=row.framework,
        platform_notes=row.platform_notes,
        topic=row.topic,
        platform=row.platform,
        created_at=created_at,
    )


def list_favorites(user_id: str, page: int = 1, limit: int = 10) -> Tuple[List[FavoriteHook], Page]:
    page, limit = validate_pagination(page, limit)
    with get_db_session() as session:
        total = session.execute(
            select(func.count()).select_from(favorite_hooks).where(favorite_hooks.c.user_id == user_id)
        ).scalar_one()
        rows = session.execute(
            select(favorite_hooks)
            .where(favorite_hooks.c.user_id == user_id)
            .order_by(favorite_hooks.c.created_at.desc(), favorite_hooks.c.id.desc())
            .limit(limit)
            .offset(page_offset(page, limit))
        ).fetchall()
    return [_row_to_favorite(row) for row in rows], build_page(page, limit, total)


def add_favorite(
    user_id: str,
    *,
    hook_snapshot: Optional[Mapping[str, Any]],
    framework: Optional[str],
    platform_notes: Optional[str],
    generation_id: Optional[str] = None,
    topic: Optional[str] = None,
    platform: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FavoriteHook:
    """Save a copy of a hook. The same hook of the same generation can be saved once."""
    if not isinstance(hook_snapshot, Mapping) or not hook_snapshot:
        raise ValidationError("hook_snapshot is required", field="hook_snapshot", reason="required")
    verbal_hook = _snapshot_verbal_hook(hook_snapshot)
    if verbal_hook is None:
        raise ValidationError(
            "hook_snapshot must include a verbal hook",
            field="hook_snapshot.verbal_hook",
            reason="required",
        )
    framework = require_text(framework, "framework", max_chars=200)
    platform_notes = require_text(platform_notes, "platform_notes")

    snapshot: Dict[str, Any] = copy.deepcopy(dict(hook_snapshot))
    created_at = now or datetime.now(timezone.utc)
    favorite_id = f"fav_{uuid.uuid4().hex}"

    # The unique (user_id, dedupe_key) index decides duplicates, also under concurrent adds
    try:
        with get_db_session() as session:
            session.execute(
                insert(favorite_hooks).values(
                    id=favorite_id,
                    user_id=user_id,
                    generation_id=generation_id,
                    dedupe_key=favorite_dedupe_key(generation_id, verbal_hook),
                    hook_snapshot=snapshot,
                    framework=framework,
                    platform_notes=platform_notes,
                    topic=topic,
                    platform=platform,
                    created_at=created_at,
                )
            )
    except IntegrityError:
        logger.info("[favorites] duplicate rejected", extra={"user_id": user_id, "generation_id": generation_id})
        raise ConflictError("Hook is already in favorites")

    logger.info(
        "[favorites] added",
        extra={"user_id": user_id, "generation_id": generation_id, "favorite_id": favorite_id},
    )
    return FavoriteHook(
        id=favorite_id,
        user_id=user_id,
        generation_id=generation_id,
        hook_snapshot=snapshot,
        framework=framework,
        platform_notes=platform_notes,
        topic=topic,
        platform=platform,
        created_at=created_at,
    )


def remove_favorite(user_id: str, favorite_id: str) -> None:
    with get_db_session() as session:
        result = session.execute(
            delete(favorite_hooks).where(
                favorite_hooks.c.id == favorite_id,
                favorite_hooks.c.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Favorite hook not found")
    logger.info("[favorites] removed", extra={"user_id": user_id, "favorite_id": favorite_id})
