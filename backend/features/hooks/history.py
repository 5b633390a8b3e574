"""Generation history: owner-scoped list, fetch and delete."""

from datetime import timezone
from typing import List, Tuple
import logging

from sqlalchemy import delete, func, select

from backend.core.database import get_db_session, hook_generations
from backend.core.errors import NotFoundError
from backend.core.validation import build_page, page_offset, validate_pagination
from backend.models.hook import GenerationRecord, Hook, Page


logger = logging.getLogger(__name__)


def _row_to_record(row) -> GenerationRecord:
    created_at = row.created_at
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return GenerationRecord(
        id=row.id,
        user_id=row.user_id,
        platform=row.platform,
        objective=row.objective,
        topic=row.topic,
        model_class=row.model_class,
        model_name=row.model_name,
        hooks=[Hook.model_validate(hook) for hook in row.hooks or []],
        top_variants=[Hook.model_validate(hook) for hook in row.top_variants or []],
        strategy_summary=row.strategy_summary or {},
        created_at=created_at,
    )


def list_generations(user_id: str, page: int = 1, limit: int = 10) -> Tuple[List[GenerationRecord], Page]:
    """Newest first; ties broken by id so pages are stable."""
    page, limit = validate_pagination(page, limit)
    with get_db_session() as session:
        total = session.execute(
            select(func.count()).select_from(hook_generations).where(hook_generations.c.user_id == user_id)
        ).scalar_one()
        rows = session.execute(
            select(hook_generations)
            .where(hook_generations.c.user_id == user_id)
            .order_by(hook_generations.c.created_at.desc(), hook_generations.c.id.desc())
            .limit(limit)
            .offset(page_offset(page, limit))
        ).fetchall()
    return [_row_to_record(row) for row in rows], build_page(page, limit, total)


def get_generation(user_id: str, generation_id: str) -> GenerationRecord:
    with get_db_session() as session:
        row = session.execute(
            select(hook_generations).where(
                hook_generations.c.id == generation_id,
                hook_generations.c.user_id == user_id,
            )
        ).first()
    if not row:
        raise NotFoundError("Generation not found")
    return _row_to_record(row)


def delete_generation(user_id: str, generation_id: str) -> None:
    """Delete one of the user's generations. Favorites copied from it are kept."""
    with get_db_session() as session:
        result = session.execute(
            delete(hook_generations).where(
                hook_generations.c.id == generation_id,
                hook_generations.c.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Generation not found")
    logger.info("[history] generation deleted", extra={"user_id": user_id, "generation_id": generation_id})
