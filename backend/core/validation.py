"""
Input validation helpers shared by the history and favorites features.

Every helper raises backend.core.errors.ValidationError naming the field,
so HTTP callers get a 400 with {field, reason} details.
"""

import math
from typing import Any, Optional, Tuple

from backend.core.errors import ValidationError
from backend.models.hook import Page

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


def validate_pagination(page: Any = 1, limit: Any = DEFAULT_PAGE_LIMIT) -> Tuple[int, int]:
    """Return (page, limit) as ints. page >= 1, 1 <= limit <= 100."""
    try:
        page_value = int(page)
    except (TypeError, ValueError):
        raise ValidationError("page must be an integer", field="page", reason="must be an integer")
    try:
        limit_value = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer", field="limit", reason="must be an integer")

    if page_value < 1:
        raise ValidationError("page must be at least 1", field="page", reason="must be >= 1")
    if limit_value < 1 or limit_value > MAX_PAGE_LIMIT:
        raise ValidationError(
            f"limit must be between 1 and {MAX_PAGE_LIMIT}",
            field="limit",
            reason=f"must be between 1 and {MAX_PAGE_LIMIT}",
        )
    return page_value, limit_value


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def build_page(page: int, limit: int, total_items: int) -> Page:
    total_pages = math.ceil(total_items / limit) if total_items else 0
    return Page(
        current_page=page,
        total_pages=total_pages,
        total_items=total_items,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def require_text(value: Optional[str], field: str, *, max_chars: Optional[int] = None) -> str:
    """Non-empty string after stripping, optionally length-bounded."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field, reason="required")
    text = value.strip()
    if max_chars is not None and len(text) > max_chars:
        raise ValidationError(
            f"{field} must be at most {max_chars} characters",
            field=field,
            reason=f"max {max_chars} characters",
        )
    return text
