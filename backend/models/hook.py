"""
backend/models/hook.py

Hook, GenerationRecord and FavoriteHook models.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"


class Objective(str, Enum):
    WATCH_TIME = "watch_time"
    SHARES = "shares"
    SAVES = "saves"
    CTR = "ctr"
    FOLLOWS = "follows"


class RiskFactor(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Hook(BaseModel):
    """
    One candidate opening line, in three modalities:
    - verbal_hook: what is said on camera
    - visual_hook: on-screen text or visual element
    - textual_hook: caption / description
    """
    model_config = ConfigDict(frozen=True)

    id: str
    verbal_hook: str
    visual_hook: str
    textual_hook: str = ""
    framework: str
    psychological_driver: str = ""
    category: str = ""
    risk_factor: RiskFactor = RiskFactor.LOW
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    rationale: str = ""
    platform_notes: str = ""
    platform: str
    objective: str
    topic: str
    created_at: datetime


class GenerationRecord(BaseModel):
    """Persisted result of one successful generation. Never mutated after insert."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    platform: str
    objective: str
    topic: str
    model_class: str
    model_name: Optional[str] = None
    hooks: List[Hook]
    top_variants: List[Hook]
    strategy_summary: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class FavoriteHook(BaseModel):
    """A saved hook. hook_snapshot is a copy, independent of the source generation."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    generation_id: Optional[str] = None
    hook_snapshot: Dict[str, Any]
    framework: str
    platform_notes: str
    topic: Optional[str] = None
    platform: Optional[str] = None
    created_at: datetime


class Page(BaseModel):
    """Pagination metadata for history and favorites listings."""
    model_config = ConfigDict(frozen=True)

    current_page: int
    total_pages: int
    total_items: int
    has_next: bool
    has_prev: bool
