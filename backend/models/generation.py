"""
backend/models/generation.py

Ephemeral generation request and model-selection result.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from backend.core.errors import ValidationError
from backend.models.entitlement import ModelClass
from backend.models.hook import Objective, Platform

TOPIC_MIN_CHARS = 10
TOPIC_MAX_CHARS = 1000


class GenerationRequest(BaseModel):
    """Validated input of one generate() call. Not persisted."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    platform: Platform
    objective: Objective
    topic: str = Field(min_length=TOPIC_MIN_CHARS, max_length=TOPIC_MAX_CHARS)
    requested_model_class: Optional[ModelClass] = None

    @field_validator("user_id")
    @classmethod
    def user_id_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("user_id is required")
        return value.strip()

    @field_validator("topic", mode="before")
    @classmethod
    def strip_topic(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("platform", "objective", "requested_model_class", mode="before")
    @classmethod
    def lower_enum_values(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


def build_generation_request(
    user_id: str,
    platform: str,
    objective: str,
    topic: str,
    requested_model_class: Optional[str] = None,
) -> GenerationRequest:
    """Validate raw inputs. Raises ValidationError naming the first offending field."""
    try:
        return GenerationRequest(
            user_id=user_id,
            platform=platform,
            objective=objective,
            topic=topic,
            requested_model_class=requested_model_class or None,
        )
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        reason = first.get("msg", "invalid value")
        raise ValidationError(f"Invalid {field or 'request'}: {reason}", field=field, reason=reason) from exc


class ModelSelectionResult(BaseModel):
    """Output of the model selection policy. Never persisted."""
    model_config = ConfigDict(frozen=True)

    selected_model_class: ModelClass
    justification: str
    was_downgraded: bool = False
