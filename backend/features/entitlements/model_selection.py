"""Model-class selection by tier (pure)."""

from typing import Optional

from backend.core.config import settings, Settings
from backend.models.entitlement import ModelClass, UserEntitlement
from backend.models.generation import ModelSelectionResult


def default_model_class(entitlement: UserEntitlement) -> ModelClass:
    """Class served when the caller expresses no preference."""
    if entitlement.is_free_or_inactive:
        return ModelClass.DRAFT
    return ModelClass.PREMIUM


def select(entitlement: UserEntitlement, requested_class: Optional[ModelClass] = None) -> ModelSelectionResult:
    """Resolve the model class to invoke.

    Free/inactive users always get draft; asking for premium marks the result
    as downgraded. Paid users get what they asked for, premium by default.
    Must run after the entitlement policy approved the resolved class.
    """
    requested = ModelClass(requested_class) if requested_class else None

    if entitlement.is_free_or_inactive:
        return ModelSelectionResult(
            selected_model_class=ModelClass.DRAFT,
            justification="Draft model for free plans",
            was_downgraded=requested == ModelClass.PREMIUM,
        )

    selected = requested or default_model_class(entitlement)
    justification = (
        "Premium model for higher-quality hooks"
        if selected == ModelClass.PREMIUM
        else "Draft model for fast generation"
    )
    return ModelSelectionResult(
        selected_model_class=selected,
        justification=justification,
        was_downgraded=False,
    )


def model_name_for(model_class: ModelClass, cfg: Optional[Settings] = None) -> str:
    """Concrete backend model behind a class."""
    cfg = cfg or settings
    if ModelClass(model_class) == ModelClass.PREMIUM:
        return cfg.HOOKS_PREMIUM_MODEL
    return cfg.HOOKS_DRAFT_MODEL
