"""Ranking and analytics over parsed hooks (pure)."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from backend.models.entitlement import PersonalizationContext, SafetyLevel
from backend.models.generation import GenerationRequest
from backend.models.hook import Hook

TOP_VARIANTS = 3

RISK_MITIGATION = {
    SafetyLevel.FAMILY_FRIENDLY: "Family-friendly content only",
    SafetyLevel.STANDARD: "Balanced approach with moderate risk",
    SafetyLevel.EDGY: "Bold, contrarian angles with clear boundaries",
}


@dataclass(frozen=True)
class RankingSummary:
    top_variants: Tuple[Hook, ...]
    average_score: float
    category_distribution: Dict[str, int] = field(default_factory=dict)
    frameworks_used: Tuple[str, ...] = ()
    total_hooks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "top_variants": [hook.model_dump(mode="json") for hook in self.top_variants],
            "average_score": self.average_score,
            "category_distribution": dict(self.category_distribution),
            "frameworks_used": list(self.frameworks_used),
            "total_hooks": self.total_hooks,
        }


def summarize(hooks: Sequence[Hook], *, top_n: int = TOP_VARIANTS) -> RankingSummary:
    """Top variants by score (ties keep input order), mean score, category counts."""
    ranked = sorted(hooks, key=lambda hook: hook.score, reverse=True)
    average = sum(hook.score for hook in hooks) / len(hooks) if hooks else 0.0

    distribution: Dict[str, int] = {}
    frameworks: List[str] = []
    for hook in hooks:
        distribution[hook.category] = distribution.get(hook.category, 0) + 1
        if hook.framework not in frameworks:
            frameworks.append(hook.framework)

    return RankingSummary(
        top_variants=tuple(ranked[:top_n]),
        average_score=average,
        category_distribution=distribution,
        frameworks_used=tuple(frameworks),
        total_hooks=len(hooks),
    )


def build_strategy_summary(
    request: GenerationRequest,
    personalization: PersonalizationContext,
    summary: RankingSummary,
) -> Dict[str, Any]:
    """Strategy block stored alongside a generation record."""
    return {
        "selected_strategy": ", ".join(summary.frameworks_used),
        "platform_optimization": f"Optimized for {request.platform.value} {request.objective.value.replace('_', ' ')}",
        "risk_mitigation": RISK_MITIGATION.get(SafetyLevel(personalization.safety), RISK_MITIGATION[SafetyLevel.STANDARD]),
        "adaptation_level": 80 if personalization.has_brand_context else 50,
        "confidence_score": min(95, round(summary.average_score) + 10),
        "average_score": round(summary.average_score, 2),
        "category_distribution": dict(summary.category_distribution),
        "total_hooks": summary.total_hooks,
    }
