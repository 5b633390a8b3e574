"""Structured prompt assembly for hook generation."""

from dataclasses import dataclass
from typing import Optional, Sequence
import re

from backend.core.config import settings, Settings
from backend.features.hooks.prompts import (
    BASE_PROMPT,
    NEUTRAL_PLACEHOLDERS,
    OBJECTIVE_PROMPTS,
    OUTPUT_SHAPE_DIRECTIVE,
    PLATFORM_PROMPTS,
    PSYCHOLOGICAL_FRAMEWORK,
    SAFETY_DIRECTIVES,
)
from backend.models.entitlement import ModelClass, PersonalizationContext, SafetyLevel
from backend.models.generation import GenerationRequest

FIELD_CHAR_LIMITS = {
    "company": 100,
    "industry": 100,
    "voice": 100,
    "audience": 500,
}


@dataclass(frozen=True)
class StructuredPrompt:
    system_prompt: str
    user_prompt: str
    model_class: ModelClass
    temperature: float
    max_tokens: int
    hook_count: int


def _clamp(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)].rstrip() + "..."


def scrub_banned_terms(text: str, banned_terms: Sequence[str]) -> str:
    """Remove every banned term as a whole word or phrase (case-insensitive) and tidy the spacing left behind.

    "art" is removed from "street art" but not from "startup" or "artists".
    """
    cleaned = text
    for term in sorted(banned_terms, key=len, reverse=True):
        cleaned = re.sub(rf"(?<!\w){re.escape(term)}(?!\w)", " ", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+", " ", cleaned)
    cleaned = re.sub(r"\s+([,.;:!?])", r"\1", cleaned)
    return cleaned.strip(" ,;:-")


def sanitize_personalization_field(value: Optional[str], banned_terms: Sequence[str], limit: int) -> Optional[str]:
    if not value:
        return None
    text = re.sub(r"\s+", " ", value).strip()
    if banned_terms:
        text = scrub_banned_terms(text, banned_terms)
    if not text:
        return None
    return _clamp(text, limit)


def _humanize(value: str) -> str:
    return value.replace("_", " ")


def _brand_context(personalization: PersonalizationContext) -> dict:
    context = {}
    for name, limit in FIELD_CHAR_LIMITS.items():
        cleaned = sanitize_personalization_field(getattr(personalization, name), personalization.banned_terms, limit)
        context[name] = cleaned or NEUTRAL_PLACEHOLDERS[name]
    return context


def _safety_directive(safety: SafetyLevel) -> str:
    return SAFETY_DIRECTIVES.get(SafetyLevel(safety).value, SAFETY_DIRECTIVES[SafetyLevel.STANDARD.value])


def _banned_terms_directive(banned_terms: Sequence[str]) -> str:
    if not banned_terms:
        return "Banned terms: none."
    quoted = ", ".join(f'"{term}"' for term in banned_terms)
    return f"Banned terms: never use any of these words or phrases, in any modality: {quoted}."


def build(
    request: GenerationRequest,
    personalization: PersonalizationContext,
    *,
    model_class: ModelClass,
    cfg: Optional[Settings] = None,
) -> StructuredPrompt:
    """Assemble the system and user instructions for one generation."""
    cfg = cfg or settings
    platform = request.platform.value
    objective = request.objective.value
    platform_prompt = PLATFORM_PROMPTS[platform]
    brand = _brand_context(personalization)
    hook_count = cfg.HOOKS_PER_GENERATION

    system_prompt = "\n\n".join([
        BASE_PROMPT,
        (
            "CONTEXT:\n"
            f"- Platform: {platform.upper()} (tone: {platform_prompt['tone']}. {platform_prompt['structure']})\n"
            f"- Objective: {_humanize(objective).upper()}\n"
            f"- Company: {brand['company']}\n"
            f"- Industry: {brand['industry']}\n"
            f"- Brand voice: {brand['voice']}\n"
            f"- Target audience: {brand['audience']}"
        ),
        PSYCHOLOGICAL_FRAMEWORK,
        _safety_directive(personalization.safety),
        _banned_terms_directive(personalization.banned_terms),
        OUTPUT_SHAPE_DIRECTIVE.format(hook_count=hook_count),
    ])

    user_prompt = "\n".join([
        f'Generate {hook_count} video hooks for the topic: "{request.topic}"',
        OBJECTIVE_PROMPTS[objective],
        "Use diverse psychological drivers and vary the hook categories.",
        f"Match the {brand['voice'].lower() if brand['voice'] != NEUTRAL_PLACEHOLDERS['voice'] else 'natural'} voice "
        f"for the {brand['industry'] if brand['industry'] != NEUTRAL_PLACEHOLDERS['industry'] else 'given'} industry.",
        "Score each hook 0-100 for engagement potential.",
        f"Give platform notes specific to {platform.upper()}.",
        f"Respond with {hook_count} JSON objects, one per line, and nothing else.",
    ])

    return StructuredPrompt(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        model_class=ModelClass(model_class),
        temperature=cfg.HOOKS_TEMPERATURE,
        max_tokens=cfg.HOOKS_MAX_TOKENS,
        hook_count=hook_count,
    )
