"""
backend/features/hooks/parser.py

Response parser / normalizer.

Two paths:
- STRICT: scan the raw text for JSON objects one at a time with
  json.JSONDecoder.raw_decode, keep every object that carries the mandatory
  hook fields. Brace characters inside string values are handled by the
  decoder, so hook text may contain them.
- FALLBACK: only when STRICT produced nothing. Each non-empty line becomes
  a minimal hook so a malformed or truncated completion still yields output.

parse() never raises. An empty result is reported as ParsePath.NONE and
the caller decides what that means.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple
import json
import logging
import math
import random
import re
import uuid

from backend.models.hook import Hook, RiskFactor


logger = logging.getLogger(__name__)

MAX_FALLBACK_HOOKS = 6
FALLBACK_SCORE_RANGE = (70.0, 90.0)
VISUAL_HOOK_MAX_CHARS = 50

# Leading list markers: "1. ", "2) ", "(4)", "[5] ", "6 - ", "7: ", "Hook 6:", "- ", "* ", "•".
# Numeric markers need trailing whitespace so "2.5x", "5-minute" and "10:00 PM" stay intact.
_NUMBERING_RE = re.compile(
    r"^\s*(?:[(\[]?\d+[.)\]]\s+|\(\d+\)\s*|\d+\s*-\s+|\d+:\s+|Hook\s+\d+\s*[-:).](?!\d)\s*|[-*]+\s+|•+\s*)",
    re.IGNORECASE,
)
# "3/6 " counts as a marker only when it reads as position/total, so "24/7 support" is kept
_FRACTION_MARKER_RE = re.compile(r"^\s*(\d+)/(\d+)\s+")
_PUNCTUATION_ONLY_RE = re.compile(r"^[\W_]+$")

_MANDATORY_FIELDS = (
    ("verbal_hook", ("verbalHook", "verbal_hook")),
    ("visual_hook", ("visualHook", "visual_hook")),
    ("framework", ("framework",)),
)

_OPTIONAL_FIELDS = (
    ("textual_hook", ("textualHook", "textual_hook")),
    ("psychological_driver", ("psychologicalDriver", "psychological_driver")),
    ("category", ("category", "hookCategory", "hook_category")),
    ("rationale", ("rationale",)),
    ("platform_notes", ("platformNotes", "platform_notes")),
)


class ParsePath(str, Enum):
    STRICT = "strict"
    FALLBACK = "fallback"
    NONE = "none"


@dataclass(frozen=True)
class ParseContext:
    """Request fields echoed onto every parsed hook."""
    platform: str
    objective: str
    topic: str
    created_at: datetime


@dataclass(frozen=True)
class ParseResult:
    hooks: Tuple[Hook, ...]
    path: ParsePath

    @property
    def empty(self) -> bool:
        return not self.hooks


def strip_list_marker(line: str) -> str:
    """Remove a leading list number or bullet. Numbers that belong to the hook text are kept."""
    fraction = _FRACTION_MARKER_RE.match(line)
    if fraction and 0 < int(fraction.group(1)) <= int(fraction.group(2)):
        return line[fraction.end():].strip()
    return _NUMBERING_RE.sub("", line, count=1).strip()


def _first_present(obj: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in obj and obj[key] is not None:
            return obj[key]
    return None


def _mandatory_values(obj: Dict[str, Any]) -> Optional[Dict[str, str]]:
    values = {}
    for name, keys in _MANDATORY_FIELDS:
        value = _first_present(obj, keys)
        if not isinstance(value, str) or not value.strip():
            return None
        values[name] = value
    return values


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def normalize_score(value: Any) -> float:
    """Coerce to float and clamp to 0..100. Anything unusable scores 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score) or math.isinf(score):
        return 0.0
    return min(100.0, max(0.0, score))


def normalize_risk_factor(value: Any) -> RiskFactor:
    if isinstance(value, str):
        try:
            return RiskFactor(value.strip().lower())
        except ValueError:
            pass
    return RiskFactor.LOW


def _scan_objects(text: str) -> Iterator[Tuple[Dict[str, Any], Dict[str, str]]]:
    decoder = json.JSONDecoder()
    idx = 0
    while True:
        start = text.find("{", idx)
        if start == -1:
            return
        try:
            obj, end = decoder.raw_decode(text, start)
        except ValueError:
            idx = start + 1
            continue
        mandatory = _mandatory_values(obj) if isinstance(obj, dict) else None
        if mandatory is None:
            # Not a hook; look inside it for nested ones
            idx = start + 1
            continue
        yield obj, mandatory
        idx = end


def _new_hook_id() -> str:
    return f"hook_{uuid.uuid4().hex}"


def _strict_hooks(raw_text: str, context: ParseContext) -> List[Hook]:
    hooks = []
    for obj, mandatory in _scan_objects(raw_text):
        optional = {name: _as_text(_first_present(obj, keys)) for name, keys in _OPTIONAL_FIELDS}
        hooks.append(
            Hook(
                id=_new_hook_id(),
                risk_factor=normalize_risk_factor(_first_present(obj, ("riskFactor", "risk_factor"))),
                score=normalize_score(obj.get("score")),
                platform=context.platform,
                objective=context.objective,
                topic=context.topic,
                created_at=context.created_at,
                **mandatory,
                **optional,
            )
        )
    return hooks


def _fallback_lines(raw_text: str) -> List[str]:
    lines = []
    for raw_line in raw_text.splitlines():
        line = strip_list_marker(raw_line)
        if not line or _PUNCTUATION_ONLY_RE.match(line):
            continue
        lines.append(line)
        if len(lines) == MAX_FALLBACK_HOOKS:
            break
    return lines


def _truncate_visual(line: str) -> str:
    if len(line) <= VISUAL_HOOK_MAX_CHARS:
        return line
    return line[:VISUAL_HOOK_MAX_CHARS] + "..."


def _fallback_hooks(raw_text: str, context: ParseContext, rng: random.Random) -> List[Hook]:
    low, high = FALLBACK_SCORE_RANGE
    return [
        Hook(
            id=_new_hook_id(),
            verbal_hook=line,
            visual_hook=_truncate_visual(line),
            textual_hook=f"{line} #{context.platform} #{context.objective}",
            framework="Pattern Interrupt",
            psychological_driver="Curiosity Gap",
            category="statement-based",
            risk_factor=RiskFactor.LOW,
            score=rng.uniform(low, high),
            rationale="Generated using fallback method",
            platform_notes=f"Optimized for {context.platform}",
            platform=context.platform,
            objective=context.objective,
            topic=context.topic,
            created_at=context.created_at,
        )
        for line in _fallback_lines(raw_text)
    ]


def parse(raw_text: Optional[str], context: ParseContext, *, rng: Optional[random.Random] = None) -> ParseResult:
    """Turn raw completion text into hooks. Never raises."""
    text = raw_text or ""
    try:
        strict = _strict_hooks(text, context)
    except Exception:
        logger.exception("[parser] strict path failed")
        strict = []
    if strict:
        logger.info("[parser] strict", extra={"hooks": len(strict)})
        return ParseResult(hooks=tuple(strict), path=ParsePath.STRICT)

    try:
        fallback = _fallback_hooks(text, context, rng or random.Random())
    except Exception:
        logger.exception("[parser] fallback path failed")
        fallback = []
    if fallback:
        logger.warning("[parser] fallback", extra={"hooks": len(fallback), "chars": len(text)})
        return ParseResult(hooks=tuple(fallback), path=ParsePath.FALLBACK)

    logger.warning("[parser] no hooks", extra={"chars": len(text)})
    return ParseResult(hooks=(), path=ParsePath.NONE)


def context_for(platform: str, objective: str, topic: str, created_at: Optional[datetime] = None) -> ParseContext:
    return ParseContext(
        platform=platform,
        objective=objective,
        topic=topic,
        created_at=created_at or datetime.now(timezone.utc),
    )
