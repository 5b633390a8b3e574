"""
Tests for the response parser: strict JSON scanning and the line fallback.
"""
import json
import random
from datetime import datetime, timezone

import pytest

from backend.features.hooks.parser import (
    ParseContext,
    ParsePath,
    normalize_risk_factor,
    normalize_score,
    parse,
    strip_list_marker,
)
from backend.models.hook import RiskFactor
from backend.tests.mocks import hook_json_lines, hook_payload

CONTEXT = ParseContext(
    platform="tiktok",
    objective="watch_time",
    topic="Morning routines for founders",
    created_at=datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc),
)


class TestStrictPath:
    def test_six_json_lines_yield_six_hooks_verbatim(self):
        raw = hook_json_lines()
        result = parse(raw, CONTEXT)
        assert result.path == ParsePath.STRICT
        assert len(result.hooks) == 6
        for index, hook in enumerate(result.hooks):
            expected = hook_payload(index)
            assert hook.verbal_hook == expected["verbalHook"]
            assert hook.visual_hook == expected["visualHook"]
            assert hook.textual_hook == expected["textualHook"]
            assert hook.framework == expected["framework"]
            assert hook.rationale == expected["rationale"]
            assert hook.platform_notes == expected["platformNotes"]

    def test_request_context_is_echoed_and_ids_are_unique(self):
        result = parse(hook_json_lines(), CONTEXT)
        assert {hook.platform for hook in result.hooks} == {"tiktok"}
        assert {hook.topic for hook in result.hooks} == {CONTEXT.topic}
        assert all(hook.created_at == CONTEXT.created_at for hook in result.hooks)
        assert len({hook.id for hook in result.hooks}) == 6

    def test_braces_inside_strings_do_not_break_scanning(self):
        raw = "\n".join([
            json.dumps(hook_payload(0, verbalHook="Use {curly} braces } like { this")),
            json.dumps(hook_payload(1)),
        ])
        result = parse(raw, CONTEXT)
        assert result.path == ParsePath.STRICT
        assert [hook.verbal_hook for hook in result.hooks][0] == "Use {curly} braces } like { this"
        assert len(result.hooks) == 2

    def test_wrapper_object_yields_inner_hooks(self):
        raw = json.dumps({"hooks": [hook_payload(0), hook_payload(1), hook_payload(2)]})
        result = parse(raw, CONTEXT)
        assert result.path == ParsePath.STRICT
        assert len(result.hooks) == 3

    def test_commentary_and_fences_around_objects_are_ignored(self):
        raw = "Sure! Here are your hooks:\n```json\n" + hook_json_lines((80, 70)) + "\n```\nEnjoy!"
        result = parse(raw, CONTEXT)
        assert result.path == ParsePath.STRICT
        assert len(result.hooks) == 2

    def test_objects_missing_mandatory_fields_are_dropped(self):
        incomplete = hook_payload(1)
        del incomplete["framework"]
        blank = hook_payload(2, visualHook="   ")
        raw = "\n".join(json.dumps(obj) for obj in (hook_payload(0), incomplete, blank))
        result = parse(raw, CONTEXT)
        assert len(result.hooks) == 1

    def test_truncated_trailing_object_is_skipped(self):
        raw = hook_json_lines((80, 70)) + '\n{"verbalHook": "cut off mid'
        result = parse(raw, CONTEXT)
        assert result.path == ParsePath.STRICT
        assert len(result.hooks) == 2

    def test_snake_case_keys_and_hook_category(self):
        raw = json.dumps({
            "verbal_hook": "Nobody tells you this about coffee",
            "visual_hook": "Coffee secret",
            "framework": "Authority",
            "hookCategory": "statement-based",
            "risk_factor": "MEDIUM",
            "score": "77.5",
        })
        hook = parse(raw, CONTEXT).hooks[0]
        assert hook.category == "statement-based"
        assert hook.risk_factor == RiskFactor.MEDIUM
        assert hook.score == 77.5
        assert hook.textual_hook == ""

    def test_out_of_range_scores_are_clamped(self):
        raw = "\n".join([json.dumps(hook_payload(0, score=140)), json.dumps(hook_payload(1, score=-3))])
        scores = [hook.score for hook in parse(raw, CONTEXT).hooks]
        assert scores == [100.0, 0.0]


class TestFallbackPath:
    def test_prose_yields_at_most_six_non_empty_hooks(self):
        raw = "\n".join(f"{i}. Line number {i} about morning routines" for i in range(1, 10))
        result = parse(raw, CONTEXT, rng=random.Random(7))
        assert result.path == ParsePath.FALLBACK
        assert len(result.hooks) == 6
        for hook in result.hooks:
            assert hook.verbal_hook.strip()
            assert hook.visual_hook.strip()
            assert not hook.verbal_hook[0].isdigit()
            assert hook.framework == "Pattern Interrupt"
            assert hook.risk_factor == RiskFactor.LOW
            assert 70 <= hook.score <= 90
            assert hook.textual_hook.endswith("#tiktok #watch_time")

    def test_long_lines_are_truncated_for_visual_hook(self):
        line = "A" * 80
        hook = parse(line, CONTEXT, rng=random.Random(1)).hooks[0]
        assert hook.verbal_hook == line
        assert hook.visual_hook == "A" * 50 + "..."

    def test_short_lines_keep_visual_hook_whole(self):
        hook = parse("Wake up before the sun", CONTEXT, rng=random.Random(1)).hooks[0]
        assert hook.visual_hook == "Wake up before the sun"

    def test_punctuation_only_lines_are_skipped(self):
        raw = "---\n***\nReal hook line here\n...\n"
        result = parse(raw, CONTEXT, rng=random.Random(1))
        assert [hook.verbal_hook for hook in result.hooks] == ["Real hook line here"]

    def test_scores_are_deterministic_with_seeded_rng(self):
        raw = "First line of prose\nSecond line of prose"
        first = [hook.score for hook in parse(raw, CONTEXT, rng=random.Random(42)).hooks]
        second = [hook.score for hook in parse(raw, CONTEXT, rng=random.Random(42)).hooks]
        assert first == second

    def test_json_without_mandatory_fields_falls_back(self):
        result = parse('{"message": "rate limited"}', CONTEXT, rng=random.Random(1))
        assert result.path == ParsePath.FALLBACK


class TestNoHooks:
    def test_empty_text(self):
        result = parse("", CONTEXT)
        assert result.path == ParsePath.NONE
        assert result.hooks == ()
        assert result.empty

    def test_whitespace_and_punctuation_only(self):
        assert parse("\n   \n---\n", CONTEXT).path == ParsePath.NONE

    def test_none(self):
        assert parse(None, CONTEXT).path == ParsePath.NONE


def test_strip_list_marker_variants():
    assert strip_list_marker("1. First") == "First"
    assert strip_list_marker("2) Second") == "Second"
    assert strip_list_marker("3/6 Third") == "Third"
    assert strip_list_marker("(4) Fourth") == "Fourth"
    assert strip_list_marker("[5] Fifth") == "Fifth"
    assert strip_list_marker("Hook 6: Sixth") == "Sixth"
    assert strip_list_marker("- Bullet") == "Bullet"
    assert strip_list_marker("• Dot") == "Dot"
    assert strip_list_marker("No marker") == "No marker"
    assert strip_list_marker("5 mistakes founders make") == "5 mistakes founders make"
    assert strip_list_marker("7: Seventh") == "Seventh"
    assert strip_list_marker("8 - Eighth") == "Eighth"


@pytest.mark.parametrize(
    "line",
    [
        "2.5x faster meal prep starts tonight",
        "5-minute dinners that beat takeout",
        "10:00 PM snacks are ruining your mornings",
        "24/7 support is a lie founders tell",
        "3.14 reasons to skip breakfast",
        "-5% fees if you switch today",
    ],
)
def test_numbers_in_hook_text_are_not_list_markers(line):
    assert strip_list_marker(line) == line


def test_fallback_keeps_leading_numbers_that_are_part_of_the_hook():
    raw = "\n".join(
        [
            "2.5x faster meal prep starts tonight",
            "5-minute dinners that beat takeout",
            "10:00 PM snacks are ruining your mornings",
        ]
    )
    result = parse(raw, CONTEXT, rng=random.Random(3))
    assert result.path == ParsePath.FALLBACK
    assert [hook.verbal_hook for hook in result.hooks] == raw.splitlines()


def test_score_and_risk_normalization():
    assert normalize_score(None) == 0.0
    assert normalize_score("abc") == 0.0
    assert normalize_score(float("nan")) == 0.0
    assert normalize_score(True) == 0.0
    assert normalize_risk_factor("High ") == RiskFactor.HIGH
    assert normalize_risk_factor("extreme") == RiskFactor.LOW
