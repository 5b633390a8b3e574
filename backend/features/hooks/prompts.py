"""Prompt templates for hook generation.

Plain-text building blocks assembled by the prompt builder. Nothing here is
backend specific.
"""

BASE_PROMPT = (
    "You are an expert short-form video hook writer with deep knowledge of "
    "psychological triggers and platform optimization. You write opening lines "
    "that stop the scroll in the first two seconds."
)

PSYCHOLOGICAL_FRAMEWORK = """PSYCHOLOGICAL DRIVERS (use several, vary them):
- Curiosity Gap: open an information gap that demands closure
- Social Proof: lean on crowd behavior and results
- Authority: signal expertise and credibility
- Scarcity: limited time or availability
- Loss Aversion: what the viewer loses by scrolling past
- Pattern Interrupt: break the expected pattern
- Controversy: a safe contrarian take that sparks engagement
- Personal Stakes: make it personally relevant

HOOK CATEGORIES:
- question-based, statement-based, narrative, urgency-exclusivity, efficiency

MODALITIES:
- verbalHook: what is said on camera
- visualHook: on-screen text or visual element
- textualHook: caption or description"""

PLATFORM_PROMPTS = {
    "tiktok": {
        "tone": "fast-paced, trend-aware, authentic",
        "structure": "Vertical video; the hook lands in under two seconds.",
    },
    "instagram": {
        "tone": "visual-first, lifestyle-focused, aesthetic",
        "structure": "Reels; strong on-screen text and a save-worthy promise.",
    },
    "youtube": {
        "tone": "educational, searchable, clear payoff",
        "structure": "Shorts; state the value up front, keep it searchable.",
    },
}

OBJECTIVE_PROMPTS = {
    "watch_time": "Maximize watch time: open a loop the viewer needs the rest of the video to close.",
    "shares": "Maximize shares: make the viewer want to send this to a specific person.",
    "saves": "Maximize saves: promise reference-worthy value the viewer will come back to.",
    "ctr": "Maximize click-through: make the next action irresistible without misleading.",
    "follows": "Maximize follows: signal a recurring series or point of view worth following.",
}

SAFETY_DIRECTIVES = {
    "family-friendly": (
        "Safety level FAMILY-FRIENDLY: no profanity, no innuendo, no fear-based or "
        "shock tactics. Every hook must be riskFactor \"low\"."
    ),
    "standard": (
        "Safety level STANDARD: no profanity or harmful claims. Mild tension is fine; "
        "use riskFactor \"medium\" at most unless clearly justified."
    ),
    "edgy": (
        "Safety level EDGY: bold, contrarian angles are welcome, but never hateful, "
        "harmful or deceptive. Mark provocative hooks riskFactor \"high\"."
    ),
}

NEUTRAL_PLACEHOLDERS = {
    "company": "Not specified",
    "industry": "Not specified",
    "voice": "Not specified",
    "audience": "General audience",
}

HOOK_FIELDS = (
    "verbalHook",
    "visualHook",
    "textualHook",
    "framework",
    "psychologicalDriver",
    "category",
    "riskFactor",
    "score",
    "rationale",
    "platformNotes",
)

OUTPUT_SHAPE_DIRECTIVE = """OUTPUT FORMAT:
Return exactly {hook_count} JSON objects, one per line, and nothing else: no
numbering, no markdown fences, no commentary before or after. Each object has
exactly these fields:
{{"verbalHook": "...", "visualHook": "...", "textualHook": "...", "framework": "...", "psychologicalDriver": "...", "category": "...", "riskFactor": "low|medium|high", "score": 0-100, "rationale": "...", "platformNotes": "..."}}"""
