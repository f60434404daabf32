"""Prompt templates for insight generation.

Every prompt receives already-redacted entry snippets and asks for a
single JSON object matching the corresponding result model.
"""

from __future__ import annotations

_NO_CONTEXT = "No specific entries provided for context."

_JSON_ONLY = (
    "Reply with the JSON object only: no introduction, apology, explanation, "
    "code fences or markdown around it. Escape all string values properly."
)


def _snippets(entries_context: str) -> str:
    return f"```\n{entries_context or _NO_CONTEXT}\n```"


def weekly_summary_prompt(entries_context: str) -> str:
    return f"""Analyze these redacted journal snippets from the past week:
{_snippets(entries_context)}
Using ONLY these snippets, summarize the writer's main activities, recurring themes and overall mood for the week.
Respond with a single valid JSON object of exactly this shape:
{{
  "mainSummary": "2-3 sentences covering the week's activities and feelings.",
  "keyThemes": ["1-3 short themes, e.g. 'Work Stress', 'Family Time'"],
  "moodTrend": "The general mood trend, e.g. 'Mostly positive with a mid-week dip'.",
  "notableQuote": "A short quote (max 15 words) from one snippet, or an empty string."
}}
{_JSON_ONLY} If the snippets are empty or insufficient, use empty strings and arrays."""


def mood_trend_prompt(entries_context: str) -> str:
    return f"""Analyze the mood pattern in these journal records:
{_snippets(entries_context)}
Using ONLY these records, identify the overall trend, the dominant mood and notable shifts.
Respond with a single valid JSON object of exactly this shape:
{{
  "overallTrend": "One of 'Improving', 'Declining', 'Stable', 'Fluctuating'.",
  "dominantMood": "The most frequent mood name, or 'Mixed'.",
  "moodShifts": ["Brief notable shifts (max 10 words each); empty array if none."],
  "analysis": "A 1-2 sentence interpretation of the pattern."
}}
{_JSON_ONLY} If the records are empty or insufficient, use empty strings and arrays."""


def recommendation_prompt(entries_context: str) -> str:
    return f"""Review these redacted journal snippets for areas of growth or support:
{_snippets(entries_context)}
Using ONLY these snippets, suggest 2-3 actionable, personal recommendations about well-being, mindfulness or self-improvement.
Respond with a single valid JSON object of exactly this shape:
{{
  "recommendations": [
    {{
      "title": "A short title, e.g. 'Mindful Morning Moment'.",
      "description": "1-2 sentences describing the action.",
      "category": "One of 'Mindfulness', 'Activity', 'Social', 'Self-Care', 'Reflection'.",
      "rationale": "One sentence on why it may help, based on the snippets."
    }}
  ]
}}
{_JSON_ONLY} If there is not enough context, return {{"recommendations": []}}."""


SUMMARY_USER_MESSAGE = "Generate the weekly summary based on the provided context."
MOOD_TREND_USER_MESSAGE = "Generate the mood trend analysis based on the provided context."
RECOMMENDATION_USER_MESSAGE = "Generate recommendations based on the provided journal context."
