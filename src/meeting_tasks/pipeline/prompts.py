"""Prompt text for task extraction.

``PROMPT_VERSION`` is stamped on every audit record so offline review can
tell which wording produced a given output; bump it whenever either
prompt changes.
"""

from __future__ import annotations

PROMPT_VERSION = "tasks-v1"

SYSTEM_PROMPT = (
    "You are an expert at extracting actionable tasks from meeting transcripts. "
    "Always return valid JSON."
)

_EXTRACTION_TEMPLATE = """Analyze this meeting transcript and extract all actionable tasks, action items, and commitments.

For each task, identify:
- task: A clear, actionable description of what needs to be done
- assignee: The person responsible (use "Unassigned" if not clear)
- due_date: The due date in YYYY-MM-DD format if mentioned, otherwise null
- priority: "High", "Medium", or "Low" based on urgency and importance
- context: A brief quote or reason from the transcript supporting the task

Return ONLY a JSON array of objects with exactly these fields: task, assignee, due_date, priority, context.
Do not include any other text, explanations, or markdown formatting.
If there are no tasks, return an empty array: []

Meeting transcript:
{transcript}"""


def build_extraction_prompt(transcript: str) -> str:
    """User message asking for the JSON task array."""
    return _EXTRACTION_TEMPLATE.format(transcript=transcript)


def build_messages(transcript: str) -> list[dict]:
    """Chat messages for one extraction call."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_extraction_prompt(transcript)},
    ]
