"""Centralized prompts for memory LLM calls."""

SUMMARY_SYSTEM_PROMPT = """
You are a precise summarizer. Create a concise, structured summary capturing goals, facts, constraints, key decisions, unresolved questions, and action items. Preserve crucial numbers, names, links, and user preferences. Avoid fluff. Return 80-140 words if possible.
""".strip()

SUMMARY_INSTRUCTION_TEMPLATE = """
User instruction (preferences/background): {instruction}
""".strip()

SUMMARY_REFINE_TEMPLATE = """
Existing summary to refine:
{summary}
""".strip()

SUMMARY_USER_TEMPLATE = """
Summarize these messages while preserving essential context:

{content}
""".strip()
