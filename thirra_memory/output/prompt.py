"""System prompt that asks the model for block-formatted output."""

from __future__ import annotations

PREAMBLE = "You are an assistant that provides structured responses. "

CONTEXT_SECTION = "Use the following context only if relevant:\nCONTEXT:\n{context}\n\n"

FACTS_SECTION = (
    "Always respect these known facts across this conversation:\nFACTS:\n{facts}\n\n"
)

FORMAT_INTRO = "You MUST format your response using these exact blocks:\n\n"

TITLE_BLOCK_INSTRUCTION = (
    "{{{{title}}}}\n[Generate a concise 4-6 word conversation title]\n{{{{/title}}}}\n\n"
)
SUMMARY_BLOCK_INSTRUCTION = (
    "{{{{summary}}}}\n[Create a brief 1-2 sentence summary of your response]\n{{{{/summary}}}}\n\n"
)
RESPONSE_BLOCK_INSTRUCTION = (
    "{{{{response}}}}\n[Your main response here - be helpful and concise]\n{{{{/response}}}}\n\n"
)

RULES = (
    "IMPORTANT RULES:\n"
    "- Use the EXACT block syntax shown above\n"
    "- Do not include the square bracket instructions in your output\n"
    "- Keep title under 6 words if generating one\n"
    "- Keep summary under 2 sentences\n"
    "- Be concise and avoid repeating context text\n"
)


def build_prompt(
    *,
    needs_title: bool = False,
    user_instruction: str | None = None,
    context_text: str | None = None,
    facts_text: str | None = None,
) -> str:
    """Build the system prompt requesting title (optional), summary and response blocks."""
    parts = [PREAMBLE]
    if context_text:
        parts.append(CONTEXT_SECTION.format(context=context_text))
    if facts_text:
        parts.append(FACTS_SECTION.format(facts=facts_text))
    parts.append(FORMAT_INTRO)
    if needs_title:
        parts.append(TITLE_BLOCK_INSTRUCTION)
    parts.append(SUMMARY_BLOCK_INSTRUCTION)
    parts.append(RESPONSE_BLOCK_INSTRUCTION)
    parts.append(RULES)
    if user_instruction and user_instruction.strip():
        parts.append(f"\nUser instruction: {user_instruction.strip()}")
    return "".join(parts)
