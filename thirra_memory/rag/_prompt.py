"""Centralized prompts for RAG LLM calls."""

COMPRESSION_SYSTEM_PROMPT = """
You compress context for efficient retrieval. Preserve facts, entities, relations, constraints, and numbers. Remove filler, examples, and redundant phrasing. Target {low_pct}-{high_pct}% of original tokens. Return plain text only.
""".strip()

COMPRESSION_INSTRUCTION_TEMPLATE = """
User instruction (preferences/background): {instruction}
""".strip()

COMPRESSION_USER_TEMPLATE = """
Compress this context while retaining key facts and relations:

{chunk}
""".strip()
