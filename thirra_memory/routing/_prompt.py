"""Centralized prompts for query classification."""

CLASSIFICATION_PROMPT = """
Classify this user query into ONE category:

Categories:
- coding: Programming questions, debugging, code review, technical implementation, algorithms, software development
- general: Simple questions, greetings, casual conversation, basic information, small talk
- heavy: Research tasks, document creation (resumes, reports), complex analysis, detailed explanations, multi-step reasoning

Context from conversation:
{context}

User query: "{query}"

Respond with ONLY the category name (coding, general, or heavy).
""".strip()

NO_CONTEXT = "No prior context"
