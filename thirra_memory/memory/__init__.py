"""Layered conversational memory: turns, facts, summaries, budget and the engine."""
