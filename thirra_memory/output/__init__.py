"""Structured block output: prompt instructions and lenient parsing."""
