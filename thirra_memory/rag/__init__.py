"""Per-conversation semantic recall over embeddings."""
