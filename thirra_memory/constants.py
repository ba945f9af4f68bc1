"""Default configuration settings for the thirra-memory package."""

from __future__ import annotations

# --- Provider Configuration ---
DEFAULT_OPENAI_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_LIGHTWEIGHT_MODEL = "openai/gpt-4o-mini"
DEFAULT_EMBEDDING_MODEL = "openai/text-embedding-3-large"
DEFAULT_APP_TITLE = "Thirra AI"

# --- Routing Configuration ---
DEFAULT_CLASSIFIER_MODEL = "openai/gpt-4o-mini"
DEFAULT_CODING_MODEL = "anthropic/claude-3.5-sonnet"
DEFAULT_GENERAL_MODEL = "deepseek/deepseek-chat"
DEFAULT_HEAVY_MODEL = "openai/gpt-4o"

# Cost per 1M tokens, used for reporting only
CATEGORY_COST_PER_MILLION = {
    "coding": 3.0,
    "general": 0.14,
    "heavy": 5.0,
}
BASELINE_COST_PER_MILLION = 3.0

# --- Memory Configuration ---
RECENT_MESSAGE_COUNT = 5
SUMMARY_CAP_CHARS = 600
SUMMARY_PREFIX = "Earlier conversation summary (compact):"
MAX_FACTS_PER_CONVERSATION = 50

# --- Cache Configuration ---
TURNS_CACHE_TTL_SECONDS = 30.0
SUMMARY_CACHE_TTL_SECONDS = 120.0
SUMMARY_DRIFT_THRESHOLD = 2
MAX_CACHED_CONVERSATIONS = 1000

# --- RAG Configuration ---
CHUNK_SIZE = 1000
CHUNK_OVERLAP = 150
RETRIEVAL_CHUNK_MAX_CHARS = 450
THRESHOLD_FACTOR = 0.8
MAX_CHUNKS_PER_CONVERSATION = 1000
COMPLEX_QUERY_THRESHOLD = 0.6

# --- Prompt Budget Configuration ---
PROMPT_CHAR_BUDGET = 4500
MAX_HISTORY_CHARS = 1600
COMPRESSED_RECENT_CHARS = 240
MAX_CONTEXT_TOKENS = 8000
ATTACHMENT_MAX_CHARS = 5000

# --- Output Block Limits ---
TITLE_MAX_CHARS = 120
OUTPUT_SUMMARY_MAX_CHARS = 500
