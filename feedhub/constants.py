"""
Application constants for FeedHub.

Centralized location for limits and magic strings used across the codebase.
Tunable values live in config.py; these are fixed by the data model.
"""

# =============================================================================
# Cache Keys
# =============================================================================

FEED_CACHE_PREFIX = "feed"

# =============================================================================
# Validation Limits
# =============================================================================

MAX_KEYWORD_LENGTH = 100
MAX_DISPLAY_NAME_LENGTH = 255
MAX_COLLECTION_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 2000

MIN_DIVERSITY_LIMIT = 1
MAX_DIVERSITY_LIMIT = 10

MIN_BACKLOG_RATIO = 0.0
MAX_BACKLOG_RATIO = 1.0

# =============================================================================
# Ingestion
# =============================================================================

# Rows per INSERT ... ON CONFLICT statement
CONTENT_INSERT_CHUNK_SIZE = 50

# YouTube Data API caps playlistItems/search pages at 50
YOUTUBE_PAGE_SIZE = 50

# =============================================================================
# Keyword Extraction (block content)
# =============================================================================

MAX_EXTRACTED_KEYWORDS = 5
MIN_EXTRACTED_KEYWORD_LENGTH = 4

STOP_WORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "her", "was", "one", "our", "out", "has", "have", "been", "were",
    "said", "each", "which", "their", "will", "other", "about", "many",
    "then", "them", "these", "some", "would", "make", "like", "into",
    "time", "look", "more", "write", "number", "could", "people", "than",
    "first", "water", "call", "find", "long", "down", "come", "made",
    "part", "this", "that", "with", "from", "they", "what", "when",
    "your", "just", "over", "also", "only", "very", "after", "most",
    "even", "here", "there", "where", "while", "being", "those", "such",
})
