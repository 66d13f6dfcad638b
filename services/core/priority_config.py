"""
Priority Lifecycle Configuration
Single source of truth for thresholds, scores & timeouts
"""
import os

# =========================
# Score bounds
# =========================

SCORE_MIN = 0
SCORE_MAX = 100

# =========================
# Soft delete / purge
# =========================

# Grace window before a soft-deleted priority is purged. Fixed, not tunable.
PURGE_GRACE_HOURS = 24

# In-process sweeper loop interval (Celery beat runs hourly on its own)
PURGE_SWEEP_INTERVAL_SECONDS = int(os.getenv("PURGE_SWEEP_INTERVAL_SECONDS", "3600"))

# =========================
# Duplicate detection
# =========================

# Normalised titles more similar than this are treated as the same priority
SIMILAR_TITLE_THRESHOLD = 0.8

# =========================
# Fires auto-sync
# =========================

FIRES_CATEGORY = "fires"
FIRES_TITLE_PREFIX = "🔥 "

FIRES_SCORES = {
    "goal": 95,
    "task": 90,
}

FIRES_SYNC_COOLDOWN_MS = int(os.getenv("FIRES_SYNC_COOLDOWN_MS", "5000"))
FIRES_SYNC_COOLDOWN_KEY = "priorities:fires_sync:{owner_id}"

# =========================
# AI recommendations
# =========================

COMPLETION_API_BASE = os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1")
COMPLETION_API_KEY = os.getenv("OPENAI_API_KEY", "")
COMPLETION_MODEL = os.getenv("PRIORITY_COMPLETION_MODEL", "gpt-4o")
COMPLETION_TEMPERATURE = float(os.getenv("PRIORITY_COMPLETION_TEMPERATURE", "0.7"))
COMPLETION_MAX_TOKENS = int(os.getenv("PRIORITY_COMPLETION_MAX_TOKENS", "2000"))

# Hard upper bound for the whole completion round-trip
COMPLETION_TIMEOUT_SECONDS = float(os.getenv("PRIORITY_COMPLETION_TIMEOUT_SECONDS", "45"))

# Candidates beyond this are ignored (service contract is 3-5)
MAX_AI_CANDIDATES = 5

# =========================
# Redis
# =========================

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
