"""Quiz policy constants shared across the core and server layers."""

DEFAULT_TIME_LIMIT_MINUTES: int = 30
MIN_TIME_LIMIT_MINUTES: int = 1
MAX_TIME_LIMIT_MINUTES: int = 180

# One initial attempt plus this many retries per (user, quiz) chain.
MAX_RETRIES: int = 2
PASSING_PERCENTAGE: float = 50.0

AUTOSAVE_WORKER_COUNT: int = 4
AUTOSAVE_STORE_ATTEMPTS: int = 3
AUTOSAVE_BACKOFF_INITIAL_SECONDS: float = 0.05
AUTOSAVE_BACKOFF_MAX_SECONDS: float = 1.0
AUTOSAVE_FLUSH_TIMEOUT_SECONDS: float = 5.0
# Closed attempt ids remembered for fast rejection; older ones fall back to the store check.
AUTOSAVE_CLOSED_HISTORY: int = 1024

QUIZ_FILE_PATTERN: str = "*.txt"
