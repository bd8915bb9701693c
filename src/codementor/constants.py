"""Status vocabularies, queue limits and pricing shared across modules.

The enums are StrEnums so their members go straight into JSON bodies,
SQL columns and websocket frames.
"""

from __future__ import annotations

from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class SessionStatus(StrEnum):
    """Analysis session lifecycle status."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionOrigin(StrEnum):
    """Where the code of a session came from."""

    SNIPPET = "snippet"
    REPOSITORY = "repository"


class FeedbackCategory(StrEnum):
    PERFORMANCE = "performance"
    SECURITY = "security"
    READABILITY = "readability"
    ARCHITECTURE = "architecture"
    BEST_PRACTICES = "best-practices"


class FeedbackSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SkillLevel(StrEnum):
    """Reviewer framing applied to the analysis prompt."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"


class JobStatus(StrEnum):
    """Durable queue row status.

    ``dead`` is the dead-letter state: retries exhausted or the error
    is permanent.
    """

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    DEAD = "dead"


class LiveEvent(StrEnum):
    """Live channel event names."""

    FEEDBACK_UPDATE = "feedback-update"
    ANALYSIS_STATUS = "analysis-status"


class ClientMessage(StrEnum):
    """Websocket message types sent by clients."""

    SUBSCRIBE = "subscribe-session"
    UNSUBSCRIBE = "unsubscribe-session"


# Queue message kind for analysis jobs
ANALYZE_CODE_JOB = "analyze-code"

# Forward-only within one attempt; a retried job re-enters from failed
SESSION_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.ANALYZING}),
    SessionStatus.ANALYZING: frozenset(
        {SessionStatus.COMPLETED, SessionStatus.FAILED}
    ),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset({SessionStatus.ANALYZING}),
}

# ── Circuit Breaker Configuration ────────────────────────

CB_LLM_FAILURE_THRESHOLD = 5
CB_LLM_RECOVERY_TIMEOUT = 30

# ── Retry Strategy ───────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_WAIT = 2
RETRY_MAX_WAIT = 30

# Terminal status writes after a pipeline failure
STATUS_WRITE_ATTEMPTS = 3
STATUS_WRITE_WAIT = 0.5

# ── LLM Output ───────────────────────────────────────────

LLM_MAX_OUTPUT_TOKENS = 4096
DEFAULT_USAGE_MODEL = "gpt-4-turbo-preview"

# ── Token / Cost Estimation ─────────────────────────────

CHARS_PER_TOKEN_ESTIMATE = 4
INPUT_TOKEN_SHARE = 0.7
OUTPUT_TOKEN_SHARE = 0.3

# USD per single token (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4-turbo-preview": (0.01 / 1000, 0.03 / 1000),
    "gpt-4": (0.03 / 1000, 0.06 / 1000),
    "gpt-3.5-turbo": (0.0015 / 1000, 0.002 / 1000),
}

# ── Scores ───────────────────────────────────────────────

SCORE_MIN = 0
SCORE_MAX = 100

# ── Misc ─────────────────────────────────────────────────

ERROR_TRUNCATION_CHARS = 200
DEFAULT_SNIPPET_FILE_NAME = "code.txt"
DEFAULT_MISTAKES_LIMIT = 10
WS_CLOSE_UNAUTHORIZED = 4401

# ── Auth Exempt Paths ────────────────────────────────────

AUTH_EXEMPT_PATHS = frozenset({
    "/api/health",
    "/api/docs",
    "/api/redoc",
    "/api/openapi.json",
})

# Websocket auth happens inside the endpoint at connect time
AUTH_EXEMPT_PREFIXES = ("/api/health", "/ws/")

# ── ID Generation ───────────────────────────────────────

ID_HEX_LENGTH = 12

# ── Status Messages (user-facing) ───────────────────────

STATUS_MESSAGES: dict[str, str] = {
    SessionStatus.ANALYZING: "Starting code analysis...",
    SessionStatus.COMPLETED: "Analysis completed successfully!",
}
