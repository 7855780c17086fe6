"""
MinutesQuiz configuration.

All settings come from environment variables; a local .env file is loaded
first so development setups don't need to export anything.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


# --- AI generation ---
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
QUIZ_AI_MODEL = os.environ.get("QUIZ_AI_MODEL", "gemini-2.5-flash")
QUIZ_MAX_ATTEMPTS = max(1, _int_env("QUIZ_MAX_ATTEMPTS", 3))
QUIZ_RETRY_BACKOFF_SECONDS = max(0.0, _float_env("QUIZ_RETRY_BACKOFF_SECONDS", 2.0))
QUIZ_ATTEMPT_TIMEOUT_SECONDS = max(1.0, _float_env("QUIZ_ATTEMPT_TIMEOUT_SECONDS", 60.0))

# --- Game ---
POINTS_PER_CORRECT = 10
QUIZ_LEADERBOARD_SIZE = max(1, _int_env("QUIZ_LEADERBOARD_SIZE", 10))

# Shared secret for operator endpoints (empty = dev mode, no check)
QUIZ_AUTH_SECRET = os.environ.get("QUIZ_AUTH_SECRET", "")

# --- Server ---
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = _int_env("PORT", 3000)

# --- Logging ---
LOG_DIR = Path(os.environ.get("QUIZ_LOG_DIR") or Path(__file__).parent / "logs")
