"""
MinutesQuiz Backend Logging
===========================
Structured, rotating file-based logging with dedicated AI-generation
token-usage tracking. Logs are written to  backend/logs/  (or QUIZ_LOG_DIR).

Log files produced:
  - minutesquiz.log        General backend log (all levels)
  - ai.log                 Generation call details (prompts, responses, timing)
  - token_usage.jsonl      One JSON object per AI call – easy to grep/parse for spend analysis
  - game_events.jsonl      Structured game events (joins, answers, advances) for analytics
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any
from contextvars import ContextVar

from config import LOG_DIR

# ---------------------------------------------------------------------------
# Request / Correlation ID  (set per-request for traceability across logs)
# ---------------------------------------------------------------------------

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


def set_request_id(rid: str | None = None) -> str:
    """Set a correlation ID for the current request context. Returns the ID."""
    rid = rid or uuid.uuid4().hex[:12]
    _request_id.set(rid)
    return rid


def get_request_id() -> str:
    return _request_id.get("-")

# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_VERBOSE_FMT = logging.Formatter(
    fmt="%(asctime)s | %(levelname)-8s | %(name)-20s | [%(request_id)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    defaults={"request_id": "-"},
)

_CONSOLE_FMT = logging.Formatter(
    fmt="%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)

# ---------------------------------------------------------------------------
# Handler factory
# ---------------------------------------------------------------------------

def _rotating_handler(
    filename: str,
    max_bytes: int = 5 * 1024 * 1024,   # 5 MB per file
    backup_count: int = 5,
    level: int = logging.DEBUG,
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        LOG_DIR / filename,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_VERBOSE_FMT)
    return handler


def _jsonl_handler(filename: str) -> RotatingFileHandler:
    handler = _rotating_handler(
        filename,
        max_bytes=10 * 1024 * 1024,  # 10 MB
        backup_count=10,
    )
    # JSONL lines should be raw – no formatter prefix
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler

# ---------------------------------------------------------------------------
# Logger setup – call once at startup
# ---------------------------------------------------------------------------

_CONFIGURED = False


class _RequestIdFilter(logging.Filter):
    """Inject the current request_id context var into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()  # type: ignore[attr-defined]
        return True


def setup_logging(*, console_level: int = logging.INFO) -> None:
    """Initialise all loggers.  Safe to call more than once."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    rid_filter = _RequestIdFilter()

    # ---- Root / general logger ------------------------------------------
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addFilter(rid_filter)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(_CONSOLE_FMT)
    root.addHandler(console)

    root.addHandler(_rotating_handler("minutesquiz.log", level=logging.DEBUG))

    # ---- AI-generation logger -------------------------------------------
    ai_logger = logging.getLogger("ai")
    ai_logger.setLevel(logging.DEBUG)
    ai_logger.addHandler(_rotating_handler("ai.log", level=logging.DEBUG))
    ai_logger.propagate = True

    # ---- Token-usage logger (JSONL) -------------------------------------
    token_logger = logging.getLogger("ai.tokens")
    token_logger.setLevel(logging.DEBUG)
    token_logger.addHandler(_jsonl_handler("token_usage.jsonl"))
    token_logger.propagate = False  # don't echo raw JSON to console

    # ---- Game-events logger (JSONL) -------------------------------------
    game_logger = logging.getLogger("game.events")
    game_logger.setLevel(logging.DEBUG)
    game_logger.addHandler(_jsonl_handler("game_events.jsonl"))
    game_logger.propagate = False

    logging.getLogger("MinutesQuiz").info(
        f"📁 Logging initialised – log directory: {LOG_DIR.resolve()}"
    )


# ---------------------------------------------------------------------------
# Convenience accessors
# ---------------------------------------------------------------------------

def get_logger(name: str = "MinutesQuiz") -> logging.Logger:
    return logging.getLogger(name)


def get_ai_logger() -> logging.Logger:
    return logging.getLogger("ai")


def get_token_logger() -> logging.Logger:
    return logging.getLogger("ai.tokens")


def get_game_event_logger() -> logging.Logger:
    return logging.getLogger("game.events")


# ---------------------------------------------------------------------------
# Structured game-event helper
# ---------------------------------------------------------------------------

def log_game_event(
    event_type: str,
    *,
    player_id: str | None = None,
    data: dict[str, Any] | None = None,
) -> None:
    """Write a structured JSON line to game_events.jsonl.

    Use for player joins/leaves, answers, question advances and quiz loads.
    Each line is self-contained and easy to query with jq / pandas.
    """
    record = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event_type,
        "request_id": get_request_id(),
    }
    if player_id:
        record["player_id"] = player_id
    if data:
        record.update(data)
    get_game_event_logger().info(json.dumps(record, default=str))


# ---------------------------------------------------------------------------
# Token-usage tracking
# ---------------------------------------------------------------------------

class AICallTracker:
    """Times a single generation call and logs its usage."""

    def __init__(
        self,
        *,
        endpoint: str = "generate_quiz",
        model: str = "gemini-2.5-flash",
        prompt_chars: int = 0,
    ):
        self.endpoint = endpoint
        self.model = model
        self.prompt_chars = prompt_chars
        self._start: float = 0.0
        self._finished = False
        self._log = get_ai_logger()
        self._token_log = get_token_logger()

    def start(self) -> "AICallTracker":
        self._start = time.time()
        self._log.info(
            "┌─ AI call START  endpoint=%s  model=%s  prompt_chars=%d",
            self.endpoint,
            self.model,
            self.prompt_chars,
        )
        return self

    def finish(
        self,
        *,
        response_chars: int = 0,
        success: bool = True,
        error: str | None = None,
        token_usage: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._finished = True
        elapsed_ms = int((time.time() - self._start) * 1000)

        usage = dict(token_usage or {})
        # No hard numbers from the API: ~4 chars per token estimate
        if not usage:
            prompt_est = self.prompt_chars // 4
            completion_est = response_chars // 4
            usage = {
                "estimated": True,
                "prompt_tokens_est": prompt_est,
                "completion_tokens_est": completion_est,
                "total_tokens_est": prompt_est + completion_est,
            }

        record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoint": self.endpoint,
            "model": self.model,
            "prompt_chars": self.prompt_chars,
            "response_chars": response_chars,
            "elapsed_ms": elapsed_ms,
            "success": success,
            "error": error,
            "token_usage": usage,
        }

        self._token_log.info(json.dumps(record, default=str))

        usage_str = ""
        parts = [
            f"{key.split('_')[0]}={usage[key]}"
            for key in ("prompt_tokens", "completion_tokens", "total_tokens")
            if usage.get(key)
        ]
        if parts:
            usage_str = "  tokens=[" + ", ".join(parts) + "]"

        status = "OK" if success else f"FAIL ({error})"
        self._log.info(
            "└─ AI call END    endpoint=%s  status=%s  %dms  "
            "prompt=%d chars  response=%d chars%s",
            self.endpoint,
            status,
            elapsed_ms,
            self.prompt_chars,
            response_chars,
            usage_str,
        )
        return record

    @property
    def finished(self) -> bool:
        return self._finished


def usage_from_metadata(metadata: Any) -> dict[str, Any]:
    """Map a Gemini ``usage_metadata`` object onto our token-usage keys."""
    if metadata is None:
        return {}
    usage: dict[str, Any] = {}
    for attr, key in (
        ("prompt_token_count", "prompt_tokens"),
        ("candidates_token_count", "completion_tokens"),
        ("total_token_count", "total_tokens"),
    ):
        value = getattr(metadata, attr, None)
        if isinstance(value, int):
            usage[key] = value
    if "total_tokens" not in usage and usage:
        usage["total_tokens"] = usage.get("prompt_tokens", 0) + usage.get("completion_tokens", 0)
    return usage


# ---------------------------------------------------------------------------
# Usage summary (served by /api/token-usage)
# ---------------------------------------------------------------------------

def summarize_token_usage(since_hours: float = 24) -> dict[str, Any]:
    """Parse token_usage.jsonl and return aggregate stats."""
    jsonl_path = LOG_DIR / "token_usage.jsonl"
    if not jsonl_path.exists():
        return {"error": "No token_usage.jsonl found", "calls": 0}

    cutoff = time.time() - since_hours * 3600
    calls: list[dict] = []
    total_prompt = 0
    total_completion = 0
    total_elapsed_ms = 0
    errors = 0
    slowest_call: dict[str, Any] | None = None

    with open(jsonl_path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                rec = json.loads(line)
            except json.JSONDecodeError:
                continue
            ts_str = rec.get("timestamp", "")
            try:
                ts = datetime.fromisoformat(ts_str).timestamp()
            except (ValueError, TypeError):
                ts = 0
            if ts < cutoff:
                continue
            calls.append(rec)
            usage = rec.get("token_usage") or {}
            total_prompt += usage.get("prompt_tokens", usage.get("prompt_tokens_est", 0))
            total_completion += usage.get("completion_tokens", usage.get("completion_tokens_est", 0))
            elapsed = rec.get("elapsed_ms", 0)
            total_elapsed_ms += elapsed
            if not rec.get("success"):
                errors += 1
            if slowest_call is None or elapsed > slowest_call.get("elapsed_ms", 0):
                slowest_call = {"endpoint": rec.get("endpoint", "unknown"), "elapsed_ms": elapsed, "timestamp": ts_str}

    return {
        "period_hours": since_hours,
        "total_calls": len(calls),
        "successful_calls": len(calls) - errors,
        "failed_calls": errors,
        "error_rate_pct": round(errors / max(len(calls), 1) * 100, 1),
        "total_prompt_tokens": total_prompt,
        "total_completion_tokens": total_completion,
        "total_tokens": total_prompt + total_completion,
        "avg_elapsed_ms": total_elapsed_ms // max(len(calls), 1),
        "slowest_call": slowest_call,
        "models_used": sorted({c.get("model", "unknown") for c in calls}),
    }
