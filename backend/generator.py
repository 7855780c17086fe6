"""
Quiz generation pipeline.

Turns free-text meeting minutes into a validated question set via Gemini.
Any failure (transport error, timeout, unparseable JSON, bad shape) costs one
attempt; attempts are separated by a constant backoff and capped.
"""

import asyncio
import json
import re
import traceback
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from google import genai
from google.genai import types

from config import (
    GEMINI_API_KEY,
    QUIZ_AI_MODEL,
    QUIZ_ATTEMPT_TIMEOUT_SECONDS,
    QUIZ_MAX_ATTEMPTS,
    QUIZ_RETRY_BACKOFF_SECONDS,
)
from logger import AICallTracker, get_ai_logger, get_logger, usage_from_metadata
from models import Question
from validator import QuestionSetValidationError, validate_question_set

logger = get_logger("MinutesQuiz.generator")
ai_log = get_ai_logger()

# (prompt, system_message) -> raw model text
GenerateFn = Callable[[str, str], Awaitable[str]]


QUIZ_SYSTEM_PROMPT = """You are a quiz generator API.
Analyze the provided meeting minutes (MOM) and generate exactly 10 multiple-choice questions.

RULES:
1. Return ONLY a raw JSON array. No text before or after.
2. Each question MUST have exactly 4 options.
3. "correctIndex" must be 0, 1, 2, or 3.

JSON STRUCTURE:
[
  {
    "id": 1,
    "question": "Question text here?",
    "options": ["Red Option", "Blue Option", "Green Option", "Yellow Option"],
    "correctIndex": 0
  }
]

"correctIndex" is the integer 0-based index of the correct option."""


_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*([\s\S]*?)\s*```$")


def strip_code_fence(content: str) -> str:
    """Remove a surrounding ```json ... ``` wrapper, if the model added one"""
    content = content.strip()
    match = _FENCE_RE.match(content)
    if match:
        return match.group(1).strip()
    return content


def parse_quiz_response(content: str) -> List[Question]:
    """Parse and validate a raw model response into questions."""
    data = json.loads(strip_code_fence(content))
    return validate_question_set(data)


@dataclass
class RetryPolicy:
    max_attempts: int = QUIZ_MAX_ATTEMPTS
    backoff_seconds: float = QUIZ_RETRY_BACKOFF_SECONDS
    attempt_timeout: float = QUIZ_ATTEMPT_TIMEOUT_SECONDS


# --- Gemini transport ---

_client: Optional[genai.Client] = None


def _get_client() -> genai.Client:
    global _client
    if _client is None:
        if not GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY is not set. Add it to your .env file.")
        _client = genai.Client(api_key=GEMINI_API_KEY)
    return _client


async def generate_with_gemini(
    prompt: str,
    system_message: str = QUIZ_SYSTEM_PROMPT,
    model: Optional[str] = None,
    caller: str = "generate_quiz",
) -> str:
    """Send one generation request to Gemini and return the raw response text"""
    model = model or QUIZ_AI_MODEL

    tracker = AICallTracker(
        endpoint=caller,
        model=model,
        prompt_chars=len(system_message) + len(prompt),
    )
    tracker.start()

    ai_log.debug("System message:\n%s", system_message)
    ai_log.debug("User prompt (%d chars):\n%s", len(prompt), prompt[:2000])

    try:
        response = await _get_client().aio.models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=system_message,
                response_mime_type="application/json",
            ),
        )
        text = (response.text or "").strip()

        ai_log.debug("Response (%d chars):\n%s", len(text), text[:2000])
        if not text:
            ai_log.warning("EMPTY RESPONSE from Gemini")

        tracker.finish(
            success=True,
            response_chars=len(text),
            token_usage=usage_from_metadata(getattr(response, "usage_metadata", None)),
        )
        return text

    except asyncio.CancelledError:
        # wait_for timed us out
        if not tracker.finished:
            tracker.finish(success=False, error="Cancelled (attempt timeout)")
        raise

    except Exception as e:
        if not tracker.finished:
            tracker.finish(success=False, error=f"{type(e).__name__}: {e}")
        ai_log.error("Full traceback:\n%s", traceback.format_exc())
        raise


# --- Retry pipeline ---

async def generate_quiz(
    source_text: str,
    max_attempts: Optional[int] = None,
    *,
    generate_fn: Optional[GenerateFn] = None,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Optional[List[Question]]:
    """Generate a validated question set, or None once every attempt has failed.

    Never raises for generation problems; the caller reports overall failure.
    """
    policy = policy or RetryPolicy()
    if max_attempts is not None:
        policy = RetryPolicy(
            max_attempts=max_attempts,
            backoff_seconds=policy.backoff_seconds,
            attempt_timeout=policy.attempt_timeout,
        )
    generate_fn = generate_fn or generate_with_gemini

    attempt = 0
    while attempt < policy.max_attempts:
        attempt += 1
        logger.info(f"🔄 Sending to AI (attempt {attempt}/{policy.max_attempts}, {len(source_text)} chars)")
        try:
            content = await asyncio.wait_for(
                generate_fn(source_text, QUIZ_SYSTEM_PROMPT),
                timeout=policy.attempt_timeout,
            )
            questions = parse_quiz_response(content)
            logger.info(f"✅ Quiz generated: {len(questions)} questions on attempt {attempt}")
            return questions

        except asyncio.TimeoutError:
            logger.error(f"❌ Attempt {attempt} failed: timed out after {policy.attempt_timeout}s")
        except json.JSONDecodeError as e:
            logger.error(f"❌ Attempt {attempt} failed: invalid JSON ({e})")
        except QuestionSetValidationError as e:
            logger.error(f"❌ Attempt {attempt} failed: invalid quiz data ({e.reason})")
        except Exception as e:
            logger.error(f"❌ Attempt {attempt} failed: {type(e).__name__}: {e}")

        if attempt < policy.max_attempts:
            logger.info(f"⏳ Waiting {policy.backoff_seconds}s before retry...")
            await sleep(policy.backoff_seconds)

    logger.error(f"💀 All {policy.max_attempts} AI attempts failed")
    return None
