from __future__ import annotations

from typing import Any, List

from models import Question, to_answer_index


OPTION_COUNT = 4
REQUIRED_FIELDS = ("id", "question", "options", "correctIndex")


class QuestionSetValidationError(ValueError):
    """Raised when generated quiz data doesn't have the expected shape."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def _check_question(position: int, item: Any) -> Question:
    if not isinstance(item, dict):
        raise QuestionSetValidationError(f"question {position} is not an object")

    missing = [name for name in REQUIRED_FIELDS if item.get(name) is None]
    if missing:
        raise QuestionSetValidationError(f"question {position} is missing {', '.join(missing)}")

    text = item["question"]
    if not isinstance(text, str) or not text.strip():
        raise QuestionSetValidationError(f"question {position} has no question text")

    options = item["options"]
    if not isinstance(options, list) or len(options) != OPTION_COUNT:
        raise QuestionSetValidationError(f"question {position} must have exactly {OPTION_COUNT} options")
    if not all(isinstance(option, str) for option in options):
        raise QuestionSetValidationError(f"question {position} options must be strings")

    correct = to_answer_index(item["correctIndex"])
    if correct is None or not 0 <= correct < OPTION_COUNT:
        raise QuestionSetValidationError(
            f"question {position} correctIndex must be 0-{OPTION_COUNT - 1}, got {item['correctIndex']!r}"
        )

    ident = item["id"]
    if isinstance(ident, bool) or not isinstance(ident, (int, str)):
        raise QuestionSetValidationError(f"question {position} has an invalid id")

    return Question(id=ident, question=text, options=options, correctIndex=correct)


def validate_question_set(raw: Any) -> List[Question]:
    """Turn parsed model output into typed questions, checking every element."""
    if not isinstance(raw, list):
        raise QuestionSetValidationError("quiz data must be a JSON array")
    if not raw:
        raise QuestionSetValidationError("quiz data is empty")
    return [_check_question(i, item) for i, item in enumerate(raw)]
