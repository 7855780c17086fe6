"""
Pytest fixtures for MinutesQuiz tests.
"""

import os
import tempfile

# Keep test runs from writing into backend/logs
os.environ.setdefault("QUIZ_LOG_DIR", tempfile.mkdtemp(prefix="minutesquiz-logs-"))

import pytest

from gateway import ConnectionRegistry, RealtimeGateway
from models import Question, Session


def make_question(number: int, correct: int = 0) -> Question:
    return Question(
        id=number,
        question=f"Question {number}?",
        options=["Red", "Blue", "Green", "Yellow"],
        correctIndex=correct,
    )


def make_raw_question(number: int, correct=0, options=None) -> dict:
    return {
        "id": number,
        "question": f"What was decided in item {number}?",
        "options": options if options is not None else ["A", "B", "C", "D"],
        "correctIndex": correct,
    }


class FakeWebSocket:
    """Stands in for a Starlette WebSocket; records everything sent to it."""

    def __init__(self, broken: bool = False):
        self.sent: list[dict] = []
        self.broken = broken

    async def send_json(self, data: dict) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def of_type(self, event: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == event]

    def last(self, event: str) -> dict:
        return self.of_type(event)[-1]


@pytest.fixture
def question_set() -> list[Question]:
    """Ten questions whose correct answer cycles 0..3."""
    return [make_question(i + 1, correct=i % 4) for i in range(10)]


@pytest.fixture
def session() -> Session:
    return Session()


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def gateway(session, registry, question_set) -> RealtimeGateway:
    async def fake_generate(text):
        return question_set

    return RealtimeGateway(session, registry, generate=fake_generate)
