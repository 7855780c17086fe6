from pydantic import BaseModel, ConfigDict
from typing import Optional, Union
from dataclasses import dataclass, field
import secrets

from config import POINTS_PER_CORRECT, QUIZ_LEADERBOARD_SIZE


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    question: str
    options: list[str]  # exactly 4, position is the answer index
    correctIndex: int  # 0-indexed


class Participant(BaseModel):
    id: str  # connection id
    name: str
    score: int = 0
    answered: bool = False  # current question only


class ScoreResult(BaseModel):
    correct: bool
    score: int


class Rejected(BaseModel):
    reason: str  # unknown_participant | already_answered | no_active_question | invalid_answer


class LeaderboardEntry(BaseModel):
    name: str
    score: int


class QuestionPayload(BaseModel):
    """What participants see of a question – never the correct index."""
    index: int
    question: str
    options: list[str]


class SessionSnapshot(BaseModel):
    currentQuestionIndex: int
    active: bool
    questionCount: int
    playerCount: int
    question: Optional[QuestionPayload] = None


def to_answer_index(value) -> Optional[int]:
    """Integer value of an answer index given as int or numeric text, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


@dataclass
class Session:
    questions: list[Question] = field(default_factory=list)
    current_question_index: int = -1  # -1 = not started
    active: bool = False
    participants: dict[str, Participant] = field(default_factory=dict)  # conn id -> Participant

    def add_or_update_participant(self, conn_id: str, name: str) -> Participant:
        """Register a participant. Re-joining on the same connection starts fresh."""
        self.participants.pop(conn_id, None)
        participant = Participant(id=conn_id, name=name)
        self.participants[conn_id] = participant
        return participant

    def remove_participant(self, conn_id: str) -> Optional[Participant]:
        return self.participants.pop(conn_id, None)

    def load_quiz_data(self, questions: list[Question]) -> None:
        """Install a new question set. The roster survives, scores do not."""
        self.questions = list(questions)
        self.current_question_index = -1
        self.active = False
        for participant in self.participants.values():
            participant.score = 0
            participant.answered = False

    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    def record_answer(self, conn_id: str, index) -> Union[ScoreResult, Rejected]:
        """Score a participant's single answer to the open question"""
        participant = self.participants.get(conn_id)
        if participant is None:
            return Rejected(reason="unknown_participant")

        question = self.current_question()
        if not self.active or question is None:
            return Rejected(reason="no_active_question")

        if participant.answered:
            return Rejected(reason="already_answered")

        choice = to_answer_index(index)
        if choice is None:
            return Rejected(reason="invalid_answer")

        participant.answered = True
        correct = choice == question.correctIndex
        if correct:
            participant.score += POINTS_PER_CORRECT
        return ScoreResult(correct=correct, score=participant.score)

    def leaderboard(self, limit: int = QUIZ_LEADERBOARD_SIZE) -> list[LeaderboardEntry]:
        """Top participants by score; ties keep join order (sorted() is stable)."""
        ranked = sorted(self.participants.values(), key=lambda p: -p.score)
        return [LeaderboardEntry(name=p.name, score=p.score) for p in ranked[:max(limit, 0)]]

    def roster(self) -> list[LeaderboardEntry]:
        return [LeaderboardEntry(name=p.name, score=p.score) for p in self.participants.values()]

    def question_payload(self) -> Optional[QuestionPayload]:
        question = self.current_question()
        if question is None:
            return None
        return QuestionPayload(
            index=self.current_question_index,
            question=question.question,
            options=list(question.options),
        )

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            currentQuestionIndex=self.current_question_index,
            active=self.active,
            questionCount=len(self.questions),
            playerCount=len(self.participants),
            question=self.question_payload() if self.active else None,
        )


def generate_connection_id() -> str:
    """Generate a connection ID"""
    return secrets.token_urlsafe(16)
