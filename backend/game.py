from enum import Enum
from typing import Optional

from logger import get_logger, log_game_event
from models import Question, QuestionPayload, Session

logger = get_logger("MinutesQuiz.game")


class GameState(str, Enum):
    NOT_STARTED = "not_started"
    QUESTION_OPEN = "question_open"
    FINISHED = "finished"


class GameStateMachine:
    """Forward-only, operator-driven walk over the session's question set."""

    def __init__(self, session: Session):
        self.session = session

    @property
    def state(self) -> GameState:
        session = self.session
        if session.current_question_index < 0:
            return GameState.NOT_STARTED
        if session.current_question_index >= len(session.questions):
            return GameState.FINISHED
        return GameState.QUESTION_OPEN

    def advance(self) -> Optional[QuestionPayload]:
        """Open the next question, or return None once the set is exhausted"""
        session = self.session
        # Cursor stops at len(questions) so a finished game stays finished
        session.current_question_index = min(session.current_question_index + 1, len(session.questions))

        if session.current_question_index < len(session.questions):
            for participant in session.participants.values():
                participant.answered = False
            session.active = True

            question = session.questions[session.current_question_index]
            logger.info(f"⏭️ Question {session.current_question_index + 1}/{len(session.questions)} started")
            logger.debug(f"Correct answer index: {question.correctIndex}")
            log_game_event("question_started", data={
                "question_index": session.current_question_index,
                "total_questions": len(session.questions),
                "player_count": len(session.participants),
            })
            return session.question_payload()

        session.active = False
        logger.info(f"🏁 Game over after {len(session.questions)} questions")
        log_game_event("game_over", data={"player_count": len(session.participants)})
        return None

    def load_new_quiz_data(self, questions: list[Question]) -> None:
        self.session.load_quiz_data(questions)
        log_game_event("quiz_loaded", data={
            "question_count": len(questions),
            "player_count": len(self.session.participants),
        })
