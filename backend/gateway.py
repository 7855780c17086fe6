"""
Realtime gateway: maps inbound participant/operator events onto the session
and game state machine, and fans the resulting state out over WebSockets.
"""

from typing import Any, Awaitable, Callable, List, Optional

from fastapi import WebSocket
from pydantic import BaseModel

from game import GameStateMachine
from generator import generate_quiz
from logger import get_logger, log_game_event
from models import Question, Rejected, Session

logger = get_logger("MinutesQuiz.gateway")

QuizGenerator = Callable[[str], Awaitable[Optional[List[Question]]]]


class LoadQuizResult(BaseModel):
    success: bool
    message: str
    questionCount: Optional[int] = None
    inFlight: bool = False


class ConnectionRegistry:
    """conn_id -> websocket, with broadcast and direct-send helpers"""

    def __init__(self):
        self.connections: dict[str, WebSocket] = {}

    def register(self, conn_id: str, websocket: WebSocket) -> None:
        self.connections[conn_id] = websocket

    def unregister(self, conn_id: str) -> None:
        self.connections.pop(conn_id, None)

    def __contains__(self, conn_id: str) -> bool:
        return conn_id in self.connections

    def __len__(self) -> int:
        return len(self.connections)

    async def broadcast(self, event: str, payload: Optional[dict[str, Any]] = None) -> None:
        message = {'type': event, **(payload or {})}
        dead_connections = []
        for conn_id, ws in list(self.connections.items()):
            try:
                await ws.send_json(message)
            except Exception:
                dead_connections.append(conn_id)

        for conn_id in dead_connections:
            self.connections.pop(conn_id, None)
        if dead_connections:
            logger.debug(f"🧹 Cleaned {len(dead_connections)} dead connection(s)")

    async def send_to(self, conn_id: str, event: str, payload: Optional[dict[str, Any]] = None) -> bool:
        ws = self.connections.get(conn_id)
        if ws is None:
            return False
        try:
            await ws.send_json({'type': event, **(payload or {})})
            return True
        except Exception:
            self.connections.pop(conn_id, None)
            logger.debug(f"🧹 Dropped dead connection {conn_id}")
            return False


class RealtimeGateway:
    def __init__(self, session: Session, registry: ConnectionRegistry, generate: Optional[QuizGenerator] = None):
        self.session = session
        self.registry = registry
        self.machine = GameStateMachine(session)
        self.generate = generate or generate_quiz
        self.generation_in_flight = False

    async def broadcast_roster(self) -> None:
        await self.registry.broadcast('update_players', {
            'players': [e.model_dump() for e in self.session.roster()]
        })

    async def broadcast_leaderboard(self) -> None:
        await self.registry.broadcast('update_leaderboard', {
            'leaderboard': [e.model_dump() for e in self.session.leaderboard()]
        })

    async def join(self, conn_id: str, name: str) -> None:
        participant = self.session.add_or_update_participant(conn_id, name)
        logger.info(f"👤 {participant.name} joined (total={len(self.session.participants)})")
        log_game_event("player_joined", player_id=conn_id, data={
            "name": participant.name,
            "player_count": len(self.session.participants),
        })

        await self.broadcast_roster()
        # Late joiners need the question that's already open
        await self.registry.send_to(conn_id, 'session_state', {
            'state': self.session.snapshot().model_dump()
        })

    async def submit(self, conn_id: str, index: Any) -> None:
        result = self.session.record_answer(conn_id, index)

        if isinstance(result, Rejected):
            participant = self.session.participants.get(conn_id)
            logger.info(f"🚫 Answer rejected ({result.reason}) from {participant.name if participant else conn_id}")
            log_game_event("answer_rejected", player_id=conn_id, data={"reason": result.reason})
            await self.registry.send_to(conn_id, 'answer_rejected', {'reason': result.reason})
            return

        participant = self.session.participants[conn_id]
        logger.info(f"📝 {participant.name} answered {index!r}: correct={result.correct}, score={result.score}")
        log_game_event("answer_submitted", player_id=conn_id, data={
            "question_index": self.session.current_question_index,
            "choice": index,
            "correct": result.correct,
            "score": result.score,
        })

        await self.registry.send_to(conn_id, 'answer_result', result.model_dump())
        await self.broadcast_leaderboard()

    async def operator_advance(self) -> None:
        payload = self.machine.advance()
        if payload is None:
            await self.registry.broadcast('game_over')
        else:
            await self.registry.broadcast('new_question', payload.model_dump())

    async def operator_load_quiz(self, text: str) -> LoadQuizResult:
        if self.generation_in_flight:
            logger.warning("⚠️  Quiz generation already in progress - rejecting load request")
            return LoadQuizResult(success=False, message="Quiz generation already in progress", inFlight=True)

        self.generation_in_flight = True
        try:
            questions = await self.generate(text)
        finally:
            self.generation_in_flight = False

        if not questions:
            logger.error("❌ Quiz load failed - AI generation exhausted")
            log_game_event("quiz_load_failed", data={"source_chars": len(text)})
            return LoadQuizResult(success=False, message="AI Failed")

        self.machine.load_new_quiz_data(questions)
        logger.info(f"📚 Quiz loaded: {len(questions)} questions, {len(self.session.participants)} players")

        await self.registry.broadcast('quiz_loaded', {'questionCount': len(questions)})
        await self.broadcast_roster()
        return LoadQuizResult(success=True, message="Quiz Loaded", questionCount=len(questions))

    async def disconnect(self, conn_id: str) -> None:
        self.registry.unregister(conn_id)
        participant = self.session.remove_participant(conn_id)
        if participant is None:
            return

        logger.info(f"👋 {participant.name} left (total={len(self.session.participants)})")
        log_game_event("player_left", player_id=conn_id, data={
            "name": participant.name,
            "player_count": len(self.session.participants),
        })
        await self.broadcast_roster()
