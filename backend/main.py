from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, Optional
import logging

from config import HOST, PORT, QUIZ_AUTH_SECRET, QUIZ_LEADERBOARD_SIZE
from game import GameState
from gateway import ConnectionRegistry, RealtimeGateway
from models import Session, generate_connection_id
from logger import (
    setup_logging, get_logger, summarize_token_usage, set_request_id,
)

# Initialise structured, file-based logging
setup_logging(console_level=logging.INFO)
logger = get_logger("MinutesQuiz")

app = FastAPI(title="MinutesQuiz API")

# CORS - allow all origins for simplicity (adjust for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)

# The single live quiz, its open sockets, and the gateway tying them together
session = Session()
registry = ConnectionRegistry()
gateway = RealtimeGateway(session, registry)


# --- Request/Response Models ---

class LoadQuizRequest(BaseModel):
    mom: Optional[str] = None


def verify_auth_token(token: Optional[str]) -> bool:
    """Verify the shared operator secret"""
    if not QUIZ_AUTH_SECRET:
        return True  # Allow if not configured (dev mode)
    return token == QUIZ_AUTH_SECRET


if not QUIZ_AUTH_SECRET:
    logger.warning("⚠️  QUIZ_AUTH_SECRET not set - operator controls unprotected!")


# --- Operator Endpoints ---

@app.post("/admin/load-quiz")
async def load_quiz(request: LoadQuizRequest, x_auth_token: str = Header(default="")):
    """Generate a quiz from meeting minutes and install it"""
    set_request_id()
    if not verify_auth_token(x_auth_token):
        raise HTTPException(status_code=401, detail="Unauthorized - invalid auth token")

    mom = (request.mom or "").strip()
    if not mom:
        return JSONResponse(status_code=400, content={"success": False, "message": "No text provided"})

    logger.info(f"🎯 Load-quiz request: {len(mom)} chars of minutes")
    try:
        result = await gateway.operator_load_quiz(mom)
    except Exception as e:
        logger.error(f"❌ Quiz load crashed: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "message": "AI Failed"})

    if result.inFlight:
        return JSONResponse(status_code=409, content={"success": False, "message": result.message})
    if not result.success:
        return JSONResponse(status_code=500, content={"success": False, "message": result.message})
    return {"success": True, "message": result.message, "questionCount": result.questionCount}


@app.post("/admin/next")
async def next_question(x_auth_token: str = Header(default="")):
    """Advance to the next question (HTTP twin of the admin_next_question event)"""
    set_request_id()
    if not verify_auth_token(x_auth_token):
        raise HTTPException(status_code=401, detail="Unauthorized - invalid auth token")

    await gateway.operator_advance()
    snapshot = session.snapshot()
    return {"ok": True, "finished": gateway.machine.state == GameState.FINISHED, "state": snapshot.model_dump()}


# --- Read-only Endpoints ---

@app.get("/api/leaderboard")
async def get_leaderboard(limit: int = QUIZ_LEADERBOARD_SIZE):
    return {"leaderboard": [e.model_dump() for e in session.leaderboard(limit)]}


@app.get("/api/state")
async def get_state():
    """Current session snapshot (correct answers are never included)"""
    return {
        "state": session.snapshot().model_dump(),
        "gameState": gateway.machine.state.value,
        "players": [e.model_dump() for e in session.roster()],
        "generating": gateway.generation_in_flight,
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok", "connections": len(registry)}


@app.get("/api/token-usage")
async def get_token_usage(hours: float = 24):
    """Return aggregated AI token-usage stats from the JSONL log."""
    return summarize_token_usage(since_hours=hours)


# --- WebSocket ---

async def handle_client_message(conn_id: str, data: Any) -> None:
    """Dispatch one inbound participant/operator event"""
    if not isinstance(data, dict):
        await registry.send_to(conn_id, 'error', {'message': 'Invalid message'})
        return

    msg_type = data.get('type')

    if msg_type == 'join_lobby':
        name = data.get('name')
        if not isinstance(name, str) or not name.strip():
            await registry.send_to(conn_id, 'error', {'message': 'Name required'})
            return
        await gateway.join(conn_id, name.strip())

    elif msg_type == 'submit_answer':
        await gateway.submit(conn_id, data.get('answer'))

    elif msg_type == 'admin_next_question':
        if not verify_auth_token(data.get('authToken')):
            await registry.send_to(conn_id, 'error', {'message': 'Invalid auth token'})
            return
        await gateway.operator_advance()

    else:
        await registry.send_to(conn_id, 'error', {'message': f'Unknown message type: {msg_type}'})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket connection for participants and the operator screen"""
    await websocket.accept()

    conn_id = generate_connection_id()
    registry.register(conn_id, websocket)
    logger.info(f"🔌 WebSocket connected: {conn_id} (open={len(registry)})")

    try:
        await websocket.send_json({
            'type': 'session_state',
            'state': session.snapshot().model_dump()
        })

        while True:
            try:
                data = await websocket.receive_json()
            except WebSocketDisconnect:
                break
            except ValueError:
                await registry.send_to(conn_id, 'error', {'message': 'Malformed JSON'})
                continue
            await handle_client_message(conn_id, data)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"🔌 WebSocket error for {conn_id}: {e}", exc_info=True)
    finally:
        await gateway.disconnect(conn_id)
        logger.info(f"🔌 WebSocket disconnected: {conn_id} (open={len(registry)})")


if __name__ == "__main__":
    import uvicorn
    print(f"\n🎮 MinutesQuiz Server")
    print(f"   URL: http://localhost:{PORT}\n")
    uvicorn.run(app, host=HOST, port=PORT)
