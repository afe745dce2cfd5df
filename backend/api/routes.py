"""API routes for game sessions."""
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from fingame import (
    GameError,
    GameSession,
    PlayerNotFoundError,
    serialize_board,
    serialize_cell_result,
    serialize_drawn_card,
    serialize_offer_resolution,
    serialize_player,
    serialize_prediction,
    serialize_report,
    serialize_roll,
    serialize_turn_advance,
)

from .logging_config import activity_logger, get_logger
from .monitoring import cards_drawn_total, dice_rolls_total, record_command
from .sessions import SessionNotFoundError, session_manager
from .websocket_routes import broadcast_session_update

logger = get_logger("routes")

router = APIRouter()


# Request/Response models
class CreateSessionRequest(BaseModel):
    """Request to create a new session."""
    session_id: Optional[str] = None
    seed: Optional[int] = None  # Optional RNG seed for reproducible dice and shuffles


class JoinRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    player_id: Optional[str] = None


class DreamRequest(BaseModel):
    dream_id: str
    name: str
    price: int = Field(..., ge=0)


class MoveRequest(BaseModel):
    steps: int = Field(..., ge=0)


class ForkRequest(BaseModel):
    coin: str  # "heads" or "tails"


class DrawRequest(BaseModel):
    category: str


class DecisionRequest(BaseModel):
    """Answer to a purchase, sale or charity offer."""
    accept: bool


class CellChoiceRequest(BaseModel):
    option_index: int = Field(..., ge=0)


class ClaimRequest(BaseModel):
    cell_id: int


class BusinessRequest(BaseModel):
    name: str
    price: int = Field(..., ge=0)
    cashflow: int = Field(0, ge=0)


def _get_session(session_id: str) -> GameSession:
    try:
        return session_manager.get_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


async def _execute(
    session_id: str,
    command: str,
    player_id: Optional[str],
    action: Callable[[GameSession], Any],
    details: Optional[Dict[str, Any]] = None,
) -> Any:
    """Run a command against a session, map engine errors to HTTP errors, then broadcast."""
    session = _get_session(session_id)
    try:
        result = action(session)
    except PlayerNotFoundError as e:
        record_command(command, "not_found")
        activity_logger.log_game_command(session_id, player_id, command, details, success=False)
        raise HTTPException(status_code=404, detail=str(e))
    except GameError as e:
        record_command(command, "rejected")
        activity_logger.log_game_command(session_id, player_id, command, details, success=False)
        logger.info("command_rejected", session_id=session_id, command=command, player_id=player_id, error=str(e))
        raise HTTPException(status_code=400, detail=str(e))

    record_command(command, "ok")
    activity_logger.log_game_command(session_id, player_id, command, details)
    await broadcast_session_update(session)
    return result


# ----------------------------------------------------------------------
# Sessions
# ----------------------------------------------------------------------

@router.post("/sessions")
async def create_session(request: CreateSessionRequest):
    """Create a new session and return its state."""
    try:
        session = session_manager.create_session(request.session_id, seed=request.seed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.get_state()


@router.get("/sessions")
async def list_sessions() -> List[Dict[str, Any]]:
    return [
        {
            "session_id": s.session_id,
            "status": s.status.value,
            "player_count": len(s.players),
            "max_players": s.config.max_players,
        }
        for s in session_manager.list_sessions()
    ]


@router.get("/sessions/{session_id}")
async def get_session_state(session_id: str):
    return _get_session(session_id).get_state()


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    if not session_manager.delete_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"success": True}


@router.get("/sessions/{session_id}/board")
async def get_board(session_id: str):
    return serialize_board(_get_session(session_id).board)


@router.get("/sessions/{session_id}/log")
async def get_log(session_id: str, since: int = Query(0, ge=0)):
    return _get_session(session_id).log_feed(since)


@router.post("/sessions/{session_id}/start")
async def start_game(session_id: str):
    session = await _execute(session_id, "start_game", None, lambda s: (s.start_game(), s)[1])
    return session.get_state()


@router.post("/sessions/{session_id}/end")
async def end_game(session_id: str):
    report = await _execute(session_id, "end_game", None, lambda s: s.end_game())
    return serialize_report(report)


@router.post("/sessions/{session_id}/reset")
async def reset_session(session_id: str):
    session = await _execute(session_id, "reset", None, lambda s: (s.reset(), s)[1])
    return session.get_state()


@router.post("/sessions/{session_id}/advance-turn")
async def advance_turn(session_id: str):
    advance = await _execute(session_id, "advance_turn", None, lambda s: s.advance_turn())
    return serialize_turn_advance(advance)


# ----------------------------------------------------------------------
# Players
# ----------------------------------------------------------------------

@router.post("/sessions/{session_id}/players")
async def join_session(session_id: str, request: JoinRequest):
    player = await _execute(
        session_id, "join", request.player_id,
        lambda s: s.add_player(request.name, request.player_id),
        {"name": request.name},
    )
    return serialize_player(player)


@router.delete("/sessions/{session_id}/players/{player_id}")
async def leave_session(session_id: str, player_id: str):
    await _execute(session_id, "leave", player_id, lambda s: s.remove_player(player_id))
    return {"success": True}


@router.post("/sessions/{session_id}/players/{player_id}/dream")
async def select_dream(session_id: str, player_id: str, request: DreamRequest):
    await _execute(
        session_id, "select_dream", player_id,
        lambda s: s.select_dream(player_id, request.dream_id, request.name, request.price),
        request.model_dump(),
    )
    return serialize_player(_get_session(session_id).get_player(player_id))


@router.post("/sessions/{session_id}/players/{player_id}/businesses")
async def buy_business(session_id: str, player_id: str, request: BusinessRequest):
    result = await _execute(
        session_id, "buy_business", player_id,
        lambda s: s.buy_business(player_id, request.name, request.price, request.cashflow),
        request.model_dump(),
    )
    response = {"success": result["success"], "error": result.get("error")}
    if result.get("business") is not None:
        response["business_id"] = result["business"].id
    return response


@router.post("/sessions/{session_id}/players/{player_id}/sleep")
async def set_sleeping(session_id: str, player_id: str):
    advance = await _execute(session_id, "sleep", player_id, lambda s: s.set_sleeping(player_id))
    return {"success": True, "turn": serialize_turn_advance(advance)}


@router.post("/sessions/{session_id}/players/{player_id}/wake")
async def wake_up(session_id: str, player_id: str):
    await _execute(session_id, "wake_up", player_id, lambda s: s.wake_up(player_id))
    return {"success": True}


# ----------------------------------------------------------------------
# Turn commands
# ----------------------------------------------------------------------

@router.post("/sessions/{session_id}/players/{player_id}/roll")
async def roll_dice(session_id: str, player_id: str):
    roll = await _execute(session_id, "roll_dice", player_id, lambda s: s.roll_dice(player_id))
    dice_rolls_total.labels(partial=str(roll.is_partial).lower()).inc()
    return serialize_roll(roll)


@router.post("/sessions/{session_id}/players/{player_id}/move")
async def move_player(session_id: str, player_id: str, request: MoveRequest):
    result = await _execute(
        session_id, "move", player_id,
        lambda s: s.move_player(player_id, request.steps),
        {"steps": request.steps},
    )
    return serialize_cell_result(result)


@router.get("/sessions/{session_id}/players/{player_id}/predict")
async def predict_move(session_id: str, player_id: str, steps: int = Query(..., ge=0)):
    session = _get_session(session_id)
    try:
        prediction = session.predict_move(player_id, steps)
    except PlayerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GameError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return serialize_prediction(prediction)


@router.post("/sessions/{session_id}/players/{player_id}/fork")
async def set_fork_direction(session_id: str, player_id: str, request: ForkRequest):
    direction = await _execute(
        session_id, "set_fork_direction", player_id,
        lambda s: s.set_fork_direction(player_id, request.coin),
        {"coin": request.coin},
    )
    return {"coin": request.coin, "direction": direction}


@router.post("/sessions/{session_id}/players/{player_id}/flip-coin")
async def flip_coin(session_id: str, player_id: str):
    return await _execute(session_id, "flip_coin", player_id, lambda s: s.flip_coin(player_id))


@router.post("/sessions/{session_id}/players/{player_id}/draw")
async def draw_card(session_id: str, player_id: str, request: DrawRequest):
    drawn = await _execute(
        session_id, "draw_card", player_id,
        lambda s: s.draw_card(player_id, request.category),
        {"category": request.category},
    )
    cards_drawn_total.labels(category=drawn.card.category.value).inc()
    return serialize_drawn_card(drawn)


@router.post("/sessions/{session_id}/players/{player_id}/purchase-choice")
async def purchase_choice(session_id: str, player_id: str, request: DecisionRequest):
    resolution = await _execute(
        session_id, "purchase_choice", player_id,
        lambda s: s.resolve_purchase_choice(player_id, request.accept),
        {"accept": request.accept},
    )
    return serialize_offer_resolution(resolution)


@router.post("/sessions/{session_id}/players/{player_id}/sale-choice")
async def sale_choice(session_id: str, player_id: str, request: DecisionRequest):
    resolution = await _execute(
        session_id, "sale_choice", player_id,
        lambda s: s.resolve_sale_choice(player_id, request.accept),
        {"accept": request.accept},
    )
    return serialize_offer_resolution(resolution)


@router.post("/sessions/{session_id}/players/{player_id}/charity-choice")
async def charity_choice(session_id: str, player_id: str, request: DecisionRequest):
    resolution = await _execute(
        session_id, "charity_choice", player_id,
        lambda s: s.resolve_charity_choice(player_id, request.accept),
        {"accept": request.accept},
    )
    return serialize_offer_resolution(resolution)


@router.post("/sessions/{session_id}/players/{player_id}/acknowledge-card")
async def acknowledge_card(session_id: str, player_id: str):
    advance = await _execute(session_id, "acknowledge_card", player_id, lambda s: s.acknowledge_card(player_id))
    return serialize_turn_advance(advance)


@router.post("/sessions/{session_id}/players/{player_id}/cell-choice")
async def cell_choice(session_id: str, player_id: str, request: CellChoiceRequest):
    return await _execute(
        session_id, "cell_choice", player_id,
        lambda s: s.resolve_cell_choice(player_id, request.option_index),
        {"option_index": request.option_index},
    )


@router.post("/sessions/{session_id}/players/{player_id}/claim")
async def claim_passed_money(session_id: str, player_id: str, request: ClaimRequest):
    return await _execute(
        session_id, "claim_passed_money", player_id,
        lambda s: s.claim_passed_money(player_id, request.cell_id),
        {"cell_id": request.cell_id},
    )


@router.post("/sessions/{session_id}/players/{player_id}/acknowledge-income-block")
async def acknowledge_income_block(session_id: str, player_id: str):
    return await _execute(
        session_id, "acknowledge_income_block", player_id,
        lambda s: s.acknowledge_income_block(player_id),
    )
