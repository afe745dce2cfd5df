"""
Serialization of engine objects to JSON-friendly dictionaries.
"""
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from .board import Board, Cell
from .cells import CellResult, DrawnCard
from .effects import serialize_effect
from .finance import OfferResolution
from .models import HistoryEntry, Notification, Player, SessionStatus, TurnPhase
from .movement import MovePrediction
from .turns import GameReport, RollResult, TurnAdvance

# History actions shown to players as alerts in the log feed.
ALERT_ACTIONS = frozenset({"turn_skipped", "income_blocked", "turn_stalemate"})


def serialize_player(player: Player) -> Dict[str, Any]:
    """Serialize a Player to a dictionary."""
    return {
        "id": player.id,
        "display_name": player.display_name,
        "color": player.color,
        "player_number": player.player_number,
        "joined_at": player.joined_at,
        "position": {
            "current_cell_id": player.position.current_cell_id,
            "current_cell_type": player.position.current_cell_type.value,
            "pending_fork_direction": player.position.pending_fork_direction,
        },
        "status": asdict(player.status),
        "wallets": player.wallets.as_dict(),
        "total_cash": player.wallets.total(),
        "assets": {
            "businesses": [asdict(b) for b in player.assets.businesses],
            "items": [asdict(i) for i in player.assets.items],
            "skills": list(player.assets.skills),
            "dream": asdict(player.assets.dream) if player.assets.dream else None,
            "dream_fulfilled": player.assets.dream_fulfilled,
        },
        "debts": [asdict(d) for d in player.debts],
        "total_debt": player.total_debt,
        "passed_money_cells": list(player.passed_money_cells),
        "pending_offer": {
            "kind": player.pending_offer.kind,
            "effect": serialize_effect(player.pending_offer.effect),
            "source": player.pending_offer.source,
        } if player.pending_offer else None,
        "pending_choice": [
            {"text": o.text, "effect": serialize_effect(o.effect)} for o in player.pending_choice
        ],
    }


def available_commands(session, player_id: str) -> List[str]:
    """Commands the player may issue right now."""
    player = session.players.get(player_id)
    if player is None:
        return []
    commands = []
    if player.assets.dream is None:
        commands.append("select_dream")
    if session.status != SessionStatus.IN_PROGRESS:
        return commands
    if player.passed_money_cells:
        commands.append("claim_passed_money")
    if player.status.blocked_income_events > 0:
        commands.append("acknowledge_income_block")
    commands.append("buy_business")
    if session.current_turn_player_id != player_id:
        return commands

    phase = session.turn_phase
    if phase == TurnPhase.AWAITING_ROLL:
        cell = session.board.get(player.position.current_cell_id)
        if cell.is_fork and player.position.pending_fork_direction is None:
            commands.append("flip_coin")
        elif player.assets.dream is not None or not session.config.require_dream_before_roll:
            commands.append("roll_dice")
    elif phase == TurnPhase.AWAITING_MOVE:
        commands.append("move")
    elif phase == TurnPhase.AWAITING_DRAW:
        commands.append("draw_card")
    elif phase == TurnPhase.AWAITING_CHOICE:
        if player.pending_offer is not None:
            commands.append(f"{player.pending_offer.kind}_choice")
        elif player.pending_choice:
            commands.append("cell_choice")
    elif phase == TurnPhase.AWAITING_ACKNOWLEDGEMENT and session.pending_acknowledgement == "card":
        commands.append("acknowledge_card")
    return commands


def serialize_session_state(session) -> Dict[str, Any]:
    """Snapshot of a session broadcast to every client."""
    return {
        "session_id": session.session_id,
        "status": session.status.value,
        "host_id": session.host_id,
        "current_turn_player_id": session.current_turn_player_id,
        "turn_phase": session.turn_phase.value if session.turn_phase else None,
        "rolled_steps": session.rolled_steps,
        "pending_draw_category": session.pending_draw_category.value if session.pending_draw_category else None,
        "pending_acknowledgement": session.pending_acknowledgement,
        "players": [serialize_player(p) for p in session.players.values()],
        "available_commands": {pid: available_commands(session, pid) for pid in session.players},
        "deck_sizes": session.decks.sizes(),
        "started_at": session.started_at.isoformat() if session.started_at else None,
        "finished_at": session.finished_at.isoformat() if session.finished_at else None,
        "history_length": len(session.history),
    }


def serialize_cell(cell: Cell) -> Dict[str, Any]:
    return {
        "id": cell.id,
        "type": cell.type.value,
        "name": cell.name,
        "edges": list(cell.edges),
        "dream_id": cell.dream_id,
        "price": cell.price,
        "wildcard": cell.wildcard,
    }


def serialize_board(board: Board) -> Dict[str, Any]:
    return {"cells": [serialize_cell(c) for c in board.cells.values()]}


def serialize_history_entry(entry: HistoryEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "timestamp": entry.timestamp,
        "actor_id": entry.actor_id,
        "actor_name": entry.actor_name,
        "action": entry.action,
        "details": entry.details,
    }


def serialize_log_entry(entry: HistoryEntry) -> Dict[str, Any]:
    """Outward-facing log line derived from a history entry."""
    return {
        "id": entry.id,
        "timestamp": entry.timestamp,
        "player_name": entry.actor_name,
        "action": entry.action,
        "message": entry.message,
        "is_alert": entry.action in ALERT_ACTIONS,
    }


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    return asdict(notification)


def serialize_roll(roll: RollResult) -> Dict[str, Any]:
    return {"result": roll.result, "is_partial": roll.is_partial, "dice": list(roll.dice)}


def serialize_cell_result(result: CellResult) -> Dict[str, Any]:
    return asdict(result)


def serialize_prediction(prediction: MovePrediction) -> Dict[str, Any]:
    return {
        "target_cell_id": prediction.target_cell_id,
        "path": list(prediction.path),
        "passed_money_cells": list(prediction.passed_money_cells),
    }


def serialize_drawn_card(drawn: DrawnCard) -> Dict[str, Any]:
    """The card as sent to clients: its definition merged with what it did."""
    card = drawn.card
    effect = drawn.effect
    return {
        "id": card.id,
        "category": card.category.value,
        "title": card.title,
        "description": card.description,
        "image": card.image,
        "effect": serialize_effect(card.effect),
        "requires_skill": card.requires_skill,
        "requires_asset": card.requires_asset,
        "processed_message": effect.message if effect.requirement_met else None,
        **{k: v for k, v in asdict(effect).items() if k != "message"},
    }


def serialize_offer_resolution(resolution: OfferResolution) -> Dict[str, Any]:
    return asdict(resolution)


def serialize_turn_advance(advance: Optional[TurnAdvance]) -> Optional[Dict[str, Any]]:
    return asdict(advance) if advance is not None else None


def serialize_report(report: GameReport) -> Dict[str, Any]:
    return {
        "duration_minutes": report.duration_minutes,
        "players": [serialize_player(p) for p in report.players],
        "history": [serialize_history_entry(e) for e in report.history],
        "statistics": dict(report.statistics),
    }
