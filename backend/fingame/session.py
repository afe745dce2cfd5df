"""
Game session facade.

A `GameSession` is the single mutable container for one game: players,
decks, turn pointer and history. The finance ledger, movement resolver, cell
interpreter and turn sequencer all work on the session they are given, and
every public command runs under the session's lock so commands never
interleave.
"""
import random
import threading
from datetime import datetime
from functools import lru_cache, wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import structlog

from .board import Board
from .cards import CardCategory, CardLibrary, DeckStore
from .cells import CellEffectInterpreter, CellResult, CellTable, DrawnCard
from .config import GameConfig
from .errors import InvalidCommandError, PlayerNotFoundError
from .finance import FinanceLedger, OfferResolution
from .models import (
    PLAYER_COLORS,
    Dream,
    HistoryEntry,
    Notification,
    Player,
    Position,
    SessionStatus,
    TurnPhase,
    Wallets,
    utc_now_iso,
)
from .movement import MovePrediction, MovementResolver
from .serialization import serialize_log_entry, serialize_session_state
from .turns import GameReport, RollResult, TurnAdvance, TurnSequencer

logger = structlog.get_logger("fingame.session")


@lru_cache(maxsize=8)
def load_game_data(data_dir: Path) -> Tuple[Board, CellTable, CardLibrary]:
    """Load board, cell definitions and cards from a data directory (cached)."""
    data_dir = Path(data_dir)
    return (
        Board.load(data_dir / "board.json"),
        CellTable.load(data_dir / "cells.json"),
        CardLibrary.load(data_dir / "cards"),
    )


def synchronized(method: Callable) -> Callable:
    """Run a session method under the session's lock."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class GameSession:
    """One game: its players, decks, turn state and history."""

    def __init__(
        self,
        session_id: str = "default",
        config: Optional[GameConfig] = None,
        board: Optional[Board] = None,
        cell_table: Optional[CellTable] = None,
        card_library: Optional[CardLibrary] = None,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
    ):
        self.session_id = session_id
        self.config = config or GameConfig()
        if board is None or cell_table is None or card_library is None:
            default_board, default_cells, default_cards = load_game_data(self.config.data_dir)
            board = board or default_board
            cell_table = cell_table or default_cells
            card_library = card_library or default_cards
        self.board = board
        self.cell_table = cell_table
        self.card_library = card_library
        self.rng = rng or random.Random(seed)
        self._lock = threading.RLock()

        self.finance = FinanceLedger(self)
        self.movement = MovementResolver(self)
        self.cells = CellEffectInterpreter(self)
        self.turns = TurnSequencer(self)

        self._init_state()

    def _init_state(self):
        self.status = SessionStatus.WAITING
        self.players: Dict[str, Player] = {}
        self.host_id: Optional[str] = None
        self.current_turn_player_id: Optional[str] = None
        self.turn_phase: Optional[TurnPhase] = None
        self.rolled_steps: Optional[int] = None
        self.pending_draw_category: Optional[CardCategory] = None
        self.pending_acknowledgement: Optional[str] = None  # "card" or "income_block"
        self.decks = DeckStore(self.card_library, self.rng)
        self.history: List[HistoryEntry] = []
        self.notifications: List[Notification] = []
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self._next_player_number = 1

    # ------------------------------------------------------------------
    # Shared helpers used by the components
    # ------------------------------------------------------------------

    def get_player(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)
        return player

    def add_to_history(self, action: str, actor: Optional[Player] = None, **details: Any) -> HistoryEntry:
        """Append an entry to the history log."""
        entry = HistoryEntry(
            id=len(self.history) + 1,
            timestamp=utc_now_iso(),
            actor_id=actor.id if actor else None,
            actor_name=actor.display_name if actor else None,
            action=action,
            details=details,
        )
        self.history.append(entry)
        logger.debug("history_entry", session_id=self.session_id, action=action, actor_id=entry.actor_id)
        return entry

    def notify(self, title: str, message: str, type: str = "info", player_name: Optional[str] = None):
        self.notifications.append(Notification(title=title, message=message, type=type, player_name=player_name))

    @synchronized
    def drain_notifications(self) -> List[Notification]:
        """Return and clear the notifications raised since the last call."""
        drained, self.notifications = self.notifications, []
        return drained

    @synchronized
    def get_state(self) -> Dict[str, Any]:
        return serialize_session_state(self)

    @synchronized
    def log_feed(self, since: int = 0) -> List[Dict[str, Any]]:
        """Outward log entries, starting after the first `since` history entries."""
        return [serialize_log_entry(e) for e in self.history[since:]]

    def _require_in_progress(self):
        if self.status != SessionStatus.IN_PROGRESS:
            raise InvalidCommandError("The game is not in progress")

    def _require_phase(self, *phases: TurnPhase):
        if self.turn_phase not in phases:
            current = self.turn_phase.value if self.turn_phase else None
            raise InvalidCommandError(
                f"Not allowed now: turn is {current}, expected {' or '.join(p.value for p in phases)}"
            )

    # ------------------------------------------------------------------
    # Lobby
    # ------------------------------------------------------------------

    @synchronized
    def add_player(self, name: str, player_id: Optional[str] = None) -> Player:
        """Join the session. Only possible before the game starts."""
        if self.status != SessionStatus.WAITING:
            raise InvalidCommandError("Players can only join while the session is waiting")
        if len(self.players) >= self.config.max_players:
            raise InvalidCommandError(f"Session is full ({self.config.max_players} players)")
        name = (name or "").strip()
        if not name:
            raise InvalidCommandError("Player name must not be empty")

        number = self._next_player_number
        if not player_id:
            player_id = self._free_player_id(number)
        if player_id in self.players:
            raise InvalidCommandError(f"Player {player_id} already joined")

        used = {p.color for p in self.players.values()}
        color = next((c for c in PLAYER_COLORS if c not in used), PLAYER_COLORS[(number - 1) % len(PLAYER_COLORS)])
        start = self.board.start_cell
        player = Player(
            id=player_id,
            display_name=name,
            color=color,
            player_number=number,
            position=Position(current_cell_id=start.id, current_cell_type=start.type),
            wallets=Wallets(savings=self.config.starting_savings),
        )
        self.players[player_id] = player
        self._next_player_number += 1
        if self.host_id is None:
            self.host_id = player_id

        self.add_to_history("player_joined", player, color=color, message=f"{name} joined the game")
        logger.info("player_joined", session_id=self.session_id, player_id=player_id, player_number=number)
        return player

    def _free_player_id(self, number: int) -> str:
        """`player_{n}` for the first n >= `number` that no one has taken."""
        while f"player_{number}" in self.players:
            number += 1
        return f"player_{number}"

    @synchronized
    def remove_player(self, player_id: str):
        """Remove a player; hands over the host role and the turn when needed."""
        player = self.get_player(player_id)
        ids = list(self.players)
        index = ids.index(player_id)
        was_current = self.current_turn_player_id == player_id

        del self.players[player_id]
        self.add_to_history("player_left", player, message=f"{player.display_name} left the game")
        logger.info("player_left", session_id=self.session_id, player_id=player_id)

        if self.host_id == player_id:
            remaining = sorted(self.players.values(), key=lambda p: p.player_number)
            self.host_id = remaining[0].id if remaining else None

        if not self.players:
            if self.status != SessionStatus.WAITING:
                self.reset()
            return

        if was_current and self.status == SessionStatus.IN_PROGRESS:
            self.turns.advance_turn(after_index=index - 1)

    @synchronized
    def reset(self):
        """Drop every player and all game state, back to waiting."""
        self._init_state()
        logger.info("session_reset", session_id=self.session_id)

    @synchronized
    def select_dream(self, player_id: str, dream_id: str, name: str, price: int) -> Dream:
        """Choose the player's dream. A dream can only be chosen once."""
        player = self.get_player(player_id)
        if player.assets.dream is not None:
            raise InvalidCommandError(f"{player.display_name} already chose a dream")
        if price < 0:
            raise InvalidCommandError("Dream price must not be negative")
        dream = Dream(id=dream_id, name=name, price=price)
        player.assets.dream = dream
        self.add_to_history("dream_selected", player, dream_id=dream_id, price=price,
                            message=f"{player.display_name} dreams of {name}")
        return dream

    # ------------------------------------------------------------------
    # Game lifecycle
    # ------------------------------------------------------------------

    @synchronized
    def start_game(self):
        self.turns.start_game()

    @synchronized
    def end_game(self) -> GameReport:
        return self.turns.end_game()

    @synchronized
    def advance_turn(self) -> TurnAdvance:
        self._require_in_progress()
        return self.turns.advance_turn()

    # ------------------------------------------------------------------
    # Turn commands
    # ------------------------------------------------------------------

    @synchronized
    def roll_dice(self, player_id: str) -> RollResult:
        player = self.turns.require_turn(player_id)
        self._require_phase(TurnPhase.AWAITING_ROLL)
        if self.config.require_dream_before_roll and player.assets.dream is None:
            raise InvalidCommandError(f"{player.display_name} must choose a dream before rolling")
        cell = self.board.get(player.position.current_cell_id)
        if cell.is_fork and player.position.pending_fork_direction is None:
            raise InvalidCommandError(f"{player.display_name} must flip a coin at the fork before rolling")

        roll = self.turns.roll_dice(player_id)
        if not roll.is_partial:
            self.rolled_steps = roll.result
            self.turn_phase = TurnPhase.AWAITING_MOVE
        return roll

    @synchronized
    def move_player(self, player_id: str, steps: int) -> CellResult:
        self.turns.require_turn(player_id)
        self._require_phase(TurnPhase.AWAITING_MOVE)
        if steps != self.rolled_steps:
            raise InvalidCommandError(f"Move must be {self.rolled_steps} step(s), got {steps}")

        result = self.movement.move_player(player_id, steps)
        self.rolled_steps = None
        self._settle_landing(result)
        return result

    def _settle_landing(self, result: CellResult):
        if result.action == "draw_card":
            self.turn_phase = TurnPhase.AWAITING_DRAW
            self.pending_draw_category = CardCategory(result.card_category)
        elif result.action == "choice":
            self.turn_phase = TurnPhase.AWAITING_CHOICE
        elif result.action == "income_blocked_ack":
            self.turn_phase = TurnPhase.AWAITING_ACKNOWLEDGEMENT
            self.pending_acknowledgement = "income_block"
        elif result.end_turn:
            self.turns.advance_turn()

    @synchronized
    def predict_move(self, player_id: str, steps: int) -> MovePrediction:
        return self.movement.predict_move(player_id, steps)

    @synchronized
    def set_fork_direction(self, player_id: str, coin_result: str) -> int:
        self.turns.require_turn(player_id)
        self._require_phase(TurnPhase.AWAITING_ROLL)
        return self.movement.set_fork_direction(player_id, coin_result)

    @synchronized
    def flip_coin(self, player_id: str) -> Dict[str, Any]:
        """Toss a coin for a player standing on a fork and set their direction."""
        player = self.turns.require_turn(player_id)
        self._require_phase(TurnPhase.AWAITING_ROLL)
        cell = self.board.get(player.position.current_cell_id)
        if not cell.is_fork:
            raise InvalidCommandError(f"{player.display_name} is not standing on a fork")
        if player.position.pending_fork_direction is not None:
            raise InvalidCommandError(f"{player.display_name} already chose a direction")
        coin = self.rng.choice(("heads", "tails"))
        direction = self.movement.set_fork_direction(player_id, coin)
        return {"coin": coin, "direction": direction, "target_cell_id": cell.edges[direction]}

    @synchronized
    def draw_card(self, player_id: str, category: Union[str, CardCategory]) -> DrawnCard:
        self.turns.require_turn(player_id)
        self._require_phase(TurnPhase.AWAITING_DRAW)
        try:
            category = CardCategory(category)
        except ValueError:
            raise InvalidCommandError(f"Unknown card category {category!r}") from None
        if category != self.pending_draw_category:
            expected = self.pending_draw_category.value if self.pending_draw_category else None
            raise InvalidCommandError(f"Must draw from {expected}, not {category.value}")

        drawn = self.cells.draw_card(player_id, category)
        self.pending_draw_category = None
        if self.get_player(player_id).pending_offer is not None:
            self.turn_phase = TurnPhase.AWAITING_CHOICE
        else:
            self.turn_phase = TurnPhase.AWAITING_ACKNOWLEDGEMENT
            self.pending_acknowledgement = "card"
        return drawn

    def _resolve_offer(self, player_id: str, kind: str, accept: bool) -> OfferResolution:
        player = self.turns.require_turn(player_id)
        self._require_phase(TurnPhase.AWAITING_CHOICE)
        if player.pending_offer is None or player.pending_offer.kind != kind:
            raise InvalidCommandError(f"{player.display_name} has no pending {kind} offer")
        resolution = self.finance.resolve_offer(player_id, accept)
        self.turns.advance_turn()
        return resolution

    @synchronized
    def resolve_purchase_choice(self, player_id: str, accept: bool) -> OfferResolution:
        return self._resolve_offer(player_id, "purchase", accept)

    @synchronized
    def resolve_sale_choice(self, player_id: str, accept: bool) -> OfferResolution:
        return self._resolve_offer(player_id, "sale", accept)

    @synchronized
    def resolve_charity_choice(self, player_id: str, accept: bool) -> OfferResolution:
        return self._resolve_offer(player_id, "charity", accept)

    @synchronized
    def acknowledge_card(self, player_id: str) -> TurnAdvance:
        self.turns.require_turn(player_id)
        self._require_phase(TurnPhase.AWAITING_ACKNOWLEDGEMENT)
        if self.pending_acknowledgement != "card":
            raise InvalidCommandError("There is no card to acknowledge")
        self.pending_acknowledgement = None
        return self.turns.advance_turn()

    @synchronized
    def resolve_cell_choice(self, player_id: str, option_index: int) -> Dict[str, Any]:
        player = self.turns.require_turn(player_id)
        self._require_phase(TurnPhase.AWAITING_CHOICE)
        if not player.pending_choice:
            raise InvalidCommandError(f"{player.display_name} has no cell choice to make")
        outcome = self.cells.resolve_choice(player_id, option_index)
        if outcome["end_turn"]:
            self.turns.advance_turn()
        return outcome

    @synchronized
    def claim_passed_money(self, player_id: str, cell_id: int) -> Dict[str, Any]:
        """Collect business income for an income cell passed on the player's last move."""
        player = self.get_player(player_id)
        self._require_in_progress()
        if cell_id not in player.passed_money_cells:
            raise InvalidCommandError(f"Cell {cell_id} has nothing to claim for {player.display_name}")
        player.passed_money_cells.remove(cell_id)

        if player.status.income_blocked_turns_remaining > 0:
            player.status.blocked_income_events += 1
            return {
                "action": "income_blocked_ack",
                "cell_id": cell_id,
                "value": player.status.income_blocked_turns_remaining,
                "money_change": 0,
                "end_turn": False,
            }

        income = self.finance.collect_business_income(player_id)
        self.add_to_history("passed_money_claimed", player, cell_id=cell_id, income=income,
                            message=f"{player.display_name} collected {income} passing cell {cell_id}")
        return {"action": "monthly_income", "cell_id": cell_id, "money_change": income, "end_turn": False}

    @synchronized
    def acknowledge_income_block(self, player_id: str) -> Dict[str, Any]:
        """
        Confirm a withheld income.

        Only accepted after a blocked landing or a blocked claim. Uses up one
        blocked turn per withheld income and may end the turn.
        """
        player = self.get_player(player_id)
        self._require_in_progress()
        if player.status.blocked_income_events == 0:
            raise InvalidCommandError(f"{player.display_name} has no withheld income to acknowledge")
        player.status.blocked_income_events -= 1
        if player.status.income_blocked_turns_remaining > 0:
            player.status.income_blocked_turns_remaining -= 1
            self.add_to_history(
                "income_blocked_ack",
                player,
                remaining=player.status.income_blocked_turns_remaining,
                message=f"{player.display_name} acknowledged the income block "
                        f"({player.status.income_blocked_turns_remaining} left)",
            )

        turn_advanced = False
        cell = self.board.get(player.position.current_cell_id)
        if (self.current_turn_player_id == player_id
                and self.turn_phase == TurnPhase.AWAITING_ACKNOWLEDGEMENT
                and self.pending_acknowledgement == "income_block"
                and cell.is_income
                and not player.passed_money_cells):
            self.pending_acknowledgement = None
            self.turns.advance_turn()
            turn_advanced = True
        return {"remaining": player.status.income_blocked_turns_remaining, "turn_advanced": turn_advanced}

    @synchronized
    def buy_business(self, player_id: str, name: str, price: int, cashflow: int) -> Dict[str, Any]:
        self.get_player(player_id)
        self._require_in_progress()
        return self.finance.buy_business(player_id, name, price, cashflow)

    @synchronized
    def set_sleeping(self, player_id: str) -> Optional[TurnAdvance]:
        """Mark a player as away. An away player whose turn it is loses it."""
        player = self.get_player(player_id)
        player.status.is_sleeping = True
        self.add_to_history("player_sleeping", player, message=f"{player.display_name} is away")
        if self.status == SessionStatus.IN_PROGRESS and self.current_turn_player_id == player_id:
            return self.turns.advance_turn()
        return None

    @synchronized
    def wake_up(self, player_id: str):
        player = self.get_player(player_id)
        player.status.is_sleeping = False
        self.add_to_history("player_woke_up", player, message=f"{player.display_name} is back")
