"""
Turn order, dice and the end-of-game report.
"""
import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog

from .errors import InvalidCommandError, NotYourTurnError
from .models import HistoryEntry, Player, SessionStatus, TurnPhase, utc_now

if TYPE_CHECKING:
    from .session import GameSession

logger = structlog.get_logger("fingame.turns")


@dataclass(frozen=True)
class RollResult:
    """A dice roll. A partial roll is the first die of a double-dice turn."""
    result: int
    is_partial: bool
    dice: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class TurnAdvance:
    current_player_id: Optional[str]
    skipped_player_ids: List[str] = field(default_factory=list)
    sleeping_player_ids: List[str] = field(default_factory=list)
    stalemate: bool = False


@dataclass(frozen=True)
class GameReport:
    duration_minutes: int
    players: List[Player]
    history: List[HistoryEntry]
    statistics: Dict[str, Any]


class TurnSequencer:
    """Owns whose turn it is in one session."""

    def __init__(self, session: "GameSession"):
        self.session = session

    def start_game(self):
        """Start the game: shuffle fresh decks and hand the turn to the first player."""
        session = self.session
        if session.status != SessionStatus.WAITING:
            raise InvalidCommandError(f"Game cannot be started while {session.status.value}")
        if not session.players:
            raise InvalidCommandError("Game needs at least one player to start")

        session.decks.build()
        session.status = SessionStatus.IN_PROGRESS
        session.started_at = utc_now()
        session.finished_at = None
        first = next(iter(session.players.values()))
        session.current_turn_player_id = first.id
        self._reset_turn_scratch()
        session.add_to_history(
            "game_started",
            None,
            players=len(session.players),
            message=f"The game started with {len(session.players)} player(s). {first.display_name} goes first",
        )
        logger.info("game_started", session_id=session.session_id, players=len(session.players))

    def require_turn(self, player_id: str) -> Player:
        player = self.session.get_player(player_id)
        if self.session.status != SessionStatus.IN_PROGRESS:
            raise InvalidCommandError("The game is not in progress")
        if self.session.current_turn_player_id != player_id:
            raise NotYourTurnError(player_id, self.session.current_turn_player_id)
        return player

    def _die(self) -> int:
        return self.session.rng.randint(1, 6)

    def roll_dice(self, player_id: str) -> RollResult:
        """
        Roll for the current player.

        With double-dice turns remaining the roll spans two calls: the first
        returns one die as a partial result, the second adds another die and
        uses up one double-dice turn.
        """
        player = self.require_turn(player_id)
        status = player.status

        if status.double_dice_turns_remaining > 0:
            if status.pending_first_die_value is None:
                first = self._die()
                status.pending_first_die_value = first
                roll = RollResult(result=first, is_partial=True, dice=[first])
            else:
                first = status.pending_first_die_value
                second = self._die()
                status.pending_first_die_value = None
                status.double_dice_turns_remaining -= 1
                roll = RollResult(result=first + second, is_partial=False, dice=[first, second])
        else:
            die = self._die()
            roll = RollResult(result=die, is_partial=False, dice=[die])

        self.session.add_to_history(
            "roll_dice",
            player,
            result=roll.result,
            dice=roll.dice,
            is_partial=roll.is_partial,
            message=f"{player.display_name} rolled {roll.result}" + (" (first die)" if roll.is_partial else ""),
        )
        logger.debug("dice_rolled", player_id=player_id, result=roll.result, partial=roll.is_partial)
        return roll

    def _reset_turn_scratch(self):
        session = self.session
        session.turn_phase = TurnPhase.AWAITING_ROLL
        session.rolled_steps = None
        session.pending_draw_category = None
        session.pending_acknowledgement = None

    def _release_player(self, player: Player):
        player.pending_offer = None
        player.pending_choice = ()
        player.status.pending_first_die_value = None

    def advance_turn(self, after_index: Optional[int] = None) -> TurnAdvance:
        """
        Hand the turn to the next eligible player in join order.

        Skipping players use up one skipped turn and are passed over, sleeping
        players are passed over without using anything. At most one full round
        is inspected; if nobody is eligible the turn stays on the last
        inspected player and the result reports a stalemate.
        """
        session = self.session
        ids = list(session.players)

        outgoing = session.players.get(session.current_turn_player_id) if session.current_turn_player_id else None
        if outgoing is not None:
            self._release_player(outgoing)
        self._reset_turn_scratch()

        if not ids:
            session.current_turn_player_id = None
            return TurnAdvance(current_player_id=None)

        if len(ids) == 1:
            session.current_turn_player_id = ids[0]
            self._log_turn(session.players[ids[0]])
            return TurnAdvance(current_player_id=ids[0])

        if after_index is None:
            current = session.current_turn_player_id
            after_index = ids.index(current) if current in ids else -1

        skipped: List[str] = []
        sleeping: List[str] = []
        index = after_index
        for _ in range(len(ids)):
            index = (index + 1) % len(ids)
            candidate = session.players[ids[index]]
            if candidate.status.is_sleeping:
                sleeping.append(candidate.id)
                session.add_to_history(
                    "sleeping_player_skipped",
                    candidate,
                    message=f"{candidate.display_name} is away and misses the turn",
                )
                continue
            if candidate.status.skipped_turns_remaining > 0:
                candidate.status.skipped_turns_remaining -= 1
                skipped.append(candidate.id)
                session.add_to_history(
                    "turn_skipped",
                    candidate,
                    remaining=candidate.status.skipped_turns_remaining,
                    message=f"{candidate.display_name} skips a turn "
                            f"({candidate.status.skipped_turns_remaining} left)",
                )
                continue
            session.current_turn_player_id = candidate.id
            self._log_turn(candidate)
            return TurnAdvance(current_player_id=candidate.id, skipped_player_ids=skipped,
                               sleeping_player_ids=sleeping)

        last = session.players[ids[index]]
        session.current_turn_player_id = last.id
        session.add_to_history(
            "turn_stalemate",
            None,
            player_id=last.id,
            message="Every player is skipping or away; nobody can take the turn",
        )
        logger.warning("turn_stalemate", session_id=session.session_id, player_id=last.id)
        return TurnAdvance(current_player_id=last.id, skipped_player_ids=skipped,
                           sleeping_player_ids=sleeping, stalemate=True)

    def _log_turn(self, player: Player):
        self.session.add_to_history("turn_started", player, message=f"It's {player.display_name}'s turn")
        logger.debug("turn_advanced", session_id=self.session.session_id, player_id=player.id)

    def end_game(self) -> GameReport:
        """Finish the game and build the report. Calling it again returns the same report."""
        session = self.session
        if session.status != SessionStatus.FINISHED:
            session.status = SessionStatus.FINISHED
            session.finished_at = utc_now()
            session.add_to_history("game_ended", None, message="The game is over")
            logger.info("game_ended", session_id=session.session_id)
        return self.generate_report()

    def duration_minutes(self) -> int:
        session = self.session
        if session.started_at is None:
            return 0
        end = session.finished_at or utc_now()
        return int((end - session.started_at).total_seconds() // 60)

    def statistics(self) -> Dict[str, Any]:
        history = self.session.history
        return {
            "players": len(self.session.players),
            "actions": len(history),
            "dice_rolls": sum(1 for e in history if e.action == "roll_dice" and not e.details.get("is_partial")),
            "cards_drawn": sum(1 for e in history if e.action == "card_drawn"),
        }

    def generate_report(self) -> GameReport:
        return GameReport(
            duration_minutes=self.duration_minutes(),
            players=copy.deepcopy(list(self.session.players.values())),
            history=list(self.session.history),
            statistics=self.statistics(),
        )
