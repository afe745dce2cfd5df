"""
Board movement: walking players along the graph and choosing fork directions.
"""
from dataclasses import dataclass
from typing import TYPE_CHECKING, List

import structlog

from .board import Walk
from .errors import InvalidCommandError

if TYPE_CHECKING:
    from .cells import CellResult
    from .session import GameSession

logger = structlog.get_logger("fingame.movement")

COIN_DIRECTIONS = {"heads": 0, "tails": 1}


@dataclass(frozen=True)
class MovePrediction:
    target_cell_id: int
    path: List[int]
    passed_money_cells: List[int]


class MovementResolver:
    """Moves players along the board of one session."""

    def __init__(self, session: "GameSession"):
        self.session = session

    def _walk(self, player_id: str, steps: int) -> Walk:
        if steps < 0:
            raise InvalidCommandError(f"Cannot move a negative number of steps ({steps})")
        player = self.session.get_player(player_id)
        return self.session.board.walk(
            player.position.current_cell_id,
            steps,
            player.position.pending_fork_direction,
        )

    def predict_move(self, player_id: str, steps: int) -> MovePrediction:
        """Preview where a move would land without changing anything."""
        walk = self._walk(player_id, steps)
        player = self.session.get_player(player_id)
        target = walk.landing_cell_id if walk.path else player.position.current_cell_id
        return MovePrediction(
            target_cell_id=target,
            path=list(walk.path),
            passed_money_cells=list(walk.passed_money_cells),
        )

    def move_player(self, player_id: str, steps: int) -> "CellResult":
        """
        Move a player `steps` cells and resolve the landing cell.

        A pending fork direction is spent by this move whether or not it was
        used. Income cells passed on the way are recorded for the player to
        claim later; they are not collected here.
        """
        player = self.session.get_player(player_id)
        walk = self._walk(player_id, steps)
        from_cell = player.position.current_cell_id

        player.position.pending_fork_direction = None
        if walk.path:
            landing = self.session.board.get(walk.landing_cell_id)
            player.position.current_cell_id = landing.id
            player.position.current_cell_type = landing.type
        else:
            landing = self.session.board.get(from_cell)
        player.passed_money_cells = list(walk.passed_money_cells)

        self.session.add_to_history(
            "player_moved",
            player,
            from_cell=from_cell,
            to_cell=landing.id,
            steps=steps,
            message=f"{player.display_name} moved {steps} step(s) to {landing.name or landing.id}",
        )
        logger.debug("player_moved", player_id=player_id, from_cell=from_cell, to_cell=landing.id,
                      steps=steps, fork_direction=walk.used_fork_direction)

        result = self.session.cells.handle_cell(player_id, landing)
        result.passed_money_cells = list(walk.passed_money_cells)
        return result

    def set_fork_direction(self, player_id: str, coin_result: str) -> int:
        """Record which fork edge the player's next move takes ('heads' = 0, 'tails' = 1)."""
        player = self.session.get_player(player_id)
        cell = self.session.board.get(player.position.current_cell_id)
        if not cell.is_fork:
            raise InvalidCommandError(f"{player.display_name} is not standing on a fork")
        if coin_result not in COIN_DIRECTIONS:
            raise InvalidCommandError(f"Coin result must be 'heads' or 'tails', got {coin_result!r}")

        direction = COIN_DIRECTIONS[coin_result]
        player.position.pending_fork_direction = direction
        self.session.add_to_history(
            "fork_direction_set",
            player,
            coin=coin_result,
            direction=direction,
            target_cell=cell.edges[direction],
            message=f"{player.display_name} flipped {coin_result} at the fork",
        )
        return direction
