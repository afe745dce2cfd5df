"""
Exceptions raised by the game engine.

Every command validates its preconditions before touching state, so any of
these errors means the command was rejected and nothing changed.
"""


class GameError(ValueError):
    """Base class for rejected game commands."""


class InvalidCommandError(GameError):
    """The command is not allowed in the current game state."""


class NotYourTurnError(InvalidCommandError):
    """A player tried to act outside of their turn."""

    def __init__(self, player_id: str, current_player_id=None):
        self.player_id = player_id
        self.current_player_id = current_player_id
        super().__init__(f"It's not {player_id}'s turn. Current player: {current_player_id}")


class PlayerNotFoundError(GameError):
    """No player with the given id is part of the session."""

    def __init__(self, player_id: str):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class GameDataError(GameError):
    """Board, cell or card data failed validation while loading."""
