"""
Rules configuration for a game session.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DATA_DIR = Path(__file__).parent / "data"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class GameConfig:
    """Tunable rules shared by every component of a session."""
    starting_savings: int = 100
    max_players: int = 6
    double_dice_bonus_turns: int = 3
    require_dream_before_roll: bool = True
    data_dir: Path = field(default=DEFAULT_DATA_DIR)

    @classmethod
    def from_env(cls) -> "GameConfig":
        """Build a config from FINGAME_* environment variables."""
        return cls(
            starting_savings=int(os.getenv("FINGAME_STARTING_SAVINGS", "100")),
            max_players=int(os.getenv("FINGAME_MAX_PLAYERS", "6")),
            double_dice_bonus_turns=int(os.getenv("FINGAME_DOUBLE_DICE_TURNS", "3")),
            require_dream_before_roll=_env_bool("FINGAME_REQUIRE_DREAM", True),
            data_dir=Path(os.getenv("FINGAME_DATA_DIR", str(DEFAULT_DATA_DIR))),
        )
