"""
State held by a game session: players, their envelopes and assets, and the
append-only history log.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .board import CellType
from .effects import Effect


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


class SessionStatus(Enum):
    """Lifecycle of a session."""
    WAITING = "waiting"  # Accepting players
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class TurnPhase(Enum):
    """Where the current player is within their turn."""
    AWAITING_ROLL = "awaiting_roll"
    AWAITING_MOVE = "awaiting_move"
    AWAITING_DRAW = "awaiting_draw"
    AWAITING_CHOICE = "awaiting_choice"
    AWAITING_ACKNOWLEDGEMENT = "awaiting_acknowledgement"


class Envelope(Enum):
    """The four money envelopes every player budgets into."""
    CHARITY = "charity"
    DREAM = "dream"
    SAVINGS = "savings"
    INVESTMENTS = "investments"


PLAYER_COLORS = ["blue", "red", "green", "yellow", "purple", "orange"]


@dataclass
class Wallets:
    """Envelope balances. Never negative; shortfalls become debts instead."""
    charity: int = 0
    dream: int = 0
    savings: int = 0
    investments: int = 0

    def get(self, envelope: Envelope) -> int:
        return getattr(self, envelope.value)

    def set(self, envelope: Envelope, value: int):
        if value < 0:
            raise ValueError(f"Envelope {envelope.value} cannot go negative ({value})")
        setattr(self, envelope.value, value)

    def total(self) -> int:
        return self.charity + self.dream + self.savings + self.investments

    def as_dict(self) -> Dict[str, int]:
        return {e.value: self.get(e) for e in Envelope}


@dataclass
class Business:
    """An owned business paying `cashflow` on every income collection."""
    id: str
    name: str
    price: int
    cashflow: int
    acquired_at: str = field(default_factory=utc_now_iso)


@dataclass
class Item:
    """A sellable asset, or a fulfilled dream."""
    id: str
    name: str
    price: int
    kind: str = "asset"  # "asset" or "dream"
    acquired_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True)
class Dream:
    id: str
    name: str
    price: int


@dataclass
class Assets:
    businesses: List[Business] = field(default_factory=list)
    items: List[Item] = field(default_factory=list)
    skills: List[str] = field(default_factory=list)
    dream: Optional[Dream] = None
    dream_fulfilled: bool = False

    def has_skill(self, skill: str) -> bool:
        return skill in self.skills

    def find_item(self, name: str) -> Optional[Item]:
        return next((i for i in self.items if i.name == name), None)


@dataclass
class Debt:
    """Shortfall recorded when an expense could not be covered."""
    amount: int
    reason: str
    timestamp: str = field(default_factory=utc_now_iso)


@dataclass
class PlayerStatus:
    skipped_turns_remaining: int = 0
    income_blocked_turns_remaining: int = 0
    blocked_income_events: int = 0  # Withheld incomes not yet acknowledged
    double_dice_turns_remaining: int = 0
    pending_first_die_value: Optional[int] = None  # First die of a double-dice roll
    charity_credits_banked: int = 0  # Charitable acts not yet redeemed on a charity cell
    is_sleeping: bool = False


@dataclass
class Position:
    current_cell_id: int
    current_cell_type: CellType
    pending_fork_direction: Optional[int] = None  # Edge index, consumed by the next move


@dataclass(frozen=True)
class ChoiceOption:
    """One option of a choice presented by a cell."""
    text: str
    effect: Effect


@dataclass(frozen=True)
class PendingOffer:
    """A purchase, sale or charity offer drawn from a card, awaiting the player's answer."""
    kind: str  # "purchase", "sale" or "charity"
    effect: Effect
    source: Optional[str] = None  # Card title


@dataclass
class Player:
    """A player in the session."""
    id: str
    display_name: str
    position: Position
    color: str = "blue"
    player_number: int = 1
    joined_at: str = field(default_factory=utc_now_iso)
    status: PlayerStatus = field(default_factory=PlayerStatus)
    wallets: Wallets = field(default_factory=Wallets)
    assets: Assets = field(default_factory=Assets)
    debts: List[Debt] = field(default_factory=list)
    passed_money_cells: List[int] = field(default_factory=list)  # Unclaimed cells passed on the last move
    pending_offer: Optional[PendingOffer] = None
    pending_choice: Tuple[ChoiceOption, ...] = ()

    @property
    def total_debt(self) -> int:
        return sum(d.amount for d in self.debts)


@dataclass(frozen=True)
class HistoryEntry:
    """Audit log entry. Entries are never modified once appended."""
    id: int
    timestamp: str
    actor_id: Optional[str]
    actor_name: Optional[str]
    action: str
    details: Dict[str, Any]

    @property
    def message(self) -> str:
        return self.details.get("message", "")


@dataclass(frozen=True)
class Notification:
    """Ad hoc broadcast for every client (dream fulfilled, asset purchased...)."""
    title: str
    message: str
    type: str = "info"
    player_name: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)
