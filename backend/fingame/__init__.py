"""
Game session engine for the financial-literacy board game.
No web framework imports here: the engine only knows about sessions.
"""
from .board import Board, Cell, CellType, Walk
from .cards import (
    Card,
    CardCategory,
    CardEffect,
    CardLibrary,
    DeckStore,
    apply_card_effect,
    interpolate,
    skill_display_name,
)
from .cells import CellEffectInterpreter, CellResult, CellTable, DrawnCard
from .config import GameConfig
from .effects import (
    BlockIncome,
    BuyDreamAsset,
    CharityOffer,
    DeclineDreamAsset,
    Effect,
    GrantSkill,
    Income,
    MultiEffect,
    Pay,
    PayFromSavings,
    PayPercent,
    PurchaseOffer,
    SaleOffer,
    SkipTurn,
    parse_effect,
    serialize_effect,
)
from .errors import (
    GameDataError,
    GameError,
    InvalidCommandError,
    NotYourTurnError,
    PlayerNotFoundError,
)
from .finance import FinanceLedger, OfferResolution, SpendPurpose, SpendResult, split_income
from .models import (
    Assets,
    Business,
    Debt,
    Dream,
    Envelope,
    HistoryEntry,
    Item,
    Notification,
    Player,
    PlayerStatus,
    Position,
    SessionStatus,
    TurnPhase,
    Wallets,
)
from .movement import MovePrediction, MovementResolver
from .serialization import (
    available_commands,
    serialize_board,
    serialize_cell_result,
    serialize_drawn_card,
    serialize_history_entry,
    serialize_log_entry,
    serialize_notification,
    serialize_offer_resolution,
    serialize_player,
    serialize_prediction,
    serialize_report,
    serialize_roll,
    serialize_session_state,
    serialize_turn_advance,
)
from .session import GameSession, load_game_data
from .turns import GameReport, RollResult, TurnAdvance, TurnSequencer
