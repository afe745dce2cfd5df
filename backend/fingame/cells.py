"""
Cell landing interpreter.

Decides what happens when a player lands on a cell, in priority order:

1. an income-blocked player landing on a money/start cell only gets an
   acknowledgement;
2. cells with a declarative definition (by id, then by type) run it;
3. card cells ask for a draw, forks end the turn, anything else is a no-op.
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import structlog

from .board import CARD_CELL_TYPES, Cell, CellType
from .cards import CardCategory, CardEffect, Card, apply_card_effect, interpolate
from .effects import (
    BuyDreamAsset,
    DeclineDreamAsset,
    Effect,
    Pay,
    parse_effect,
    serialize_effect,
    OFFER_EFFECTS,
)
from .errors import GameDataError, InvalidCommandError
from .finance import SpendPurpose
from .models import ChoiceOption, Item, Player

if TYPE_CHECKING:
    from .session import GameSession

logger = structlog.get_logger("fingame.cells")

SPECIAL_ACTIONS = ("collect_income", "charity_bonus", "dream_check", "choice")


@dataclass(frozen=True)
class CellDefinition:
    """Declarative behaviour attached to a cell id or a cell type."""
    action: str
    title: str = ""
    description_self: str = ""
    description_others: str = ""
    image: Optional[str] = None
    effect: Optional[Effect] = None
    options: Tuple[ChoiceOption, ...] = ()
    extra: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)


def parse_cell_definition(key: str, raw: Dict[str, Any]) -> CellDefinition:
    action = raw.get("action")
    if not action:
        raise GameDataError(f"Cell definition {key!r} has no action")

    effect = None
    options: Tuple[ChoiceOption, ...] = ()
    if action == "choice":
        raw_options = raw.get("options") or []
        if not raw_options:
            raise GameDataError(f"Choice cell {key!r} has no options")
        options = tuple(
            ChoiceOption(text=o.get("text", ""), effect=parse_effect(o["effect"]))
            for o in raw_options
        )
    elif action not in SPECIAL_ACTIONS:
        try:
            effect = parse_effect(raw)
        except GameDataError as e:
            raise GameDataError(f"Cell definition {key!r}: {e}") from e

    known = {"action", "title", "description_self", "description_others", "image", "options", "value", "effects",
             "from", "skill"}
    return CellDefinition(
        action=action,
        title=raw.get("title", ""),
        description_self=raw.get("description_self", ""),
        description_others=raw.get("description_others", ""),
        image=raw.get("image"),
        effect=effect,
        options=options,
        extra={k: v for k, v in raw.items() if k not in known and isinstance(v, str)},
    )


class CellTable:
    """Side table of per-cell and per-type definitions plus shared message templates."""

    def __init__(self, by_id: Dict[int, CellDefinition], by_type: Dict[CellType, CellDefinition],
                 messages: Dict[str, Any]):
        self.by_id = by_id
        self.by_type = by_type
        self.messages = messages

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CellTable":
        by_id = {}
        for key, raw in data.get("by_id", {}).items():
            try:
                cell_id = int(key)
            except ValueError:
                raise GameDataError(f"Cell definition key {key!r} is not a cell id") from None
            by_id[cell_id] = parse_cell_definition(key, raw)
        by_type = {}
        for key, raw in data.get("by_type", {}).items():
            try:
                cell_type = CellType(key)
            except ValueError:
                raise GameDataError(f"Unknown cell type {key!r} in cell definitions") from None
            by_type[cell_type] = parse_cell_definition(key, raw)
        return cls(by_id, by_type, data.get("messages", {}))

    @classmethod
    def load(cls, path: Path) -> "CellTable":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise GameDataError(f"Could not read cell definitions {path}: {e}") from e
        return cls.from_dict(data)

    def lookup(self, cell: Cell) -> Optional[CellDefinition]:
        return self.by_id.get(cell.id) or self.by_type.get(cell.type)

    def message(self, *path: str, default: str = "") -> str:
        node: Any = self.messages
        for key in path:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node if isinstance(node, str) else default


@dataclass
class CellResult:
    """Outcome of landing on a cell."""
    cell_id: int
    cell_type: str
    cell_name: str
    action: str = "none"
    title: Optional[str] = None
    description: Optional[str] = None
    description_others: Optional[str] = None
    image: Optional[str] = None
    money_change: int = 0
    value: Any = None
    card_category: Optional[str] = None
    options: List[Dict[str, Any]] = field(default_factory=list)
    paths: List[int] = field(default_factory=list)
    end_turn: bool = False
    passed_money_cells: List[int] = field(default_factory=list)


@dataclass
class DrawnCard:
    """A card drawn by a player together with what it did."""
    card: Card
    effect: CardEffect
    player_id: str


def _option_dict(option: ChoiceOption) -> Dict[str, Any]:
    return {"text": option.text, "effect": serialize_effect(option.effect)}


class CellEffectInterpreter:
    """Resolves cell landings, cell choices and card draws for one session."""

    def __init__(self, session: "GameSession"):
        self.session = session

    @property
    def table(self) -> CellTable:
        return self.session.cell_table

    def handle_cell(self, player_id: str, cell: Cell) -> CellResult:
        """Work out what landing on `cell` does to the player."""
        player = self.session.get_player(player_id)
        result = CellResult(cell_id=cell.id, cell_type=cell.type.value, cell_name=cell.name)

        if cell.is_income and player.status.income_blocked_turns_remaining > 0:
            player.status.blocked_income_events += 1
            result.action = "income_blocked_ack"
            result.title = self.table.message("income_blocked", "title", default="Income blocked")
            result.description = interpolate(
                self.table.message("income_blocked", "description_self",
                                   default="Your income is blocked for {value} more turn(s)."),
                {"value": player.status.income_blocked_turns_remaining},
            )
            result.end_turn = True
            return result

        definition = self.table.lookup(cell)
        if definition is not None:
            return self._handle_definition(player, cell, definition, result)

        if cell.type in CARD_CELL_TYPES:
            result.action = "draw_card"
            result.card_category = cell.type.value
        elif cell.is_fork:
            result.action = "choose_path"
            result.paths = list(cell.edges)
            result.description = self.table.message(
                "fork", default="You reached a fork! Next turn, flip a coin to choose your path.")
            result.end_turn = True
        else:
            result.action = "none"
            result.end_turn = True
        return result

    def _handle_definition(self, player: Player, cell: Cell, definition: CellDefinition,
                           result: CellResult) -> CellResult:
        params = {"player": player.display_name}
        result.title = definition.title
        result.description = interpolate(definition.description_self, params)
        result.description_others = interpolate(definition.description_others, params)
        result.image = definition.image

        if definition.action == "collect_income":
            income = self.session.finance.collect_business_income(player.id)
            result.action = "monthly_income"
            result.money_change = income
            result.end_turn = True
            if income > 0:
                result.description = interpolate(definition.description_self, {**params, "income": income})
                result.description_others = interpolate(definition.description_others, {**params, "income": income})
            else:
                result.description = definition.extra.get("msg_no_income", "You have no businesses yet. Income: 0")
                result.description_others = interpolate(
                    definition.extra.get("description_others_no_income", "{player} has no businesses yet."), params)

        elif definition.action == "charity_bonus":
            result.end_turn = True
            if player.status.charity_credits_banked > 0:
                player.status.charity_credits_banked -= 1
                turns = self.session.config.double_dice_bonus_turns
                player.status.double_dice_turns_remaining = turns
                result.action = "charity_bonus"
                result.value = turns
                result.description = (
                    f"Your earlier good deed pays off: roll two dice for the next {turns} turns. "
                    f"Good deeds left: {player.status.charity_credits_banked}"
                )
            else:
                result.action = "charity_no_bonus"
                result.description = definition.extra.get(
                    "msg_no_donation", "Do a good deed first to earn the charity bonus here.")

        elif definition.action == "dream_check":
            dream_result = self.handle_dream_cell(player.id, cell)
            for key in ("action", "title", "description", "description_others", "options", "end_turn",
                        "money_change"):
                setattr(result, key, getattr(dream_result, key))

        elif definition.action == "choice":
            result.action = "choice"
            result.options = [_option_dict(o) for o in definition.options]
            player.pending_choice = definition.options

        else:
            outcome = self.session.finance.apply_effect(player.id, definition.effect, source=definition.title)
            result.action = definition.action
            result.value = serialize_effect(definition.effect).get("value")
            result.money_change = outcome.get("amount", 0) - outcome.get("paid", 0)
            result.end_turn = True

        if result.action != "none":
            self.session.add_to_history(
                "cell_visited",
                player,
                cell_id=cell.id,
                title=result.title,
                message=result.description or result.title or cell.name,
            )
        return result

    def handle_dream_cell(self, player_id: str, cell: Cell) -> CellResult:
        """
        Landing on a dream cell.

        Without a chosen dream there is nothing to do. On the player's own
        dream (or a wildcard) it is bought from the dream envelope if that
        covers the price. Someone else's dream can be bought as an ordinary
        asset when the investments envelope covers the price.
        """
        player = self.session.get_player(player_id)
        result = CellResult(cell_id=cell.id, cell_type=cell.type.value, cell_name=cell.name, end_turn=True)
        title = self.table.message("dream", "title", default="Dream")
        reminder = self.table.message("dream", "reminder")
        price = cell.price
        params = {"player": player.display_name, "name": cell.name, "price": price}
        result.title = title

        def with_reminder(text: str) -> str:
            return f"{text} {reminder}".strip()

        dream = player.assets.dream
        if dream is None:
            result.action = "dream_none"
            result.description = with_reminder(
                self.table.message("dream", "no_dream", "self", default="You haven't chosen a dream yet."))
            result.description_others = interpolate(
                self.table.message("dream", "no_dream", "others", default="{player} hasn't chosen a dream yet."),
                params)
            return result

        if cell.wildcard or cell.dream_id == dream.id:
            balance = player.wallets.dream
            if balance >= price:
                self.session.finance.spend(player.id, price, SpendPurpose.DREAM, reason="dream")
                player.assets.dream_fulfilled = True
                player.assets.items.append(Item(id=f"dream-{cell.id}-{player.id}", name=cell.name, price=price,
                                                kind="dream"))
                others = interpolate(
                    self.table.message("dream", "own", "others_success", default="{player} fulfilled their dream: {name}!"),
                    params)
                self.session.notify("Dream fulfilled!", others, "success", player.display_name)
                self.session.add_to_history("dream_fulfilled", player, cell_id=cell.id, price=price, message=others)
                result.action = "dream_fulfilled"
                result.title = "Congratulations!"
                result.money_change = -price
                result.description = with_reminder(interpolate(
                    self.table.message("dream", "own", "success", default="Your dream came true: {name}!"), params))
                result.description_others = others
            else:
                result.action = "dream_fail"
                result.description = with_reminder(interpolate(
                    self.table.message("dream", "own", "fail",
                                       default="Not enough in your dream envelope: {current} of {price}."),
                    {**params, "current": balance}))
                result.description_others = interpolate(
                    self.table.message("dream", "own", "others_fail", default="{player} needs to save more."),
                    params)
            return result

        if player.wallets.investments >= price:
            options = (
                ChoiceOption(text=f"Buy ({price})", effect=BuyDreamAsset(name=cell.name, price=price)),
                ChoiceOption(text="Decline", effect=DeclineDreamAsset()),
            )
            player.pending_choice = options
            result.action = "choice"
            result.end_turn = False
            result.options = [_option_dict(o) for o in options]
            result.description = interpolate(
                self.table.message("dream", "asset", "offer", default="Buy {name} as an asset for {price}?"), params)
            result.description_others = interpolate(
                self.table.message("dream", "asset", "others_offer", default="{player} may buy {name}."), params)
        else:
            result.action = "dream_check_fail"
            result.description = with_reminder(interpolate(
                self.table.message("dream", "asset", "fail", default="You can't afford {name} yet."), params))
        return result

    def resolve_choice(self, player_id: str, option_index: int) -> Dict[str, Any]:
        """Apply the chosen option of the player's pending cell choice."""
        player = self.session.get_player(player_id)
        options = player.pending_choice
        if not options:
            raise InvalidCommandError(f"{player.display_name} has no choice to make")
        if not 0 <= option_index < len(options):
            raise InvalidCommandError(f"Option {option_index} does not exist")

        option = options[option_index]
        effect = option.effect
        if isinstance(effect, Pay) and effect.envelope is None and player.wallets.savings < effect.amount:
            return {
                "success": False,
                "error": "insufficient_funds",
                "message": f"Not enough savings for this option ({effect.amount})",
                "end_turn": False,
            }

        player.pending_choice = ()
        outcome = self.session.finance.apply_effect(player.id, effect, source=option.text)
        return {
            "success": True,
            "option": _option_dict(option),
            "message": outcome.get("message", option.text),
            "end_turn": True,
        }

    def draw_card(self, player_id: str, category: CardCategory) -> DrawnCard:
        """
        Draw the next card of `category` for the player and apply it.

        Offers become the player's pending offer. News cards tied to a skill
        hit every other player holding that skill as well.
        """
        player = self.session.get_player(player_id)
        card = self.session.decks.draw(category)
        card_effect = apply_card_effect(card, player)

        player.passed_money_cells = []

        if card.category == CardCategory.NEWS and card.requires_skill and not isinstance(card.effect, OFFER_EFFECTS):
            for other in self.session.players.values():
                if other.id != player.id and other.assets.has_skill(card.requires_skill):
                    self.session.finance.apply_effect(other.id, card.effect, source=card.title)

        if card_effect.requirement_met:
            self.session.finance.apply_effect(player.id, card.effect, source=card.title)

        self.session.add_to_history(
            "card_drawn",
            player,
            category=category.value,
            card_id=card.id,
            requirement_met=card_effect.requirement_met,
            message=card_effect.alert_message or card_effect.message or card.title,
        )
        logger.debug("card_drawn", player_id=player_id, category=category.value, card_id=card.id)
        return DrawnCard(card=card, effect=card_effect, player_id=player_id)
