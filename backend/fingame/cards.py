"""
Card definitions, per-session decks, and the conversion of a drawn card into
the effect data shown to players.
"""
import json
import random
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Tuple

from .effects import (
    CharityOffer,
    Effect,
    GrantSkill,
    Income,
    MultiEffect,
    Pay,
    PayFromSavings,
    PayPercent,
    PurchaseOffer,
    SaleOffer,
    parse_effect,
)
from .errors import GameDataError
from .finance import percent_of
from .models import Player


class CardCategory(Enum):
    """Deck categories. Each matches the board cell type of the same name."""
    CHANCE = "chance"
    NEWS = "news"
    EXPENSES = "expenses"
    BUSINESS = "business"


SKILL_NAMES = {
    "translator_german": "Translator (German)",
    "translator_french": "Translator (French)",
    "translator_chinese": "Translator (Chinese)",
    "translator_english": "Translator (English)",
    "computer_repair": "Computer repair",
    "designer": "Designer",
    "smm": "SMM specialist",
    "web_designer": "Web designer",
    "investor": "Investor",
    "programmer": "Programmer",
    "copywriter": "Copywriter",
    "tutor": "Tutor",
    "hand_made": "Handmade crafts",
    "delivery": "Courier",
    "video_editor": "Video editor",
    "stylist": "Stylist",
    "fitness_trainer": "Fitness trainer",
}


def skill_display_name(skill: str) -> str:
    return SKILL_NAMES.get(skill, skill)


_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def interpolate(template: Optional[str], params: Dict[str, Any]) -> str:
    """Replace `{Name}` placeholders; unknown placeholders are left as they are."""
    if not template:
        return ""
    return _PLACEHOLDER.sub(lambda m: str(params[m.group(1)]) if m.group(1) in params else m.group(0), template)


@dataclass(frozen=True)
class Card:
    """A card definition. Never mutated after loading."""
    id: str
    category: CardCategory
    title: str
    description: str
    effect: Effect
    requires_skill: Optional[str] = None
    requires_asset: Optional[str] = None
    messages: Dict[str, Dict[str, str]] = field(default_factory=dict, hash=False, compare=False)
    image: Optional[str] = None

    def self_message(self, key: str) -> Optional[str]:
        return self.messages.get("self", {}).get(key)

    def others_message(self, key: str) -> Optional[str]:
        return self.messages.get("others", {}).get(key)


def parse_card(category: CardCategory, raw: Dict[str, Any]) -> Card:
    """Build a card from its JSON definition."""
    try:
        card_id = str(raw["id"])
        effect = parse_effect(raw["effect"])
    except KeyError as e:
        raise GameDataError(f"{category.value} card is missing {e}") from e
    except GameDataError as e:
        raise GameDataError(f"{category.value} card {raw.get('id')}: {e}") from e
    return Card(
        id=card_id,
        category=category,
        title=raw.get("title", ""),
        description=raw.get("description", ""),
        effect=effect,
        requires_skill=raw.get("requires_skill"),
        requires_asset=raw.get("requires_asset"),
        messages=raw.get("messages", {}),
        image=raw.get("image"),
    )


class CardLibrary:
    """Master card lists per category, loaded once."""

    def __init__(self, cards: Dict[CardCategory, List[Card]]):
        self._masters: Dict[CardCategory, Tuple[Card, ...]] = {
            category: tuple(cards.get(category, ())) for category in CardCategory
        }

    @classmethod
    def from_dict(cls, data: Dict[str, List[Dict[str, Any]]]) -> "CardLibrary":
        cards: Dict[CardCategory, List[Card]] = {}
        for key, raw_cards in data.items():
            try:
                category = CardCategory(key)
            except ValueError:
                raise GameDataError(f"Unknown card category {key!r}") from None
            cards[category] = [parse_card(category, raw) for raw in raw_cards]
        return cls(cards)

    @classmethod
    def load(cls, cards_dir: Path) -> "CardLibrary":
        """Load `<category>.json` for every category from a directory."""
        data = {}
        for category in CardCategory:
            path = Path(cards_dir) / f"{category.value}.json"
            try:
                with open(path, "r", encoding="utf-8") as f:
                    parsed = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise GameDataError(f"Could not read card file {path}: {e}") from e
            data[category.value] = parsed["cards"] if isinstance(parsed, dict) else parsed
        return cls.from_dict(data)

    def masters(self, category: CardCategory) -> Tuple[Card, ...]:
        return self._masters[category]

    def get(self, category: CardCategory, card_id: str) -> Optional[Card]:
        return next((c for c in self._masters[category] if c.id == card_id), None)


class DeckStore:
    """Shuffled per-session decks drawn from the library's master lists."""

    def __init__(self, library: CardLibrary, rng: random.Random):
        self.library = library
        self.rng = rng
        self._queues: Dict[CardCategory, Deque[Card]] = {category: deque() for category in CardCategory}

    def _shuffled(self, category: CardCategory) -> Deque[Card]:
        cards = list(self.library.masters(category))
        self.rng.shuffle(cards)
        return deque(cards)

    def build(self):
        """Shuffle every master list into a fresh working queue."""
        for category in CardCategory:
            self._queues[category] = self._shuffled(category)

    def draw(self, category: CardCategory) -> Card:
        """Pop the next card, reshuffling the master list first when the queue is empty."""
        if not self._queues[category]:
            if not self.library.masters(category):
                raise GameDataError(f"No {category.value} cards are defined")
            self._queues[category] = self._shuffled(category)
        return self._queues[category].popleft()

    def remaining(self, category: CardCategory) -> int:
        return len(self._queues[category])

    def sizes(self) -> Dict[str, int]:
        return {category.value: len(queue) for category, queue in self._queues.items()}


@dataclass
class CardEffect:
    """What a drawn card means for the player who drew it."""
    money_change: int = 0
    requirement_met: bool = True
    skill_check_failed: bool = False
    asset_check_failed: bool = False
    is_purchase_choice: bool = False
    is_sale_choice: bool = False
    is_charity_choice: bool = False
    purchase_type: Optional[str] = None
    purchase_name: Optional[str] = None
    purchase_price: Optional[int] = None
    purchase_income: Optional[int] = None
    skill_granted: Optional[str] = None
    sale_price: Optional[int] = None
    offer_asset_name: Optional[str] = None
    asset_id: Optional[str] = None
    charity_amount: Optional[int] = None
    message: Optional[str] = None
    alert_message: Optional[str] = None
    others_message: Optional[str] = None

    @property
    def is_offer(self) -> bool:
        return self.is_purchase_choice or self.is_sale_choice or self.is_charity_choice


def money_delta(effect: Effect, player: Player) -> int:
    """Net change to the player's money an effect would cause."""
    if isinstance(effect, (Pay, PayFromSavings)):
        return -effect.amount
    if isinstance(effect, PayPercent):
        return -percent_of(player.wallets.total(), effect.percent)
    if isinstance(effect, Income):
        return effect.amount
    if isinstance(effect, MultiEffect):
        return sum(money_delta(e, player) for e in effect.effects)
    return 0


def apply_card_effect(card: Card, player: Player) -> CardEffect:
    """
    Convert a card's descriptor into effect data for `player`.

    Pure: nothing on the player changes. Cards requiring a skill or asset
    the player lacks keep their narrative but lose their economic effect.
    """
    effect = card.effect
    result = CardEffect(money_change=money_delta(effect, player), message=card.description)

    if isinstance(effect, PurchaseOffer):
        result.is_purchase_choice = True
        result.purchase_type = effect.kind
        result.purchase_name = effect.name
        result.purchase_price = effect.price
        result.purchase_income = effect.income
        if effect.kind == "skill":
            result.skill_granted = effect.skill or effect.name
    elif isinstance(effect, SaleOffer):
        result.is_sale_choice = True
        result.offer_asset_name = effect.asset_name
        result.sale_price = effect.price
        item = player.assets.find_item(effect.asset_name)
        if item is not None:
            result.asset_id = item.id
    elif isinstance(effect, CharityOffer):
        result.is_charity_choice = True
        result.charity_amount = effect.amount

    params = {
        "Player": player.display_name,
        "CardName": card.title,
        "Amount": abs(result.money_change) or getattr(effect, "price", 0) or getattr(effect, "amount", 0),
        "Price": getattr(effect, "price", 0),
        "Income": getattr(effect, "income", 0) or (effect.amount if isinstance(effect, Income) else 0),
        "AssetName": getattr(effect, "name", None) or getattr(effect, "asset_name", "") or "",
    }

    missing = None
    if card.requires_skill and not player.assets.has_skill(card.requires_skill):
        result.skill_check_failed = True
        missing = f"You don't have the skill: {skill_display_name(card.requires_skill)}"
    elif card.requires_asset and player.assets.find_item(card.requires_asset) is None:
        result.asset_check_failed = True
        missing = f"You don't own: {card.requires_asset}"
    elif result.is_sale_choice and result.asset_id is None:
        result.asset_check_failed = True
        missing = f"You don't own: {result.offer_asset_name}"

    if missing is not None:
        result.requirement_met = False
        result.money_change = 0
        result.alert_message = interpolate(card.self_message("missing"), params) or missing
        result.others_message = interpolate(card.others_message("missing"), params) or None
        return result

    if not result.is_offer:
        template = card.self_message("success")
        if template:
            result.alert_message = interpolate(template, params)
        elif result.money_change:
            verb = "Received" if result.money_change > 0 else "Spent"
            result.alert_message = f"{verb} {abs(result.money_change)}"
        if isinstance(effect, GrantSkill):
            result.skill_granted = effect.skill
    result.others_message = interpolate(card.others_message("success"), params) or None
    return result
