"""
Declarative effect language.

Cells and cards describe what happens to a player as JSON descriptors like
``{"action": "pay", "value": 50}``. They are parsed once, at load time, into
the closed set of frozen dataclasses below; the finance ledger has exactly one
handler per variant.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from .errors import GameDataError


@dataclass(frozen=True)
class Pay:
    """Pay a flat amount. `envelope` restricts the payment to charity or dream."""
    amount: int
    envelope: Optional[str] = None


@dataclass(frozen=True)
class PayPercent:
    """Pay a percentage of the player's total cash across all envelopes."""
    percent: int


@dataclass(frozen=True)
class PayFromSavings:
    amount: int


@dataclass(frozen=True)
class Income:
    """One-time income split into the envelopes."""
    amount: int


@dataclass(frozen=True)
class SkipTurn:
    turns: int = 1


@dataclass(frozen=True)
class BlockIncome:
    turns: int = 1


@dataclass(frozen=True)
class GrantSkill:
    skill: str


@dataclass(frozen=True)
class MultiEffect:
    effects: Tuple["Effect", ...]


@dataclass(frozen=True)
class PurchaseOffer:
    """Offer to buy a business, asset or skill."""
    kind: str  # "business", "asset" or "skill"
    name: str
    price: int
    income: int = 0
    skill: Optional[str] = None


@dataclass(frozen=True)
class SaleOffer:
    """Offer to sell an owned item."""
    asset_name: str
    price: int


@dataclass(frozen=True)
class CharityOffer:
    amount: int


@dataclass(frozen=True)
class BuyDreamAsset:
    """Buy another player's dream as an ordinary asset."""
    name: str
    price: int


@dataclass(frozen=True)
class DeclineDreamAsset:
    pass


Effect = Union[
    Pay, PayPercent, PayFromSavings, Income, SkipTurn, BlockIncome, GrantSkill,
    MultiEffect, PurchaseOffer, SaleOffer, CharityOffer, BuyDreamAsset, DeclineDreamAsset,
]

OFFER_EFFECTS = (PurchaseOffer, SaleOffer, CharityOffer)

PURCHASE_KINDS = ("business", "asset", "skill")
PAY_ENVELOPES = ("charity", "dream")


def _int(data: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    value = data.get(key, default)
    if value is None:
        raise GameDataError(f"Effect {data.get('action')!r} is missing '{key}'")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise GameDataError(f"Effect {data.get('action')!r} has non-numeric '{key}': {value!r}") from None


def _parse_percent(value: Any) -> int:
    text = str(value).strip().rstrip("%")
    try:
        return int(text)
    except ValueError:
        raise GameDataError(f"Invalid percentage {value!r}") from None


def parse_effect(data: Dict[str, Any]) -> Effect:
    """Parse a JSON effect descriptor into an effect variant."""
    if not isinstance(data, dict):
        raise GameDataError(f"Effect descriptor must be an object, got {data!r}")

    action = data.get("action")

    if action == "pay":
        value = data.get("value")
        if isinstance(value, str) and value.strip().endswith("%"):
            return PayPercent(percent=_parse_percent(value))
        envelope = data.get("from")
        if envelope is not None and envelope not in PAY_ENVELOPES:
            raise GameDataError(f"Cannot pay from envelope {envelope!r}")
        return Pay(amount=_int(data, "value"), envelope=envelope)
    if action == "pay_percent":
        return PayPercent(percent=_parse_percent(data.get("value")))
    if action == "pay_from_savings":
        return PayFromSavings(amount=_int(data, "value"))
    if action == "income":
        return Income(amount=_int(data, "value"))
    if action == "skip_turn":
        return SkipTurn(turns=_int(data, "value", 1))
    if action == "block_income":
        return BlockIncome(turns=_int(data, "value", 1))
    if action == "grant_skill":
        skill = data.get("skill") or data.get("value")
        if not skill:
            raise GameDataError("grant_skill needs a skill")
        return GrantSkill(skill=str(skill))
    if action == "multi_effect":
        nested = data.get("effects")
        if not isinstance(nested, list) or not nested:
            raise GameDataError("multi_effect needs a non-empty 'effects' list")
        return MultiEffect(effects=tuple(parse_effect(e) for e in nested))
    if action == "purchase_offer":
        kind = data.get("kind")
        if kind not in PURCHASE_KINDS:
            raise GameDataError(f"Unknown purchase kind {kind!r}")
        name = data.get("name")
        if not name:
            raise GameDataError("purchase_offer needs a name")
        return PurchaseOffer(
            kind=kind,
            name=name,
            price=_int(data, "price"),
            income=_int(data, "income", 0),
            skill=data.get("skill"),
        )
    if action == "sale_offer":
        asset_name = data.get("asset_name")
        if not asset_name:
            raise GameDataError("sale_offer needs an asset_name")
        return SaleOffer(asset_name=asset_name, price=_int(data, "price"))
    if action == "charity_offer":
        return CharityOffer(amount=_int(data, "amount", 0))
    if action == "buy_dream_asset":
        return BuyDreamAsset(name=data.get("name", ""), price=_int(data, "price"))
    if action == "decline_dream_asset":
        return DeclineDreamAsset()

    raise GameDataError(f"Unknown effect action {action!r}")


def serialize_effect(effect: Effect) -> Dict[str, Any]:
    """Serialize an effect variant back to its JSON descriptor."""
    if isinstance(effect, Pay):
        data = {"action": "pay", "value": effect.amount}
        if effect.envelope:
            data["from"] = effect.envelope
        return data
    if isinstance(effect, PayPercent):
        return {"action": "pay_percent", "value": f"{effect.percent}%"}
    if isinstance(effect, PayFromSavings):
        return {"action": "pay_from_savings", "value": effect.amount}
    if isinstance(effect, Income):
        return {"action": "income", "value": effect.amount}
    if isinstance(effect, SkipTurn):
        return {"action": "skip_turn", "value": effect.turns}
    if isinstance(effect, BlockIncome):
        return {"action": "block_income", "value": effect.turns}
    if isinstance(effect, GrantSkill):
        return {"action": "grant_skill", "skill": effect.skill}
    if isinstance(effect, MultiEffect):
        return {"action": "multi_effect", "effects": [serialize_effect(e) for e in effect.effects]}
    if isinstance(effect, PurchaseOffer):
        return {
            "action": "purchase_offer",
            "kind": effect.kind,
            "name": effect.name,
            "price": effect.price,
            "income": effect.income,
            "skill": effect.skill,
        }
    if isinstance(effect, SaleOffer):
        return {"action": "sale_offer", "asset_name": effect.asset_name, "price": effect.price}
    if isinstance(effect, CharityOffer):
        return {"action": "charity_offer", "amount": effect.amount}
    if isinstance(effect, BuyDreamAsset):
        return {"action": "buy_dream_asset", "name": effect.name, "price": effect.price}
    if isinstance(effect, DeclineDreamAsset):
        return {"action": "decline_dream_asset"}
    raise TypeError(f"Not an effect: {effect!r}")


def effect_tag(effect: Effect) -> str:
    return serialize_effect(effect)["action"]
