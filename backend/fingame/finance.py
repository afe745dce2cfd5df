"""
Envelope-based finance ledger.

Income is split into four envelopes (10% charity, 20% dream, 10% savings,
60% investments), each share rounded half up on its own. The shares are not
reconciled against the original amount, so the total can drift by a few
units from rounding. Withdrawals follow a purpose-dependent order and record
any uncovered remainder as debt instead of letting an envelope go negative.
"""
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

import structlog

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
    effect_tag,
)
from .errors import InvalidCommandError
from .models import Business, Debt, Envelope, Item, PendingOffer, Player

if TYPE_CHECKING:
    from .session import GameSession

logger = structlog.get_logger("fingame.finance")

INCOME_SPLIT: Tuple[Tuple[Envelope, int], ...] = (
    (Envelope.CHARITY, 10),
    (Envelope.DREAM, 20),
    (Envelope.SAVINGS, 10),
    (Envelope.INVESTMENTS, 60),
)


def percent_of(amount: int, percent: int) -> int:
    """`percent`% of `amount`, rounded half up."""
    value = Decimal(amount) * Decimal(percent) / Decimal(100)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def split_income(amount: int) -> Dict[Envelope, int]:
    """Split an income amount into envelope shares."""
    return {envelope: percent_of(amount, share) for envelope, share in INCOME_SPLIT}


class SpendPurpose(Enum):
    """Decides which envelopes a withdrawal may draw from, and in what order."""
    GENERIC = "generic"  # savings, then investments, remainder becomes debt
    CHARITY = "charity"  # charity envelope only, all or nothing
    DREAM = "dream"  # dream envelope only, all or nothing
    BUSINESS = "business"  # investments, then savings, remainder becomes debt
    SAVINGS = "savings"  # savings only, remainder becomes debt


WITHDRAWAL_ORDER: Dict[SpendPurpose, Tuple[Envelope, ...]] = {
    SpendPurpose.GENERIC: (Envelope.SAVINGS, Envelope.INVESTMENTS),
    SpendPurpose.BUSINESS: (Envelope.INVESTMENTS, Envelope.SAVINGS),
    SpendPurpose.SAVINGS: (Envelope.SAVINGS,),
}

SINGLE_ENVELOPE: Dict[SpendPurpose, Envelope] = {
    SpendPurpose.CHARITY: Envelope.CHARITY,
    SpendPurpose.DREAM: Envelope.DREAM,
}


@dataclass
class SpendResult:
    """Outcome of a withdrawal."""
    success: bool
    paid: int = 0
    debt: int = 0
    sources: Dict[str, int] = field(default_factory=dict)


@dataclass
class OfferResolution:
    """Outcome of answering a purchase, sale or charity offer."""
    kind: str
    accepted: bool
    success: bool
    message: str
    amount: int = 0


class FinanceLedger:
    """Money operations for the players of one session."""

    def __init__(self, session: "GameSession"):
        self.session = session
        self._handlers: Dict[type, Callable[[Player, Any, Optional[str]], Dict[str, Any]]] = {
            Pay: self._apply_pay,
            PayPercent: self._apply_pay_percent,
            PayFromSavings: self._apply_pay_from_savings,
            Income: self._apply_income,
            SkipTurn: self._apply_skip_turn,
            BlockIncome: self._apply_block_income,
            GrantSkill: self._apply_grant_skill,
            MultiEffect: self._apply_multi_effect,
            PurchaseOffer: self._apply_offer,
            SaleOffer: self._apply_offer,
            CharityOffer: self._apply_offer,
            BuyDreamAsset: self._apply_buy_dream_asset,
            DeclineDreamAsset: self._apply_decline_dream_asset,
        }

    # ------------------------------------------------------------------
    # Income
    # ------------------------------------------------------------------

    def credit(self, player_id: str, amount: int, reason: str = "income") -> Dict[str, int]:
        """Add income by the envelope split, ignoring any income block."""
        player = self.session.get_player(player_id)
        if amount <= 0:
            return {e.value: 0 for e in Envelope}
        shares = split_income(amount)
        for envelope, share in shares.items():
            player.wallets.set(envelope, player.wallets.get(envelope) + share)
        distribution = {e.value: v for e, v in shares.items()}
        logger.debug("income_credited", player_id=player_id, amount=amount, reason=reason, **distribution)
        return distribution

    def distribute_income(self, player_id: str, amount: int) -> Optional[Dict[str, int]]:
        """
        Distribute income into the envelopes.

        If the player's income is blocked, one blocked turn is used up instead
        and nothing is credited; returns None in that case.
        """
        player = self.session.get_player(player_id)
        if player.status.income_blocked_turns_remaining > 0:
            player.status.income_blocked_turns_remaining -= 1
            self.session.add_to_history(
                "income_blocked",
                player,
                amount=amount,
                remaining=player.status.income_blocked_turns_remaining,
                message=f"{player.display_name}'s income of {amount} was blocked",
            )
            return None

        distribution = self.credit(player_id, amount, reason="income_distribution")
        self.session.add_to_history(
            "income_distributed",
            player,
            amount=amount,
            distribution=distribution,
            message=f"{player.display_name} received income: {amount}",
        )
        return distribution

    def business_cashflow(self, player_id: str) -> int:
        player = self.session.get_player(player_id)
        return sum(b.cashflow for b in player.assets.businesses)

    def collect_business_income(self, player_id: str) -> int:
        """Collect the recurring cashflow of all the player's businesses; 0 if the income was blocked."""
        player = self.session.get_player(player_id)
        total = self.business_cashflow(player_id)
        if total > 0:
            if self.distribute_income(player_id, total) is None:
                return 0
            self.session.add_to_history(
                "business_income_collected",
                player,
                total_income=total,
                business_count=len(player.assets.businesses),
                message=f"{player.display_name} collected business income: {total}",
            )
        return total

    # ------------------------------------------------------------------
    # Spending
    # ------------------------------------------------------------------

    def spend(self, player_id: str, amount: int, purpose: SpendPurpose = SpendPurpose.GENERIC,
              reason: str = "expense") -> SpendResult:
        """Withdraw `amount` from the player's envelopes according to `purpose`."""
        player = self.session.get_player(player_id)
        if amount <= 0:
            return SpendResult(success=True)

        wallets = player.wallets

        envelope = SINGLE_ENVELOPE.get(purpose)
        if envelope is not None:
            balance = wallets.get(envelope)
            if balance < amount:
                return SpendResult(success=False)
            wallets.set(envelope, balance - amount)
            return SpendResult(success=True, paid=amount, sources={envelope.value: amount})

        remaining = amount
        sources: Dict[str, int] = {}
        for envelope in WITHDRAWAL_ORDER[purpose]:
            if remaining == 0:
                break
            taken = min(wallets.get(envelope), remaining)
            if taken:
                wallets.set(envelope, wallets.get(envelope) - taken)
                sources[envelope.value] = taken
                remaining -= taken

        if remaining > 0:
            player.debts.append(Debt(amount=remaining, reason=f"{reason}_shortfall"))
            logger.info("debt_recorded", player_id=player_id, amount=remaining, reason=reason)

        return SpendResult(success=True, paid=amount - remaining, debt=remaining, sources=sources)

    def can_afford_purchase(self, player_id: str, price: int) -> bool:
        player = self.session.get_player(player_id)
        return player.wallets.investments + player.wallets.savings >= price

    def buy_business(self, player_id: str, name: str, price: int, cashflow: int) -> Dict[str, Any]:
        """Buy a business outright. Not being able to afford it is a result, not an error."""
        player = self.session.get_player(player_id)
        if price < 0 or cashflow < 0:
            raise InvalidCommandError("Business price and cashflow must not be negative")
        if not self.can_afford_purchase(player_id, price):
            return {"success": False, "error": "insufficient_funds"}

        self.spend(player_id, price, SpendPurpose.BUSINESS, reason="business_purchase")
        business = Business(id=str(uuid.uuid4()), name=name, price=price, cashflow=cashflow)
        player.assets.businesses.append(business)
        self.session.add_to_history(
            "business_purchased",
            player,
            name=name,
            price=price,
            cashflow=cashflow,
            message=f"{player.display_name} bought business {name} for {price}",
        )
        return {"success": True, "business": business}

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def apply_effect(self, player_id: str, effect: Effect, source: Optional[str] = None) -> Dict[str, Any]:
        """Apply a declarative effect to a player and log it."""
        player = self.session.get_player(player_id)
        handler = self._handlers.get(type(effect))
        if handler is None:
            raise InvalidCommandError(f"Unsupported effect {effect!r}")

        outcome = handler(player, effect, source)
        tag = effect_tag(effect)
        self.session.add_to_history(
            "effect_applied",
            player,
            effect=tag,
            source=source,
            outcome={k: v for k, v in outcome.items() if k != "message"},
            message=outcome.get("message") or f"Effect: {tag}",
        )
        return outcome

    def _apply_pay(self, player: Player, effect: Pay, source):
        if effect.envelope == "charity":
            result = self.spend(player.id, effect.amount, SpendPurpose.CHARITY, reason="charity")
            if result.success:
                player.status.charity_credits_banked += 1
        elif effect.envelope == "dream":
            result = self.spend(player.id, effect.amount, SpendPurpose.DREAM, reason="dream")
        else:
            result = self.spend(player.id, effect.amount, SpendPurpose.GENERIC, reason="expense")
        return {
            "success": result.success,
            "paid": result.paid,
            "debt": result.debt,
            "message": f"{player.display_name} paid {result.paid}" if result.success
            else f"{player.display_name} could not pay {effect.amount} from the {effect.envelope} envelope",
        }

    def _apply_pay_percent(self, player: Player, effect: PayPercent, source):
        amount = percent_of(player.wallets.total(), effect.percent)
        result = self.spend(player.id, amount, SpendPurpose.GENERIC, reason="percent_loss")
        return {
            "success": True,
            "paid": result.paid,
            "debt": result.debt,
            "message": f"{player.display_name} lost {effect.percent}% of their money ({amount})",
        }

    def _apply_pay_from_savings(self, player: Player, effect: PayFromSavings, source):
        result = self.spend(player.id, effect.amount, SpendPurpose.SAVINGS, reason="savings_withdrawal")
        return {"success": True, "paid": result.paid, "debt": result.debt,
                "message": f"{player.display_name} paid {effect.amount} from savings"}

    def _apply_income(self, player: Player, effect: Income, source):
        distribution = self.credit(player.id, effect.amount, reason=source or "one_time_income")
        return {"success": True, "amount": effect.amount, "distribution": distribution,
                "message": f"{player.display_name} received {effect.amount}"}

    def _apply_skip_turn(self, player: Player, effect: SkipTurn, source):
        player.status.skipped_turns_remaining += effect.turns
        return {"success": True, "turns": effect.turns,
                "message": f"{player.display_name} will skip {effect.turns} turn(s)"}

    def _apply_block_income(self, player: Player, effect: BlockIncome, source):
        player.status.income_blocked_turns_remaining += effect.turns
        return {"success": True, "turns": effect.turns,
                "message": f"{player.display_name}'s income is blocked for {effect.turns} turn(s)"}

    def _apply_grant_skill(self, player: Player, effect: GrantSkill, source):
        added = not player.assets.has_skill(effect.skill)
        if added:
            player.assets.skills.append(effect.skill)
        return {"success": True, "skill": effect.skill, "added": added,
                "message": f"{player.display_name} learned {effect.skill}"}

    def _apply_multi_effect(self, player: Player, effect: MultiEffect, source):
        outcomes: List[Dict[str, Any]] = [self.apply_effect(player.id, e, source) for e in effect.effects]
        return {"success": all(o.get("success", True) for o in outcomes), "count": len(outcomes)}

    def _apply_offer(self, player: Player, effect, source):
        if isinstance(effect, PurchaseOffer):
            kind = "purchase"
        elif isinstance(effect, SaleOffer):
            kind = "sale"
        else:
            kind = "charity"
        player.pending_offer = PendingOffer(kind=kind, effect=effect, source=source)
        return {"success": True, "offer": kind, "message": f"{player.display_name} received a {kind} offer"}

    def _apply_buy_dream_asset(self, player: Player, effect: BuyDreamAsset, source):
        result = self.spend(player.id, effect.price, SpendPurpose.BUSINESS, reason="asset_purchase")
        player.assets.items.append(Item(id=str(uuid.uuid4()), name=effect.name, price=effect.price))
        message = f"{player.display_name} bought {effect.name} for {effect.price}"
        self.session.notify("Asset purchased", message, "success", player.display_name)
        return {"success": True, "paid": result.paid, "debt": result.debt, "message": message}

    def _apply_decline_dream_asset(self, player: Player, effect: DeclineDreamAsset, source):
        message = f"{player.display_name} declined to buy the asset"
        self.session.notify("Declined", message, "info", player.display_name)
        return {"success": True, "message": message}

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def resolve_offer(self, player_id: str, accept: bool) -> OfferResolution:
        """Answer the player's pending offer. The offer is cleared either way."""
        player = self.session.get_player(player_id)
        offer = player.pending_offer
        if offer is None:
            raise InvalidCommandError(f"{player.display_name} has no pending offer")
        player.pending_offer = None

        if not accept:
            resolution = OfferResolution(kind=offer.kind, accepted=False, success=True,
                                         message=f"{player.display_name} declined the {offer.kind} offer")
        elif offer.kind == "purchase":
            resolution = self._accept_purchase(player, offer.effect)
        elif offer.kind == "sale":
            resolution = self._accept_sale(player, offer.effect)
        else:
            resolution = self._accept_charity(player, offer.effect)

        if not resolution.accepted:
            outcome = "declined"
        elif resolution.success:
            outcome = "accepted"
        else:
            outcome = "failed"
        self.session.add_to_history(
            f"{offer.kind}_{outcome}",
            player,
            source=offer.source,
            amount=resolution.amount,
            message=resolution.message,
        )
        return resolution

    def _accept_purchase(self, player: Player, offer: PurchaseOffer) -> OfferResolution:
        if not self.can_afford_purchase(player.id, offer.price):
            return OfferResolution(kind="purchase", accepted=True, success=False, amount=offer.price,
                                   message=f"{player.display_name} cannot afford {offer.name} ({offer.price})")

        self.spend(player.id, offer.price, SpendPurpose.BUSINESS, reason=f"{offer.kind}_purchase")
        if offer.kind == "business":
            player.assets.businesses.append(Business(
                id=str(uuid.uuid4()), name=offer.name, price=offer.price, cashflow=offer.income,
            ))
        elif offer.kind == "asset":
            player.assets.items.append(Item(id=str(uuid.uuid4()), name=offer.name, price=offer.price))
        else:
            skill = offer.skill or offer.name
            if not player.assets.has_skill(skill):
                player.assets.skills.append(skill)

        message = f"{player.display_name} bought {offer.name} for {offer.price}"
        self.session.notify("Purchase", message, "success", player.display_name)
        return OfferResolution(kind="purchase", accepted=True, success=True, amount=offer.price, message=message)

    def _accept_sale(self, player: Player, offer: SaleOffer) -> OfferResolution:
        item = player.assets.find_item(offer.asset_name)
        if item is None:
            return OfferResolution(kind="sale", accepted=True, success=False,
                                   message=f"{player.display_name} does not own {offer.asset_name}")
        player.assets.items.remove(item)
        self.credit(player.id, offer.price, reason="asset_sale")
        message = f"{player.display_name} sold {offer.asset_name} for {offer.price}"
        self.session.notify("Sale", message, "success", player.display_name)
        return OfferResolution(kind="sale", accepted=True, success=True, amount=offer.price, message=message)

    def _accept_charity(self, player: Player, offer: CharityOffer) -> OfferResolution:
        result = self.spend(player.id, offer.amount, SpendPurpose.CHARITY, reason="charity")
        if not result.success:
            return OfferResolution(kind="charity", accepted=True, success=False, amount=offer.amount,
                                   message=f"{player.display_name} does not have {offer.amount} in the charity envelope")
        player.status.charity_credits_banked += 1
        message = f"{player.display_name} helped with {offer.amount}"
        return OfferResolution(kind="charity", accepted=True, success=True, amount=offer.amount, message=message)
