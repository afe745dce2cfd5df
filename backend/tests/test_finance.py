"""
Tests for the envelope ledger: income split, spending orders, debts, effects and offers.
"""
import pytest

from fingame import (
    CharityOffer,
    Envelope,
    InvalidCommandError,
    MultiEffect,
    Pay,
    PayFromSavings,
    PayPercent,
    PurchaseOffer,
    SaleOffer,
    SkipTurn,
    BlockIncome,
    GrantSkill,
    Income,
    Item,
    SpendPurpose,
    split_income,
)
from fingame.models import PendingOffer


@pytest.fixture
def alice(session):
    return session.add_player("Alice")


def test_split_income_round_numbers():
    shares = split_income(100)
    assert shares == {
        Envelope.CHARITY: 10,
        Envelope.DREAM: 20,
        Envelope.SAVINGS: 10,
        Envelope.INVESTMENTS: 60,
    }


def test_split_income_rounds_each_share_half_up():
    # 1.5 -> 2, 3, 1.5 -> 2, 9: shares are not reconciled with the original amount
    shares = split_income(15)
    assert shares[Envelope.CHARITY] == 2
    assert shares[Envelope.DREAM] == 3
    assert shares[Envelope.SAVINGS] == 2
    assert shares[Envelope.INVESTMENTS] == 9
    assert sum(shares.values()) == 16


@pytest.mark.parametrize("amount", range(0, 1000))
def test_split_income_drift_stays_within_three(amount):
    shares = split_income(amount)

    assert all(share >= 0 for share in shares.values())
    assert abs(sum(shares.values()) - amount) <= 3


def test_distribute_income_fills_envelopes(session, alice):
    distribution = session.finance.distribute_income(alice.id, 100)

    assert distribution == {"charity": 10, "dream": 20, "savings": 10, "investments": 60}
    assert alice.wallets.as_dict() == {"charity": 10, "dream": 20, "savings": 110, "investments": 60}
    assert session.history[-1].action == "income_distributed"


def test_distribute_income_blocked_uses_up_one_turn(session, alice):
    alice.status.income_blocked_turns_remaining = 2

    assert session.finance.distribute_income(alice.id, 100) is None

    assert alice.status.income_blocked_turns_remaining == 1
    assert alice.wallets.total() == 100
    assert session.history[-1].action == "income_blocked"


def test_generic_spend_uses_savings_then_investments(session, alice):
    alice.wallets.investments = 30

    result = session.finance.spend(alice.id, 120)

    assert result.success
    assert result.sources == {"savings": 100, "investments": 20}
    assert alice.wallets.savings == 0
    assert alice.wallets.investments == 10
    assert alice.debts == []


def test_generic_spend_records_shortfall_as_debt(session, alice):
    result = session.finance.spend(alice.id, 130, reason="expense")

    assert result.success
    assert result.paid == 100
    assert result.debt == 30
    assert alice.wallets.savings == 0
    assert alice.debts[0].amount == 30
    assert alice.debts[0].reason == "expense_shortfall"
    assert alice.total_debt == 30


def test_business_spend_uses_investments_first(session, alice):
    alice.wallets.investments = 50

    result = session.finance.spend(alice.id, 70, SpendPurpose.BUSINESS)

    assert result.sources == {"investments": 50, "savings": 20}
    assert alice.wallets.savings == 80


def test_savings_spend_never_touches_investments(session, alice):
    alice.wallets.investments = 500

    result = session.finance.spend(alice.id, 150, SpendPurpose.SAVINGS, reason="savings_withdrawal")

    assert result.debt == 50
    assert alice.wallets.investments == 500
    assert alice.debts[0].reason == "savings_withdrawal_shortfall"


@pytest.mark.parametrize("purpose,envelope", [
    (SpendPurpose.CHARITY, "charity"),
    (SpendPurpose.DREAM, "dream"),
])
def test_single_envelope_spend_is_all_or_nothing(session, alice, purpose, envelope):
    setattr(alice.wallets, envelope, 5)

    result = session.finance.spend(alice.id, 10, purpose)

    assert not result.success
    assert getattr(alice.wallets, envelope) == 5
    assert alice.wallets.savings == 100
    assert alice.debts == []


def test_wallets_reject_negative_balance(alice):
    with pytest.raises(ValueError):
        alice.wallets.set(Envelope.SAVINGS, -1)


def test_buy_business_insufficient_funds_is_a_result(session, alice):
    result = session.finance.buy_business(alice.id, "Car Wash", 500, 50)

    assert result == {"success": False, "error": "insufficient_funds"}
    assert alice.assets.businesses == []
    assert alice.wallets.savings == 100


def test_buy_business_and_collect_cashflow(session, alice):
    result = session.finance.buy_business(alice.id, "Lemonade Stand", 60, 25)

    assert result["success"]
    assert alice.wallets.savings == 40
    assert session.finance.collect_business_income(alice.id) == 25
    assert alice.wallets.investments == 15
    actions = [e.action for e in session.history]
    assert actions[-3:] == ["business_purchased", "income_distributed", "business_income_collected"]


def test_blocked_business_income_is_not_collected(session, alice):
    session.finance.buy_business(alice.id, "Lemonade Stand", 60, 25)
    alice.status.income_blocked_turns_remaining = 1

    assert session.finance.collect_business_income(alice.id) == 0

    assert alice.wallets.investments == 0
    assert alice.status.income_blocked_turns_remaining == 0
    actions = [e.action for e in session.history]
    assert actions[-1] == "income_blocked"
    assert "business_income_collected" not in actions


def test_buy_business_rejects_negative_price(session, alice):
    with pytest.raises(InvalidCommandError):
        session.finance.buy_business(alice.id, "Broken", -1, 0)


def test_pay_from_charity_banks_a_credit(session, alice):
    alice.wallets.charity = 20

    outcome = session.finance.apply_effect(alice.id, Pay(amount=15, envelope="charity"), source="card")

    assert outcome["success"]
    assert alice.wallets.charity == 5
    assert alice.status.charity_credits_banked == 1
    entry = session.history[-1]
    assert entry.action == "effect_applied"
    assert entry.details["effect"] == "pay"
    assert entry.details["source"] == "card"


def test_pay_from_empty_charity_fails_without_debt(session, alice):
    outcome = session.finance.apply_effect(alice.id, Pay(amount=15, envelope="charity"))

    assert not outcome["success"]
    assert alice.status.charity_credits_banked == 0
    assert alice.debts == []


def test_pay_percent_uses_total_of_all_envelopes(session, alice):
    alice.wallets.investments = 100  # total 200

    outcome = session.finance.apply_effect(alice.id, PayPercent(percent=10))

    assert outcome["paid"] == 20
    assert alice.wallets.total() == 180


def test_pay_from_savings_records_debt(session, alice):
    session.finance.apply_effect(alice.id, PayFromSavings(amount=120))

    assert alice.wallets.savings == 0
    assert alice.total_debt == 20


def test_status_effects_accumulate(session, alice):
    session.finance.apply_effect(alice.id, SkipTurn(turns=1))
    session.finance.apply_effect(alice.id, SkipTurn(turns=2))
    session.finance.apply_effect(alice.id, BlockIncome(turns=1))

    assert alice.status.skipped_turns_remaining == 3
    assert alice.status.income_blocked_turns_remaining == 1


def test_grant_skill_is_idempotent(session, alice):
    session.finance.apply_effect(alice.id, GrantSkill(skill="designer"))
    outcome = session.finance.apply_effect(alice.id, GrantSkill(skill="designer"))

    assert alice.assets.skills == ["designer"]
    assert outcome["added"] is False


def test_income_effect_ignores_income_block(session, alice):
    alice.status.income_blocked_turns_remaining = 1

    session.finance.apply_effect(alice.id, Income(amount=50))

    assert alice.wallets.investments == 30
    assert alice.status.income_blocked_turns_remaining == 1


def test_multi_effect_logs_each_nested_effect(session, alice):
    effect = MultiEffect(effects=(Pay(amount=30), SkipTurn(turns=1)))

    session.finance.apply_effect(alice.id, effect, source="Bullies")

    assert alice.wallets.savings == 70
    assert alice.status.skipped_turns_remaining == 1
    tags = [e.details["effect"] for e in session.history if e.action == "effect_applied"]
    assert tags == ["pay", "skip_turn", "multi_effect"]


def test_offer_effect_sets_pending_offer(session, alice):
    session.finance.apply_effect(alice.id, CharityOffer(amount=10), source="Help a neighbour")

    assert alice.pending_offer.kind == "charity"
    assert alice.pending_offer.source == "Help a neighbour"


def test_accept_business_purchase(session, alice):
    alice.pending_offer = PendingOffer(
        kind="purchase",
        effect=PurchaseOffer(kind="business", name="Lemonade Stand", price=80, income=20),
    )

    resolution = session.finance.resolve_offer(alice.id, accept=True)

    assert resolution.success
    assert alice.pending_offer is None
    assert alice.wallets.savings == 20
    assert alice.assets.businesses[0].cashflow == 20
    assert session.history[-1].action == "purchase_accepted"
    assert session.drain_notifications()[0].title == "Purchase"


def test_accept_unaffordable_purchase_fails(session, alice):
    alice.pending_offer = PendingOffer(kind="purchase", effect=PurchaseOffer(kind="asset", name="Car", price=1000))

    resolution = session.finance.resolve_offer(alice.id, accept=True)

    assert resolution.accepted
    assert not resolution.success
    assert alice.assets.items == []
    assert alice.wallets.savings == 100
    assert session.history[-1].action == "purchase_failed"


def test_accept_skill_purchase(session, alice):
    alice.pending_offer = PendingOffer(
        kind="purchase",
        effect=PurchaseOffer(kind="skill", name="Design course", price=60, skill="designer"),
    )

    session.finance.resolve_offer(alice.id, accept=True)

    assert alice.assets.skills == ["designer"]


def test_decline_offer_changes_nothing(session, alice):
    alice.pending_offer = PendingOffer(kind="purchase", effect=PurchaseOffer(kind="asset", name="Car", price=10))

    resolution = session.finance.resolve_offer(alice.id, accept=False)

    assert not resolution.accepted
    assert alice.wallets.savings == 100
    assert session.history[-1].action == "purchase_declined"


def test_accept_sale_credits_price_by_split(session, alice):
    alice.assets.items.append(Item(id="i1", name="Bicycle", price=90))
    alice.pending_offer = PendingOffer(kind="sale", effect=SaleOffer(asset_name="Bicycle", price=140))

    resolution = session.finance.resolve_offer(alice.id, accept=True)

    assert resolution.success
    assert alice.assets.items == []
    assert alice.wallets.investments == 84
    assert alice.wallets.dream == 28


def test_accept_charity_offer_needs_charity_envelope(session, alice):
    alice.pending_offer = PendingOffer(kind="charity", effect=CharityOffer(amount=10))
    failed = session.finance.resolve_offer(alice.id, accept=True)

    alice.wallets.charity = 10
    alice.pending_offer = PendingOffer(kind="charity", effect=CharityOffer(amount=10))
    helped = session.finance.resolve_offer(alice.id, accept=True)

    assert not failed.success
    assert helped.success
    assert alice.wallets.charity == 0
    assert alice.status.charity_credits_banked == 1


def test_resolve_offer_without_offer_is_rejected(session, alice):
    with pytest.raises(InvalidCommandError):
        session.finance.resolve_offer(alice.id, accept=True)
