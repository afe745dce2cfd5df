"""
Tests for cell landings: income, charity, dreams, events and choices.
"""
import pytest

from fingame import CellTable, GameDataError, InvalidCommandError, TurnPhase


def _land(game, rng, player, steps):
    rng.rolls.append(steps)
    game.roll_dice(player.id)
    return game.move_player(player.id, steps)


def test_cell_table_lookup_prefers_id_over_type(cell_table, board):
    assert cell_table.lookup(board.get(9)).action == "pay"
    assert cell_table.lookup(board.get(14)).action == "collect_income"
    assert cell_table.lookup(board.get(1)) is None


def test_cell_table_rejects_unknown_action():
    with pytest.raises(GameDataError):
        CellTable.from_dict({"by_id": {"3": {"action": "explode"}}})


def test_cell_table_rejects_unknown_type():
    with pytest.raises(GameDataError):
        CellTable.from_dict({"by_type": {"volcano": {"action": "collect_income"}}})


def test_money_cell_without_businesses(game, rng):
    alice = game.get_player("player_1")

    result = _land(game, rng, alice, 2)

    assert result.action == "monthly_income"
    assert result.money_change == 0
    assert result.description == "No businesses, no income."
    assert result.end_turn
    assert game.current_turn_player_id == "player_2"


def test_money_cell_collects_business_cashflow(game, rng):
    alice = game.get_player("player_1")
    game.buy_business(alice.id, "Stand", 50, 20)

    result = _land(game, rng, alice, 2)

    assert result.money_change == 20
    assert result.description == "Your businesses brought in 20."
    assert alice.wallets.investments == 12


def test_income_cell_while_blocked_asks_for_acknowledgement(game, rng):
    alice = game.get_player("player_1")
    game.buy_business(alice.id, "Stand", 50, 20)
    alice.status.income_blocked_turns_remaining = 1

    result = _land(game, rng, alice, 2)

    assert result.action == "income_blocked_ack"
    assert result.description == "Blocked for 1 turn(s)."
    assert alice.wallets.investments == 0
    assert alice.status.income_blocked_turns_remaining == 1
    assert alice.status.blocked_income_events == 1
    assert game.turn_phase == TurnPhase.AWAITING_ACKNOWLEDGEMENT
    assert game.pending_acknowledgement == "income_block"
    assert game.current_turn_player_id == alice.id


def test_fork_landing_ends_turn(game, rng):
    result = _land(game, rng, game.get_player("player_1"), 3)

    assert result.action == "choose_path"
    assert result.paths == [4, 6]
    assert game.current_turn_player_id == "player_2"


def test_plain_cell_is_a_no_op(game, rng):
    result = _land(game, rng, game.get_player("player_1"), 1)

    assert result.action == "none"
    assert result.end_turn


def test_event_pay_cell(game, rng, place):
    alice = game.get_player("player_1")
    place(alice, 8)

    result = _land(game, rng, alice, 1)

    assert result.action == "pay"
    assert result.money_change == -20
    assert alice.wallets.savings == 80
    assert game.current_turn_player_id == "player_2"
    assert any(e.action == "cell_visited" and e.details["cell_id"] == 9 for e in game.history)


def test_charity_cell_without_credit(game, rng, place):
    alice = game.get_player("player_1")
    place(alice, 7)

    result = _land(game, rng, alice, 1)

    assert result.action == "charity_no_bonus"
    assert result.description == "Help someone first."
    assert alice.status.double_dice_turns_remaining == 0


def test_charity_cell_redeems_banked_credit(game, rng, place):
    alice = game.get_player("player_1")
    alice.status.charity_credits_banked = 2
    place(alice, 7)

    result = _land(game, rng, alice, 1)

    assert result.action == "charity_bonus"
    assert result.value == 3
    assert alice.status.charity_credits_banked == 1
    assert alice.status.double_dice_turns_remaining == 3


def test_dream_cell_without_dream(session):
    alice = session.add_player("Alice")
    session.start_game()
    result = session.cells.handle_cell(alice.id, session.board.get(7))

    assert result.action == "dream_none"
    assert result.end_turn


def test_own_dream_fulfilled(game, rng, place):
    alice = game.get_player("player_1")
    alice.wallets.dream = 120
    place(alice, 5)

    result = _land(game, rng, alice, 1)

    assert result.action == "dream_fulfilled"
    assert result.money_change == -100
    assert alice.wallets.dream == 20
    assert alice.assets.dream_fulfilled
    assert alice.assets.items[0].kind == "dream"
    notifications = game.drain_notifications()
    assert notifications[0].title == "Dream fulfilled!"
    assert any(e.action == "dream_fulfilled" for e in game.history)


def test_own_dream_not_enough_saved(game, rng, place):
    alice = game.get_player("player_1")
    alice.wallets.dream = 99
    place(alice, 5)

    result = _land(game, rng, alice, 1)

    assert result.action == "dream_fail"
    assert alice.wallets.dream == 99
    assert not alice.assets.dream_fulfilled
    assert alice.debts == []


def test_wildcard_dream_counts_as_own(game, rng, place):
    alice = game.get_player("player_1")
    alice.wallets.dream = 50
    place(alice, 9)

    result = _land(game, rng, alice, 1)

    assert result.action == "dream_fulfilled"
    assert alice.wallets.dream == 0


def test_other_players_dream_offered_as_asset(game, rng, place):
    alice = game.get_player("player_1")
    game.advance_turn()
    bob = game.get_player("player_2")
    bob.wallets.investments = 150
    place(bob, 5)

    result = _land(game, rng, bob, 1)

    assert result.action == "choice"
    assert not result.end_turn
    assert [o["text"] for o in result.options] == ["Buy (100)", "Decline"]
    assert game.turn_phase == TurnPhase.AWAITING_CHOICE

    outcome = game.resolve_cell_choice(bob.id, 0)

    assert outcome["success"]
    assert bob.wallets.investments == 50
    assert bob.assets.items[0].name == "Bike"
    assert not bob.assets.dream_fulfilled
    assert game.drain_notifications()[-1].title == "Asset purchased"
    assert game.current_turn_player_id == alice.id


def test_other_players_dream_declined(game, rng, place):
    game.advance_turn()
    bob = game.get_player("player_2")
    bob.wallets.investments = 150
    place(bob, 5)
    _land(game, rng, bob, 1)

    game.resolve_cell_choice(bob.id, 1)

    assert bob.wallets.investments == 150
    assert bob.assets.items == []
    assert game.drain_notifications()[-1].title == "Declined"


def test_other_players_dream_unaffordable(game, rng, place):
    game.advance_turn()
    bob = game.get_player("player_2")
    bob.wallets.savings = 1000  # savings do not count here
    place(bob, 5)

    result = _land(game, rng, bob, 1)

    assert result.action == "dream_check_fail"
    assert result.end_turn


def test_choice_cell_pay_option(game, rng, place):
    alice = game.get_player("player_1")
    place(alice, 12)

    result = _land(game, rng, alice, 1)
    assert result.action == "choice"
    assert len(alice.pending_choice) == 2

    outcome = game.resolve_cell_choice(alice.id, 0)

    assert outcome["end_turn"]
    assert alice.wallets.savings == 80
    assert alice.pending_choice == ()
    assert game.current_turn_player_id == "player_2"


def test_choice_cell_rejects_unaffordable_pay_option(game, rng, place):
    alice = game.get_player("player_1")
    alice.wallets.savings = 10
    place(alice, 12)
    _land(game, rng, alice, 1)

    outcome = game.resolve_cell_choice(alice.id, 0)

    assert outcome == {
        "success": False,
        "error": "insufficient_funds",
        "message": "Not enough savings for this option (20)",
        "end_turn": False,
    }
    assert game.current_turn_player_id == alice.id
    assert game.turn_phase == TurnPhase.AWAITING_CHOICE

    game.resolve_cell_choice(alice.id, 1)
    assert alice.status.skipped_turns_remaining == 1
    assert game.current_turn_player_id == "player_2"


def test_choice_cell_rejects_unknown_option(game, rng, place):
    alice = game.get_player("player_1")
    place(alice, 12)
    _land(game, rng, alice, 1)

    with pytest.raises(InvalidCommandError):
        game.resolve_cell_choice(alice.id, 5)
