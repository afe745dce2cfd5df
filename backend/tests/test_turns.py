"""
Tests for turn order, dice, skipping and the end-of-game report.
"""
import pytest

from fingame import InvalidCommandError, NotYourTurnError, SessionStatus, TurnPhase


@pytest.fixture
def trio(session):
    for name in ("Alice", "Bob", "Carol"):
        player = session.add_player(name)
        session.select_dream(player.id, "bike", "Bike", 100)
    session.start_game()
    return session


def test_start_game_requires_players(session):
    with pytest.raises(InvalidCommandError):
        session.start_game()


def test_start_game_only_once(game):
    with pytest.raises(InvalidCommandError):
        game.start_game()


def test_start_game_builds_decks_and_hands_turn_to_first_player(game):
    assert game.status == SessionStatus.IN_PROGRESS
    assert game.current_turn_player_id == "player_1"
    assert game.turn_phase == TurnPhase.AWAITING_ROLL
    assert game.decks.sizes() == {"chance": 1, "news": 1, "expenses": 1, "business": 1}
    assert game.history[-1].action == "game_started"


def test_roll_outside_turn_is_rejected(game, rng):
    rng.rolls.append(3)
    with pytest.raises(NotYourTurnError) as exc_info:
        game.roll_dice("player_2")
    assert exc_info.value.current_player_id == "player_1"
    assert rng.rolls == [3]


def test_roll_requires_a_dream(session, rng):
    session.add_player("Alice")
    session.start_game()
    with pytest.raises(InvalidCommandError):
        session.roll_dice("player_1")


def test_roll_without_dream_when_not_required(make_session, rng):
    from fingame import GameConfig

    session = make_session(config=GameConfig(require_dream_before_roll=False))
    session.add_player("Alice")
    session.start_game()
    rng.rolls.append(5)

    assert session.roll_dice("player_1").result == 5


def test_single_roll(game, rng):
    rng.rolls.append(4)

    roll = game.roll_dice("player_1")

    assert (roll.result, roll.is_partial, roll.dice) == (4, False, [4])
    assert game.rolled_steps == 4
    assert game.turn_phase == TurnPhase.AWAITING_MOVE


def test_cannot_roll_twice(game, rng):
    rng.rolls.extend([4, 2])
    game.roll_dice("player_1")
    with pytest.raises(InvalidCommandError):
        game.roll_dice("player_1")


def test_double_dice_roll_takes_two_calls(game, rng):
    alice = game.get_player("player_1")
    alice.status.double_dice_turns_remaining = 2
    rng.rolls.extend([3, 5])

    first = game.roll_dice(alice.id)
    assert first.is_partial
    assert first.result == 3
    assert alice.status.pending_first_die_value == 3
    assert game.turn_phase == TurnPhase.AWAITING_ROLL

    second = game.roll_dice(alice.id)
    assert not second.is_partial
    assert second.result == 8
    assert second.dice == [3, 5]
    assert alice.status.pending_first_die_value is None
    assert alice.status.double_dice_turns_remaining == 1
    assert game.rolled_steps == 8


def test_move_must_match_roll(game, rng):
    rng.rolls.append(4)
    game.roll_dice("player_1")
    with pytest.raises(InvalidCommandError):
        game.move_player("player_1", 5)


def test_move_before_roll_is_rejected(game):
    with pytest.raises(InvalidCommandError):
        game.move_player("player_1", 1)


def test_advance_turn_follows_join_order(trio):
    assert trio.advance_turn().current_player_id == "player_2"
    assert trio.advance_turn().current_player_id == "player_3"
    assert trio.advance_turn().current_player_id == "player_1"


def test_skipping_player_uses_up_a_skip(trio):
    bob = trio.get_player("player_2")
    bob.status.skipped_turns_remaining = 2

    advance = trio.advance_turn()

    assert advance.current_player_id == "player_3"
    assert advance.skipped_player_ids == ["player_2"]
    assert bob.status.skipped_turns_remaining == 1
    skipped = [e for e in trio.history if e.action == "turn_skipped"]
    assert skipped[-1].details["remaining"] == 1


def test_sleeping_player_is_passed_without_using_skips(trio):
    bob = trio.get_player("player_2")
    bob.status.is_sleeping = True
    bob.status.skipped_turns_remaining = 1

    advance = trio.advance_turn()

    assert advance.current_player_id == "player_3"
    assert advance.sleeping_player_ids == ["player_2"]
    assert bob.status.skipped_turns_remaining == 1


def test_turn_can_come_back_to_the_same_player(game):
    game.get_player("player_2").status.skipped_turns_remaining = 1

    advance = game.advance_turn()

    assert advance.current_player_id == "player_1"
    assert advance.skipped_player_ids == ["player_2"]


def test_stalemate_when_nobody_can_play(game):
    alice = game.get_player("player_1")
    bob = game.get_player("player_2")
    alice.status.skipped_turns_remaining = 1
    bob.status.skipped_turns_remaining = 1

    advance = game.advance_turn()

    assert advance.stalemate
    assert advance.current_player_id == "player_1"
    assert alice.status.skipped_turns_remaining == 0
    assert bob.status.skipped_turns_remaining == 0
    assert game.history[-1].action == "turn_stalemate"


def test_single_player_keeps_the_turn_without_using_skips(session):
    alice = session.add_player("Alice")
    session.start_game()
    alice.status.skipped_turns_remaining = 2

    advance = session.advance_turn()

    assert advance.current_player_id == alice.id
    assert alice.status.skipped_turns_remaining == 2


def test_advance_turn_clears_turn_scratch(game, rng):
    alice = game.get_player("player_1")
    alice.status.double_dice_turns_remaining = 1
    rng.rolls.append(2)
    game.roll_dice(alice.id)

    game.advance_turn()

    assert alice.status.pending_first_die_value is None
    assert game.turn_phase == TurnPhase.AWAITING_ROLL
    assert game.rolled_steps is None


def test_removing_current_player_passes_the_turn(trio):
    trio.remove_player("player_1")

    assert trio.current_turn_player_id == "player_2"
    assert trio.host_id == "player_2"


def test_removing_other_player_keeps_the_turn(trio):
    trio.remove_player("player_2")

    assert trio.current_turn_player_id == "player_1"
    assert list(trio.players) == ["player_1", "player_3"]


def test_removing_last_player_resets_the_session(game):
    game.remove_player("player_1")
    game.remove_player("player_2")

    assert game.status == SessionStatus.WAITING
    assert game.players == {}
    assert game.history == []


def test_end_game_is_idempotent(game):
    first = game.end_game()
    second = game.end_game()

    assert game.status == SessionStatus.FINISHED
    assert sum(1 for e in game.history if e.action == "game_ended") == 1
    assert first.statistics == second.statistics
    assert first.duration_minutes == 0


def test_report_statistics_ignore_partial_rolls(game, rng):
    alice = game.get_player("player_1")
    alice.status.double_dice_turns_remaining = 1
    rng.rolls.extend([1, 1])
    game.roll_dice(alice.id)
    game.roll_dice(alice.id)

    report = game.end_game()

    assert report.statistics["dice_rolls"] == 1
    assert report.statistics["players"] == 2
    assert report.statistics["actions"] == len(game.history)


def test_report_players_are_copies(game):
    report = game.end_game()
    report.players[0].wallets.savings = 0

    assert game.get_player("player_1").wallets.savings == 100


def test_commands_rejected_after_game_ends(game, rng):
    game.end_game()
    rng.rolls.append(2)
    with pytest.raises(InvalidCommandError):
        game.roll_dice("player_1")
