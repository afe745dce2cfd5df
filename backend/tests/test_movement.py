"""
Tests for the board graph and player movement.
"""
import pytest

from fingame import Board, GameDataError, InvalidCommandError

from conftest import BOARD


def _cells(*overrides):
    cells = [dict(c) for c in BOARD["cells"]]
    for override in overrides:
        cells = [dict(c, **override) if c["id"] == override["id"] else c for c in cells]
    return {"cells": cells}


def test_board_loads_from_bundled_data():
    from fingame.config import DEFAULT_DATA_DIR

    board = Board.load(DEFAULT_DATA_DIR / "board.json")
    assert board.start_cell.id == 0
    assert all(len(c.edges) == 2 for c in board.cells.values() if c.is_fork)


def test_board_rejects_fork_with_one_edge():
    with pytest.raises(GameDataError):
        Board.from_dict(_cells({"id": 3, "edges": [4]}))


def test_board_rejects_branching_normal_cell():
    with pytest.raises(GameDataError):
        Board.from_dict(_cells({"id": 1, "edges": [2, 3]}))


def test_board_rejects_dangling_edge():
    with pytest.raises(GameDataError):
        Board.from_dict(_cells({"id": 14, "edges": [99]}))


def test_board_rejects_second_start():
    with pytest.raises(GameDataError):
        Board.from_dict(_cells({"id": 1, "type": "start"}))


def test_walk_records_passed_income_cells(board):
    walk = board.walk(0, 4)

    assert walk.path == (1, 2, 3, 4)
    assert walk.landing_cell_id == 4
    assert walk.passed_money_cells == (2,)


def test_walk_landing_on_income_cell_is_not_passing_it(board):
    walk = board.walk(0, 2)

    assert walk.landing_cell_id == 2
    assert walk.passed_money_cells == ()


def test_walk_follows_fork_direction_once(board):
    walk = board.walk(3, 2, fork_direction=1)

    assert walk.path == (6, 7)
    assert walk.used_fork_direction == 1


def test_walk_through_fork_takes_first_edge(board):
    assert board.walk(2, 2).path == (3, 4)


def test_walk_wraps_around_start(board):
    walk = board.walk(13, 3)

    assert walk.path == (14, 0, 1)
    assert walk.passed_money_cells == (14, 0)


def test_predict_move_does_not_change_state(game):
    alice = game.get_player("player_1")
    history_length = len(game.history)

    prediction = game.predict_move(alice.id, 3)

    assert prediction.target_cell_id == 3
    assert prediction.path == [1, 2, 3]
    assert prediction.passed_money_cells == [2]
    assert alice.position.current_cell_id == 0
    assert len(game.history) == history_length


def test_predict_move_rejects_negative_steps(game):
    with pytest.raises(InvalidCommandError):
        game.predict_move("player_1", -1)


def test_move_updates_position_and_passed_cells(game, rng):
    alice = game.get_player("player_1")
    rng.rolls.append(4)
    game.roll_dice(alice.id)

    result = game.move_player(alice.id, 4)

    assert alice.position.current_cell_id == 4
    assert alice.position.current_cell_type.value == "chance"
    assert alice.passed_money_cells == [2]
    assert result.passed_money_cells == [2]
    assert result.action == "draw_card"
    assert any(e.action == "player_moved" and e.details["to_cell"] == 4 for e in game.history)


def test_fork_direction_is_consumed_by_the_move(game, rng, place):
    alice = game.get_player("player_1")
    place(alice, 3)

    assert game.set_fork_direction(alice.id, "tails") == 1
    rng.rolls.append(1)
    game.roll_dice(alice.id)
    game.move_player(alice.id, 1)

    assert alice.position.current_cell_id == 6
    assert alice.position.pending_fork_direction is None


@pytest.mark.parametrize("coin, path", [("heads", [4, 5, 7]), ("tails", [6, 7, 8])])
def test_fork_step_counts_toward_the_roll(game, rng, place, coin, path):
    alice = game.get_player("player_1")
    place(alice, 3)
    game.set_fork_direction(alice.id, coin)
    assert game.predict_move(alice.id, 3).path == path
    rng.rolls.append(3)
    game.roll_dice(alice.id)

    result = game.move_player(alice.id, 3)

    assert result.cell_id == path[-1]
    assert alice.position.current_cell_id == path[-1]
    assert alice.position.pending_fork_direction is None


def test_stale_fork_direction_is_not_reused(game, place):
    alice = game.get_player("player_1")
    place(alice, 3)
    game.set_fork_direction(alice.id, "tails")
    game.movement.move_player(alice.id, 1)
    assert alice.position.current_cell_id == 6

    # back onto the fork, keeping the same position record
    alice.position.current_cell_id = 3
    alice.position.current_cell_type = game.board.get(3).type
    game.movement.move_player(alice.id, 1)

    assert alice.position.current_cell_id == 4


def test_set_fork_direction_requires_fork(game):
    with pytest.raises(InvalidCommandError):
        game.set_fork_direction("player_1", "heads")


def test_set_fork_direction_rejects_bad_coin(game, place):
    place(game.get_player("player_1"), 3)
    with pytest.raises(InvalidCommandError):
        game.set_fork_direction("player_1", "edge")


def test_roll_on_fork_requires_direction(game, place):
    place(game.get_player("player_1"), 3)
    with pytest.raises(InvalidCommandError):
        game.roll_dice("player_1")


def test_flip_coin_sets_direction(game, rng, place):
    alice = game.get_player("player_1")
    place(alice, 3)
    rng.coins.append("tails")

    outcome = game.flip_coin(alice.id)

    assert outcome == {"coin": "tails", "direction": 1, "target_cell_id": 6}
    assert alice.position.pending_fork_direction == 1
    assert game.history[-1].action == "fork_direction_set"
