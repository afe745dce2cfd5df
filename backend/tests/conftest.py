"""
Pytest fixtures: a small board, cell table and card library built in code,
and a scripted random source so dice, coins and shuffles are predictable.
"""
import os

import pytest

# Must be set before main is imported by the API tests
os.environ.setdefault("RATE_LIMIT", "10000/minute")

from fingame import Board, CardLibrary, CellTable, GameConfig, GameSession, Position


BOARD = {
    "cells": [
        {"id": 0, "type": "start", "name": "Start", "edges": [1]},
        {"id": 1, "type": "normal", "name": "Street", "edges": [2]},
        {"id": 2, "type": "money", "name": "Payday", "edges": [3]},
        {"id": 3, "type": "fork", "name": "Crossing", "edges": [4, 6]},
        {"id": 4, "type": "chance", "name": "Chance", "edges": [5]},
        {"id": 5, "type": "normal", "name": "Park", "edges": [7]},
        {"id": 6, "type": "news", "name": "News", "edges": [7]},
        {"id": 7, "type": "dream", "name": "Bike", "dream_id": "bike", "price": 100, "edges": [8]},
        {"id": 8, "type": "charity", "name": "Shelter", "edges": [9]},
        {"id": 9, "type": "event", "name": "Fine", "edges": [10]},
        {"id": 10, "type": "dream", "name": "Disneyland", "price": 50, "wildcard": True, "edges": [11]},
        {"id": 11, "type": "expenses", "name": "Expenses", "edges": [12]},
        {"id": 12, "type": "business", "name": "Market", "edges": [13]},
        {"id": 13, "type": "event", "name": "Principal", "edges": [14]},
        {"id": 14, "type": "money", "name": "Bonus day", "edges": [0]},
    ]
}

CELLS = {
    "by_id": {
        "9": {"title": "Fine", "description_self": "You pay a fine.", "action": "pay", "value": 20},
        "13": {
            "title": "Principal",
            "description_self": "Choose your punishment.",
            "action": "choice",
            "options": [
                {"text": "Pay 20", "effect": {"action": "pay", "value": 20}},
                {"text": "Skip a turn", "effect": {"action": "skip_turn", "value": 1}},
            ],
        },
    },
    "by_type": {
        "start": {
            "title": "Start",
            "description_self": "Your businesses brought in {income}.",
            "action": "collect_income",
        },
        "money": {
            "title": "Payday",
            "description_self": "Your businesses brought in {income}.",
            "action": "collect_income",
            "msg_no_income": "No businesses, no income.",
        },
        "charity": {"title": "Shelter", "action": "charity_bonus", "msg_no_donation": "Help someone first."},
        "dream": {"title": "Dream", "action": "dream_check"},
    },
    "messages": {
        "income_blocked": {"title": "Blocked", "description_self": "Blocked for {value} turn(s)."},
        "dream": {"title": "Dream"},
    },
}

CARDS = {
    "chance": [
        {
            "id": "chance_gift",
            "title": "Birthday gift",
            "description": "Grandma sends you money.",
            "effect": {"action": "income", "value": 50},
            "messages": {"self": {"success": "You received {Amount}"}},
        },
    ],
    "news": [
        {
            "id": "news_design",
            "title": "Design boom",
            "description": "Designers get extra work.",
            "requires_skill": "designer",
            "effect": {"action": "income", "value": 40},
        },
    ],
    "expenses": [
        {
            "id": "expenses_phone",
            "title": "Broken phone",
            "description": "Your phone needs a repair.",
            "effect": {"action": "pay", "value": 30},
        },
    ],
    "business": [
        {
            "id": "business_lemonade",
            "title": "Lemonade stand",
            "description": "Buy a lemonade stand?",
            "effect": {"action": "purchase_offer", "kind": "business", "name": "Lemonade Stand",
                       "price": 80, "income": 20},
        },
    ],
}


class ScriptedRng:
    """Stand-in for random.Random: returns queued dice and coins, never shuffles."""

    def __init__(self):
        self.rolls = []
        self.coins = []

    def randint(self, a, b):
        value = self.rolls.pop(0)
        assert a <= value <= b
        return value

    def shuffle(self, items):
        pass

    def choice(self, seq):
        if self.coins:
            return self.coins.pop(0)
        return seq[0]


@pytest.fixture
def board():
    return Board.from_dict(BOARD)


@pytest.fixture
def cell_table():
    return CellTable.from_dict(CELLS)


@pytest.fixture
def card_library():
    return CardLibrary.from_dict(CARDS)


@pytest.fixture
def rng():
    return ScriptedRng()


@pytest.fixture
def place(board):
    """Put a player on a cell."""
    def _place(player, cell_id):
        player.position = Position(current_cell_id=cell_id, current_cell_type=board.get(cell_id).type)
    return _place


@pytest.fixture
def make_session(board, cell_table, rng):
    """Factory for sessions on the test board; `cards` replaces the default card library."""
    def _make(cards=None, config=None):
        return GameSession(
            session_id="test",
            config=config or GameConfig(),
            board=board,
            cell_table=cell_table,
            card_library=CardLibrary.from_dict(cards or CARDS),
            rng=rng,
        )
    return _make


@pytest.fixture
def session(make_session):
    return make_session()


@pytest.fixture
def game(session):
    """Alice and Bob with dreams chosen and the game started; Alice moves first."""
    alice = session.add_player("Alice")
    bob = session.add_player("Bob")
    session.select_dream(alice.id, "bike", "Bike", 100)
    session.select_dream(bob.id, "boat", "Boat", 300)
    session.start_game()
    return session
