"""
Static board graph.

The board is a directed graph of cells loaded once from JSON. Cells are
immutable; the only behaviour here is walking the graph, which is pure.
"""
import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import GameDataError


class CellType(Enum):
    """Cell categories on the board."""
    START = "start"
    NORMAL = "normal"
    FORK = "fork"
    MONEY = "money"
    CHARITY = "charity"
    DREAM = "dream"
    CHANCE = "chance"
    NEWS = "news"
    EXPENSES = "expenses"
    BUSINESS = "business"
    EVENT = "event"


# Cells that pay out business income when landed on or passed through.
INCOME_CELL_TYPES = frozenset({CellType.MONEY, CellType.START})

# Cells whose landing asks the player to draw from the deck of the same name.
CARD_CELL_TYPES = frozenset({CellType.CHANCE, CellType.NEWS, CellType.EXPENSES, CellType.BUSINESS})


@dataclass(frozen=True)
class Cell:
    """A single board cell."""
    id: int
    type: CellType
    name: str
    edges: Tuple[int, ...]
    dream_id: Optional[str] = None  # Dream this cell represents (dream cells only)
    price: int = 0  # Dream price (dream cells only)
    wildcard: bool = False  # Wildcard dream cells count as everyone's own dream

    @property
    def is_fork(self) -> bool:
        return self.type == CellType.FORK

    @property
    def is_income(self) -> bool:
        return self.type in INCOME_CELL_TYPES


@dataclass(frozen=True)
class Walk:
    """Outcome of walking the board for a number of steps."""
    path: Tuple[int, ...]  # Every cell entered, in order; the last one is the landing cell
    passed_money_cells: Tuple[int, ...]  # Income cells entered and left again
    used_fork_direction: Optional[int] = None

    @property
    def landing_cell_id(self) -> Optional[int]:
        return self.path[-1] if self.path else None


class Board:
    """Directed graph of cells."""

    def __init__(self, cells: List[Cell]):
        self.cells: Dict[int, Cell] = {}
        for cell in cells:
            if cell.id in self.cells:
                raise GameDataError(f"Duplicate cell id {cell.id}")
            self.cells[cell.id] = cell
        self._validate()

    def _validate(self):
        starts = [c for c in self.cells.values() if c.type == CellType.START]
        if len(starts) != 1:
            raise GameDataError(f"Board must have exactly one start cell, found {len(starts)}")

        for cell in self.cells.values():
            if cell.is_fork and len(cell.edges) != 2:
                raise GameDataError(f"Fork cell {cell.id} must have exactly two edges")
            if not cell.is_fork and len(cell.edges) > 1:
                raise GameDataError(f"Cell {cell.id} has {len(cell.edges)} edges but is not a fork")
            for target in cell.edges:
                if target not in self.cells:
                    raise GameDataError(f"Cell {cell.id} points at unknown cell {target}")
            if cell.type == CellType.DREAM and not cell.dream_id and not cell.wildcard:
                raise GameDataError(f"Dream cell {cell.id} needs a dream_id")

    @classmethod
    def from_dict(cls, data: Dict) -> "Board":
        """Build a board from its JSON representation."""
        raw_cells = data.get("cells", data) if isinstance(data, dict) else data
        cells = []
        for raw in raw_cells:
            try:
                cells.append(Cell(
                    id=int(raw["id"]),
                    type=CellType(raw["type"]),
                    name=raw.get("name", ""),
                    edges=tuple(int(e) for e in raw.get("edges", [])),
                    dream_id=raw.get("dream_id"),
                    price=int(raw.get("price", 0)),
                    wildcard=bool(raw.get("wildcard", False)),
                ))
            except (KeyError, ValueError, TypeError) as e:
                raise GameDataError(f"Invalid cell definition {raw!r}: {e}") from e
        return cls(cells)

    @classmethod
    def load(cls, path: Path) -> "Board":
        """Load a board from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise GameDataError(f"Could not read board file {path}: {e}") from e
        return cls.from_dict(data)

    def get(self, cell_id: int) -> Cell:
        """Return the cell with the given id."""
        try:
            return self.cells[cell_id]
        except KeyError:
            raise GameDataError(f"Unknown cell {cell_id}") from None

    @property
    def start_cell(self) -> Cell:
        return next(c for c in self.cells.values() if c.type == CellType.START)

    def walk(self, from_cell_id: int, steps: int, fork_direction: Optional[int] = None) -> Walk:
        """
        Walk `steps` cells from `from_cell_id` without mutating anything.

        When standing on a fork with a chosen direction, the first step follows
        that edge. Every other step follows the first edge. A cell without
        outgoing edges ends the walk early.
        """
        current = self.get(from_cell_id)
        path: List[int] = []
        used_direction = None
        remaining = steps

        if remaining > 0 and current.is_fork and fork_direction is not None:
            current = self.get(current.edges[fork_direction])
            path.append(current.id)
            used_direction = fork_direction
            remaining -= 1

        while remaining > 0 and current.edges:
            current = self.get(current.edges[0])
            path.append(current.id)
            remaining -= 1

        passed = tuple(cid for cid in path[:-1] if self.cells[cid].is_income)
        return Walk(path=tuple(path), passed_money_cells=passed, used_fork_direction=used_direction)
