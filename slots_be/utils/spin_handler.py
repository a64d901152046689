import secrets
from dataclasses import dataclass, field
from typing import Dict, List, Optional

# --- Game definition ---

SYMBOLS = ["🍒", "🍋", "🍊", "🍉", "🔔", "💎", "⭐"]

ROWS = 3
COLUMNS = 3

# Fixed paylines as (row, col) coordinates, evaluated independently.
PAYLINES = [
    {"id": "middle", "name": "Middle row", "coords": [(1, 0), (1, 1), (1, 2)]},
    {"id": "diagonal_down", "name": "Diagonal down", "coords": [(0, 0), (1, 1), (2, 2)]},
    {"id": "diagonal_up", "name": "Diagonal up", "coords": [(2, 0), (1, 1), (0, 2)]},
]

# Credits won per line; only three of the same symbol pays.
PAYOUT_TABLE = {
    "🍒🍒🍒": 4,
    "🍋🍋🍋": 6,
    "🍊🍊🍊": 10,
    "🍉🍉🍉": 16,
    "🔔🔔🔔": 30,
    "💎💎💎": 84,
    "⭐⭐⭐": 360,
}

_secure_random = secrets.SystemRandom()


@dataclass
class SpinOutcome:
    grid: List[List[str]]  # grid[row][col]
    lines: List[Dict] = field(default_factory=list)

    def to_dict(self):
        return {"grid": [list(row) for row in self.grid], "lines": self.lines}


@dataclass
class PayoutResult:
    winning_lines: List[Dict]
    total_credits_won: int


def line_key(symbols) -> str:
    """Canonical, order-preserving lookup key for the symbols on a line."""
    return "".join(symbols)


def _lines_for_grid(grid) -> List[Dict]:
    lines = []
    for payline in PAYLINES:
        symbols = [grid[r][c] for r, c in payline["coords"]]
        lines.append({
            "line_id": payline["id"],
            "name": payline["name"],
            "coords": [list(coord) for coord in payline["coords"]],
            "symbols": symbols,
        })
    return lines


def outcome_from_grid(grid) -> SpinOutcome:
    """
    Builds an outcome from a fixed grid.

    Raises:
        ValueError: If the grid is not 3x3 or holds a symbol outside the alphabet.
    """
    if not isinstance(grid, (list, tuple)) or len(grid) != ROWS:
        raise ValueError(f"Grid must have {ROWS} rows.")
    for row in grid:
        if not isinstance(row, (list, tuple)) or len(row) != COLUMNS:
            raise ValueError(f"Every grid row must have {COLUMNS} columns.")
        for symbol in row:
            if symbol not in SYMBOLS:
                raise ValueError(f"Unknown symbol in grid: {symbol!r}")
    grid = [list(row) for row in grid]
    return SpinOutcome(grid=grid, lines=_lines_for_grid(grid))


def generate_outcome(rng=None) -> SpinOutcome:
    """
    Draws a fresh 3x3 grid, every cell independently and uniformly from SYMBOLS.

    Args:
        rng: Object with a ``choice`` method. Defaults to a SystemRandom instance,
             so spins are neither seeded nor reproducible.
    """
    rng = rng or _secure_random
    columns = [[rng.choice(SYMBOLS) for _ in range(ROWS)] for _ in range(COLUMNS)]
    grid = [[columns[c][r] for c in range(COLUMNS)] for r in range(ROWS)]
    return SpinOutcome(grid=grid, lines=_lines_for_grid(grid))


def evaluate_outcome(outcome: SpinOutcome, payout_table: Optional[Dict[str, int]] = None) -> PayoutResult:
    """
    Looks every line of the outcome up in the payout table.

    Returns:
        PayoutResult with one entry per paying line and the summed credits.
    """
    table = PAYOUT_TABLE if payout_table is None else payout_table
    winning_lines = []
    total = 0
    for line in outcome.lines:
        key = line_key(line["symbols"])
        credits = table.get(key, 0)
        if credits > 0:
            winning_lines.append({**line, "key": key, "credits": credits})
            total += credits
    return PayoutResult(winning_lines=winning_lines, total_credits_won=total)


def paytable_description() -> Dict:
    """Static game definition for client-side rendering."""
    return {
        "symbols": list(SYMBOLS),
        "rows": ROWS,
        "columns": COLUMNS,
        "paylines": [
            {"id": p["id"], "name": p["name"], "coords": [list(c) for c in p["coords"]]}
            for p in PAYLINES
        ],
        "payout_table": dict(PAYOUT_TABLE),
    }
