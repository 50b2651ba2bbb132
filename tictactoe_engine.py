"""Reference 3x3 tic-tac-toe rules used to exercise the search engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

X = "X"
O = "O"
EMPTY = "."

WIN_SCORE = 100
TWO_IN_LINE_SCORE = 10
ONE_IN_LINE_SCORE = 1

LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


@dataclass(frozen=True)
class Board:
    cells: Tuple[str, ...]
    to_move: str


def initial_board(x_first: bool = True) -> Board:
    return Board((EMPTY,) * 9, X if x_first else O)


def from_rows(rows: str, to_move: Optional[str] = None) -> Board:
    """Build a board from 9 characters of ``X``, ``O`` and ``.`` (whitespace ignored).

    When ``to_move`` is omitted it is inferred from the mark counts, with X
    moving first.
    """
    cells = tuple(ch for ch in rows if not ch.isspace())
    if len(cells) != 9 or any(ch not in (X, O, EMPTY) for ch in cells):
        raise ValueError(f"expected 9 cells of X, O or '.', got {rows!r}")
    if to_move is None:
        to_move = X if cells.count(X) <= cells.count(O) else O
    if to_move not in (X, O):
        raise ValueError(f"to_move must be {X!r} or {O!r}")
    return Board(cells, to_move)


def other(player: str) -> str:
    return O if player == X else X


def winner(board: Board) -> Optional[str]:
    cells = board.cells
    for a, b, c in LINES:
        if cells[a] != EMPTY and cells[a] == cells[b] == cells[c]:
            return cells[a]
    return None


def is_full(board: Board) -> bool:
    return EMPTY not in board.cells


def is_terminal(board: Board) -> bool:
    return winner(board) is not None or is_full(board)


def legal_moves(board: Board) -> List[int]:
    if winner(board) is not None:
        return []
    return [i for i, cell in enumerate(board.cells) if cell == EMPTY]


def apply_move(board: Board, cell: int) -> Board:
    if cell < 0 or cell > 8:
        raise ValueError("cell must be 0..8")
    if board.cells[cell] != EMPTY:
        raise ValueError(f"illegal move: cell {cell} is occupied")
    if winner(board) is not None:
        raise ValueError("illegal move: game is over")
    cells = list(board.cells)
    cells[cell] = board.to_move
    return Board(tuple(cells), other(board.to_move))


def is_maximizing(board: Board) -> bool:
    return board.to_move == X


def _line_score(marks: List[str]) -> int:
    xs = marks.count(X)
    os_ = marks.count(O)
    if xs and os_:
        return 0
    count = xs or os_
    if count == 3:
        return 0
    score = TWO_IN_LINE_SCORE if count == 2 else ONE_IN_LINE_SCORE if count == 1 else 0
    return score if xs else -score


def heuristic(board: Board, move: Optional[int]) -> int:
    """Score ``board`` (the position reached by ``move``) from X's perspective."""
    _ = move
    won = winner(board)
    if won == X:
        return WIN_SCORE
    if won == O:
        return -WIN_SCORE
    if is_full(board):
        return 0
    cells = board.cells
    return sum(_line_score([cells[a], cells[b], cells[c]]) for a, b, c in LINES)


def outcome_heuristic(board: Board, move: Optional[int]) -> int:
    """Win/loss/draw only; useful when searching to the end of the game."""
    _ = move
    won = winner(board)
    if won == X:
        return 1
    if won == O:
        return -1
    return 0


def pretty_print(board: Board) -> str:
    rows = []
    for r in range(3):
        row = board.cells[r * 3:(r + 1) * 3]
        rows.append(" " + " | ".join(row))
    sep = "\n" + "---+---+---" + "\n"
    return f"Turn: {board.to_move}\n\n" + sep.join(rows)
