from __future__ import annotations

from life_board import Board


def cells_of(board: Board) -> set[tuple[int, int]]:
    """Live cells inside the board's bounding box."""
    return set(board.live_cells())


BLINKER_H = [(0, 0), (1, 0), (2, 0)]
BLINKER_V = [(1, -1), (1, 0), (1, 1)]
BLOCK = [(0, 0), (1, 0), (0, 1), (1, 1)]
GLIDER = [(1, 0), (2, 1), (0, 2), (1, 2), (2, 2)]
