import os
import sys

import pytest

# Ensure the flat modules at the repo root are importable without installing
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from life_board import Board, Rule


@pytest.fixture
def small_board() -> Board:
    """A board with 8×8 blocks, so block boundaries are easy to cross."""
    return Board(Rule.LIFE, block_size=8)
