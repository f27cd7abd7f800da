"""
Sparse, unbounded board storage for Life-like automata.

The plane is split into four quadrants (NE, SE, NW, SW). A coordinate is
sign-folded into its quadrant's non-negative frame, cut into a block-grid
position and an in-block position, and the block-grid position is flattened
into a single "diagonal" index that walks the quadrant in growing square
shells:

    bx < by  ->  by² + bx
    bx >= by ->  bx² + 2·bx − by

so each quadrant only needs one list of optional blocks, grown up to the
highest index ever written. Blocks are N×N bitsets (one unsigned integer row
per line) allocated lazily and never freed implicitly.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum, IntEnum

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

# ── Block geometry ──────────────────────────────────────────────────────
DEFAULT_BLOCK_SIZE = 32
# Supported block sides; the dtype is used when a tile is unpacked to numpy
ROW_DTYPES: dict[int, type[np.unsignedinteger]] = {
    8: np.uint8,
    16: np.uint16,
    32: np.uint32,
    64: np.uint64,
}


# ═══════════════════════════════════════════════════════════════════════
#  Rules
# ═══════════════════════════════════════════════════════════════════════

class Rule(Enum):
    """The two supported rule sets, plus the parser's "not yet known" marker."""

    LIFE = 0
    HIGHLIFE = 1
    UNKNOWN = 2

    @property
    def rule_string(self) -> str:
        return RULE_STRINGS[self]


RULE_STRINGS: dict[Rule, str] = {
    Rule.LIFE: "B3/S23",
    Rule.HIGHLIFE: "B36/S23",
    Rule.UNKNOWN: "",
}


# ═══════════════════════════════════════════════════════════════════════
#  Block
# ═══════════════════════════════════════════════════════════════════════

class Block:
    """An N×N bitset tile; bit ``x`` of ``rows[y]`` is cell ``(x, y)``.

    Rows are plain Python ints so single-cell access stays cheap. numpy only
    comes in when a whole tile is unpacked.
    """

    __slots__ = ("rows",)

    def __init__(self, block_size: int = DEFAULT_BLOCK_SIZE) -> None:
        self.rows: list[int] = [0] * block_size

    @property
    def size(self) -> int:
        return len(self.rows)

    def read(self, x: int, y: int) -> bool:
        return bool(self.rows[y] >> x & 1)

    def write(self, x: int, y: int, val: bool) -> None:
        if val:
            self.rows[y] |= 1 << x
        else:
            self.rows[y] &= ~(1 << x)

    def is_empty(self) -> bool:
        # Scanned every call; emptiness is not tracked incrementally.
        return not any(self.rows)

    def population(self) -> int:
        return sum(row.bit_count() for row in self.rows)

    def copy(self) -> Block:
        dup = Block(self.size)
        dup.rows[:] = self.rows
        return dup

    def same_cells(self, other: Block) -> bool:
        return self.rows == other.rows

    def to_array(self) -> NDArray[np.bool_]:
        """Unpack into a ``[y, x]`` bool tile."""
        dtype = ROW_DTYPES[self.size]
        rows = np.array(self.rows, dtype=dtype)
        shifts = np.arange(self.size, dtype=dtype)
        return ((rows[:, None] >> shifts) & dtype(1)).astype(np.bool_)


# ═══════════════════════════════════════════════════════════════════════
#  Addressing
# ═══════════════════════════════════════════════════════════════════════

class Quadrant(IntEnum):
    NE = 0  # x >= 0, y >= 0
    SE = 1  # x >= 0, y < 0
    NW = 2  # x < 0,  y >= 0
    SW = 3  # x < 0,  y < 0


@dataclass(frozen=True)
class BoardBounds:
    """Inclusive bounding box. Zero box by default; may over-approximate."""

    upper_x: int = 0
    lower_x: int = 0
    upper_y: int = 0
    lower_y: int = 0

    @property
    def width(self) -> int:
        return self.upper_x - self.lower_x + 1

    @property
    def height(self) -> int:
        return self.upper_y - self.lower_y + 1

    def expanded(self, margin: int = 1) -> BoardBounds:
        return BoardBounds(
            self.upper_x + margin, self.lower_x - margin,
            self.upper_y + margin, self.lower_y - margin,
        )

    def include(self, x: int, y: int) -> BoardBounds:
        return BoardBounds(
            max(self.upper_x, x), min(self.lower_x, x),
            max(self.upper_y, y), min(self.lower_y, y),
        )

    def __contains__(self, pos: tuple[int, int]) -> bool:
        x, y = pos
        return self.lower_x <= x <= self.upper_x and self.lower_y <= y <= self.upper_y


def diagonal_index(bx: int, by: int) -> int:
    """Flatten a non-negative block-grid position into its shell order."""
    if bx < by:
        return by * by + bx
    return bx * bx + 2 * bx - by


def diagonal_position(index: int) -> tuple[int, int]:
    """Inverse of :func:`diagonal_index`."""
    shell = math.isqrt(index)
    rest = index - shell * shell
    if rest < shell:
        return rest, shell
    return shell, 2 * shell - rest


def resolve(x: int, y: int, block_size: int) -> tuple[int, int, int, int]:
    """Map a storage coordinate to ``(quadrant, slot index, in-block x, in-block y)``.

    The quadrant comes back as a plain int (a :class:`Quadrant` value).
    """
    direction = 0
    if x < 0:
        x = -(x + 1)
        direction += 2
    if y < 0:
        y = -(y + 1)
        direction += 1
    bx, local_x = divmod(x, block_size)
    by, local_y = divmod(y, block_size)
    return direction, diagonal_index(bx, by), local_x, local_y


@dataclass(frozen=True)
class BlockPosition:
    """An allocated block seen from the outside, in logical coordinates.

    ``x``/``y`` is the block's local origin, i.e. the cell of the block closest
    to the storage origin. ``step_x``/``step_y`` point away from the origin.
    """

    x: int
    y: int
    quadrant: Quadrant
    index: int
    block_size: int

    @property
    def step_x(self) -> int:
        return -1 if self.quadrant in (Quadrant.NW, Quadrant.SW) else 1

    @property
    def step_y(self) -> int:
        return -1 if self.quadrant in (Quadrant.SE, Quadrant.SW) else 1

    @property
    def bounds(self) -> BoardBounds:
        far_x = self.x + self.step_x * (self.block_size - 1)
        far_y = self.y + self.step_y * (self.block_size - 1)
        return BoardBounds(
            max(self.x, far_x), min(self.x, far_x),
            max(self.y, far_y), min(self.y, far_y),
        )


# ═══════════════════════════════════════════════════════════════════════
#  Board
# ═══════════════════════════════════════════════════════════════════════

class Board:
    """
    The storage engine: four quadrant slot lists, a loose bounding box,
    a coordinate offset and a rule selector.

    Invariant: a slot list only grows on ``write``, and the slot that forced
    the growth is allocated in the same call.

    ``equal`` with matching offsets and block sizes compares slot by slot and
    does not look at slots past the shorter of the two lists. Live cells in
    that tail go unchecked, so two boards with the same bounds can compare
    equal while differing there.
    """

    def __init__(
        self, rule: Rule = Rule.LIFE, block_size: int = DEFAULT_BLOCK_SIZE
    ) -> None:
        if block_size not in ROW_DTYPES:
            raise ValueError(
                f"block size must be one of {sorted(ROW_DTYPES)}, got {block_size}"
            )
        self.block_size: int = block_size
        self._slots: list[list[Block | None]] = [[] for _ in Quadrant]
        self._bounds: BoardBounds = BoardBounds()
        self.offset_x: int = 0
        self.offset_y: int = 0
        self.rule: Rule = rule

    @classmethod
    def from_cells(
        cls,
        cells: Iterable[tuple[int, int]],
        rule: Rule = Rule.LIFE,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> Board:
        board = cls(rule, block_size)
        for x, y in cells:
            board.write(x, y, True)
        return board

    def __repr__(self) -> str:
        return (
            f"Board(rule={self.rule.name}, block_size={self.block_size}, "
            f"offset=({self.offset_x}, {self.offset_y}), bounds={self._bounds})"
        )

    # ── Cell access ─────────────────────────────────────────────────

    def read(self, x: int, y: int) -> bool:
        quadrant, index, lx, ly = resolve(
            x + self.offset_x, y + self.offset_y, self.block_size
        )
        slots = self._slots[quadrant]
        if index >= len(slots):
            return False
        block = slots[index]
        return block is not None and block.read(lx, ly)

    def write(self, x: int, y: int, val: bool) -> None:
        quadrant, index, lx, ly = resolve(
            x + self.offset_x, y + self.offset_y, self.block_size
        )
        slots = self._slots[quadrant]
        if index >= len(slots):
            slots.extend([None] * (index + 1 - len(slots)))
        block = slots[index]
        if block is None:
            block = slots[index] = Block(self.block_size)
        block.write(lx, ly, val)
        if val:
            # Dead writes never shrink the box.
            self._bounds = self._bounds.include(x, y)

    def bounds(self) -> BoardBounds:
        return self._bounds

    def population(self) -> int:
        return sum(
            block.population()
            for slots in self._slots
            for block in slots
            if block is not None
        )

    def capacity(self, quadrant: Quadrant) -> int:
        return len(self._slots[quadrant])

    def allocated_blocks(self) -> int:
        return sum(block is not None for slots in self._slots for block in slots)

    def clear(self) -> None:
        """Drop every block and reset the box; capacities, offset and rule stay."""
        for slots in self._slots:
            for i in range(len(slots)):
                slots[i] = None
        self._bounds = BoardBounds()

    # ── Plain accessors ─────────────────────────────────────────────

    def set_offset(self, offset_x: int, offset_y: int) -> None:
        self.offset_x = offset_x
        self.offset_y = offset_y

    def get_offset(self) -> tuple[int, int]:
        return self.offset_x, self.offset_y

    def set_rule(self, rule: Rule) -> None:
        self.rule = rule

    def get_rule(self) -> Rule:
        return self.rule

    # ── Whole-board operations ──────────────────────────────────────

    def copy(self, dst: Board) -> None:
        """Deep-copy this board into ``dst``. Empty blocks are not carried over."""
        dst.clear()
        dst.block_size = self.block_size
        dst._bounds = self._bounds
        dst.set_offset(self.offset_x, self.offset_y)
        dst.set_rule(self.rule)
        for quadrant, slots in enumerate(self._slots):
            dst_slots = dst._slots[quadrant]
            # Highest index first so the target list grows at most once.
            for index in range(len(slots) - 1, -1, -1):
                block = slots[index]
                if block is None or block.is_empty():
                    continue
                if index >= len(dst_slots):
                    dst_slots.extend([None] * (index + 1 - len(dst_slots)))
                dst_slots[index] = block.copy()

    def equal(self, other: Board) -> bool:
        return boards_equal(self, other)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Board):
            return NotImplemented
        return boards_equal(self, other)

    __hash__ = None  # type: ignore[assignment]

    def swap(self, other: Board) -> None:
        swap_boards(self, other)

    # ── Iteration ───────────────────────────────────────────────────

    def active_blocks(self) -> Iterator[BlockPosition]:
        """Yield every allocated block, quadrant by quadrant (NE, SE, NW, SW).

        The board must not gain slots or blocks while the generator is live.
        """
        n = self.block_size
        for quadrant in Quadrant:
            slots = self._slots[quadrant]
            for index in range(len(slots)):
                if slots[index] is None:
                    continue
                bx, by = diagonal_position(index)
                x, y = bx * n, by * n
                if quadrant in (Quadrant.NW, Quadrant.SW):
                    x = -(x + 1)
                if quadrant in (Quadrant.SE, Quadrant.SW):
                    y = -(y + 1)
                yield BlockPosition(
                    x - self.offset_x, y - self.offset_y, quadrant, index, n
                )

    def live_cells(self) -> Iterator[tuple[int, int]]:
        """Live cells within the bounding box, row by row."""
        b = self._bounds
        for y in range(b.lower_y, b.upper_y + 1):
            for x in range(b.lower_x, b.upper_x + 1):
                if self.read(x, y):
                    yield x, y

    def to_array(self) -> NDArray[np.bool_]:
        """Dense ``[row, col]`` view of the bounding box (row 0 = ``lower_y``)."""
        b = self._bounds
        grid = np.zeros((b.height, b.width), dtype=np.bool_)
        for pos in self.active_blocks():
            tile = self._slots[pos.quadrant][pos.index].to_array()
            # Re-orient so the tile grows with logical x and y
            if pos.step_x < 0:
                tile = tile[:, ::-1]
            if pos.step_y < 0:
                tile = tile[::-1, :]
            box = pos.bounds
            lo_x, hi_x = max(box.lower_x, b.lower_x), min(box.upper_x, b.upper_x)
            lo_y, hi_y = max(box.lower_y, b.lower_y), min(box.upper_y, b.upper_y)
            if lo_x > hi_x or lo_y > hi_y:
                continue
            grid[lo_y - b.lower_y:hi_y - b.lower_y + 1,
                 lo_x - b.lower_x:hi_x - b.lower_x + 1] |= tile[
                lo_y - box.lower_y:hi_y - box.lower_y + 1,
                lo_x - box.lower_x:hi_x - box.lower_x + 1,
            ]
        return grid


def boards_equal(a: Board, b: Board) -> bool:
    """Cell-wise equality; boards with different bounding boxes never match."""
    if a.bounds() != b.bounds():
        return False
    if a.get_offset() == b.get_offset() and a.block_size == b.block_size:
        for slots_a, slots_b in zip(a._slots, b._slots):
            # Slots past the shorter list are not compared.
            for block_a, block_b in zip(slots_a, slots_b):
                if block_a is None and block_b is None:
                    continue
                if block_a is None:
                    if not block_b.is_empty():
                        return False
                elif block_b is None:
                    if not block_a.is_empty():
                        return False
                elif not block_a.same_cells(block_b):
                    return False
        return True
    bounds = a.bounds()
    for x in range(bounds.lower_x, bounds.upper_x + 1):
        for y in range(bounds.lower_y, bounds.upper_y + 1):
            if a.read(x, y) != b.read(x, y):
                return False
    return True


def swap_boards(a: Board, b: Board) -> None:
    """Exchange storage, bounds and offsets in O(1). Rules stay where they are."""
    a._slots, b._slots = b._slots, a._slots
    a.block_size, b.block_size = b.block_size, a.block_size
    a._bounds, b._bounds = b._bounds, a._bounds
    a.offset_x, b.offset_x = b.offset_x, a.offset_x
    a.offset_y, b.offset_y = b.offset_y, a.offset_y


# ═══════════════════════════════════════════════════════════════════════
#  Game
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Game:
    """A board plus the descriptive metadata carried by pattern files."""

    board: Board = field(default_factory=Board)
    pattern_name: str | None = None
    author: str | None = None
    comments: list[str] = field(default_factory=list)

    def add_comment(self, comment: str) -> None:
        self.comments.append(comment.rstrip("\r\n"))

    def set_author(self, author: str) -> None:
        self.author = author

    def set_pattern_name(self, name: str) -> None:
        self.pattern_name = name

    def clone_metadata(self, dst: Game) -> None:
        """Copy author, comments and pattern name onto ``dst`` (comments append)."""
        if self.author is not None:
            dst.set_author(self.author)
        for comment in self.comments:
            dst.add_comment(comment)
        if self.pattern_name is not None:
            dst.set_pattern_name(self.pattern_name)

    def release(self) -> None:
        self.board.clear()
        self.pattern_name = None
        self.author = None
        self.comments.clear()
