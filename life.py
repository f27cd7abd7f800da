#!/usr/bin/env python3
"""
  L I F E
  Unbounded Life / HighLife evolution over sparse block storage.

  Loads an RLE pattern, evolves it for a number of generations and writes
  the result back out as RLE or as an ASCII picture. Optionally compares the
  result against a reference pattern (exit status 1 on mismatch).

  Two kernels share the same rules:
    brute force    every cell of the bounding box plus a one-cell halo
    active region  only cells within one step of an allocated block

  Both produce identical boards; the active-region kernel skips the dead
  far field inside large, sparse bounding boxes.

Usage:
  python3 life.py -g 100 -o out.rle pattern.rle
  python3 life.py -g 100 -a pattern.rle             # ASCII to stdout
  python3 life.py -g 4 -c expected.rle pattern.rle  # exit 1 if different
  python3 life.py -g 500 --stats life_stats.csv -v pattern.rle
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import IO, ClassVar

import parsy as p

from life_board import (
    DEFAULT_BLOCK_SIZE,
    ROW_DTYPES,
    Board,
    BoardBounds,
    Game,
    Rule,
    swap_boards,
)
from life_rle import dump_ascii, dump_rle, load_rle

logger = logging.getLogger(__name__)

# Progress is reported this many times over a run
PROGRESS_STEPS = 20

RuleFunction = Callable[[bool, int], bool]
ProgressHook = Callable[[int, int, Board], None]


# ═══════════════════════════════════════════════════════════════════════
#  Rules
# ═══════════════════════════════════════════════════════════════════════

def life_rule(alive: bool, neighbours: int) -> bool:
    """B3/S23."""
    if neighbours == 3:
        return True
    if neighbours == 2:
        return alive
    return False


def highlife_rule(alive: bool, neighbours: int) -> bool:
    """B36/S23."""
    if neighbours in (3, 6):
        return True
    if neighbours == 2:
        return alive
    return False


RULE_FUNCTIONS: dict[Rule, RuleFunction] = {
    Rule.LIFE: life_rule,
    Rule.HIGHLIFE: highlife_rule,
}


def rule_function(rule: Rule) -> RuleFunction:
    # Unknown rules evolve as plain Life
    return RULE_FUNCTIONS.get(rule, life_rule)


# ═══════════════════════════════════════════════════════════════════════
#  Kernels
# ═══════════════════════════════════════════════════════════════════════

def _next_state(read: Callable[[int, int], bool], x: int, y: int,
                new_state: RuleFunction) -> bool:
    alive = read(x, y)
    # The 3×3 sum includes the cell itself; take it back out.
    total = -1 if alive else 0
    for i in (x - 1, x, x + 1):
        for j in (y - 1, y, y + 1):
            if read(i, j):
                total += 1
    return new_state(alive, total)


def next_generation(previous: Board, nxt: Board, new_state: RuleFunction) -> None:
    """Full scan of the previous bounding box grown by one cell."""
    read = previous.read
    bounds = previous.bounds().expanded(1)
    for x in range(bounds.lower_x, bounds.upper_x + 1):
        for y in range(bounds.lower_y, bounds.upper_y + 1):
            if _next_state(read, x, y, new_state):
                nxt.write(x, y, True)


def next_generation_active(previous: Board, nxt: Board, new_state: RuleFunction) -> None:
    """Visit only the one-cell neighbourhood of each allocated block.

    Halos of neighbouring blocks overlap; a cell already born in ``nxt`` is
    not evaluated again.
    """
    read = previous.read
    done = nxt.read
    for position in previous.active_blocks():
        area = position.bounds.expanded(1)
        for x in range(area.lower_x, area.upper_x + 1):
            for y in range(area.lower_y, area.upper_y + 1):
                if done(x, y):
                    continue
                if _next_state(read, x, y, new_state):
                    nxt.write(x, y, True)


def center_offset(bounds: BoardBounds, board: Board) -> None:
    """Keep stored coordinates small as a pattern drifts."""
    board.set_offset(
        -((bounds.upper_x - bounds.lower_x) // 2),
        -((bounds.upper_y - bounds.lower_y) // 2),
    )


def print_progress(done: int, total: int, board: Board) -> None:
    end = "\n" if done >= total else ""
    print(f"\rGeneration progress {100 * done / total:.0f}%", end=end, flush=True)


def evolve(
    board: Board,
    generations: int,
    verbose: bool = False,
    use_active_region: bool = True,
    progress: ProgressHook | None = None,
    progress_every: int | None = None,
) -> Board:
    """
    Advance ``board`` in place by ``generations`` steps and return it.

    Two boards alternate as current/next; the caller's object ends up holding
    the last generation whichever one produced it. The board's rule is used
    throughout and left untouched.
    """
    if generations < 0:
        raise ValueError(f"generation count must be >= 0, got {generations}")
    if generations == 0:
        return board

    rule = board.get_rule()
    new_state = rule_function(rule)
    step = next_generation_active if use_active_region else next_generation
    if progress is None and verbose:
        progress = print_progress
    if progress_every is None:
        progress_every = max(1, generations // PROGRESS_STEPS)

    logger.info(
        "evolving %d generations (%s, %s kernel)",
        generations, rule.name, "active-region" if use_active_region else "brute-force",
    )
    t0 = time.perf_counter()

    current = board
    scratch = Board(rule, board.block_size)
    for gen in range(generations):
        if progress is not None and gen % progress_every == 0:
            progress(gen, generations, current)
        scratch.clear()
        center_offset(current.bounds(), scratch)
        step(current, scratch, new_state)
        current, scratch = scratch, current
        logger.debug("generation %d: bounds %s", gen + 1, current.bounds())

    if progress is not None:
        progress(generations, generations, current)

    if current is not board:
        swap_boards(scratch, current)
        current.clear()
    else:
        scratch.clear()

    logger.info("evolution done in %.4fs", time.perf_counter() - t0)
    return board


# ═══════════════════════════════════════════════════════════════════════
#  Stats logger
# ═══════════════════════════════════════════════════════════════════════

class StatsLogger:
    """Writes per-generation telemetry to CSV for post-hoc inspection."""

    HEADER: ClassVar[str] = "gen,time_s,population,lower_x,upper_x,lower_y,upper_y\n"

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()

    def __enter__(self) -> StatsLogger:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def open(self) -> None:
        self._fh = open(self._path, "w")
        self._fh.write(self.HEADER)
        self._t0 = time.monotonic()

    def log(self, gen: int, total: int, board: Board) -> None:
        if self._fh is None:
            return
        t = time.monotonic() - self._t0
        b = board.bounds()
        self._fh.write(
            f"{gen},{t:.4f},{board.population()},"
            f"{b.lower_x},{b.upper_x},{b.lower_y},{b.upper_y}\n"
        )
        # Flush periodically and on the last row
        if gen % 50 == 0 or gen >= total:
            self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


# ═══════════════════════════════════════════════════════════════════════
#  Command line
# ═══════════════════════════════════════════════════════════════════════

def _read_game(path: str, block_size: int) -> Game | None:
    try:
        return load_rle(path, block_size=block_size)
    except OSError as e:
        print(f"Error while opening {path}: {e}", file=sys.stderr)
    except p.ParseError as e:
        print(f"Error while parsing input rle file {path}:\n{e}", file=sys.stderr)
    return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="life",
        description="Evolve an RLE pattern under Life or HighLife rules",
    )
    parser.add_argument("input", metavar="start_generation.rle",
                        help="Pattern to start from")
    parser.add_argument("-o", "--output", default=None,
                        help="Output file ('-' for stdout)")
    parser.add_argument("-c", "--compare-rle", default=None, metavar="FILE",
                        help="Compare the result to this file (exit 1 if different)")
    parser.add_argument("-g", "--generation", type=int, default=0,
                        help="Select end generation (default: 0)")
    parser.add_argument("-l", "--force-life", dest="force_rule",
                        action="store_const", const=Rule.LIFE,
                        help="Select Life rule")
    parser.add_argument("-L", "--force-highlife", dest="force_rule",
                        action="store_const", const=Rule.HIGHLIFE,
                        help="Select HighLife rule")
    parser.add_argument("-a", "--ascii-output", action="store_true",
                        help="Output grid as ASCII")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Print evolution progress")
    parser.add_argument("--brute-force", action="store_true",
                        help="Scan the whole bounding box instead of active blocks")
    parser.add_argument("--block-size", type=int, default=DEFAULT_BLOCK_SIZE,
                        choices=sorted(ROW_DTYPES),
                        help=f"Storage block side (default: {DEFAULT_BLOCK_SIZE})")
    parser.add_argument("--stats", type=Path, default=None, metavar="FILE",
                        help="Write per-generation CSV telemetry to this file")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging verbosity (default: WARNING)")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.generation < 0:
        parser.error(f"please input a positive generation number instead of {args.generation}")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    game = _read_game(args.input, args.block_size)
    if game is None:
        return 1
    reference = None
    if args.compare_rle:
        reference = _read_game(args.compare_rle, args.block_size)
        if reference is None:
            return 1

    if args.force_rule is not None:
        game.board.set_rule(args.force_rule)

    # Opened before the kernel runs
    output = args.output
    if output is None and args.ascii_output:
        output = "-"
    out: IO[str] | None = None
    if output == "-":
        out = sys.stdout
    elif output is not None:
        try:
            out = open(output, "w")
        except OSError as e:
            print(f"Error while opening the output file: {e}", file=sys.stderr)
            return 1

    stats: StatsLogger | None = None
    if args.stats is not None:
        stats = StatsLogger(args.stats)
        try:
            stats.open()
        except OSError as e:
            print(f"Error while opening the stats file: {e}", file=sys.stderr)
            if out is not None and out is not sys.stdout:
                out.close()
            return 1

    def report(done: int, total: int, board: Board) -> None:
        if args.verbose:
            print_progress(done, total, board)
        if stats is not None:
            stats.log(done, total, board)

    try:
        t0 = time.perf_counter()
        try:
            evolve(
                game.board,
                args.generation,
                use_active_region=not args.brute_force,
                progress=report if (args.verbose or stats is not None) else None,
                progress_every=1 if stats is not None else None,
            )
        finally:
            if stats is not None:
                stats.close()
        print(f"Kernel time {time.perf_counter() - t0:.4f}s")

        if out is not None:
            write = dump_ascii if args.ascii_output else dump_rle
            write(game, out)
    finally:
        if out is not None and out is not sys.stdout:
            out.close()

    if reference is not None and not game.board.equal(reference.board):
        logger.info("result differs from %s", args.compare_rle)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
