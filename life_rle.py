"""
RLE pattern files: a parsy grammar for reading, and writers for RLE and a
plain ASCII picture.

    #N Glider                 pattern name
    #O Richard K. Guy         author
    #C A comment              comment (also #c)
    #r 23/3                   rule
    #R -1 -1                  coordinate offset (also #P)
    x = 3, y = 3, rule = B3/S23
    bob$2bo$3o!

Run counts must be positive. ``b`` is a dead run, ``$`` ends a line, ``o``
and every other letter are live runs. Text after ``!`` is ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from itertools import groupby
from pathlib import Path
from typing import TextIO

import numpy as np
import parsy as p

from life_board import DEFAULT_BLOCK_SIZE, Board, Game, Rule

logger = logging.getLogger(__name__)

# Writers never emit a line longer than this
RLE_LINE_WIDTH = 70

RULE_ALIASES: dict[str, Rule] = {
    "B3/S23": Rule.LIFE,
    "b3/s23": Rule.LIFE,
    "23/3": Rule.LIFE,
    "B36/S23": Rule.HIGHLIFE,
    "b36/s23": Rule.HIGHLIFE,
    "23/36": Rule.HIGHLIFE,
}


# ═══════════════════════════════════════════════════════════════════════
#  Grammar
# ═══════════════════════════════════════════════════════════════════════

whitespace = p.regex(r"\s*")
inline_space = p.regex(r"[ \t]*")


def token(parser: p.Parser) -> p.Parser:
    "parser preceded by any whitespace, line breaks included."
    return whitespace >> parser


natural = p.regex(r"0|[1-9][0-9]*").map(int).desc("a non-negative integer")
positive = p.regex(r"[1-9][0-9]*").map(int).desc("a positive and greater than zero integer")
integer = p.regex(r"-?[0-9]+").map(int).desc("an integer")

# Longest aliases first so "23/36" is not read as "23/3"
rule_set = p.alt(
    *(p.string(alias).result(rule)
      for alias, rule in sorted(RULE_ALIASES.items(), key=lambda kv: -len(kv[0])))
).desc("a rule set (B3/S23 or B36/S23)")

line_text = inline_space >> p.regex(r"[^\r\n]*").map(str.rstrip)

comment = p.char_from("cC") >> line_text.map(lambda s: ("comment", s))
pattern_name = p.string("N") >> line_text.map(lambda s: ("name", s))
creator_name = p.string("O") >> line_text.map(lambda s: ("author", s))
game_rules = p.string("r") >> line_text.map(
    lambda s: ("rule", RULE_ALIASES.get(s, Rule.UNKNOWN))
)


@p.generate("coordinate offset")
def coordinate_offset():
    yield p.char_from("PR")
    x = yield inline_space >> integer
    y = yield inline_space >> integer
    yield p.regex(r"[^\r\n]*")
    return ("offset", (x, y))


pre_header_line = token(p.string("#")) >> p.alt(
    comment, pattern_name, creator_name, game_rules, coordinate_offset
).desc("'#' followed by one of the type characters (C,c,N,O,r,P,R)")


@p.generate("header line 'x = <width>, y = <height>[, rule = <rule>]'")
def header_line():
    yield token(p.string("x"))
    yield token(p.string("="))
    width = yield token(natural)
    yield token(p.string(","))
    yield token(p.string("y"))
    yield token(p.string("="))
    height = yield token(natural)
    rule = yield (
        token(p.string(",")) >> token(p.string("rule")) >> token(p.string("="))
        >> token(rule_set)
    ).optional(Rule.UNKNOWN)
    return width, height, rule


item = p.seq(positive.optional(1), p.regex(r"[a-zA-Z$]")).desc(
    "an item: <positiveInteger>(b|o|$), where <positiveInteger> can be omitted if equal to one"
)

cell_grid = token(item).many() << token(p.string("!")).desc("end of pattern '!'")

rle_file = p.seq(pre_header_line.many(), header_line, cell_grid) << p.regex(r"(?s).*")


# ═══════════════════════════════════════════════════════════════════════
#  Loading
# ═══════════════════════════════════════════════════════════════════════

def parse_rle(text: str, block_size: int = DEFAULT_BLOCK_SIZE) -> Game:
    """Parse RLE text into a new Game. Raises ``parsy.ParseError``."""
    entries, (width, height, header_rule), items = rle_file.parse(text)

    game = Game(Board(block_size=block_size))
    board = game.board
    for kind, value in entries:
        if kind == "comment":
            game.add_comment(value)
        elif kind == "name":
            game.set_pattern_name(value)
        elif kind == "author":
            game.set_author(value)
        elif kind == "rule":
            if value is not Rule.UNKNOWN:
                board.set_rule(value)
        elif kind == "offset":
            board.set_offset(*value)
    # The header rule wins over a '#r' line
    if header_rule is not Rule.UNKNOWN:
        board.set_rule(header_rule)

    x = y = 0
    for count, tag in items:
        if tag == "b":
            x += count
        elif tag == "$":
            y += count
            x = 0
        else:
            for _ in range(count):
                board.write(x, y, True)
                x += 1

    logger.debug("parsed %dx%d pattern, %d live cells", width, height, board.population())
    return game


def load_rle(path: str | Path, block_size: int = DEFAULT_BLOCK_SIZE) -> Game:
    text = Path(path).read_text()
    game = parse_rle(text, block_size=block_size)
    logger.info("loaded %s (%s)", path, game.board.get_rule().name)
    return game


# ═══════════════════════════════════════════════════════════════════════
#  Writing
# ═══════════════════════════════════════════════════════════════════════

def _run(count: int, tag: str) -> str:
    return f"{count}{tag}" if count > 1 else tag


def rle_tokens(board: Board) -> Iterator[str]:
    """Run-length tokens for the board's bounding box, without the final '!'."""
    bounds = board.bounds()
    pending_rows = 0
    for y in range(bounds.lower_y, bounds.upper_y + 1):
        runs = [
            (alive, sum(1 for _ in group))
            for alive, group in groupby(
                board.read(x, y) for x in range(bounds.lower_x, bounds.upper_x + 1)
            )
        ]
        if runs and not runs[-1][0]:
            runs.pop()
        if runs:
            if pending_rows:
                yield _run(pending_rows, "$")
                pending_rows = 0
            for alive, count in runs:
                yield _run(count, "o" if alive else "b")
        pending_rows += 1


def dump_rle(game: Game, stream: TextIO) -> None:
    """Write ``game`` as RLE.

    The body starts at the lower corner of the bounding box, while ``#R``
    records the storage offset. The reader places the body at the origin, so
    a board whose box reaches below zero on either axis comes back shifted
    by that corner.
    """
    board = game.board
    if game.author is not None:
        stream.write(f"#O {game.author}\n")
    if game.pattern_name is not None:
        stream.write(f"#N {game.pattern_name}\n")
    offset_x, offset_y = board.get_offset()
    if offset_x or offset_y:
        stream.write(f"#R {offset_x} {offset_y}\n")
    for comment in game.comments:
        stream.write(f"#C {comment}\n")

    bounds = board.bounds()
    rule = board.get_rule()
    if rule is Rule.UNKNOWN:
        rule = Rule.LIFE
    stream.write(f"x = {bounds.width}, y = {bounds.height}, rule = {rule.rule_string}\n")

    line = ""
    for tok in [*rle_tokens(board), "!"]:
        if len(line) + len(tok) > RLE_LINE_WIDTH:
            stream.write(line + "\n")
            line = ""
        line += tok
    stream.write(line + "\n")


def dump_ascii(game: Game, stream: TextIO) -> None:
    board = game.board
    if game.author is not None:
        stream.write(f"Author: {game.author}\n")
    if game.pattern_name is not None:
        stream.write(f"Pattern name: {game.pattern_name}\n")
    offset_x, offset_y = board.get_offset()
    if offset_x or offset_y:
        stream.write(f"Shift from origin: ({offset_x}, {offset_y})\n")
    if game.comments:
        stream.write("Info:\n")
        for comment in game.comments:
            stream.write(f"{comment}\n")
        stream.write("\n")
    stream.write("Pattern:\n")
    dump_board_ascii(board, stream)


def dump_board_ascii(board: Board, stream: TextIO) -> None:
    grid = board.to_array()
    for row in np.where(grid, "O", " "):
        stream.write("".join(row) + "\n")
