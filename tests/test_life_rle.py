import io

import parsy
import pytest

from life_board import Board, Game, Rule
from life_rle import dump_ascii, dump_rle, load_rle, parse_rle, rle_tokens
from tests.helpers import GLIDER, cells_of

GLIDER_RLE = """#N Glider
#O Richard K. Guy
#C The smallest, most common, and first discovered spaceship.
#c Found in 1969.
x = 3, y = 3, rule = B3/S23
bob$2bo$3o!
"""


def _dump(game: Game, writer=dump_rle) -> str:
    buf = io.StringIO()
    writer(game, buf)
    return buf.getvalue()


# ── Parsing ─────────────────────────────────────────────────────────────

def test_parse_glider_with_metadata():
    game = parse_rle(GLIDER_RLE)
    assert game.pattern_name == "Glider"
    assert game.author == "Richard K. Guy"
    assert game.comments == [
        "The smallest, most common, and first discovered spaceship.",
        "Found in 1969.",
    ]
    assert game.board.get_rule() is Rule.LIFE
    assert cells_of(game.board) == set(GLIDER)


@pytest.mark.parametrize("rule_text,expected", [
    ("B3/S23", Rule.LIFE),
    ("b3/s23", Rule.LIFE),
    ("23/3", Rule.LIFE),
    ("B36/S23", Rule.HIGHLIFE),
    ("b36/s23", Rule.HIGHLIFE),
    ("23/36", Rule.HIGHLIFE),
])
def test_header_rule_aliases(rule_text, expected):
    game = parse_rle(f"x = 1, y = 1, rule = {rule_text}\no!")
    assert game.board.get_rule() is expected


def test_rule_line_and_header_precedence():
    assert parse_rle("#r 23/36\nx = 1, y = 1\no!").board.get_rule() is Rule.HIGHLIFE
    game = parse_rle("#r B36/S23\nx = 1, y = 1, rule = B3/S23\no!")
    assert game.board.get_rule() is Rule.LIFE


def test_missing_rule_defaults_to_life():
    assert parse_rle("x = 1, y = 1\no!").board.get_rule() is Rule.LIFE
    assert parse_rle("#r nonsense\nx = 1, y = 1\no!").board.get_rule() is Rule.LIFE


@pytest.mark.parametrize("tag", ["P", "R"])
def test_offset_lines(tag):
    game = parse_rle(f"#{tag} -2 3\nx = 2, y = 1\n2o!")
    assert game.board.get_offset() == (-2, 3)
    assert cells_of(game.board) == {(0, 0), (1, 0)}


def test_runs_line_jumps_and_whitespace():
    game = parse_rle("x = 5, y = 4\n o2b\n 2o 2$\n\n3bA !")
    assert cells_of(game.board) == {(0, 0), (3, 0), (4, 0), (3, 2)}


def test_text_after_terminator_is_ignored():
    game = parse_rle("x = 1, y = 1\no! and then some\nmore lines")
    assert cells_of(game.board) == {(0, 0)}


@pytest.mark.parametrize("text", [
    "x = 3, y = 1\n3o",            # no terminator
    "x = 3, y = 1\n0o!",           # zero run
    "x = 3\n3o!",                  # incomplete header
    "#Q what\nx = 1, y = 1\no!",   # unknown pre-header type
    "3o!",                         # no header at all
])
def test_malformed_input_raises(text):
    with pytest.raises(parsy.ParseError):
        parse_rle(text)


def test_block_size_is_passed_through():
    assert parse_rle("x = 1, y = 1\no!", block_size=16).board.block_size == 16


def test_load_rle(tmp_path):
    path = tmp_path / "glider.rle"
    path.write_text(GLIDER_RLE)
    game = load_rle(path)
    assert game.pattern_name == "Glider"
    assert cells_of(game.board) == set(GLIDER)


# ── Writing ─────────────────────────────────────────────────────────────

def test_dump_rle_glider():
    assert _dump(parse_rle(GLIDER_RLE)) == (
        "#O Richard K. Guy\n"
        "#N Glider\n"
        "#C The smallest, most common, and first discovered spaceship.\n"
        "#C Found in 1969.\n"
        "x = 3, y = 3, rule = B3/S23\n"
        "bo$2bo$3o!\n"
    )


def test_dump_rle_merges_empty_rows():
    board = Board.from_cells([(0, 0), (0, 3)])
    assert list(rle_tokens(board)) == ["o", "3$", "o"]


def test_dump_rle_writes_highlife_and_offset():
    game = Game(Board.from_cells([(0, 0)], rule=Rule.HIGHLIFE))
    game.board.set_offset(4, -1)
    text = _dump(game)
    assert text.startswith("#R 4 -1\n")
    assert "rule = B36/S23" in text


def test_dump_rle_wraps_long_lines():
    cells = [(x, y) for y in range(3) for x in range(0, 120, 2)]
    game = Game(Board.from_cells(cells))
    text = _dump(game)
    body = text.split("\n", 1)[1]
    assert all(len(line) <= 70 for line in body.splitlines())
    assert text.rstrip().endswith("!")
    assert cells_of(parse_rle(text).board) == set(cells)


def test_rle_round_trip():
    game = parse_rle(GLIDER_RLE)
    again = parse_rle(_dump(game))
    assert again.board.equal(game.board)
    assert again.comments == game.comments


def test_dump_ascii():
    game = Game(Board.from_cells([(0, 0), (1, 0), (2, 0), (1, 2)]))
    game.set_pattern_name("Blinker")
    game.add_comment("period 2")
    assert _dump(game, dump_ascii) == (
        "Pattern name: Blinker\n"
        "Info:\n"
        "period 2\n"
        "\n"
        "Pattern:\n"
        "OOO\n"
        "   \n"
        " O \n"
    )


def test_reload_places_body_at_origin():
    board = Board.from_cells([(1, -1), (1, 0), (1, 1)])
    again = parse_rle(_dump(Game(board)))
    assert cells_of(again.board) == {(1, 0), (1, 1), (1, 2)}
