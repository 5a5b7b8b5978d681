import pytest

from nlscreener.exceptions import FormulaError
from nlscreener.formula import BinaryOp, Number, evaluate, parse, tokenize


def test_precedence_and_parentheses():
    assert evaluate("1 + 2 * 3") == 7.0
    assert evaluate("(1 + 2) * 3") == 9.0
    assert evaluate("-4 + 10 / 4") == -1.5
    assert evaluate("10 % 4") == 2.0


def test_parse_builds_tagged_tree():
    tree = parse("2*3")
    assert tree == BinaryOp("*", Number(2.0), Number(3.0))


def test_disallowed_characters_are_rejected_not_stripped():
    assert evaluate("__import__('os')") is None
    assert evaluate("2 ** 3 + x") is None
    with pytest.raises(FormulaError):
        tokenize("1 + a")


def test_malformed_or_undefined_results_are_none():
    assert evaluate("1 / 0") is None
    assert evaluate("(1 + 2") is None
    assert evaluate("") is None
    assert evaluate("3 +") is None
