import pytest

from market_buddy.similarity import CONTAINMENT_SCORE, edit_distance, similarity


def test_edit_distance_basics():
    assert edit_distance("", "abc") == 3
    assert edit_distance("abc", "") == 3
    assert edit_distance("abc", "abc") == 0
    assert edit_distance("kitten", "sitting") == 3
    assert edit_distance("flaw", "lawn") == 2


@pytest.mark.parametrize("text", ["a", "חלב", "חלב תנובה 3%", "Cottage 5%"])
def test_identical_strings_score_one(text):
    assert similarity(text, text) == 1.0


def test_case_and_whitespace_are_normalized():
    assert similarity("Milk", "milk") == 1.0
    assert similarity("חלב  תנובה ", "חלב תנובה") == 1.0


def test_empty_input_scores_zero():
    assert similarity("", "חלב") == 0.0
    assert similarity("חלב", "") == 0.0
    assert similarity(None, None) == 0.0


def test_edit_distance_score():
    assert similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)


def test_substring_bonus():
    # distance 6 over 9 chars, plus the containment bonus
    assert similarity("חלב", "חלב תנובה") == pytest.approx(1 - 6 / 9 + 0.2)


def test_meat_word_containment_short_circuits():
    assert similarity("חזה עוף", "עוף חזה טרי") == CONTAINMENT_SCORE
    assert similarity("עוף חזה טרי", "חזה עוף") == CONTAINMENT_SCORE


def test_meat_rule_needs_every_word():
    assert similarity("חזה עוף", "כנפיים עוף") < CONTAINMENT_SCORE


def test_containment_rule_only_applies_to_marked_products():
    # same word-order swap, but no meat marker: plain edit distance
    assert similarity("צהובה גבינה", "גבינה צהובה") < CONTAINMENT_SCORE


@pytest.mark.parametrize(
    "a,b",
    [
        ("חלב תנובה 3%", "חלב טרה 1%"),
        ("חלב", "חלב תנובה"),
        ("חזה עוף", "עוף חזה טרי"),
        ("במבה", "ביסלי גריל"),
        ("abc", "abd"),
    ],
)
def test_symmetry(a, b):
    assert similarity(a, b) == similarity(b, a)


def test_score_is_bounded():
    for a, b in [("a", "חלב"), ("חלב", "חלב 3% תנובה"), ("x" * 3, "y" * 40)]:
        assert 0.0 <= similarity(a, b) <= 1.0


def test_markers_match_whole_words_only():
    assert similarity("כבד אווז", "אווז כבד טרי") == CONTAINMENT_SCORE
    # "כבדה" (heavy) only starts with the liver marker
    assert similarity("עוגה כבדה", "כבדה עוגה") < CONTAINMENT_SCORE


def test_edit_distance_on_hebrew():
    assert edit_distance("חלב", "חלב 3%") == 3
    assert edit_distance("גבינה", "גבינת") == 1
