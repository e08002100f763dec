"""Tests for strict-plurality vote resolution."""

from polymarket_copy_signals.tracker.majority import strict_plurality, top_choice


class TestTopChoice:
    def test_strict_winner(self) -> None:
        assert top_choice({"Yes": 3, "No": 1}) == "Yes"

    def test_tie_at_top_abstains(self) -> None:
        assert top_choice({"Yes": 2, "No": 2, "Maybe": 1}) is None

    def test_tie_below_top_is_irrelevant(self) -> None:
        assert top_choice({"A": 3, "B": 1, "C": 1}) == "A"

    def test_empty(self) -> None:
        assert top_choice({}) is None

    def test_single_choice(self) -> None:
        assert top_choice({"Yes": 1}) == "Yes"


class TestStrictPlurality:
    def test_counts_values(self) -> None:
        assert strict_plurality(["No", "Yes", "No"]) == "No"

    def test_ignores_none(self) -> None:
        assert strict_plurality([None, None, "Yes"]) == "Yes"

    def test_one_each_is_a_tie(self) -> None:
        assert strict_plurality(["A", "B"]) is None
