"""
Unit tests for fuzzy name matching.
"""
from types import SimpleNamespace

from expense_tracker import fuzzy


def _named(*names):
    return [SimpleNamespace(name=n) for n in names]


class TestMatches:
    def test_substring(self):
        assert fuzzy.matches("milk", "Whole Milk 1L")

    def test_subsequence_in_order(self):
        assert fuzzy.matches("mlk", "Milk 1L")

    def test_out_of_order_rejected(self):
        assert not fuzzy.matches("klm", "Milk")

    def test_case_insensitive(self):
        assert fuzzy.matches("PINGO", "pingo doce")

    def test_blank_query_matches_nothing(self):
        assert not fuzzy.matches("", "Milk")
        assert not fuzzy.matches("   ", "Milk")


class TestSearch:
    def test_keeps_collection_order_and_limit(self):
        items = _named("Bread", "Brie", "Broccoli", "Banana", "Butter")
        found = fuzzy.search(items, "br", 2)
        assert [i.name for i in found] == ["Bread", "Brie"]

    def test_suggestion_limits(self):
        items = _named(*[f"Store {n}" for n in range(20)])
        assert len(fuzzy.search(items, "store", fuzzy.MERCHANT_SUGGESTION_LIMIT)) == 6
        assert len(fuzzy.search(items, "store", fuzzy.PRODUCT_SUGGESTION_LIMIT)) == 8

    def test_custom_key(self):
        found = fuzzy.search(["Apple", "Pear"], "pe", 5, key=lambda s: s)
        assert found == ["Pear"]

    def test_blank_query(self):
        assert fuzzy.search(_named("A"), " ", 5) == []


def test_same_name():
    assert fuzzy.same_name("  Pingo Doce ", "pingo doce")
    assert not fuzzy.same_name("Pingo", "Pingo Doce")


def test_letters_out_of_order_do_not_match():
    assert fuzzy.matches("mlk", "Milk 1L")
    assert not fuzzy.matches("kim", "Milk 1L")
