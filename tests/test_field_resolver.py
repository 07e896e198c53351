"""Tests for src.mapping.resolver -- tiered fuzzy field resolution."""

import pytest

from src.mapping.resolver import (
    FieldResolver,
    core_words,
    is_identifier_field,
    names_match,
    normalize_field_name,
    resolve_field,
    resolve_key,
    resolve_match,
)


class TestNormalizeFieldName:

    @pytest.mark.parametrize("raw,expected", [
        ("Revenue_$mm", "revenue"),
        ("Total Revenue", "totalrevenue"),
        ("Headcount_FTE", "headcount"),
        ("TxnFeeRate_bps", "txnfeerate"),
        ("NIM_bps_annual", "nim"),
        ("Cost $m", "cost"),
        ("Volume mm", "volume"),
    ])
    def test_unit_tokens_stripped(self, raw, expected):
        assert normalize_field_name(raw) == expected

    def test_core_words(self):
        assert core_words("Base_Compensation_$mm") == ("base", "compensation")
        assert core_words("Avg AUM") == ("avg", "aum")

    def test_single_letters_dropped_from_core_words(self):
        assert core_words("A Revenue") == ("revenue",)


class TestIdentifierExclusion:

    @pytest.mark.parametrize("key", ["ProductID", "Quarter", "Period_End", "Report Date"])
    def test_identifier_like(self, key):
        assert is_identifier_field(key)

    def test_measure_is_not_identifier(self):
        assert not is_identifier_field("Revenue_$mm")

    def test_identifier_never_resolves(self):
        record = {"ProductID": 5, "Product_$mm": 7}
        assert resolve_field(record, "Product") == 7.0


class TestResolveField:

    def test_exact_tier(self):
        record = {"Revenue_$mm": "1,200"}
        assert resolve_match(record, "Revenue") == ("Revenue_$mm", 1200.0, 1)

    def test_exact_beats_earlier_containment(self):
        record = {"Total Revenue": 1, "Revenue": 2}
        assert resolve_field(record, "Revenue") == 2.0

    def test_containment_tier(self):
        record = {"Total Revenue Amount": 10}
        key, value, tier = resolve_match(record, "Revenue")
        assert (key, value, tier) == ("Total Revenue Amount", 10.0, 2)

    def test_short_names_skip_containment(self):
        record = {"AUM Growth": 4}
        assert resolve_match(record, "AUM") == ("AUM Growth", 4.0, 3)

    def test_word_set_tier(self):
        record = {"Comp Base_$mm": 5}
        key, value, tier = resolve_match(record, "Base Compensation")
        assert tier == 3
        assert value == 5.0

    def test_short_target_word_disables_word_tiers(self):
        record = {"Fee Income Ex": 5}
        assert resolve_match(record, "Ex Fee") is None

    def test_non_numeric_value_falls_through(self):
        record = {"Revenue": "n/a", "Revenue_$mm": 3}
        assert resolve_field(record, "Revenue") == 3.0

    def test_zero_is_a_value(self):
        assert resolve_field({"Revenue_$mm": 0}, "Revenue") == 0.0

    def test_no_match_is_none(self):
        assert resolve_field({"Headcount": 10}, "Revenue") is None

    def test_resolve_key(self):
        assert resolve_key({"Rev_$mm": 1, "Cost_$mm": 2}, "Cost") == "Cost_$mm"


class TestNamesMatch:

    def test_equal_after_normalization(self):
        assert names_match("Rev_TransactionalFees_$mm", "rev transactionalfees")

    def test_containment(self):
        assert names_match("Trading Volume", "TradingVolume_Total")

    def test_blank_never_matches(self):
        assert not names_match("", "Revenue")
        assert not names_match("$mm", "Revenue")


class TestFieldResolver:

    def test_hits_misses_and_report(self):
        resolver = FieldResolver(["Revenue", "Headcount"])
        records = [{"Revenue_$mm": 1}, {"Revenue_$mm": 2}]
        for record in records:
            resolver.resolve_all(record)

        assert resolver.hits["Revenue"] == 2
        assert resolver.misses["Headcount"] == 2
        assert resolver.unresolved() == ["Headcount"]
        assert resolver.columns["Revenue"] == {"Revenue_$mm": 2}

        report = resolver.get_resolution_report()
        assert "# Field Resolution Report" in report
        assert "| Revenue | 2 | 0 | Revenue_$mm (2) |" in report
        assert "| Headcount | 0 | 2 | - |" in report
