"""Tests for query preprocessing."""

from datetime import date
from decimal import Decimal

import pytest

from invoice_search.core.preprocessing import (
    AmountExtractor,
    DateRule,
    EntityExtractor,
    QueryPreprocessor,
    month_span,
    parse_amount,
    remove_date_text,
    remove_spans,
)
from conftest import FIXED_TODAY


class TestDateExtraction:
    """Test relative and absolute date phrases."""

    def test_last_month(self, preprocessor):
        result = preprocessor.preprocess("invoices last month")

        assert result.date_from == date(2024, 5, 1)
        assert result.date_to == date(2024, 5, 31)
        assert result.normalized_query == ""

    @pytest.mark.parametrize("query,expected", [
        ("last march", month_span(2024, 3)),
        ("last june", month_span(2024, 6)),
        ("last december", month_span(2023, 12)),
    ])
    def test_last_named_month(self, preprocessor, query, expected):
        result = preprocessor.preprocess(query)
        assert (result.date_from, result.date_to) == (expected.start, expected.end)

    def test_last_week_is_previous_monday_to_sunday(self, preprocessor):
        result = preprocessor.preprocess("bills last week")

        assert result.date_from == date(2024, 6, 10)
        assert result.date_to == date(2024, 6, 16)

    def test_last_year(self, preprocessor):
        result = preprocessor.preprocess("purchases last year")

        assert result.date_from == date(2023, 1, 1)
        assert result.date_to == date(2023, 12, 31)

    @pytest.mark.parametrize("query,start,end", [
        ("this week", date(2024, 6, 17), date(2024, 6, 23)),
        ("this month", date(2024, 6, 1), date(2024, 6, 30)),
        ("this year", date(2024, 1, 1), date(2024, 12, 31)),
    ])
    def test_this_period(self, preprocessor, query, start, end):
        result = preprocessor.preprocess(query)
        assert (result.date_from, result.date_to) == (start, end)

    @pytest.mark.parametrize("word,day", [
        ("today", date(2024, 6, 19)),
        ("yesterday", date(2024, 6, 18)),
        ("tomorrow", date(2024, 6, 20)),
    ])
    def test_relative_days(self, preprocessor, word, day):
        result = preprocessor.preprocess(f"invoices {word}")

        assert result.date_from == day
        assert result.date_to == day
        assert result.normalized_query == ""

    def test_month_and_year(self, preprocessor):
        result = preprocessor.preprocess("invoices march 2024")

        assert result.date_from == date(2024, 3, 1)
        assert result.date_to == date(2024, 3, 31)

    def test_iso_date_is_single_day(self, preprocessor):
        result = preprocessor.preprocess("invoices on 2024-03-15")

        assert result.date_from == date(2024, 3, 15)
        assert result.date_to == date(2024, 3, 15)
        assert result.normalized_query == ""
        assert result.amount_min is None

    def test_month_day_year(self, preprocessor):
        result = preprocessor.preprocess("bills on March 15, 2024")

        assert result.date_from == date(2024, 3, 15)
        assert result.date_to == date(2024, 3, 15)
        assert result.normalized_query == ""

    def test_day_before_month_and_year_is_single_day(self, preprocessor):
        result = preprocessor.preprocess("15 march 2024")

        assert result.date_from == date(2024, 3, 15)
        assert result.date_to == date(2024, 3, 15)

    def test_day_of_month_and_year_is_single_day(self, preprocessor):
        result = preprocessor.preprocess("invoices on 15th of march 2024")

        assert result.date_from == date(2024, 3, 15)
        assert result.date_to == date(2024, 3, 15)
        assert result.normalized_query == ""

    @pytest.mark.parametrize("phrase,month", [("dec 2023", 12), ("sept 2023", 9), ("Mar. 2023", 3)])
    def test_abbreviated_month_and_year(self, preprocessor, phrase, month):
        result = preprocessor.preprocess(f"bills {phrase}")

        assert result.date_from == date(2023, month, 1)
        assert result.date_to.month == month
        assert result.amount_min is None
        assert result.normalized_query == ""

    def test_day_first_with_short_year(self, preprocessor):
        result = preprocessor.preprocess("invoices 15/03/24")
        assert result.date_from == date(2024, 3, 15)

    def test_date_without_year_uses_current_year(self, preprocessor):
        result = preprocessor.preprocess("invoices on 5th april")
        assert result.date_from == date(FIXED_TODAY.year, 4, 5)

    def test_explicit_range_with_vendor(self, preprocessor):
        result = preprocessor.preprocess("from 2024-01-01 to 2024-01-31 for Gaurav")

        assert result.date_from == date(2024, 1, 1)
        assert result.date_to == date(2024, 1, 31)
        assert result.normalized_query == "Gaurav"
        assert result.vendor_names == ("Gaurav",)

    def test_invalid_calendar_date_is_ignored(self, preprocessor):
        result = preprocessor.preprocess("invoices 2024-02-30")

        assert result.date_from is None
        assert result.date_to is None
        assert result.amount_min is None
        assert result.normalized_query == "2024-02-30"

    def test_no_date(self, preprocessor):
        result = preprocessor.preprocess("laptops")

        assert result.date_from is None
        assert result.normalized_query == "laptops"

    def test_failing_date_rule_does_not_raise(self):
        class BrokenRule(DateRule):
            def match(self, text, today):
                raise RuntimeError("rule exploded")

        preprocessor = QueryPreprocessor(date_rules=[BrokenRule()], today=lambda: FIXED_TODAY)
        result = preprocessor.preprocess("invoices for laptops yesterday")

        assert result.date_from is None
        assert result.normalized_query == "laptops yesterday"


class TestRemoveDateText:
    """Test date phrase removal."""

    def test_removes_dangling_connectors(self):
        assert remove_date_text("invoices between march 1 and march 5") == "invoices"
        assert remove_date_text("bills from 2024-01-01 to 2024-01-31") == "bills"

    def test_only_connector_left(self):
        assert remove_date_text("from yesterday") == ""

    def test_keeps_other_words(self):
        assert remove_date_text("laptops last week from deen") == "laptops from deen"


class TestAmountExtraction:
    """Test amount extraction."""

    def test_single_amount_gets_ten_percent_band(self, preprocessor):
        result = preprocessor.preprocess("find invoices around 5000 rupees")

        assert result.amount_min == Decimal("4500")
        assert result.amount_max == Decimal("5500")
        assert result.normalized_query == ""

    def test_currency_symbol_with_separators(self, preprocessor):
        result = preprocessor.preprocess("bills around ₹5,000")

        assert result.amount_min == Decimal("4500")
        assert result.amount_max == Decimal("5500")

    def test_explicit_range_is_exact(self, preprocessor):
        result = preprocessor.preprocess("invoices between 1000 and 2000")

        assert result.amount_min == Decimal("1000")
        assert result.amount_max == Decimal("2000")
        assert result.normalized_query == ""

    def test_several_amounts_span_min_to_max(self, preprocessor):
        result = preprocessor.preprocess("1500 or 3000 rupees")

        assert result.amount_min == Decimal("1500")
        assert result.amount_max == Decimal("3000")

    @pytest.mark.parametrize("query", ["invoices Rs.5000", "bills rs 5000/-", "bills 5000/- only"])
    def test_rupee_notations(self, preprocessor, query):
        result = preprocessor.preprocess(query)

        assert result.amount_min == Decimal("4500")
        assert result.amount_max == Decimal("5500")
        assert "5000" not in result.normalized_query
        assert "/-" not in result.normalized_query

    def test_invoice_number_is_not_an_amount(self):
        assert AmountExtractor().extract("pi-2024-0001") is None

    def test_small_bare_numbers_are_not_amounts(self, preprocessor):
        result = preprocessor.preprocess("invoices with 12 chairs")

        assert result.amount_min is None
        assert result.normalized_query == "12 chairs"

    def test_decimal_number_is_amount(self):
        extraction = AmountExtractor().extract("costing 99.50")

        assert extraction.minimum == Decimal("99.50") * Decimal("0.9")
        assert not extraction.is_range

    def test_zero_is_not_an_amount(self):
        assert AmountExtractor().extract("0 rupees") is None

    def test_custom_tolerance(self):
        extraction = AmountExtractor(tolerance=Decimal("0.5")).extract("rs 1000")

        assert extraction.minimum == Decimal("500")
        assert extraction.maximum == Decimal("1500")

    def test_parse_amount(self):
        assert parse_amount("1,25,000.50") == Decimal("125000.50")
        assert parse_amount("abc") is None

    def test_remove_spans_merges_overlaps(self):
        assert remove_spans("show bills about 5000 rupees", [(11, 28), (17, 21)]) == "show bills"
        assert remove_spans("unchanged", []) == "unchanged"


class TestEntityExtraction:
    """Test vendor and product candidates."""

    def test_vendor_and_product(self, preprocessor):
        result = preprocessor.preprocess("invoices with laptops from Deen")

        assert result.vendor_names == ("Deen",)
        assert result.product_names == ("laptops",)
        assert result.normalized_query == "laptops Deen"

    def test_multi_word_vendor_keeps_case(self, preprocessor):
        result = preprocessor.preprocess("show bills from Gaurav Enterprises")

        assert result.vendor_names == ("Gaurav Enterprises",)
        assert result.normalized_query == "Gaurav Enterprises"

    def test_quoted_product(self, preprocessor):
        result = preprocessor.preprocess('show bills containing "Wireless Mouse"')

        assert "Wireless Mouse" in result.product_names
        assert "Wireless Mouse" in result.normalized_query
        assert result.vendor_names == ()

    def test_capitalized_run_after_product_trigger_is_product(self):
        vendors, products = EntityExtractor().extract("invoices with Dell Laptop")

        assert vendors == []
        assert products[0] == "Dell Laptop"

    def test_product_words_stop_at_trigger(self):
        vendors, products = EntityExtractor().extract("bought office chairs from Deen")

        assert vendors == ["Deen"]
        assert products[0] == "office chairs"

    def test_rejects_dates_and_stop_words(self):
        extractor = EntityExtractor()

        assert extractor.is_rejected("March")
        assert extractor.is_rejected("2024")
        assert extractor.is_rejected("Invoices")
        assert extractor.is_rejected("the invoices")
        assert not extractor.is_rejected("Sharma")


class TestPreprocessor:
    """Test the full preprocessing pipeline."""

    @pytest.mark.parametrize("query", ["", "   "])
    def test_empty_query(self, preprocessor, query):
        result = preprocessor.preprocess(query)

        assert result.normalized_query == ""
        assert result.date_from is None
        assert result.amount_min is None

    def test_combined_query(self, preprocessor):
        result = preprocessor.preprocess("laptops from Gaurav last month around 50000 rupees")

        assert result.date_from == date(2024, 5, 1)
        assert result.amount_min == Decimal("45000")
        assert result.amount_max == Decimal("55000")
        assert result.normalized_query == "laptops Gaurav"

    def test_residual_is_stable(self, preprocessor):
        first = preprocessor.preprocess("find bills for printer cartridges")
        second = preprocessor.preprocess(first.normalized_query)

        assert first.normalized_query == "printer cartridges"
        assert second.normalized_query == first.normalized_query
