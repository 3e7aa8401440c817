from datetime import datetime
from decimal import Decimal

import pytest

from ledger_recon.matching.confidence import (
    ConfidenceCalculator,
    analyze_match,
    calculate_confidence,
    describe_match,
)


def test_identical_records_score_one(make_record):
    ledger = make_record("-100.50", "2024-01-15", "Grocery Store Purchase")
    bank = make_record("-100.50", "2024-01-15", "Grocery Store Purchase")
    assert calculate_confidence(ledger, bank) == 1.0


def test_amount_term_decays_with_relative_difference(make_record):
    ledger = make_record("-100.00", "2024-01-15", "Rent")
    bank = make_record("-90.00", "2024-01-15", "Rent")
    # 0.4 * 0.9 + 0.3 + 0.3
    assert calculate_confidence(ledger, bank) == pytest.approx(0.96)


def test_date_term_decays_over_window(make_record):
    ledger = make_record("20", datetime(2024, 1, 15, 0, 0), "Lunch")
    bank = make_record("20", datetime(2024, 1, 16, 12, 0), "Lunch")
    # 0.4 + 0.3 * (1 - 1.5 / 3) + 0.3
    assert calculate_confidence(ledger, bank) == pytest.approx(0.85)


def test_date_term_floors_at_zero(make_record):
    ledger = make_record("20", "2024-01-01", "Lunch")
    bank = make_record("20", "2024-02-01", "Lunch")
    assert calculate_confidence(ledger, bank) == pytest.approx(0.7)


def test_custom_date_window(make_record):
    calculator = ConfidenceCalculator(date_window_days=6)
    ledger = make_record("20", "2024-01-15", "Lunch")
    bank = make_record("20", "2024-01-18", "Lunch")
    assert calculator.calculate_confidence(ledger, bank) == pytest.approx(0.85)


def test_invalid_date_window():
    with pytest.raises(ValueError):
        ConfidenceCalculator(date_window_days=0)


def test_degenerate_inputs_do_not_raise(make_record):
    zero_a = make_record("0", "2024-01-15", "")
    zero_b = make_record("0", "2024-01-15", "")
    assert calculate_confidence(zero_a, zero_b) == 1.0

    opposite = make_record("100", "2030-01-01", "x")
    score = calculate_confidence(make_record("-100", "2024-01-15", ""), opposite)
    assert 0.0 <= score <= 1.0


def test_confidence_is_bounded(make_record):
    pairs = [
        (make_record("1", "2024-01-01", "a"), make_record("1000000", "2020-01-01", "zzz")),
        (make_record("-5", "2024-01-01", ""), make_record("5", "2024-01-01", "")),
    ]
    for ledger, bank in pairs:
        assert 0.0 <= calculate_confidence(ledger, bank) <= 1.0


def test_analyze_match_breakdown(make_record):
    ledger = make_record("-42.00", datetime(2024, 1, 15, 23, 0), "Coffee Shop")
    bank = make_record("-42.005", datetime(2024, 1, 16, 1, 0), "COFFEE SHOP #12")

    analysis = analyze_match(ledger, bank)

    assert analysis.amount_match is True
    assert analysis.amount_difference == Decimal("0.005")
    assert analysis.date_match is False
    assert analysis.date_difference_in_days == 1
    assert analysis.description_similar is True
    assert analysis.description_similarity_score == pytest.approx(1 - 4 / 15, abs=1e-4)
    assert analysis.ledger_amount == Decimal("-42.00")
    assert analysis.external_amount == Decimal("-42.005")
    assert analysis.ledger_description == "Coffee Shop"
    assert analysis.external_description == "COFFEE SHOP #12"


def test_analyze_match_dissimilar_descriptions(make_record):
    analysis = analyze_match(
        make_record("10", "2024-01-15", "Hardware"),
        make_record("99", "2024-01-15", "Bakery"),
    )
    assert analysis.amount_match is False
    assert analysis.date_match is True
    assert analysis.description_similar is False


def test_describe_match(make_record):
    ledger = make_record("-100.50", "2024-01-15", "Grocery Store Purchase")
    analysis = analyze_match(ledger, ledger)
    assert describe_match(analysis, 0.97) == (
        "Matched on: amount, date, description (confidence: 97%)"
    )


def test_describe_match_partial(make_record):
    analysis = analyze_match(
        make_record("10", "2024-01-01", "abc"),
        make_record("12", "2024-01-10", "xyz"),
    )
    assert describe_match(analysis, 0.5) == "Partial match (confidence: 50%)"
