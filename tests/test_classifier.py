import pytest

from ledger_recon.config import ImportReviewSettings
from ledger_recon.matching.classifier import ConflictClassifier, suggest_resolution
from ledger_recon.matching.rules import ConflictRule, RuleMatch
from ledger_recon.models.conflicts import (
    ConflictDetectionLevel,
    ConflictInfo,
    ConflictReason,
    ConflictSeverity,
    ConflictType,
    DuplicateExclusion,
    ReviewDecision,
)


@pytest.fixture
def classifier():
    return ConflictClassifier()


def test_gas_station_is_potential_duplicate(classifier, make_record):
    candidate = make_record("-50.00", "2024-01-14", "Gas Station", external_id=None)
    existing = make_record("-50.25", "2024-01-14", "Gas Station ABC")

    conflict = classifier.classify(candidate, existing)

    assert conflict.type == ConflictType.POTENTIAL_DUPLICATE
    assert 40 < conflict.confidence_score <= 70
    assert conflict.confidence_score == 51
    assert conflict.severity == ConflictSeverity.MEDIUM
    assert ConflictReason.SIMILAR_AMOUNT_NEAR_DATE in conflict.reasons
    assert ConflictReason.SIMILAR_DESCRIPTION in conflict.reasons
    assert conflict.conflicting_record is existing


def test_same_external_id_is_exact_regardless_of_fields(classifier, make_record):
    candidate = make_record("-10.00", "2024-01-01", "Coffee", external_id="BANK_123")
    existing = make_record("999.00", "2023-06-30", "Payroll", external_id="BANK_123")

    conflict = classifier.classify(candidate, existing)

    assert conflict.type == ConflictType.EXACT_DUPLICATE
    assert conflict.confidence_score == 95
    assert conflict.match_score == 1.0
    assert conflict.severity == ConflictSeverity.HIGH
    assert conflict.reasons == frozenset({ConflictReason.SAME_EXTERNAL_ID})


def test_same_reference_number_is_exact(classifier, make_record):
    candidate = make_record("-10.00", "2024-01-01", "Cheque", reference_number="000123")
    existing = make_record("-12.00", "2024-01-09", "Cheque", reference_number="000123")

    conflict = classifier.classify(candidate, existing)

    assert conflict.type == ConflictType.EXACT_DUPLICATE
    assert conflict.reasons == frozenset({ConflictReason.SAME_REFERENCE_NUMBER})


def test_empty_identifiers_do_not_match(classifier, make_record):
    candidate = make_record("-10.00", "2024-01-01", "a", external_id="", reference_number="")
    existing = make_record("500.00", "2024-03-01", "b", external_id="", reference_number="")
    assert classifier.classify(candidate, existing) is None


def test_exact_takes_precedence_over_potential(classifier, make_record):
    candidate = make_record("-100.50", "2024-01-15", "Grocery Store Purchase")
    existing = make_record("-100.50", "2024-01-15", "Grocery Store Purchase")

    conflict = classifier.classify(candidate, existing)

    assert conflict.type == ConflictType.EXACT_DUPLICATE
    assert conflict.reasons == frozenset({ConflictReason.SAME_AMOUNT_AND_DATE})


def test_exact_takes_precedence_over_transfer_and_manual(classifier, make_record):
    candidate = make_record("-75.00", "2024-02-01", "Move", external_id="X1")
    existing = make_record(
        "75.00", "2024-02-01", "Move", external_id="X1", transfer_id=7, source="manual"
    )
    assert classifier.classify(candidate, existing).type == ConflictType.EXACT_DUPLICATE


def test_transfer_conflict(classifier, make_record):
    candidate = make_record("-75.00", "2024-02-01", "To savings")
    existing = make_record("75.00", "2024-02-02", "From checking", transfer_id=7)

    conflict = classifier.classify(candidate, existing)

    assert conflict.type == ConflictType.TRANSFER_CONFLICT
    assert conflict.confidence_score == 85
    assert conflict.match_score == 0.9
    assert conflict.reasons == frozenset({ConflictReason.TRANSFER_DESTINATION_EXISTS})


def test_transfer_detection_can_be_disabled(make_record):
    classifier = ConflictClassifier(ImportReviewSettings(enable_transfer_detection=False))
    candidate = make_record("-75.00", "2024-02-01", "To savings")
    existing = make_record("75.00", "2024-02-02", "From checking", transfer_id=7)
    assert classifier.classify(candidate, existing) is None


def test_transfer_requires_transfer_membership(classifier, make_record):
    candidate = make_record("-75.00", "2024-02-01", "To savings")
    existing = make_record("75.00", "2024-02-02", "From checking")
    assert classifier.classify(candidate, existing) is None


def test_transfer_dates_more_than_a_day_apart(classifier, make_record):
    candidate = make_record("-75.00", "2024-02-01", "To savings")
    existing = make_record("75.00", "2024-02-04", "From checking", transfer_id=7)
    assert classifier.classify(candidate, existing) is None


def test_manual_entry_conflict(classifier, make_record):
    candidate = make_record("-60.00", "2024-03-10", "ATM")
    existing = make_record("-60.00", "2024-03-12", "Cash withdrawal", source="manual")

    conflict = classifier.classify(candidate, existing)

    assert conflict.type == ConflictType.MANUAL_ENTRY_CONFLICT
    assert conflict.confidence_score == 75
    assert conflict.severity == ConflictSeverity.MEDIUM
    assert conflict.reasons == frozenset({ConflictReason.MANUAL_ENTRY_MATCH})
    assert 0.0 <= conflict.match_score < 0.5


def test_manual_entry_tolerance_follows_detection_level(make_record):
    candidate = make_record("-60.00", "2024-03-10", "ATM")
    existing = make_record("-60.00", "2024-03-12", "Cash withdrawal", source="manual")

    strict = ConflictClassifier(
        ImportReviewSettings(conflict_detection_level=ConflictDetectionLevel.STRICT)
    )
    conflict = strict.classify(candidate, existing)

    # Two days apart is outside the strict window, so it falls through
    assert conflict.type == ConflictType.POTENTIAL_DUPLICATE
    assert ConflictReason.SAME_AMOUNT_AND_DATE in conflict.reasons


def test_manual_rule_ignores_imported_records(classifier, make_record):
    candidate = make_record("-60.00", "2024-03-10", "ATM")
    existing = make_record("-60.00", "2024-03-12", "Cash withdrawal", source="csv_import")
    assert classifier.classify(candidate, existing).type == ConflictType.POTENTIAL_DUPLICATE


def test_unrelated_records_have_no_conflict(classifier, make_record):
    candidate = make_record("-12.00", "2024-01-01", "Bakery")
    existing = make_record("-480.00", "2024-01-20", "Insurance")
    assert classifier.classify(candidate, existing) is None


def test_potential_confidence_rounds_half_up(make_record):
    classifier = ConflictClassifier()
    # "abcd" vs "abcx": similarity 0.75 -> 52.5 -> 53
    candidate = make_record("-20.00", "2024-01-01", "abcd")
    existing = make_record("-20.30", "2024-01-01", "abcx")
    assert classifier.classify(candidate, existing).confidence_score == 53


def test_detect_conflicts_sorted_by_confidence(classifier, make_record):
    candidate = make_record("-50.00", "2024-01-14", "Gas Station", external_id="E1")
    potential = make_record("-50.25", "2024-01-14", "Gas Station ABC", source_id=1)
    exact = make_record("-1.00", "2023-01-01", "Other", external_id="E1", source_id=2)
    unrelated = make_record("900", "2024-01-14", "Salary", source_id=3)

    conflicts = classifier.detect_conflicts(candidate, [potential, unrelated, exact])

    assert [c.type for c in conflicts] == [
        ConflictType.EXACT_DUPLICATE,
        ConflictType.POTENTIAL_DUPLICATE,
    ]
    assert conflicts[0].conflicting_record is exact


def test_exclusion_suppresses_conflict(classifier, make_record):
    candidate = make_record("-50.00", "2024-01-14", "Gas Station", source_id=5)
    existing = make_record("-50.25", "2024-01-14", "Gas Station ABC", source_id=9)

    assert classifier.detect_conflicts(candidate, [existing])

    exclusion = DuplicateExclusion.of([5, 9])
    assert classifier.detect_conflicts(candidate, [existing], [exclusion]) == []


def test_exclusion_for_other_pair_does_not_suppress(classifier, make_record):
    candidate = make_record("-50.00", "2024-01-14", "Gas Station", source_id=5)
    existing = make_record("-50.25", "2024-01-14", "Gas Station ABC", source_id=9)

    exclusion = DuplicateExclusion.of([5, 11])
    assert len(classifier.detect_conflicts(candidate, [existing], [exclusion])) == 1


def test_exclusion_does_not_cover_records_sharing_one_id(classifier, make_record):
    candidate = make_record("-50.00", "2024-01-14", "Gas Station", source_id=5)
    existing = make_record("-50.25", "2024-01-14", "Gas Station ABC", source_id=5)

    exclusion = DuplicateExclusion.of([5, 9])
    assert len(classifier.detect_conflicts(candidate, [existing], [exclusion])) == 1


def test_description_threshold_controls_similar_description(make_record):
    candidate = make_record("-30.00", "2024-01-14", "Gas Station", external_id=None)
    existing = make_record("-30.00", "2024-01-14", "Gas Stn")

    lenient = ConflictClassifier(ImportReviewSettings(description_threshold=0.1))
    conflict = lenient.classify(candidate, existing)
    assert conflict.type == ConflictType.POTENTIAL_DUPLICATE
    assert ConflictReason.SIMILAR_DESCRIPTION in conflict.reasons

    strict = ConflictClassifier(ImportReviewSettings(description_threshold=0.99))
    conflict = strict.classify(candidate, existing)
    assert conflict.type == ConflictType.POTENTIAL_DUPLICATE
    assert conflict.reasons == frozenset({ConflictReason.SAME_AMOUNT_AND_DATE})


def test_rule_without_reason_is_a_programming_error(make_record):
    class BrokenRule(ConflictRule):
        conflict_type = ConflictType.POTENTIAL_DUPLICATE

        def evaluate(self, candidate, existing, options):
            return RuleMatch(
                confidence_score=10, match_score=0.1, reasons=frozenset(), message=""
            )

    classifier = ConflictClassifier(rules=[BrokenRule()])
    with pytest.raises(AssertionError):
        classifier.classify(make_record("1"), make_record("1"))


def _conflict(conflict_type, confidence):
    return ConflictInfo(
        type=conflict_type,
        severity=ConflictSeverity.from_confidence(confidence),
        confidence_score=confidence,
        match_score=confidence / 100,
        reasons=frozenset({ConflictReason.SIMILAR_DESCRIPTION}),
    )


def test_suggest_initial_decision(classifier, make_record):
    candidate = make_record("1")

    assert classifier.suggest_initial_decision(candidate, []) == ReviewDecision.IMPORT
    assert (
        classifier.suggest_initial_decision(
            candidate, [_conflict(ConflictType.EXACT_DUPLICATE, 95)]
        )
        == ReviewDecision.SKIP
    )
    assert (
        classifier.suggest_initial_decision(
            candidate, [_conflict(ConflictType.TRANSFER_CONFLICT, 85)]
        )
        == ReviewDecision.SKIP
    )
    assert (
        classifier.suggest_initial_decision(
            candidate, [_conflict(ConflictType.MANUAL_ENTRY_CONFLICT, 75)]
        )
        == ReviewDecision.PENDING
    )
    assert (
        classifier.suggest_initial_decision(
            candidate, [_conflict(ConflictType.POTENTIAL_DUPLICATE, 20)]
        )
        == ReviewDecision.PENDING
    )


def test_suggest_initial_decision_never_merges(classifier, make_record):
    for conflict_type in ConflictType:
        for confidence in (0, 40, 75, 80, 95):
            decision = classifier.suggest_initial_decision(
                make_record("1"), [_conflict(conflict_type, confidence)]
            )
            assert decision in (ReviewDecision.SKIP, ReviewDecision.PENDING)


@pytest.mark.parametrize(
    "conflict_type, confidence, expected",
    [
        (ConflictType.EXACT_DUPLICATE, 95, ReviewDecision.SKIP),
        (ConflictType.TRANSFER_CONFLICT, 85, ReviewDecision.SKIP),
        (ConflictType.TRANSFER_CONFLICT, 80, ReviewDecision.PENDING),
        (ConflictType.MANUAL_ENTRY_CONFLICT, 76, ReviewDecision.MERGE_WITH_EXISTING),
        (ConflictType.MANUAL_ENTRY_CONFLICT, 75, ReviewDecision.PENDING),
        (ConflictType.POTENTIAL_DUPLICATE, 71, ReviewDecision.SKIP),
        (ConflictType.POTENTIAL_DUPLICATE, 51, ReviewDecision.PENDING),
        (ConflictType.POTENTIAL_DUPLICATE, 39, ReviewDecision.IMPORT),
    ],
)
def test_suggest_resolution(conflict_type, confidence, expected):
    assert suggest_resolution(_conflict(conflict_type, confidence)) == expected


@pytest.mark.parametrize(
    "confidence, severity",
    [
        (95, ConflictSeverity.HIGH),
        (81, ConflictSeverity.HIGH),
        (80, ConflictSeverity.MEDIUM),
        (51, ConflictSeverity.MEDIUM),
        (50, ConflictSeverity.LOW),
        (0, ConflictSeverity.LOW),
    ],
)
def test_severity_depends_only_on_confidence(confidence, severity):
    assert ConflictSeverity.from_confidence(confidence) == severity
