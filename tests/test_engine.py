from datetime import date, datetime
from decimal import Decimal
import threading

import pytest

from conftest import build_record
from ledger_recon.config import ReconConfig, ReconciliationSettings
from ledger_recon.matching.engine import ReconciliationMatcher, run_reconciliation_match
from ledger_recon.models.reconciliation import (
    ItemType,
    MatchMethod,
    ReconciliationItem,
    ReconciliationRun,
    ReconciliationStatus,
)
from ledger_recon.utils.exceptions import (
    InvalidArgumentError,
    InvalidStateError,
    MatchingCancelled,
    UnbalancedReconciliationError,
)


@pytest.fixture
def ledger():
    return [
        build_record("-100.50", "2024-01-15", "Grocery Store Purchase", source_id=1, account_id=10),
        build_record("-42.00", "2024-01-16", "Coffee Shop", source_id=2, account_id=10),
        build_record("2500.00", "2024-01-17", "Salary", source_id=3, account_id=10),
        build_record(
            "-15.00", "2024-01-01", "Old Reconciled Fee", source_id=4, account_id=10,
            is_reconciled=True,
        ),
    ]


@pytest.fixture
def bank():
    return [
        build_record("-100.50", "2024-01-15", "Grocery Store Purchase", source_id="B1"),
        build_record("-42.00", "2024-01-17", "COFFEE SHOP #12", source_id="B2"),
        build_record("-999.99", "2024-01-20", "Unknown Wire", source_id="B3"),
    ]


@pytest.fixture
def matcher():
    return ReconciliationMatcher()


def make_run(**kwargs):
    values = dict(
        reconciliation_id=1,
        account_id=10,
        user_id="alice",
        statement_end_balance=Decimal("1000.00"),
        calculated_balance=Decimal("1000.00"),
    )
    values.update(kwargs)
    return ReconciliationRun(**values)


def test_perfect_matches_are_all_exact_regardless_of_order(matcher):
    ledger = [
        build_record(f"-{10 * (i + 1)}.00", f"2024-01-0{i + 1}", f"Item {i}", source_id=i)
        for i in range(5)
    ]
    bank = [
        build_record(r.amount, r.date, r.description, source_id=f"B{r.source_id}")
        for r in reversed(ledger)
    ]

    result = matcher.match(ledger, bank)

    assert len(result.matched) == 5
    assert result.exact_count == 5
    assert not result.unmatched_bank
    assert not result.unmatched_app
    assert all(item.match_confidence == 1.0 for item in result.matched)
    for item in result.matched:
        assert item.bank_record.source_id == f"B{item.transaction_id}"


def test_match_classifies_exact_fuzzy_and_unmatched(matcher, ledger, bank):
    result = matcher.match(ledger, bank)

    by_txn = {item.transaction_id: item for item in result.matched}
    assert set(by_txn) == {1, 2}

    grocery = by_txn[1]
    assert grocery.match_method == MatchMethod.EXACT
    assert grocery.match_confidence == 1.0
    assert grocery.match_reason == (
        "Matched on: amount, date, description (confidence: 100%)"
    )
    assert grocery.bank_record.source_id == "B1"

    coffee = by_txn[2]
    assert coffee.match_method == MatchMethod.FUZZY
    assert coffee.match_confidence == pytest.approx(0.82)
    assert coffee.match_analysis.date_difference_in_days == 1

    assert [i.bank_record.source_id for i in result.unmatched_bank] == ["B3"]
    assert [i.transaction_id for i in result.unmatched_app] == [3]
    assert result.total_bank_records == 3
    assert result.total_ledger_records == 3


def test_reconciled_transactions_need_rematch(matcher, ledger, bank):
    result = matcher.match(ledger, bank, rematch=True)

    assert result.total_ledger_records == 4
    assert {i.transaction_id for i in result.unmatched_app} == {3, 4}


def test_min_confidence_drops_weak_pairs(ledger, bank):
    config = ReconConfig(reconciliation=ReconciliationSettings(min_confidence=0.9))
    result = ReconciliationMatcher(config).match(ledger, bank)

    assert [i.transaction_id for i in result.matched] == [1]
    assert {i.transaction_id for i in result.unmatched_app} == {2, 3}


def test_exact_threshold_controls_method(ledger, bank):
    config = ReconConfig(reconciliation=ReconciliationSettings(exact_threshold=0.8))
    result = ReconciliationMatcher(config).match(ledger, bank)

    assert result.exact_count == 2
    assert result.fuzzy_count == 0


def test_period_filters_both_sides(matcher, ledger, bank):
    result = matcher.match(
        ledger, bank, period_start=date(2024, 1, 16), period_end=date(2024, 1, 31)
    )

    assert [i.transaction_id for i in result.matched] == [2]
    assert result.total_bank_records == 2
    assert result.total_ledger_records == 2


def test_one_bank_line_claims_one_ledger_record(matcher):
    ledger = [
        build_record("-20.00", "2024-01-10", "Taxi", source_id=1),
        build_record("-20.00", "2024-01-10", "Taxi", source_id=2),
    ]
    bank = [build_record("-20.00", "2024-01-10", "Taxi", source_id="B1")]

    result = matcher.match(ledger, bank)

    assert [i.transaction_id for i in result.matched] == [1]
    assert [i.transaction_id for i in result.unmatched_app] == [2]


def test_empty_inputs(matcher):
    result = matcher.match([], [])
    assert result.all_items() == []
    assert result.match_percentage == 0.0


def test_ledger_record_without_id_is_rejected(matcher):
    with pytest.raises(InvalidArgumentError):
        matcher.match([build_record("-1.00")], [])


def test_cancelled_match_raises(matcher, ledger, bank):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(MatchingCancelled):
        matcher.match(ledger, bank, cancel_event=cancel)


def test_run_reconciliation_match_uses_options(ledger, bank):
    result = run_reconciliation_match(
        ledger, bank, ReconciliationSettings(min_confidence=0.9)
    )
    assert len(result.matched) == 1


def test_populate_replaces_items(matcher, ledger, bank):
    run = make_run()

    matcher.populate(run, ledger, bank)
    first_ids = set(run.items)
    matcher.populate(run, ledger, bank)

    assert len(run.items) == 4
    assert first_ids.isdisjoint(run.items)
    assert all(item.reconciliation_id == 1 for item in run.items.values())


def test_populate_uses_statement_period(matcher, ledger, bank):
    run = make_run(statement_start_date=date(2024, 1, 16))
    result = matcher.populate(run, ledger, bank)
    assert result.total_bank_records == 2


def test_populate_rejects_completed_run(matcher, ledger, bank):
    run = make_run(status=ReconciliationStatus.COMPLETED)
    with pytest.raises(InvalidStateError):
        matcher.populate(run, ledger, bank)


def test_manual_match_consumes_unmatched_items(matcher, ledger, bank):
    run = make_run()
    matcher.populate(run, ledger, bank)
    lookup = {r.source_id: r for r in ledger}

    item = matcher.manual_match(
        run, "alice", transaction_id=3, bank_record=bank[2], ledger_lookup=lookup
    )

    assert item.item_type == ItemType.MATCHED
    assert item.match_method == MatchMethod.MANUAL
    assert item.match_reason.startswith("Manual match: ")
    assert 0.0 <= item.match_confidence <= 1.0
    assert item.id in run.items
    assert run.items_of_type(ItemType.UNMATCHED_APP) == []
    assert run.items_of_type(ItemType.UNMATCHED_BANK) == []
    assert len(run.items_of_type(ItemType.MATCHED)) == 3


def test_manual_match_single_sided(matcher, bank):
    run = make_run()

    item = matcher.manual_match(run, "alice", bank_record=bank[0])

    assert item.item_type == ItemType.UNMATCHED_BANK
    assert item.match_method == MatchMethod.MANUAL
    assert item.match_confidence is None


@pytest.mark.parametrize(
    "transaction_id, bank_index",
    [
        (1, 2),  # ledger 1 already matched to B1
        (3, 0),  # B1 already matched to ledger 1
    ],
)
def test_manual_match_rejects_already_matched_side(
    matcher, ledger, bank, transaction_id, bank_index
):
    run = make_run()
    matcher.populate(run, ledger, bank)
    lookup = {r.source_id: r for r in ledger}
    items_before = dict(run.items)

    with pytest.raises(InvalidStateError, match="already matched"):
        matcher.manual_match(
            run,
            "alice",
            transaction_id=transaction_id,
            bank_record=bank[bank_index],
            ledger_lookup=lookup,
        )

    assert run.items == items_before


@pytest.mark.parametrize(
    "kwargs",
    [
        {"user_id": "mallory", "transaction_id": 1},
        {"user_id": "alice"},
        {"user_id": "alice", "transaction_id": 99},
        {"user_id": "alice", "transaction_id": 1, "account_id": 11},
    ],
)
def test_manual_match_invalid_arguments(matcher, ledger, kwargs):
    run = make_run()
    lookup = {r.source_id: r for r in ledger}

    with pytest.raises(InvalidArgumentError):
        matcher.manual_match(run, ledger_lookup=lookup, **kwargs)


def test_manual_match_rejects_transaction_from_other_account(matcher):
    run = make_run()
    foreign = build_record("-5.00", source_id=50, account_id=99)

    with pytest.raises(InvalidArgumentError):
        matcher.manual_match(run, "alice", transaction_id=50, ledger_lookup={50: foreign})


def test_manual_match_rejects_completed_run(matcher, bank):
    run = make_run(status=ReconciliationStatus.COMPLETED)
    with pytest.raises(InvalidStateError):
        matcher.manual_match(run, "alice", bank_record=bank[0])


def test_unlink_splits_matched_item(matcher, ledger, bank):
    run = make_run()
    matcher.populate(run, ledger, bank)
    grocery = next(
        i for i in run.items_of_type(ItemType.MATCHED) if i.transaction_id == 1
    )

    created = matcher.unlink(run, grocery.id, "alice")

    assert [i.item_type for i in created] == [ItemType.UNMATCHED_APP, ItemType.UNMATCHED_BANK]
    assert created[0].transaction_id == 1
    assert created[1].bank_reference_data == grocery.bank_reference_data
    assert grocery.id not in run.items


def test_unlink_requires_matched_item(matcher, ledger, bank):
    run = make_run()
    matcher.populate(run, ledger, bank)
    unmatched = run.items_of_type(ItemType.UNMATCHED_BANK)[0]

    with pytest.raises(InvalidStateError):
        matcher.unlink(run, unmatched.id, "alice")
    with pytest.raises(InvalidStateError):
        matcher.unlink(run, 999, "alice")


def test_approve_is_idempotent(matcher, ledger, bank):
    run = make_run()
    matcher.populate(run, ledger, bank)
    item = run.items_of_type(ItemType.MATCHED)[0]

    matcher.approve(run, item.id, "alice")
    approved_at = item.approved_at
    matcher.approve(run, item.id, "alice")

    assert item.is_approved
    assert item.approved_at == approved_at


def test_approve_rejects_unmatched_item(matcher, ledger, bank):
    run = make_run()
    matcher.populate(run, ledger, bank)
    unmatched = run.items_of_type(ItemType.UNMATCHED_APP)[0]

    with pytest.raises(InvalidStateError):
        matcher.approve(run, unmatched.id, "alice")


def test_bulk_approve_by_threshold(matcher, ledger, bank):
    run = make_run()
    matcher.populate(run, ledger, bank)

    result = matcher.bulk_approve(run, "alice")

    assert result.approved_count == 1
    assert result.skipped_count == 1
    approved = run.get_item(result.approved_item_ids[0])
    assert approved.transaction_id == 1


def test_bulk_approve_by_ids(matcher, ledger, bank):
    run = make_run()
    matcher.populate(run, ledger, bank)
    ids = [i.id for i in run.items_of_type(ItemType.MATCHED)]

    result = matcher.bulk_approve(run, "alice", item_ids=ids)

    assert result.approved_count == 2
    assert matcher.bulk_approve(run, "alice", item_ids=ids).approved_count == 0


def test_check_balance(matcher):
    assert matcher.check_balance(
        make_run(calculated_balance=Decimal("999.995"))
    ).is_balanced

    check = matcher.check_balance(make_run(calculated_balance=Decimal("990.00")))
    assert not check.is_balanced
    assert check.balance_difference == Decimal("10.00")


def test_check_balance_uses_configured_tolerance(matcher):
    run = make_run(calculated_balance=Decimal("999.70"))
    lenient = ReconciliationMatcher(
        ReconConfig(reconciliation=ReconciliationSettings(balance_tolerance=0.5))
    )

    assert lenient.check_balance(run).is_balanced
    assert not matcher.check_balance(run).is_balanced


def test_finalize_balanced_run(matcher):
    run = make_run()
    for txn in (1, 2):
        run.add_item(
            ReconciliationItem(
                reconciliation_id=None,
                item_type=ItemType.MATCHED,
                transaction_id=txn,
                bank_reference_data="{}",
                match_confidence=1.0,
                match_method=MatchMethod.EXACT,
            )
        )

    result = matcher.finalize(run, "alice")

    assert run.status == ReconciliationStatus.COMPLETED
    assert isinstance(run.completed_at, datetime)
    assert result.transaction_ids_to_reconcile == [1, 2]
    assert not result.forced

    with pytest.raises(InvalidStateError):
        matcher.finalize(run, "alice")


def test_finalize_unbalanced_requires_force(matcher):
    run = make_run(calculated_balance=Decimal("900.00"))

    with pytest.raises(UnbalancedReconciliationError) as excinfo:
        matcher.finalize(run, "alice")
    assert excinfo.value.balance_difference == Decimal("100.00")
    assert run.status == ReconciliationStatus.IN_PROGRESS

    result = matcher.finalize(run, "alice", force=True)
    assert result.forced
    assert run.is_completed


def test_finalize_rejects_too_many_unmatched(matcher, ledger, bank):
    run = make_run()
    matcher.populate(run, ledger, bank)

    with pytest.raises(InvalidStateError):
        matcher.finalize(run, "alice")

    result = matcher.finalize(run, "alice", force=True)
    assert set(result.transaction_ids_to_reconcile) == {1, 2}
    assert result.statistics.unmatched_items == 2


def test_operations_require_run_owner(matcher):
    run = make_run()
    with pytest.raises(InvalidArgumentError):
        matcher.finalize(run, "mallory")
