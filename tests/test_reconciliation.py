"""Tests for the reconciliation ledger."""

from datetime import date
from decimal import Decimal

import pytest

from kitafees.domain.entities import FeeType, KnownIBANStatus, MatchType, ResolutionType, WarningType
from kitafees.domain.errors import NotFoundError, ValidationError
from kitafees.domain.reconciliation import (
    Allocation,
    MatchConfirmation,
    ReconciliationLedger,
    find_bulk_combination,
    fixed_amount_multiple,
)
from kitafees.domain.policy import MatchingPolicy

IBAN = "DE89370400440532013000"


def add_txn(db, amount, booking=date(2026, 3, 5), value=None, description="Mitglied 12345", payer_iban=IBAN):
    return db.create_bank_transaction(
        booking_date=booking,
        value_date=value or booking,
        amount=Decimal(amount),
        payer_name="Julia Schmidt",
        payer_iban=payer_iban,
        description=description,
    )


@pytest.fixture
def food_fee(fee_service, sample_child):
    """Open food fee for March 2026."""
    return fee_service.create(sample_child.id, FeeType.FOOD, 2026, month=3)


def test_confirm_creates_match_and_trusts_iban(ledger, temp_db, fee_service, food_fee):
    """Test confirming a match pays the fee and remembers the payer."""
    txn_id = add_txn(temp_db, "45.40")
    result = ledger.confirm([MatchConfirmation(txn_id, food_fee.id)], user="kassenwart")

    assert len(result.matched) == 1
    assert result.failed == []
    assert fee_service.is_paid(food_fee)
    match = temp_db.get_payment_match(txn_id, food_fee.id)
    assert match.match_type == MatchType.MANUAL
    assert match.amount == Decimal("45.40")
    assert match.matched_by == "kassenwart"

    known = temp_db.get_known_iban(IBAN)
    assert known.status == KnownIBANStatus.TRUSTED
    assert known.child_id is None


def test_confirm_binds_iban_when_configured(temp_db, food_fee):
    """Test that the policy can bind a learned IBAN to the child."""
    ledger = ReconciliationLedger(temp_db, MatchingPolicy(bind_trusted_iban_to_child=True))
    ledger.confirm([MatchConfirmation(add_txn(temp_db, "45.40"), food_fee.id)])
    assert temp_db.get_known_iban(IBAN).child_id == food_fee.child_id


def test_confirm_is_idempotent(ledger, temp_db, food_fee):
    """Test that confirming the same pair twice creates one match."""
    txn_id = add_txn(temp_db, "45.40")
    ledger.confirm([MatchConfirmation(txn_id, food_fee.id)])
    again = ledger.confirm([MatchConfirmation(txn_id, food_fee.id)])

    assert again.matched == []
    assert again.already_matched == 1
    assert len(temp_db.list_payment_matches(expectation_id=food_fee.id)) == 1


def test_concurrent_confirmation_keeps_rest_of_batch(ledger, temp_db, fee_service, sample_child, food_fee, monkeypatch):
    """Test that a pair stored by another submission first is a no-op."""
    membership = fee_service.create(sample_child.id, FeeType.MEMBERSHIP, 2026)
    txn_id = add_txn(temp_db, "45.40")
    temp_db.create_payment_match(txn_id, food_fee.id, MatchType.MANUAL, Decimal("20.00"))
    other = add_txn(temp_db, "30.00", booking=date(2026, 3, 6), description="Mitgliedsbeitrag 12345")
    monkeypatch.setattr(temp_db, "get_payment_match", lambda *args: None)

    result = ledger.confirm([MatchConfirmation(other, membership.id), MatchConfirmation(txn_id, food_fee.id)])

    assert len(result.matched) == 1
    assert result.already_matched == 1
    assert result.failed == []
    assert [m.expectation_id for m in temp_db.list_payment_matches(transaction_id=other)] == [membership.id]
    (match,) = temp_db.list_payment_matches(expectation_id=food_fee.id)
    assert match.amount == Decimal("20.00")


def test_confirm_paid_fee_raises_duplicate_warning(ledger, temp_db, food_fee):
    """Test that a second payment for a paid fee is flagged, not matched."""
    ledger.confirm([MatchConfirmation(add_txn(temp_db, "45.40"), food_fee.id)])
    second = add_txn(temp_db, "45.40", booking=date(2026, 3, 6))
    result = ledger.confirm([MatchConfirmation(second, food_fee.id)])

    assert result.matched == []
    assert result.duplicates == [food_fee.id]
    warnings = ledger.list_warnings(transaction_id=second)
    assert [w.warning_type for w in warnings] == [WarningType.DUPLICATE_PAYMENT]
    assert warnings[0].matched_fee_id == food_fee.id


def test_confirm_reports_failures_and_continues(ledger, temp_db, food_fee):
    """Test that unknown IDs are reported without stopping the batch."""
    txn_id = add_txn(temp_db, "45.40")
    result = ledger.confirm(
        [MatchConfirmation(txn_id, 999), MatchConfirmation(888, food_fee.id), MatchConfirmation(txn_id, food_fee.id)]
    )
    assert len(result.failed) == 2
    assert len(result.matched) == 1


def test_late_payment_warning_and_reminder(ledger, temp_db, food_fee):
    """Test that a payment after the 15th is flagged and can be charged."""
    txn_id = add_txn(temp_db, "45.40", booking=date(2026, 3, 20))
    result = ledger.confirm([MatchConfirmation(txn_id, food_fee.id)])

    assert len(result.warnings) == 1
    warning = temp_db.get_warning(result.warnings[0])
    assert warning.warning_type == WarningType.LATE_PAYMENT
    assert warning.matched_fee_id == food_fee.id

    reminder = ledger.resolve_late_payment(warning.id, user="kassenwart", as_of=date(2026, 3, 21))
    assert reminder.fee_type == FeeType.REMINDER
    assert reminder.reminder_for_id == food_fee.id
    assert reminder.amount == Decimal("10.00")

    resolved = temp_db.get_warning(warning.id)
    assert resolved.is_resolved
    assert resolved.resolution_type == ResolutionType.MATCHED
    with pytest.raises(ValidationError):
        ledger.resolve_late_payment(warning.id)


def test_payment_on_the_15th_is_not_late(ledger, temp_db, food_fee):
    """Test the late-payment boundary."""
    txn_id = add_txn(temp_db, "45.40", booking=date(2026, 3, 15))
    result = ledger.confirm([MatchConfirmation(txn_id, food_fee.id)])
    assert result.warnings == []


def test_membership_is_never_late(ledger, temp_db, fee_service, sample_child):
    """Test that annual fees get no late-payment warning."""
    fee = fee_service.create(sample_child.id, FeeType.MEMBERSHIP, 2026)
    result = ledger.confirm([MatchConfirmation(add_txn(temp_db, "30.00", booking=date(2026, 5, 20)), fee.id)])
    assert result.warnings == []


def test_resolve_late_payment_requires_late_warning(ledger, temp_db, food_fee):
    """Test that other warnings can't be charged as late payments."""
    warning_id = temp_db.create_warning(add_txn(temp_db, "40.00"), WarningType.PARTIAL_PAYMENT, "short")
    with pytest.raises(ValidationError):
        ledger.resolve_late_payment(warning_id)
    with pytest.raises(NotFoundError):
        ledger.resolve_late_payment(999)


def test_create_manual_match(ledger, temp_db, food_fee):
    """Test linking a transaction by hand."""
    match = ledger.create_manual_match(add_txn(temp_db, "45.40"), food_fee.id, user="kassenwart")
    assert match is not None
    assert match.match_type == MatchType.MANUAL


def test_create_manual_match_unknown_fee(ledger, temp_db):
    """Test that an unknown fee raises NotFoundError."""
    with pytest.raises(NotFoundError):
        ledger.create_manual_match(add_txn(temp_db, "45.40"), 999)


def test_allocate_split_payment(ledger, temp_db, fee_service, sample_child, food_fee):
    """Test splitting one payment over two fees with a remainder."""
    childcare = fee_service.create(sample_child.id, FeeType.CHILDCARE, 2026, month=3)
    txn_id = add_txn(temp_db, "120.00")

    match_ids = ledger.allocate(
        txn_id,
        [Allocation(food_fee.id, Decimal("45.40")), Allocation(childcare.id, Decimal("66.00"))],
    )

    assert len(match_ids) == 2
    assert fee_service.is_paid(food_fee)
    assert fee_service.is_paid(childcare)
    warnings = ledger.list_warnings(transaction_id=txn_id)
    assert [w.warning_type for w in warnings] == [WarningType.OVERPAYMENT]
    assert warnings[0].expected_amount == Decimal("111.40")


def test_allocate_partial_keeps_fee_open(ledger, temp_db, fee_service, food_fee):
    """Test that a partial allocation leaves the rest owed."""
    ledger.allocate(add_txn(temp_db, "20.00"), [Allocation(food_fee.id, Decimal("20.00"))])
    assert not fee_service.is_paid(food_fee)
    ledger.allocate(add_txn(temp_db, "25.40", booking=date(2026, 3, 6)), [Allocation(food_fee.id, Decimal("25.40"))])
    assert fee_service.is_paid(food_fee)


def test_allocate_validation(ledger, temp_db, fee_service, other_child, food_fee):
    """Test the allocation checks."""
    txn_id = add_txn(temp_db, "50.00")
    other_fee = fee_service.create(other_child.id, FeeType.FOOD, 2026, month=3)

    with pytest.raises(ValidationError):
        ledger.allocate(txn_id, [])
    with pytest.raises(ValidationError):
        ledger.allocate(txn_id, [Allocation(food_fee.id, Decimal("50.00"))])
    with pytest.raises(ValidationError):
        ledger.allocate(txn_id, [Allocation(food_fee.id, Decimal("0"))])
    with pytest.raises(ValidationError):
        ledger.allocate(
            txn_id,
            [Allocation(food_fee.id, Decimal("10.00")), Allocation(other_fee.id, Decimal("10.00"))],
        )
    with pytest.raises(ValidationError):
        ledger.allocate(add_txn(temp_db, "10.00"), [Allocation(food_fee.id, Decimal("20.00"))])
    assert temp_db.list_payment_matches(transaction_id=txn_id) == []


def test_unmatch_reopens_fee(ledger, temp_db, fee_service, food_fee):
    """Test that unmatching removes the matches and keeps the transaction."""
    txn_id = add_txn(temp_db, "45.40")
    ledger.confirm([MatchConfirmation(txn_id, food_fee.id)])

    result = ledger.unmatch(txn_id)

    assert result.removed_matches == 1
    assert not result.transaction_deleted
    assert not fee_service.is_paid(food_fee)
    assert temp_db.get_bank_transaction(txn_id) is not None


def test_unmatch_and_delete(ledger, temp_db, food_fee):
    """Test deleting the transaction together with its matches."""
    txn_id = add_txn(temp_db, "45.40")
    ledger.confirm([MatchConfirmation(txn_id, food_fee.id)])
    ledger.unmatch(txn_id, delete_transaction=True)
    assert temp_db.get_bank_transaction(txn_id) is None
    with pytest.raises(NotFoundError):
        ledger.unmatch(txn_id)


def anomaly_types(ledger, import_service, txn_id):
    txn = import_service.db.get_bank_transaction(txn_id)
    return [a.warning_type for a in ledger.detect_anomalies(txn, import_service.suggestion_for(txn_id))]


def test_partial_payment(ledger, import_service, temp_db, fee_service, sample_child):
    """Test that paying less than the period's fee is flagged."""
    fee_service.create(sample_child.id, FeeType.CHILDCARE, 2026, month=3)
    assert anomaly_types(ledger, import_service, add_txn(temp_db, "50.00")) == [WarningType.PARTIAL_PAYMENT]


def test_overpayment(ledger, import_service, temp_db, fee_service, sample_child):
    """Test that paying more than the period's fee is flagged."""
    fee_service.create(sample_child.id, FeeType.CHILDCARE, 2026, month=3)
    assert anomaly_types(ledger, import_service, add_txn(temp_db, "80.00")) == [WarningType.OVERPAYMENT]


def test_possible_bulk(ledger, import_service, temp_db, fee_service, sample_child):
    """Test that one payment for two months is recognized."""
    fee_service.create(sample_child.id, FeeType.FOOD, 2026, month=1)
    fee_service.create(sample_child.id, FeeType.FOOD, 2026, month=2)
    txn = temp_db.get_bank_transaction(add_txn(temp_db, "90.80"))
    anomalies = ledger.detect_anomalies(txn, import_service.suggestion_for(txn.id))
    assert [a.warning_type for a in anomalies] == [WarningType.POSSIBLE_BULK]
    assert anomalies[0].expected_amount == Decimal("90.80")


def test_no_matching_fee(ledger, import_service, temp_db, sample_child):
    """Test an identified child without open fees."""
    assert anomaly_types(ledger, import_service, add_txn(temp_db, "45.40")) == [WarningType.NO_MATCHING_FEE]


def test_duplicate_in_period(ledger, import_service, temp_db, food_fee):
    """Test that a second payment of a paid month's amount is a duplicate."""
    ledger.confirm([MatchConfirmation(add_txn(temp_db, "45.40"), food_fee.id)])
    second = add_txn(temp_db, "45.40", booking=date(2026, 3, 9))
    assert anomaly_types(ledger, import_service, second) == [WarningType.DUPLICATE_PAYMENT]


def test_exact_match_has_no_anomaly(ledger, import_service, temp_db, food_fee):
    """Test that a clean payment raises nothing."""
    assert anomaly_types(ledger, import_service, add_txn(temp_db, "45.40")) == []


def test_raise_warnings_deduplicates(ledger, import_service, temp_db, fee_service, sample_child):
    """Test that an open warning of the same type is not raised twice."""
    fee_service.create(sample_child.id, FeeType.CHILDCARE, 2026, month=3)
    txn = temp_db.get_bank_transaction(add_txn(temp_db, "50.00"))
    suggestion = import_service.suggestion_for(txn.id)

    assert len(ledger.raise_warnings(txn, suggestion)) == 1
    assert ledger.raise_warnings(txn, suggestion) == []


def test_match_resolves_open_warnings(ledger, import_service, temp_db, fee_service, sample_child):
    """Test that confirming a match closes the transaction's warnings."""
    childcare = fee_service.create(sample_child.id, FeeType.CHILDCARE, 2026, month=3)
    txn = temp_db.get_bank_transaction(add_txn(temp_db, "50.00"))
    (warning_id,) = ledger.raise_warnings(txn, import_service.suggestion_for(txn.id))

    ledger.allocate(txn.id, [Allocation(childcare.id, Decimal("50.00"))])

    warning = temp_db.get_warning(warning_id)
    assert warning.resolution_type == ResolutionType.MATCHED
    assert ledger.list_warnings(transaction_id=txn.id) == []


def test_dismiss_warning_is_idempotent(ledger, temp_db, food_fee):
    """Test dismissing a warning twice."""
    warning_id = temp_db.create_warning(add_txn(temp_db, "40.00"), WarningType.PARTIAL_PAYMENT, "short")
    ledger.dismiss_warning(warning_id, user="kassenwart", note="Rest kommt bar")
    ledger.dismiss_warning(warning_id)

    warning = temp_db.get_warning(warning_id)
    assert warning.resolution_type == ResolutionType.DISMISSED
    assert warning.resolved_by == "kassenwart"
    assert warning.resolution_note == "Rest kommt bar"
    with pytest.raises(NotFoundError):
        ledger.dismiss_warning(999)


def test_find_bulk_combination(fee_service, sample_child):
    """Test the subset-sum search over open fees."""
    fees = [
        fee_service.create(sample_child.id, FeeType.FOOD, 2026, month=1),
        fee_service.create(sample_child.id, FeeType.CHILDCARE, 2026, month=1),
        fee_service.create(sample_child.id, FeeType.MEMBERSHIP, 2026),
    ]
    group = find_bulk_combination(Decimal("141.40"), fees)
    assert sorted(f.fee_type for f in group) == [FeeType.CHILDCARE, FeeType.FOOD, FeeType.MEMBERSHIP]
    assert find_bulk_combination(Decimal("45.40"), fees) is None
    assert find_bulk_combination(Decimal("141.40"), fees, max_fees=2) is None


def test_fixed_amount_multiple():
    """Test recognizing multiples of the fixed fees."""
    policy = MatchingPolicy()
    assert fixed_amount_multiple(Decimal("136.20"), policy) == (3, Decimal("45.40"))
    assert fixed_amount_multiple(Decimal("45.40"), policy) is None
    assert fixed_amount_multiple(Decimal("50.00"), policy) is None
