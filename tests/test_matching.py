"""Tests for the transaction matcher."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from kitafees.domain.entities import (
    BankTransaction,
    Child,
    FeeExpectation,
    FeeType,
    KnownIBAN,
    KnownIBANStatus,
    Parent,
    WarningType,
)
from kitafees.domain.matching import (
    EXCLUDED_BANK_FEE,
    EXCLUDED_BLACKLISTED,
    EXCLUDED_COUNTERPARTY,
    EXCLUDED_OUTGOING,
    MATCHED_BY_AMOUNT,
    MATCHED_BY_COMBINED,
    MATCHED_BY_MEMBER_NUMBER,
    MATCHED_BY_NAME,
    MATCHED_BY_NONE,
    MATCHED_BY_PARENT_NAME,
    MATCHED_BY_TRUSTED_IBAN,
    TransactionMatcher,
    extract_member_numbers,
    in_billing_period,
    name_match_score,
    normalize_match_text,
)

NOW = datetime(2026, 3, 1, 12, 0)
IBAN = "DE89370400440532013000"


def make_child(child_id, member_number, first_name, last_name, household_id=None):
    return Child(
        id=child_id,
        member_number=member_number,
        first_name=first_name,
        last_name=last_name,
        birth_date=date(2024, 5, 14),
        entry_date=date(2025, 9, 1),
        exit_date=None,
        household_id=household_id,
        care_hours=45,
        legal_hours=None,
        legal_hours_until=None,
        is_active=True,
        created_at=NOW,
    )


def make_fee(fee_id, child_id, fee_type, month, amount, year=2026, reminder_for_id=None):
    return FeeExpectation(
        id=fee_id,
        child_id=child_id,
        fee_type=fee_type,
        year=year,
        month=month,
        amount=Decimal(amount),
        due_date=date(year, month or 3, 5),
        reminder_for_id=reminder_for_id,
        reconciliation_year=None,
        created_at=NOW,
    )


def make_txn(amount, payer_name=None, description=None, payer_iban=None, booking=date(2026, 3, 5), transaction_type="Gutschrift", txn_id=1):
    return BankTransaction(
        id=txn_id,
        booking_date=booking,
        value_date=booking,
        payer_name=payer_name,
        payer_iban=payer_iban,
        description=description,
        amount=Decimal(amount),
        currency="EUR",
        transaction_type=transaction_type,
        import_batch_id=None,
        is_hidden=False,
        hidden_at=None,
        hidden_by=None,
        imported_at=NOW,
    )


def known(status, child_id=None, iban=IBAN):
    return {
        iban: KnownIBAN(
            iban=iban,
            payer_name=None,
            status=status,
            child_id=child_id,
            reason=None,
            original_transaction_id=None,
            original_description=None,
            original_amount=None,
            created_at=NOW,
        )
    }


@pytest.fixture
def mia():
    return make_child(1, "12345", "Mia", "Schmidt", household_id=10)


@pytest.fixture
def leon():
    return make_child(2, "23456", "Leon", "Weber", household_id=20)


@pytest.fixture
def matcher(mia, leon):
    parents = {
        10: [Parent(1, 10, "Anna", "Becker", None, NOW)],
        20: [Parent(2, 20, "Thomas", "Weber", None, NOW)],
    }
    return TransactionMatcher([mia, leon], parents)


def test_normalize_match_text():
    """Test case folding, umlaut folding and letter/digit splitting."""
    assert normalize_match_text("  Jürgen MÜLLER  ") == "jurgen muller"
    assert normalize_match_text("Mueller") == "muller"
    assert normalize_match_text("Straße") == normalize_match_text("Strasse")
    assert normalize_match_text("Mitglied12345") == "mitglied 12345"
    assert normalize_match_text(None) == ""


def test_extract_member_numbers():
    """Test that only standalone 5-digit numbers count."""
    assert extract_member_numbers("Mitglied12345 und 123456, 23456") == ["12345", "23456"]
    assert extract_member_numbers("Essengeld") == []


@pytest.mark.parametrize(
    "text,score",
    [
        ("essen mia schmidt", 0.85),
        ("schmidt, mia", 0.85),
        ("miaschmidt", 0.85),
        ("mia geb. schmidt", 0.80),
        ("m. schmidt", 0.75),
        ("familie schmidt", 0.6),
        ("mia schmit", 0.7),
        ("essen fuer mia", 0.0),
        ("", 0.0),
    ],
)
def test_name_match_score(text, score):
    """Test the name score ladder."""
    assert name_match_score(text, "Mia", "Schmidt") == score


def test_first_name_only_needs_four_letters():
    """Test that short first names alone are not a signal."""
    assert name_match_score("beitrag lena", "Lena", "Vogel") == 0.4
    assert name_match_score("beitrag mia", "Mia", "Vogel") == 0.0


def test_in_billing_period():
    """Test monthly and annual billing periods."""
    food = make_fee(1, 1, FeeType.FOOD, 3, "45.40")
    membership = make_fee(2, 1, FeeType.MEMBERSHIP, None, "30.00")
    assert in_billing_period(food, date(2026, 3, 31))
    assert not in_billing_period(food, date(2026, 4, 1))
    assert in_billing_period(membership, date(2026, 11, 2))
    assert not in_billing_period(membership, date(2027, 1, 2))


def test_detect_fee_type(matcher):
    """Test classification by fixed amounts."""
    assert matcher.detect_fee_type(Decimal("45.40")) == FeeType.FOOD
    assert matcher.detect_fee_type(Decimal("30.00")) == FeeType.MEMBERSHIP
    assert matcher.detect_fee_type(Decimal("55.40")) == FeeType.FOOD
    assert matcher.detect_fee_type(Decimal("66.00")) == FeeType.CHILDCARE


def test_member_number_exact_amount(matcher):
    """Test the member-number tier with an exact amount in period."""
    fee = make_fee(100, 1, FeeType.FOOD, 3, "45.40")
    suggestion = matcher.suggest_one(make_txn("45.40", "Julia S.", "Essengeld Mitglied 12345"), [fee], {})

    assert suggestion.matched_by == MATCHED_BY_MEMBER_NUMBER
    assert suggestion.child_id == 1
    assert suggestion.expectation_id == 100
    assert suggestion.detected_type == FeeType.FOOD
    assert suggestion.amount_matches
    assert suggestion.in_billing_period
    assert suggestion.confidence == 0.95
    assert matcher.is_auto_confirmable(suggestion)


def test_trusted_iban_bound_to_child(matcher):
    """Test that a trusted IBAN bound to a child gives the highest tier."""
    fee = make_fee(100, 1, FeeType.FOOD, 3, "45.40")
    txn = make_txn("45.40", "J. S.", "Essen", payer_iban=IBAN)
    suggestion = matcher.suggest_one(txn, [fee], known(KnownIBANStatus.TRUSTED, child_id=1))

    assert suggestion.matched_by == MATCHED_BY_TRUSTED_IBAN
    assert suggestion.confidence == 0.99
    assert matcher.is_auto_confirmable(suggestion)


def test_trusted_iban_ignores_exclusion_patterns(matcher):
    """Test that trusted payers are never filtered by text."""
    txn = make_txn("45.40", "Versicherung Schmidt", payer_iban=IBAN)
    assert matcher.exclusion_reason(txn, known(KnownIBANStatus.TRUSTED)) is None


def test_trusted_iban_out_of_period_keeps_tier(matcher):
    """Test that a trusted IBAN is not capped for an earlier month."""
    fee = make_fee(100, 1, FeeType.FOOD, 2, "45.40")
    txn = make_txn("45.40", payer_iban=IBAN)
    suggestion = matcher.suggest_one(txn, [fee], known(KnownIBANStatus.TRUSTED, child_id=1))
    assert suggestion.confidence == 0.99
    assert not suggestion.in_billing_period


def test_out_of_period_is_capped(matcher):
    """Test that a member-number match for another month is capped."""
    fee = make_fee(100, 1, FeeType.FOOD, 2, "45.40")
    suggestion = matcher.suggest_one(make_txn("45.40", description="12345"), [fee], {})
    assert suggestion.expectation_id == 100
    assert suggestion.confidence == 0.90
    assert not matcher.is_auto_confirmable(suggestion)


def test_child_name_match(matcher):
    """Test a strong child-name match."""
    fee = make_fee(100, 1, FeeType.FOOD, 3, "45.40")
    suggestion = matcher.suggest_one(make_txn("45.40", "Julia Schmidt", "Essen Mia Schmidt"), [fee], {})
    assert suggestion.matched_by == MATCHED_BY_NAME
    assert suggestion.confidence == 0.90
    assert not matcher.is_auto_confirmable(suggestion)


def test_weak_name_match(matcher):
    """Test that a last-name-only match gets the weak tier."""
    fee = make_fee(100, 1, FeeType.FOOD, 3, "45.40")
    suggestion = matcher.suggest_one(make_txn("45.40", "J Schmidt", "Essen"), [fee], {})
    assert suggestion.matched_by == MATCHED_BY_NAME
    assert suggestion.confidence == 0.75


def test_parent_name_match(matcher):
    """Test attribution through a parent with a different last name."""
    fee = make_fee(100, 1, FeeType.FOOD, 3, "45.40")
    suggestion = matcher.suggest_one(make_txn("45.40", "Anna Becker", "Essen"), [fee], {})
    assert suggestion.matched_by == MATCHED_BY_PARENT_NAME
    assert suggestion.child_id == 1
    assert suggestion.confidence == 0.90


def test_sibling_name_tie_is_no_identification(mia):
    """Test that siblings with equal scores are not told apart by name."""
    sibling = make_child(3, "34567", "Ben", "Schmidt", household_id=10)
    matcher = TransactionMatcher([mia, sibling])
    txn = make_txn("45.40", "Familie Schmidt", "Essen")
    assert matcher.identify_child(txn, {}) is None


def test_amount_differs_in_period(matcher):
    """Test the differing-amount tier still proposes the period's fee."""
    fee = make_fee(100, 1, FeeType.CHILDCARE, 3, "66.00")
    suggestion = matcher.suggest_one(make_txn("60.00", description="Mitglied 12345"), [fee], {})
    assert suggestion.expectation_id == 100
    assert not suggestion.amount_matches
    assert suggestion.confidence == 0.80
    assert suggestion.candidate_ids == (100,)
    assert not matcher.is_auto_confirmable(suggestion)


def test_multiple_open_fees(matcher):
    """Test that two equal open fees yield a warning and no target."""
    fees = [make_fee(100, 1, FeeType.FOOD, 1, "45.40"), make_fee(101, 1, FeeType.FOOD, 2, "45.40")]
    suggestion = matcher.suggest_one(make_txn("45.40", description="12345"), fees, {})
    assert suggestion.warning_type == WarningType.MULTIPLE_OPEN_FEES
    assert suggestion.candidate_ids == (100, 101)
    assert not suggestion.has_target
    assert not matcher.is_auto_confirmable(suggestion)


def test_fee_with_reminder_combined(matcher):
    """Test that a fee plus its reminder is matched in one go."""
    fees = [
        make_fee(100, 1, FeeType.CHILDCARE, 1, "66.00"),
        make_fee(101, 1, FeeType.REMINDER, 1, "10.00", reminder_for_id=100),
    ]
    suggestion = matcher.suggest_one(make_txn("76.00", description="12345"), fees, {})
    assert suggestion.matched_by == MATCHED_BY_COMBINED
    assert suggestion.detected_type == FeeType.CHILDCARE
    assert suggestion.expectation_ids == (100, 101)
    assert suggestion.confidence == pytest.approx(0.97)
    assert matcher.is_auto_confirmable(suggestion)


def test_amount_only_single_candidate(matcher):
    """Test the amount-only tier for one unambiguous fee."""
    fee = make_fee(100, 2, FeeType.MEMBERSHIP, None, "30.00")
    suggestion = matcher.suggest_one(make_txn("30.00", "Unbekannt", "Beitrag"), [fee], {})
    assert suggestion.matched_by == MATCHED_BY_AMOUNT
    assert suggestion.child_id == 2
    assert suggestion.confidence == 0.50
    assert not matcher.is_auto_confirmable(suggestion)


def test_amount_only_ambiguous(matcher):
    """Test that several candidates by amount give no suggestion target."""
    fees = [make_fee(100, 1, FeeType.FOOD, 3, "45.40"), make_fee(101, 2, FeeType.FOOD, 3, "45.40")]
    suggestion = matcher.suggest_one(make_txn("45.40", "Unbekannt", "Essen"), fees, {})
    assert suggestion.matched_by == MATCHED_BY_NONE
    assert suggestion.confidence == 0.0
    assert not suggestion.has_target


@pytest.mark.parametrize(
    "txn,memory,reason",
    [
        (make_txn("-12.00", "Stadtwerke"), {}, EXCLUDED_OUTGOING),
        (make_txn("0"), {}, EXCLUDED_OUTGOING),
        (make_txn("45.40", payer_iban=IBAN), known(KnownIBANStatus.BLACKLISTED), EXCLUDED_BLACKLISTED),
        (make_txn("3.50", transaction_type="Abschluss"), {}, EXCLUDED_BANK_FEE),
        (make_txn("150.00", "AOK Nordost", "Erstattung"), {}, EXCLUDED_COUNTERPARTY),
        (make_txn("45.40", "Julia Schmidt", "Essengeld"), {}, None),
    ],
)
def test_exclusion_reason(matcher, txn, memory, reason):
    """Test the pre-matching filters."""
    assert matcher.exclusion_reason(txn, memory) == reason


def test_suggest_skips_excluded(matcher):
    """Test that excluded transactions get no suggestion."""
    txns = [make_txn("-5.00", txn_id=1), make_txn("45.40", description="12345", txn_id=2)]
    suggestions = matcher.suggest(txns, [make_fee(100, 1, FeeType.FOOD, 3, "45.40")], {})
    assert [s.transaction_id for s in suggestions] == [2]
