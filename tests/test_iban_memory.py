"""Tests for the known-IBAN memory."""

from datetime import date
from decimal import Decimal

import pytest

from kitafees.domain.entities import FeeType, KnownIBANStatus
from kitafees.domain.errors import NotFoundError, ValidationError
from kitafees.domain.reconciliation import MatchConfirmation

IBAN = "DE89370400440532013000"


def test_trust_normalizes_and_binds_child(iban_service, sample_child):
    """Test trusting a spaced, lower-case IBAN for a child."""
    entry = iban_service.trust("de89 3704 0044 0532 0130 00", child_id=sample_child.id, payer_name="Julia Schmidt")

    assert entry.iban == IBAN
    assert entry.status == KnownIBANStatus.TRUSTED
    assert entry.child_id == sample_child.id
    assert entry.payer_name == "Julia Schmidt"
    assert iban_service.memory() == {IBAN: entry}


def test_trust_unknown_child(iban_service):
    """Test that binding to an unknown child fails."""
    with pytest.raises(NotFoundError):
        iban_service.trust(IBAN, child_id=999)


def test_empty_iban_is_rejected(iban_service):
    """Test that blank IBANs are rejected."""
    with pytest.raises(ValidationError):
        iban_service.trust("   ")


def test_blacklist_and_remove(iban_service):
    """Test blacklisting an IBAN and taking it back."""
    iban_service.blacklist(IBAN, reason="Spenden")
    entry = iban_service.get(IBAN)
    assert entry.status == KnownIBANStatus.BLACKLISTED
    assert entry.reason == "Spenden"
    assert [e.iban for e in iban_service.list(KnownIBANStatus.BLACKLISTED)] == [IBAN]
    assert iban_service.list(KnownIBANStatus.TRUSTED) == []

    iban_service.remove_from_blacklist(IBAN)
    assert iban_service.get(IBAN) is None


def test_remove_from_blacklist_requires_blacklisted(iban_service):
    """Test that trusted IBANs can't be removed from the blacklist."""
    iban_service.trust(IBAN)
    with pytest.raises(ValidationError):
        iban_service.remove_from_blacklist(IBAN)
    with pytest.raises(NotFoundError):
        iban_service.remove_from_blacklist("DE00000000000000000000")


def test_link_and_unlink(iban_service, sample_child):
    """Test binding and releasing a child on a trusted IBAN."""
    iban_service.trust(IBAN)
    iban_service.link(IBAN, sample_child.id)
    assert iban_service.get(IBAN).child_id == sample_child.id

    iban_service.unlink(IBAN)
    entry = iban_service.get(IBAN)
    assert entry.child_id is None
    assert entry.status == KnownIBANStatus.TRUSTED


def test_trust_again_keeps_child_and_origin(iban_service, ledger, temp_db, sample_child, fee_service):
    """Test that re-trusting a learned IBAN keeps its child and origin."""
    food = fee_service.create(sample_child.id, FeeType.FOOD, 2026, month=3)
    txn_id = temp_db.create_bank_transaction(
        date(2026, 3, 5), date(2026, 3, 5), Decimal("45.40"), payer_name="Julia Schmidt", payer_iban=IBAN, description="Essengeld 12345"
    )
    ledger.confirm([MatchConfirmation(txn_id, food.id)])
    iban_service.link(IBAN, sample_child.id)

    entry = iban_service.trust(IBAN)

    assert entry.child_id == sample_child.id
    assert entry.original_transaction_id == txn_id
    assert entry.original_description == "Essengeld 12345"
    assert entry.original_amount == Decimal("45.40")
    assert entry.payer_name == "Julia Schmidt"


def test_blacklist_keeps_origin_without_transaction(iban_service, temp_db):
    """Test that blacklisting a learned IBAN keeps where it came from."""
    txn_id = temp_db.create_bank_transaction(
        date(2026, 3, 2), date(2026, 3, 2), Decimal("20.00"), payer_iban=IBAN, description="Spende"
    )
    iban_service.blacklist(IBAN, transaction_id=txn_id)

    entry = iban_service.blacklist(IBAN, reason="Spender")

    assert entry.reason == "Spender"
    assert entry.original_transaction_id == txn_id
    assert entry.original_amount == Decimal("20.00")


def test_link_blacklisted_fails(iban_service, sample_child):
    """Test that blacklisted IBANs can't be bound to a child."""
    iban_service.blacklist(IBAN)
    with pytest.raises(ValidationError):
        iban_service.link(IBAN, sample_child.id)


def test_remove(iban_service):
    """Test forgetting an IBAN."""
    iban_service.trust(IBAN)
    iban_service.remove(IBAN)
    assert iban_service.list() == []
    with pytest.raises(NotFoundError):
        iban_service.remove(IBAN)


def test_dismiss_transaction(iban_service, temp_db):
    """Test dismissing a payer deletes its unmatched transactions."""
    first = temp_db.create_bank_transaction(
        date(2026, 3, 2), date(2026, 3, 2), Decimal("20.00"), payer_name="Foerderverein", payer_iban=IBAN, description="Spende"
    )
    temp_db.create_bank_transaction(
        date(2026, 4, 2), date(2026, 4, 2), Decimal("20.00"), payer_name="Foerderverein", payer_iban=IBAN, description="Spende April"
    )
    other = temp_db.create_bank_transaction(
        date(2026, 3, 2), date(2026, 3, 2), Decimal("45.40"), payer_iban="DE11111111111111111111"
    )

    deleted = iban_service.dismiss_transaction(first, reason="keine Beitragszahlung")

    assert deleted == 2
    entry = iban_service.get(IBAN)
    assert entry.status == KnownIBANStatus.BLACKLISTED
    assert entry.original_transaction_id == first
    assert entry.original_amount == Decimal("20.00")
    assert entry.payer_name == "Foerderverein"
    assert [t.id for t in temp_db.list_bank_transactions()] == [other]


def test_dismiss_transaction_without_iban(iban_service, temp_db):
    """Test that a transaction without payer IBAN can't be dismissed."""
    txn_id = temp_db.create_bank_transaction(date(2026, 3, 2), date(2026, 3, 2), Decimal("5.00"))
    with pytest.raises(ValidationError):
        iban_service.dismiss_transaction(txn_id)
    with pytest.raises(NotFoundError):
        iban_service.dismiss_transaction(999)
