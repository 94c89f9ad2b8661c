"""Mapper functions to convert SQLAlchemy models into domain entities.

Enum-typed fields are stored as plain strings so the schema stays readable
from other tools; the conversion to enums happens here.
"""

from decimal import Decimal
from typing import Optional

from kitafees.domain import entities as domain
from kitafees.database.models import (
    Household as ORMHousehold,
    Parent as ORMParent,
    Child as ORMChild,
    FeeExpectation as ORMFeeExpectation,
    BankTransaction as ORMBankTransaction,
    PaymentMatch as ORMPaymentMatch,
    KnownIBAN as ORMKnownIBAN,
    TransactionWarning as ORMTransactionWarning,
    ImportBatch as ORMImportBatch,
    EmailLog as ORMEmailLog,
)


def _money(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))


def household_to_domain(orm_household: ORMHousehold) -> domain.Household:
    """Convert SQLAlchemy Household model to domain Household entity."""
    return domain.Household(
        id=orm_household.id,
        name=orm_household.name,
        annual_net_income=_money(orm_household.annual_net_income),
        income_status=domain.IncomeStatus(orm_household.income_status or ""),
        sibling_count_override=orm_household.sibling_count_override,
        income_calculation=orm_household.income_calculation,
        created_at=orm_household.created_at,
    )


def parent_to_domain(orm_parent: ORMParent) -> domain.Parent:
    """Convert SQLAlchemy Parent model to domain Parent entity."""
    return domain.Parent(
        id=orm_parent.id,
        household_id=orm_parent.household_id,
        first_name=orm_parent.first_name,
        last_name=orm_parent.last_name,
        email=orm_parent.email,
        created_at=orm_parent.created_at,
    )


def child_to_domain(orm_child: ORMChild) -> domain.Child:
    """Convert SQLAlchemy Child model to domain Child entity."""
    return domain.Child(
        id=orm_child.id,
        member_number=orm_child.member_number,
        first_name=orm_child.first_name,
        last_name=orm_child.last_name,
        birth_date=orm_child.birth_date,
        entry_date=orm_child.entry_date,
        exit_date=orm_child.exit_date,
        household_id=orm_child.household_id,
        care_hours=orm_child.care_hours,
        legal_hours=orm_child.legal_hours,
        legal_hours_until=orm_child.legal_hours_until,
        is_active=orm_child.is_active,
        created_at=orm_child.created_at,
    )


def fee_expectation_to_domain(orm_fee: ORMFeeExpectation) -> domain.FeeExpectation:
    """Convert SQLAlchemy FeeExpectation model to domain FeeExpectation entity."""
    return domain.FeeExpectation(
        id=orm_fee.id,
        child_id=orm_fee.child_id,
        fee_type=domain.FeeType(orm_fee.fee_type),
        year=orm_fee.year,
        month=orm_fee.month,
        amount=_money(orm_fee.amount),
        due_date=orm_fee.due_date,
        reminder_for_id=orm_fee.reminder_for_id,
        reconciliation_year=orm_fee.reconciliation_year,
        created_at=orm_fee.created_at,
    )


def bank_transaction_to_domain(orm_transaction: ORMBankTransaction) -> domain.BankTransaction:
    """Convert SQLAlchemy BankTransaction model to domain BankTransaction entity."""
    return domain.BankTransaction(
        id=orm_transaction.id,
        booking_date=orm_transaction.booking_date,
        value_date=orm_transaction.value_date,
        payer_name=orm_transaction.payer_name,
        payer_iban=orm_transaction.payer_iban,
        description=orm_transaction.description,
        amount=_money(orm_transaction.amount),
        currency=orm_transaction.currency,
        transaction_type=orm_transaction.transaction_type,
        import_batch_id=orm_transaction.import_batch_id,
        is_hidden=orm_transaction.is_hidden,
        hidden_at=orm_transaction.hidden_at,
        hidden_by=orm_transaction.hidden_by,
        imported_at=orm_transaction.imported_at,
    )


def payment_match_to_domain(orm_match: ORMPaymentMatch) -> domain.PaymentMatch:
    """Convert SQLAlchemy PaymentMatch model to domain PaymentMatch entity."""
    return domain.PaymentMatch(
        id=orm_match.id,
        transaction_id=orm_match.transaction_id,
        expectation_id=orm_match.expectation_id,
        match_type=domain.MatchType(orm_match.match_type),
        confidence=orm_match.confidence,
        amount=_money(orm_match.amount),
        matched_by=orm_match.matched_by,
        matched_at=orm_match.matched_at,
    )


def known_iban_to_domain(orm_iban: ORMKnownIBAN) -> domain.KnownIBAN:
    """Convert SQLAlchemy KnownIBAN model to domain KnownIBAN entity."""
    return domain.KnownIBAN(
        iban=orm_iban.iban,
        payer_name=orm_iban.payer_name,
        status=domain.KnownIBANStatus(orm_iban.status),
        child_id=orm_iban.child_id,
        reason=orm_iban.reason,
        original_transaction_id=orm_iban.original_transaction_id,
        original_description=orm_iban.original_description,
        original_amount=_money(orm_iban.original_amount),
        created_at=orm_iban.created_at,
    )


def warning_to_domain(orm_warning: ORMTransactionWarning) -> domain.TransactionWarning:
    """Convert SQLAlchemy TransactionWarning model to domain TransactionWarning entity."""
    resolution = orm_warning.resolution_type
    return domain.TransactionWarning(
        id=orm_warning.id,
        transaction_id=orm_warning.transaction_id,
        warning_type=domain.WarningType(orm_warning.warning_type),
        message=orm_warning.message,
        expected_amount=_money(orm_warning.expected_amount),
        actual_amount=_money(orm_warning.actual_amount),
        child_id=orm_warning.child_id,
        matched_fee_id=orm_warning.matched_fee_id,
        resolved_at=orm_warning.resolved_at,
        resolved_by=orm_warning.resolved_by,
        resolution_type=domain.ResolutionType(resolution) if resolution else None,
        resolution_note=orm_warning.resolution_note,
        created_at=orm_warning.created_at,
    )


def import_batch_to_domain(orm_batch: ORMImportBatch) -> domain.ImportBatch:
    """Convert SQLAlchemy ImportBatch model to domain ImportBatch entity."""
    return domain.ImportBatch(
        id=orm_batch.id,
        file_name=orm_batch.file_name,
        imported_by=orm_batch.imported_by,
        imported_at=orm_batch.imported_at,
        transaction_count=orm_batch.transaction_count,
        matched_count=orm_batch.matched_count,
    )


def email_log_to_domain(orm_log: ORMEmailLog) -> domain.EmailLog:
    """Convert SQLAlchemy EmailLog model to domain EmailLog entity."""
    return domain.EmailLog(
        id=orm_log.id,
        to_email=orm_log.to_email,
        subject=orm_log.subject,
        body=orm_log.body,
        email_type=domain.EmailLogType(orm_log.email_type),
        payload=orm_log.payload,
        sent_by=orm_log.sent_by,
        sent_at=orm_log.sent_at,
    )
