"""Reconciliation ledger: confirmed matches, anomalies and their resolution."""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from itertools import combinations
from typing import Optional, Sequence

from kitafees.database.base import Database
from kitafees.domain.entities import (
    BankTransaction,
    FeeExpectation,
    FeeType,
    KnownIBANStatus,
    MatchSuggestion,
    MatchType,
    PaymentMatch,
    ResolutionType,
    TransactionWarning,
    WarningType,
)
from kitafees.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    fee_not_found,
    multiple_open_fees,
    transaction_not_found,
    warning_not_found,
)
from kitafees.domain.fee_generation import FeeService
from kitafees.domain.matching import in_billing_period
from kitafees.domain.policy import MatchingPolicy
from kitafees.utils.amount_parser import format_amount

logger = logging.getLogger(__name__)

LATE_PAYMENT_FEE_TYPES = (FeeType.FOOD, FeeType.CHILDCARE)


@dataclass(frozen=True)
class MatchConfirmation:
    """Request to link one transaction to one fee expectation."""

    transaction_id: int
    expectation_id: int
    match_type: MatchType = MatchType.MANUAL
    confidence: Optional[float] = None
    matched_by: Optional[str] = None


@dataclass(frozen=True)
class Allocation:
    """Share of a split payment assigned to one fee."""

    expectation_id: int
    amount: Decimal


@dataclass
class ConfirmResult:
    """Outcome of a confirmation batch."""

    matched: list[int] = field(default_factory=list)
    already_matched: int = 0
    duplicates: list[int] = field(default_factory=list)
    warnings: list[int] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class UnmatchResult:
    transaction_id: int
    removed_matches: int
    transaction_deleted: bool


@dataclass(frozen=True)
class Anomaly:
    """Warning to be raised, before persistence."""

    warning_type: WarningType
    message: str
    expected_amount: Optional[Decimal] = None
    actual_amount: Optional[Decimal] = None
    child_id: Optional[int] = None
    matched_fee_id: Optional[int] = None


def find_bulk_combination(
    amount: Decimal,
    fees: Sequence[FeeExpectation],
    max_fees: int = 6,
    tolerance: Decimal = Decimal("0.01"),
) -> Optional[tuple[FeeExpectation, ...]]:
    """Smallest group of two or more fees whose amounts add up to a payment.

    Only the first ``max_fees`` fees are considered.
    """
    candidates = list(fees)[:max_fees]
    for size in range(2, len(candidates) + 1):
        for group in combinations(candidates, size):
            if abs(sum((f.amount for f in group), Decimal("0.00")) - amount) <= tolerance:
                return group
    return None


def fixed_amount_multiple(
    amount: Decimal, policy: MatchingPolicy
) -> Optional[tuple[int, Decimal]]:
    """(count, fixed amount) if a payment is a multiple of a known fixed fee."""
    for fixed_amount, _ in policy.fixed_amounts:
        count = int(amount // fixed_amount)
        if count >= 2 and abs(amount - fixed_amount * count) <= policy.amount_tolerance:
            return count, fixed_amount
    return None


def is_late_payment(fee: FeeExpectation, transaction: BankTransaction, late_day: int = 15) -> bool:
    """Monthly food and childcare fees are late after the 15th of their month."""
    if fee.fee_type not in LATE_PAYMENT_FEE_TYPES or fee.month is None:
        return False
    return transaction.value_date > date(fee.year, fee.month, late_day)


class ReconciliationLedger:
    """Persist payment matches and manage transaction warnings."""

    def __init__(self, db: Database, policy: Optional[MatchingPolicy] = None):
        """Initialize the ledger.

        Args:
            db: Database instance
            policy: Matching policy with the anomaly thresholds
        """
        self.db = db
        self.policy = policy or MatchingPolicy()
        self.fees = FeeService(db)

    # Confirmation
    def confirm(
        self, confirmations: Sequence[MatchConfirmation], user: str = "system"
    ) -> ConfirmResult:
        """Persist a batch of confirmed matches in one database transaction.

        Confirming an already matched pair is a no-op, also when another
        submission stores the same pair first. A fee that is already
        covered by another payment gets a DUPLICATE_PAYMENT warning instead
        of a second match. Unknown transactions or fees are reported in
        ``failed`` and do not stop the batch.
        """
        result = ConfirmResult()
        with self.db.transaction():
            for confirmation in confirmations:
                try:
                    self._confirm_one(confirmation, user, result)
                except (NotFoundError, ValidationError) as e:
                    result.failed.append(
                        f"{confirmation.transaction_id} -> {confirmation.expectation_id}: {e}"
                    )
        logger.info(
            "Confirmed %d matches (%d already matched, %d duplicates, %d failed) by %s",
            len(result.matched),
            result.already_matched,
            len(result.duplicates),
            len(result.failed),
            user,
        )
        return result

    def _confirm_one(
        self, confirmation: MatchConfirmation, user: str, result: ConfirmResult
    ) -> None:
        transaction = self._require_transaction(confirmation.transaction_id)
        fee = self._require_fee(confirmation.expectation_id)

        if self.db.get_payment_match(transaction.id, fee.id) is not None:
            logger.warning(
                "Transaction %s is already matched to fee %s; ignoring", transaction.id, fee.id
            )
            result.already_matched += 1
            return

        paid = self.db.get_paid_amount(fee.id)
        if paid >= fee.amount:
            warning_id = self._warn(
                transaction,
                Anomaly(
                    WarningType.DUPLICATE_PAYMENT,
                    f"{fee.fee_type.value} {fee.period_label} is already paid",
                    expected_amount=fee.amount,
                    actual_amount=transaction.amount,
                    child_id=fee.child_id,
                    matched_fee_id=fee.id,
                ),
            )
            result.duplicates.append(fee.id)
            if warning_id is not None:
                result.warnings.append(warning_id)
            return

        try:
            match_id = self.db.create_payment_match(
                transaction_id=transaction.id,
                expectation_id=fee.id,
                match_type=confirmation.match_type,
                amount=fee.amount - paid,
                confidence=confirmation.confidence,
                matched_by=confirmation.matched_by or user,
            )
        except ConflictError:
            # another submission stored the same pair first
            logger.warning(
                "Transaction %s was matched to fee %s concurrently; ignoring", transaction.id, fee.id
            )
            result.already_matched += 1
            return
        result.matched.append(match_id)
        if confirmation.match_type == MatchType.AUTO:
            logger.info(
                "Auto-matched transaction %s to fee %s (%s, confidence %.2f)",
                transaction.id,
                fee.id,
                confirmation.matched_by,
                confirmation.confidence or 0.0,
            )
        result.warnings.extend(self._after_match(transaction, fee, confirmation.match_type, user))

    def _after_match(
        self, transaction: BankTransaction, fee: FeeExpectation, match_type: MatchType, user: str
    ) -> list[int]:
        """Learn the payer IBAN, close open warnings, flag late payment."""
        self._remember_payer(transaction, fee)

        resolution = ResolutionType.AUTO_RESOLVED if match_type == MatchType.AUTO else ResolutionType.MATCHED
        for warning in self.db.list_warnings(transaction_id=transaction.id):
            if warning.warning_type in (WarningType.LATE_PAYMENT, WarningType.DUPLICATE_PAYMENT):
                continue
            self.db.resolve_warning(
                warning.id, resolution, resolved_by=user, note=f"Matched to fee {fee.id}"
            )

        raised = []
        if is_late_payment(fee, transaction, self.policy.late_payment_day):
            warning_id = self._warn(
                transaction,
                Anomaly(
                    WarningType.LATE_PAYMENT,
                    f"Paid on {transaction.value_date:%d.%m.%Y}, after the "
                    f"{self.policy.late_payment_day}th of {fee.period_label}",
                    expected_amount=fee.amount,
                    actual_amount=transaction.amount,
                    child_id=fee.child_id,
                    matched_fee_id=fee.id,
                ),
            )
            if warning_id is not None:
                raised.append(warning_id)
        return raised

    def _remember_payer(self, transaction: BankTransaction, fee: FeeExpectation) -> None:
        if not transaction.payer_iban:
            return
        child_id = fee.child_id if self.policy.bind_trusted_iban_to_child else None
        known = self.db.get_known_iban(transaction.payer_iban)
        if known is None:
            self.db.save_known_iban(
                iban=transaction.payer_iban,
                status=KnownIBANStatus.TRUSTED,
                payer_name=transaction.payer_name,
                child_id=child_id,
                reason="confirmed match",
                original_transaction_id=transaction.id,
                original_description=transaction.description,
                original_amount=transaction.amount,
            )
            logger.info("Trusting IBAN %s after confirmed match", transaction.payer_iban)
        elif (
            known.status == KnownIBANStatus.TRUSTED
            and known.child_id is None
            and child_id is not None
        ):
            self.db.set_known_iban_child(transaction.payer_iban, child_id)

    def create_manual_match(
        self, transaction_id: int, expectation_id: int, user: str = "system"
    ) -> Optional[PaymentMatch]:
        """Link a transaction to a fee by hand.

        Returns the match, or None if the fee was already paid by another
        transaction and a DUPLICATE_PAYMENT warning was raised instead.

        Raises:
            NotFoundError: If the transaction or fee doesn't exist
        """
        result = ConfirmResult()
        with self.db.transaction():
            self._confirm_one(
                MatchConfirmation(transaction_id, expectation_id, MatchType.MANUAL, matched_by=user),
                user,
                result,
            )
        return self.db.get_payment_match(transaction_id, expectation_id)

    def allocate(
        self, transaction_id: int, allocations: Sequence[Allocation], user: str = "system"
    ) -> list[int]:
        """Split one payment over several fees of the same child.

        Args:
            transaction_id: Transaction ID
            allocations: Fee and amount pairs
            user: Who made the allocation

        Returns:
            IDs of the created matches

        Raises:
            NotFoundError: If the transaction or a fee doesn't exist
            ValidationError: If an allocation is not positive, exceeds what is
                still owed, spans several children, or the total exceeds the
                payment
        """
        if not allocations:
            raise ValidationError("At least one allocation is required")
        transaction = self._require_transaction(transaction_id)

        fees = []
        total = Decimal("0.00")
        for allocation in allocations:
            fee = self._require_fee(allocation.expectation_id)
            if allocation.amount <= 0:
                raise ValidationError(f"Allocation for fee {fee.id} must be positive")
            remaining = fee.amount - self.db.get_paid_amount(fee.id)
            if allocation.amount > remaining:
                raise ValidationError(
                    f"Allocation {format_amount(allocation.amount)} exceeds the open "
                    f"{format_amount(remaining)} of fee {fee.id}"
                )
            if self.db.get_payment_match(transaction.id, fee.id) is not None:
                raise ValidationError(f"Transaction {transaction.id} is already matched to fee {fee.id}")
            fees.append(fee)
            total += allocation.amount

        if len({fee.child_id for fee in fees}) > 1:
            raise ValidationError("All allocated fees must belong to the same child")
        if total > transaction.amount:
            raise ValidationError(
                f"Allocated {format_amount(total)} exceeds the payment of {format_amount(transaction.amount)}"
            )

        match_ids = []
        with self.db.transaction():
            for fee, allocation in zip(fees, allocations):
                match_ids.append(
                    self.db.create_payment_match(
                        transaction_id=transaction.id,
                        expectation_id=fee.id,
                        match_type=MatchType.MANUAL,
                        amount=allocation.amount,
                        matched_by=user,
                    )
                )
                self._after_match(transaction, fee, MatchType.MANUAL, user)

            remainder = transaction.amount - total
            if remainder > self.policy.amount_tolerance:
                self._warn(
                    transaction,
                    Anomaly(
                        WarningType.OVERPAYMENT,
                        f"{format_amount(remainder)} of the payment is not allocated",
                        expected_amount=total,
                        actual_amount=transaction.amount,
                        child_id=fees[0].child_id,
                    ),
                )
        logger.info("Allocated transaction %s over %d fees", transaction.id, len(match_ids))
        return match_ids

    def unmatch(
        self, transaction_id: int, delete_transaction: bool = False, user: str = "system"
    ) -> UnmatchResult:
        """Remove a transaction's matches, re-opening the fees.

        The transaction itself is deleted only when ``delete_transaction`` is set.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        self._require_transaction(transaction_id)
        with self.db.transaction():
            removed = self.db.delete_payment_matches(transaction_id)
            if delete_transaction:
                self.db.delete_bank_transaction(transaction_id)
        logger.info(
            "Unmatched transaction %s (%d matches removed%s) by %s",
            transaction_id,
            removed,
            ", transaction deleted" if delete_transaction else "",
            user,
        )
        return UnmatchResult(transaction_id, removed, delete_transaction)

    # Anomaly detection
    def detect_anomalies(
        self, transaction: BankTransaction, suggestion: Optional[MatchSuggestion]
    ) -> list[Anomaly]:
        """Classify what is unusual about an incoming payment.

        Runs whether or not the matcher found a target. Late payment is
        checked separately when a match is confirmed.
        """
        if suggestion is None:
            return []

        if suggestion.warning_type == WarningType.MULTIPLE_OPEN_FEES:
            return [
                Anomaly(
                    WarningType.MULTIPLE_OPEN_FEES,
                    multiple_open_fees(len(suggestion.candidate_ids)),
                    actual_amount=transaction.amount,
                    child_id=suggestion.child_id,
                )
            ]

        if suggestion.child_id is None:
            known = self.db.get_known_iban(transaction.payer_iban) if transaction.payer_iban else None
            if known is not None and known.status == KnownIBANStatus.TRUSTED and not suggestion.has_target:
                return [
                    Anomaly(
                        WarningType.NO_MATCHING_FEE,
                        f"No open fee found for trusted payer {transaction.payer_name or transaction.payer_iban}",
                        actual_amount=transaction.amount,
                    )
                ]
            return []

        if suggestion.amount_matches:
            return []

        child_id = suggestion.child_id
        duplicate = self._paid_twin(transaction, suggestion)
        if duplicate is not None:
            return [
                Anomaly(
                    WarningType.DUPLICATE_PAYMENT,
                    f"{duplicate.fee_type.value} {duplicate.period_label} is already paid",
                    expected_amount=duplicate.amount,
                    actual_amount=transaction.amount,
                    child_id=child_id,
                    matched_fee_id=duplicate.id,
                )
            ]

        open_fees = self.db.list_fee_expectations(child_id=child_id, unpaid_only=True)
        if not open_fees:
            return [
                Anomaly(
                    WarningType.NO_MATCHING_FEE,
                    "No open fee found for the identified child",
                    actual_amount=transaction.amount,
                    child_id=child_id,
                )
            ]

        group = find_bulk_combination(
            transaction.amount, open_fees, self.policy.bulk_max_fees, self.policy.amount_tolerance
        )
        if group is not None:
            return [
                Anomaly(
                    WarningType.POSSIBLE_BULK,
                    "Payment may cover " + ", ".join(f"{f.fee_type.value} {f.period_label}" for f in group),
                    expected_amount=sum((f.amount for f in group), Decimal("0.00")),
                    actual_amount=transaction.amount,
                    child_id=child_id,
                )
            ]
        multiple = fixed_amount_multiple(transaction.amount, self.policy)
        if multiple is not None:
            count, fixed_amount = multiple
            return [
                Anomaly(
                    WarningType.POSSIBLE_BULK,
                    f"Payment is {count} x {format_amount(fixed_amount)}",
                    expected_amount=fixed_amount * count,
                    actual_amount=transaction.amount,
                    child_id=child_id,
                )
            ]

        reference = self._reference_fee(suggestion, open_fees)
        if reference is None:
            return [
                Anomaly(
                    WarningType.UNEXPECTED_AMOUNT,
                    f"{format_amount(transaction.amount)} does not fit any open fee",
                    actual_amount=transaction.amount,
                    child_id=child_id,
                )
            ]
        if transaction.amount < reference.amount:
            warning_type = WarningType.PARTIAL_PAYMENT
            text = "less"
        else:
            warning_type = WarningType.OVERPAYMENT
            text = "more"
        return [
            Anomaly(
                warning_type,
                f"Paid {text} than the {format_amount(reference.amount)} expected for "
                f"{reference.fee_type.value} {reference.period_label}",
                expected_amount=reference.amount,
                actual_amount=transaction.amount,
                child_id=child_id,
                matched_fee_id=reference.id,
            )
        ]

    def _paid_twin(
        self, transaction: BankTransaction, suggestion: MatchSuggestion
    ) -> Optional[FeeExpectation]:
        """An already paid fee in the booking period with exactly this amount."""
        fee_types = [suggestion.detected_type] if suggestion.detected_type else None
        for fee in self.db.list_fee_expectations(child_id=suggestion.child_id, fee_types=fee_types):
            if (
                fee.amount == transaction.amount
                and in_billing_period(fee, transaction.booking_date)
                and self.fees.is_paid(fee)
            ):
                return fee
        return None

    def _reference_fee(
        self, suggestion: MatchSuggestion, open_fees: Sequence[FeeExpectation]
    ) -> Optional[FeeExpectation]:
        """The fee a differing amount is compared against."""
        by_id = {fee.id: fee for fee in open_fees}
        if suggestion.expectation_id in by_id:
            return by_id[suggestion.expectation_id]
        for fee_id in suggestion.candidate_ids:
            if fee_id in by_id:
                return by_id[fee_id]
        return None

    def raise_warnings(
        self, transaction: BankTransaction, suggestion: Optional[MatchSuggestion]
    ) -> list[int]:
        """Detect and persist anomalies of a transaction. Returns new warning IDs."""
        raised = []
        for anomaly in self.detect_anomalies(transaction, suggestion):
            warning_id = self._warn(transaction, anomaly)
            if warning_id is not None:
                raised.append(warning_id)
        return raised

    def _warn(self, transaction: BankTransaction, anomaly: Anomaly) -> Optional[int]:
        """Persist a warning unless the same kind is already open for the transaction."""
        if self.db.list_warnings(transaction_id=transaction.id, warning_type=anomaly.warning_type):
            return None
        warning_id = self.db.create_warning(
            transaction_id=transaction.id,
            warning_type=anomaly.warning_type,
            message=anomaly.message,
            expected_amount=anomaly.expected_amount,
            actual_amount=anomaly.actual_amount,
            child_id=anomaly.child_id,
            matched_fee_id=anomaly.matched_fee_id,
        )
        logger.info(
            "Transaction %s: %s warning (%s)", transaction.id, anomaly.warning_type.value, anomaly.message
        )
        return warning_id

    # Warning resolution
    def list_warnings(
        self,
        transaction_id: Optional[int] = None,
        warning_type: Optional[WarningType] = None,
        unresolved_only: bool = True,
    ) -> list[TransactionWarning]:
        """List warnings, newest first."""
        return self.db.list_warnings(
            transaction_id=transaction_id,
            warning_type=warning_type,
            unresolved_only=unresolved_only,
        )

    def dismiss_warning(
        self, warning_id: int, user: str = "system", note: Optional[str] = None
    ) -> None:
        """Close a warning without action. Dismissing twice is a no-op.

        Raises:
            NotFoundError: If the warning doesn't exist
        """
        warning = self._require_warning(warning_id)
        if warning.is_resolved:
            return
        self.db.resolve_warning(warning.id, ResolutionType.DISMISSED, resolved_by=user, note=note)

    def resolve_late_payment(
        self, warning_id: int, user: str = "system", as_of: Optional[date] = None
    ) -> FeeExpectation:
        """Charge the reminder fee for a late payment and close the warning.

        Returns:
            The REMINDER fee linked to the late fee

        Raises:
            NotFoundError: If the warning or its fee doesn't exist
            ValidationError: If the warning is not an open LATE_PAYMENT warning
        """
        warning = self._require_warning(warning_id)
        if warning.warning_type != WarningType.LATE_PAYMENT:
            raise ValidationError(f"Warning {warning_id} is not a late payment warning")
        if warning.is_resolved:
            raise ValidationError(f"Warning {warning_id} is already resolved")
        if warning.matched_fee_id is None:
            raise ValidationError(f"Warning {warning_id} is not linked to a fee")

        with self.db.transaction():
            reminder = self.fees.create_reminder(
                warning.matched_fee_id, as_of=as_of, require_unpaid=False
            )
            self.db.resolve_warning(
                warning.id,
                ResolutionType.MATCHED,
                resolved_by=user,
                note=f"Reminder fee {reminder.id} created",
            )
        return reminder

    def _require_transaction(self, transaction_id: int) -> BankTransaction:
        transaction = self.db.get_bank_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        return transaction

    def _require_fee(self, fee_id: int) -> FeeExpectation:
        fee = self.db.get_fee_expectation(fee_id)
        if fee is None:
            raise NotFoundError(fee_not_found(fee_id))
        return fee

    def _require_warning(self, warning_id: int) -> TransactionWarning:
        warning = self.db.get_warning(warning_id)
        if warning is None:
            raise NotFoundError(warning_not_found(warning_id))
        return warning
