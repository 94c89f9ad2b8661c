"""Bank statement upload: decode, filter, deduplicate, persist and match."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, Sequence

from kitafees.database.base import Database
from kitafees.domain.bank_csv import BankCSVParser
from kitafees.domain.entities import BankTransaction, ImportBatch, MatchSuggestion, MatchType
from kitafees.domain.errors import ConflictError, NotFoundError, transaction_not_found
from kitafees.domain.iban_memory import IbanMemoryService
from kitafees.domain.matching import (
    EXCLUDED_BLACKLISTED,
    EXCLUDED_OUTGOING,
    TransactionMatcher,
)
from kitafees.domain.policy import MatchingPolicy
from kitafees.domain.reconciliation import MatchConfirmation, ReconciliationLedger

logger = logging.getLogger(__name__)


@dataclass
class MatchRun:
    """Outcome of matching a set of stored transactions."""

    scanned: int = 0
    auto_matched: int = 0
    warnings: int = 0
    suggestions: list[MatchSuggestion] = field(default_factory=list)


@dataclass
class ImportResult:
    """Summary of one bank CSV upload."""

    batch_id: int
    total_rows: int = 0
    imported: int = 0
    duplicates: int = 0
    blacklisted: int = 0
    excluded: int = 0
    outgoing: int = 0
    malformed: int = 0
    auto_matched: int = 0
    warnings: int = 0
    suggestions: list[MatchSuggestion] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.duplicates + self.blacklisted + self.excluded + self.outgoing + self.malformed


class BankImportService:
    """Service for importing bank statements and matching their payments."""

    def __init__(self, db: Database, policy: Optional[MatchingPolicy] = None):
        """Initialize bank import service.

        Args:
            db: Database instance
            policy: Matching policy; defaults to MatchingPolicy()
        """
        self.db = db
        self.policy = policy or MatchingPolicy()
        self.ledger = ReconciliationLedger(db, self.policy)
        self.iban_memory = IbanMemoryService(db)

    def build_matcher(self) -> TransactionMatcher:
        """Matcher over the active children and their households' parents."""
        parents_by_household = defaultdict(list)
        for parent in self.db.list_parents():
            parents_by_household[parent.household_id].append(parent)
        return TransactionMatcher(
            self.db.list_children(active_only=True), parents_by_household, self.policy
        )

    def import_file(self, raw: bytes, file_name: str, user: str = "system") -> ImportResult:
        """Import a bank CSV export.

        The whole upload runs in one database transaction. Malformed rows,
        outgoing payments, blacklisted payers, excluded counterparties and
        already imported lines are skipped and counted. New transactions are
        matched in booking order; high-confidence matches are confirmed
        automatically, the rest get warnings and are returned as suggestions.

        Args:
            raw: File content as bytes
            file_name: Original file name, kept with the batch
            user: Who uploaded the file

        Returns:
            ImportResult with counts, row errors and open suggestions
        """
        parser = BankCSVParser()
        with self.db.transaction():
            batch_id = self.db.create_import_batch(file_name, user)
            result = ImportResult(batch_id=batch_id)

            rows = sorted(parser.parse(raw), key=lambda r: (r.booking_date, r.row_number))
            matcher = self.build_matcher()
            memory = self.iban_memory.memory()

            stored = []
            for row in rows:
                reason = matcher.exclusion_reason(row, memory)
                if reason == EXCLUDED_OUTGOING:
                    result.outgoing += 1
                    continue
                if reason == EXCLUDED_BLACKLISTED:
                    result.blacklisted += 1
                    continue
                if reason is not None:
                    result.excluded += 1
                    continue
                if self.db.bank_transaction_exists(
                    row.booking_date, row.payer_iban, row.amount, row.description
                ):
                    result.duplicates += 1
                    continue
                try:
                    transaction_id = self.db.create_bank_transaction(
                        booking_date=row.booking_date,
                        value_date=row.value_date,
                        amount=row.amount,
                        payer_name=row.payer_name,
                        payer_iban=row.payer_iban,
                        description=row.description,
                        currency=row.currency,
                        transaction_type=row.transaction_type,
                        import_batch_id=batch_id,
                    )
                except ConflictError:
                    # imported concurrently since the existence check
                    result.duplicates += 1
                    continue
                stored.append(self.db.get_bank_transaction(transaction_id))

            result.total_rows = parser.total_rows
            result.malformed = parser.skipped
            result.errors = list(parser.errors)
            result.imported = len(stored)

            run = self._match(stored, matcher, user)
            result.auto_matched = run.auto_matched
            result.warnings = run.warnings
            result.suggestions = run.suggestions

            self.db.update_import_batch_counts(batch_id, result.imported, result.auto_matched)

        logger.info(
            "Imported %s: %d rows, %d new, %d auto-matched, %d skipped (%d duplicates, %d malformed)",
            file_name,
            result.total_rows,
            result.imported,
            result.auto_matched,
            result.skipped,
            result.duplicates,
            result.malformed,
        )
        return result

    def rescan(self, user: str = "system") -> MatchRun:
        """Match all unmatched, visible transactions again.

        Useful after fees were generated or IBANs trusted since the import.
        """
        with self.db.transaction():
            run = self._match(
                self.db.list_bank_transactions(unmatched_only=True), self.build_matcher(), user
            )
        logger.info(
            "Rescanned %d transactions: %d auto-matched, %d warnings",
            run.scanned,
            run.auto_matched,
            run.warnings,
        )
        return run

    def _match(
        self, transactions: Sequence[BankTransaction], matcher: TransactionMatcher, user: str
    ) -> MatchRun:
        """Suggest, auto-confirm or warn, one transaction at a time.

        Open fees and the IBAN memory are reloaded after every confirmation
        so one payment never settles a fee another payment already took.
        """
        run = MatchRun()
        open_fees = self.db.list_fee_expectations(unpaid_only=True)
        memory = self.iban_memory.memory()

        for transaction in transactions:
            run.scanned += 1
            suggestion = matcher.suggest_one(transaction, open_fees, memory)
            if suggestion is None:
                continue

            if matcher.is_auto_confirmable(suggestion):
                confirmed = self.ledger.confirm(
                    [
                        MatchConfirmation(
                            transaction.id,
                            expectation_id,
                            MatchType.AUTO,
                            confidence=suggestion.confidence,
                            matched_by=suggestion.matched_by,
                        )
                        for expectation_id in suggestion.expectation_ids
                    ],
                    user,
                )
                if confirmed.matched:
                    run.auto_matched += 1
                run.warnings += len(confirmed.warnings)
                open_fees = self.db.list_fee_expectations(unpaid_only=True)
                memory = self.iban_memory.memory()
                continue

            run.warnings += len(self.ledger.raise_warnings(transaction, suggestion))
            run.suggestions.append(suggestion)
        return run

    def suggestion_for(self, transaction_id: int) -> Optional[MatchSuggestion]:
        """Current best suggestion for one transaction, or None if it is excluded.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        transaction = self._require(transaction_id)
        return self.build_matcher().suggest_one(
            transaction,
            self.db.list_fee_expectations(unpaid_only=True),
            self.iban_memory.memory(),
        )

    def list_transactions(
        self, unmatched_only: bool = False, include_hidden: bool = False
    ) -> list[BankTransaction]:
        """List imported transactions by booking date."""
        return self.db.list_bank_transactions(
            unmatched_only=unmatched_only, include_hidden=include_hidden
        )

    def hide_transaction(self, transaction_id: int, user: str = "system") -> None:
        """Hide a transaction from the unmatched list without deleting it.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        self._require(transaction_id)
        self.db.hide_bank_transaction(transaction_id, user)

    def history(self) -> list[ImportBatch]:
        """Past uploads, newest first."""
        return self.db.list_import_batches()

    def _require(self, transaction_id: int) -> BankTransaction:
        transaction = self.db.get_bank_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        return transaction
