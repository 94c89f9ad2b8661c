"""Known payer IBAN memory: trusted and blacklisted accounts."""

import logging
from typing import Optional

from kitafees.database.base import Database
from kitafees.domain.bank_csv import normalize_iban
from kitafees.domain.entities import KnownIBAN, KnownIBANStatus
from kitafees.domain.errors import (
    NotFoundError,
    ValidationError,
    child_not_found,
    iban_not_found,
    transaction_not_found,
)

logger = logging.getLogger(__name__)


class IbanMemoryService:
    """Service for operator actions on the known-IBAN memory."""

    def __init__(self, db: Database):
        """Initialize IBAN memory service.

        Args:
            db: Database instance
        """
        self.db = db

    def memory(self) -> dict[str, KnownIBAN]:
        """All known IBANs keyed by IBAN, as consumed by the matcher."""
        return {entry.iban: entry for entry in self.db.list_known_ibans()}

    def get(self, iban: str) -> Optional[KnownIBAN]:
        """Get a known IBAN entry."""
        return self.db.get_known_iban(self._clean(iban))

    def list(self, status: Optional[KnownIBANStatus] = None) -> list[KnownIBAN]:
        """List known IBANs, optionally by status."""
        return self.db.list_known_ibans(status)

    def trust(self, iban: str, child_id: Optional[int] = None, payer_name: Optional[str] = None) -> KnownIBAN:
        """Mark an IBAN as a trusted parent account, optionally bound to a child.

        An already known IBAN keeps its child binding unless a new child is
        given, and keeps the transaction it was first learned from.

        Raises:
            ValidationError: If the IBAN is empty
            NotFoundError: If the child doesn't exist
        """
        iban = self._clean(iban)
        if child_id is not None:
            self._require_child(child_id)
        existing = self.db.get_known_iban(iban)
        if existing is not None and child_id is None:
            child_id = existing.child_id
        self.db.save_known_iban(
            iban=iban,
            status=KnownIBANStatus.TRUSTED,
            payer_name=payer_name or (existing.payer_name if existing else None),
            child_id=child_id,
            reason="trusted by operator",
            **self._provenance(existing),
        )
        logger.info("Trusted IBAN %s (child %s)", iban, child_id)
        return self.db.get_known_iban(iban)

    def blacklist(
        self,
        iban: str,
        reason: Optional[str] = None,
        payer_name: Optional[str] = None,
        transaction_id: Optional[int] = None,
    ) -> KnownIBAN:
        """Exclude an IBAN from matching for good.

        Raises:
            ValidationError: If the IBAN is empty
        """
        iban = self._clean(iban)
        existing = self.db.get_known_iban(iban)
        provenance = self._provenance(existing)
        if transaction_id is not None:
            transaction = self.db.get_bank_transaction(transaction_id)
            if transaction is not None:
                payer_name = payer_name or transaction.payer_name
                provenance = {
                    "original_transaction_id": transaction.id,
                    "original_description": transaction.description,
                    "original_amount": transaction.amount,
                }
        self.db.save_known_iban(
            iban=iban,
            status=KnownIBANStatus.BLACKLISTED,
            payer_name=payer_name or (existing.payer_name if existing else None),
            reason=reason,
            **provenance,
        )
        logger.info("Blacklisted IBAN %s: %s", iban, reason or "no reason given")
        return self.db.get_known_iban(iban)

    def link(self, iban: str, child_id: int) -> None:
        """Bind a trusted IBAN to a child.

        Raises:
            NotFoundError: If the IBAN is unknown or the child doesn't exist
            ValidationError: If the IBAN is blacklisted
        """
        entry = self._require(iban)
        if entry.status != KnownIBANStatus.TRUSTED:
            raise ValidationError(f"IBAN {entry.iban} is blacklisted; remove it from the blacklist first")
        self._require_child(child_id)
        self.db.set_known_iban_child(entry.iban, child_id)

    def unlink(self, iban: str) -> None:
        """Remove the child binding of an IBAN, keeping it trusted.

        Raises:
            NotFoundError: If the IBAN is unknown
        """
        entry = self._require(iban)
        self.db.set_known_iban_child(entry.iban, None)

    def remove_from_blacklist(self, iban: str) -> None:
        """Forget a blacklisted IBAN so its payments are matched again.

        Raises:
            NotFoundError: If the IBAN is unknown
            ValidationError: If the IBAN is not blacklisted
        """
        entry = self._require(iban)
        if entry.status != KnownIBANStatus.BLACKLISTED:
            raise ValidationError(f"IBAN {entry.iban} is not blacklisted")
        self.db.delete_known_iban(entry.iban)
        logger.info("Removed IBAN %s from blacklist", entry.iban)

    def remove(self, iban: str) -> None:
        """Forget a known IBAN whatever its status.

        Raises:
            NotFoundError: If the IBAN is unknown
        """
        entry = self._require(iban)
        self.db.delete_known_iban(entry.iban)

    def dismiss_transaction(self, transaction_id: int, reason: Optional[str] = None) -> int:
        """Blacklist a transaction's payer and delete that payer's unmatched transactions.

        Returns:
            Number of transactions deleted

        Raises:
            NotFoundError: If the transaction doesn't exist
            ValidationError: If the transaction has no payer IBAN
        """
        transaction = self.db.get_bank_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if not transaction.payer_iban:
            raise ValidationError(f"Transaction {transaction_id} has no payer IBAN")

        with self.db.transaction():
            self.blacklist(
                transaction.payer_iban,
                reason=reason or "dismissed",
                payer_name=transaction.payer_name,
                transaction_id=transaction.id,
            )
            deleted = 0
            for other in self.db.list_bank_transactions(
                unmatched_only=True, include_hidden=True, payer_iban=transaction.payer_iban
            ):
                self.db.delete_bank_transaction(other.id)
                deleted += 1
        logger.info("Dismissed payer %s, deleted %d transactions", transaction.payer_iban, deleted)
        return deleted

    def _provenance(self, entry: Optional[KnownIBAN]) -> dict:
        """Origin columns of an existing entry, to carry over on re-classification."""
        if entry is None:
            return {}
        return {
            "original_transaction_id": entry.original_transaction_id,
            "original_description": entry.original_description,
            "original_amount": entry.original_amount,
        }

    def _clean(self, iban: str) -> str:
        cleaned = normalize_iban(iban)
        if cleaned is None:
            raise ValidationError("IBAN must not be empty")
        return cleaned

    def _require(self, iban: str) -> KnownIBAN:
        iban = self._clean(iban)
        entry = self.db.get_known_iban(iban)
        if entry is None:
            raise NotFoundError(iban_not_found(iban))
        return entry

    def _require_child(self, child_id: int) -> None:
        if self.db.get_child(child_id) is None:
            raise NotFoundError(child_not_found(child_id))
