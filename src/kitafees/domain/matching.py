"""Transaction-to-fee matching.

The matcher is a pure proposal stage: it reads transactions, open fees, the
known-IBAN memory and the roster of children, and returns scored
suggestions. Persisting matches and raising warnings is the ledger's job.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from difflib import SequenceMatcher
from typing import Optional, Union

from kitafees.domain.entities import (
    BankTransaction,
    Child,
    FeeExpectation,
    FeeType,
    KnownIBAN,
    KnownIBANStatus,
    MatchSuggestion,
    Parent,
    RawTransaction,
    WarningType,
)
from kitafees.domain.policy import MatchingPolicy

logger = logging.getLogger(__name__)

MATCHED_BY_TRUSTED_IBAN = "trusted_iban"
MATCHED_BY_MEMBER_NUMBER = "member_number"
MATCHED_BY_NAME = "name"
MATCHED_BY_PARENT_NAME = "parent_name"
MATCHED_BY_AMOUNT = "amount"
MATCHED_BY_COMBINED = "combined"
MATCHED_BY_NONE = "none"

EXCLUDED_OUTGOING = "outgoing"
EXCLUDED_BLACKLISTED = "blacklisted"
EXCLUDED_BANK_FEE = "bank_fee"
EXCLUDED_COUNTERPARTY = "excluded_counterparty"

_MEMBER_NUMBER = re.compile(r"\b(\d{5})\b")
_WHITESPACE = re.compile(r"\s+")
_LETTER_DIGIT = re.compile(r"([^\W\d_])(\d)")
_DIGIT_LETTER = re.compile(r"(\d)([^\W\d_])")
_NON_NAME = re.compile(r"[\W_]+")

# Order matters: mis-decoded UTF-8 umlauts first, then umlauts, then digraphs.
_GERMAN_FOLDS = (
    ("ã¤", "a"),
    ("ã¶", "o"),
    ("ã¼", "u"),
    ("ãÿ", "s"),
    ("ä", "a"),
    ("ö", "o"),
    ("ü", "u"),
    ("ß", "s"),
    ("ae", "a"),
    ("oe", "o"),
    ("ue", "u"),
    ("ss", "s"),
)

_FOLD_PATTERN = re.compile("|".join(re.escape(src) for src, _ in _GERMAN_FOLDS))
_FOLD_MAP = dict(_GERMAN_FOLDS)


def normalize_match_text(text: Optional[str]) -> str:
    """Lower-case, collapse whitespace, split letters from digits, fold umlauts."""
    if not text or not text.strip():
        return ""
    normalized = text.strip().lower().replace(" ", " ")
    normalized = _WHITESPACE.sub(" ", normalized)
    normalized = _LETTER_DIGIT.sub(r"\1 \2", normalized)
    normalized = _DIGIT_LETTER.sub(r"\1 \2", normalized)
    return _FOLD_PATTERN.sub(lambda m: _FOLD_MAP[m.group(0)], normalized)


def build_match_text(payer_name: Optional[str], description: Optional[str]) -> str:
    """Payer name and purpose text, the sources of matching signals."""
    return " ".join(part for part in (payer_name, description) if part and part.strip())


def extract_member_numbers(text: Optional[str]) -> list[str]:
    """All standalone 5-digit numbers in order of appearance."""
    return _MEMBER_NUMBER.findall(normalize_match_text(text))


def name_match_score(normalized_text: str, first_name: str, last_name: str, fuzzy_ratio: float = 0.85) -> float:
    """Score how well a person's name appears in normalized text.

    0.85 full name (any order, with or without comma or spaces), 0.80 both
    names apart, 0.75 last name with first initial, 0.70 near-miss spelling
    of the full name, 0.60 last name only, 0.40 first name only.
    """
    raw_first = first_name.strip()
    raw_last = last_name.strip()
    first = normalize_match_text(first_name)
    last = normalize_match_text(last_name)
    if not normalized_text or not last:
        return 0.0

    if first:
        patterns = (f"{first} {last}", f"{last} {first}", f"{last}, {first}", f"{last} , {first}")
        if any(p in normalized_text for p in patterns):
            return 0.85

        compact_text = _NON_NAME.sub("", normalized_text)
        compact_first = _NON_NAME.sub("", first)
        compact_last = _NON_NAME.sub("", last)
        if compact_first and compact_last and (
            compact_first + compact_last in compact_text or compact_last + compact_first in compact_text
        ):
            return 0.85

        if first in normalized_text and last in normalized_text:
            return 0.80

    if last in normalized_text and len(raw_last) >= 3:
        if first and f"{first[0]}." in normalized_text:
            return 0.75
        return 0.6

    if first and _fuzzy_full_name(normalized_text, first, last) >= fuzzy_ratio:
        return 0.7

    if first and first in normalized_text and len(raw_first) >= 4:
        return 0.4

    return 0.0


def _fuzzy_full_name(normalized_text: str, first: str, last: str) -> float:
    """Best similarity of any two-word window against the full name."""
    words = normalized_text.replace(",", " ").split()
    targets = (f"{first} {last}", f"{last} {first}")
    best = 0.0
    for i in range(len(words) - 1):
        window = f"{words[i]} {words[i + 1]}"
        for target in targets:
            best = max(best, SequenceMatcher(None, window, target).ratio())
    return best


def in_billing_period(fee: FeeExpectation, booking_date: date) -> bool:
    """Monthly fees match the booking month, annual fees the booking year."""
    if fee.month is None:
        return fee.year == booking_date.year
    return (fee.year, fee.month) == (booking_date.year, booking_date.month)


@dataclass(frozen=True)
class ChildIdentification:
    """Which child a payment is attributed to, and by which signal."""

    child: Child
    matched_by: str
    name_score: float = 0.0


class TransactionMatcher:
    """Propose and score matches between transactions and open fees."""

    def __init__(
        self,
        children: Sequence[Child],
        parents_by_household: Optional[Mapping[int, Sequence[Parent]]] = None,
        policy: Optional[MatchingPolicy] = None,
    ):
        """Initialize the matcher.

        Args:
            children: Active children that payments can be attributed to
            parents_by_household: Parents per household, for payer-name matching
            policy: Confidence tiers and thresholds
        """
        self.children = list(children)
        self.parents_by_household = parents_by_household or {}
        self.policy = policy or MatchingPolicy()
        self._by_id = {c.id: c for c in self.children}
        self._by_member_number = {c.member_number: c for c in self.children}
        self._excluded = [re.compile(p, re.IGNORECASE) for p in self.policy.excluded_patterns]
        self._bank_fee_types = [re.compile(p, re.IGNORECASE) for p in self.policy.bank_fee_types]

    # Filtering
    def exclusion_reason(
        self,
        transaction: Union[BankTransaction, RawTransaction],
        iban_memory: Mapping[str, KnownIBAN],
    ) -> Optional[str]:
        """Why a transaction is not a fee payment candidate, or None."""
        if transaction.amount <= 0:
            return EXCLUDED_OUTGOING
        known = iban_memory.get(transaction.payer_iban) if transaction.payer_iban else None
        if known is not None and known.status == KnownIBANStatus.BLACKLISTED:
            return EXCLUDED_BLACKLISTED
        if known is not None and known.status == KnownIBANStatus.TRUSTED:
            return None
        if transaction.transaction_type and any(
            p.search(transaction.transaction_type) for p in self._bank_fee_types
        ):
            return EXCLUDED_BANK_FEE
        text = build_match_text(transaction.payer_name, transaction.description)
        if any(p.search(text) for p in self._excluded):
            return EXCLUDED_COUNTERPARTY
        return None

    def detect_fee_type(self, amount: Decimal) -> FeeType:
        """Classify a payment by the fixed food and membership amounts."""
        for fixed_amount, fee_type in self.policy.fixed_amounts:
            if amount == fixed_amount:
                return fee_type
        return FeeType.CHILDCARE

    # Child identification
    def identify_child(
        self, transaction: BankTransaction, iban_memory: Mapping[str, KnownIBAN]
    ) -> Optional[ChildIdentification]:
        """Attribute a payment to a child.

        Tries, in order: a trusted IBAN bound to a child, a member number in
        the text, the child's name, a parent's name.
        """
        known = iban_memory.get(transaction.payer_iban) if transaction.payer_iban else None
        if (
            known is not None
            and known.status == KnownIBANStatus.TRUSTED
            and known.child_id is not None
            and known.child_id in self._by_id
        ):
            return ChildIdentification(self._by_id[known.child_id], MATCHED_BY_TRUSTED_IBAN)

        text = build_match_text(transaction.payer_name, transaction.description)
        for number in extract_member_numbers(text):
            child = self._by_member_number.get(number)
            if child is not None:
                return ChildIdentification(child, MATCHED_BY_MEMBER_NUMBER)

        normalized = normalize_match_text(text)
        if not normalized:
            return None

        scored = [
            (name_match_score(normalized, c.first_name, c.last_name, self.policy.fuzzy_name_ratio), c)
            for c in self.children
        ]
        found = self._unique_best(scored)
        if found is not None:
            return ChildIdentification(found[1], MATCHED_BY_NAME, found[0])

        scored = []
        for child in self.children:
            parents = self.parents_by_household.get(child.household_id, ()) if child.household_id else ()
            best = max(
                (
                    name_match_score(normalized, p.first_name, p.last_name, self.policy.fuzzy_name_ratio)
                    for p in parents
                ),
                default=0.0,
            )
            scored.append((best, child))
        found = self._unique_best(scored)
        if found is not None:
            return ChildIdentification(found[1], MATCHED_BY_PARENT_NAME, found[0])
        return None

    def _unique_best(self, scored: list[tuple[float, Child]]) -> Optional[tuple[float, Child]]:
        qualified = [(score, child) for score, child in scored if score >= self.policy.min_name_score]
        if not qualified:
            return None
        best_score = max(score for score, _ in qualified)
        best = [entry for entry in qualified if entry[0] == best_score]
        # Siblings share a last name; a tie is no identification
        if len(best) > 1:
            return None
        return best[0]

    # Scoring
    def _tiers(self, identification: ChildIdentification) -> tuple[float, float]:
        """(exact amount, differing amount) confidence for a signal."""
        p = self.policy
        if identification.matched_by == MATCHED_BY_TRUSTED_IBAN:
            return p.trusted_iban, p.member_number_amount_differs
        if identification.matched_by == MATCHED_BY_MEMBER_NUMBER:
            return p.member_number_exact, p.member_number_amount_differs
        if identification.name_score >= p.strong_name_score:
            return p.name_exact, p.name_amount_differs
        return p.weak_name_exact, p.weak_name_amount_differs

    def suggest(
        self,
        transactions: Sequence[BankTransaction],
        open_expectations: Sequence[FeeExpectation],
        iban_memory: Mapping[str, KnownIBAN],
    ) -> list[MatchSuggestion]:
        """One suggestion per candidate transaction; excluded ones are omitted."""
        suggestions = []
        for transaction in transactions:
            suggestion = self.suggest_one(transaction, open_expectations, iban_memory)
            if suggestion is not None:
                suggestions.append(suggestion)
        return suggestions

    def suggest_one(
        self,
        transaction: BankTransaction,
        open_expectations: Sequence[FeeExpectation],
        iban_memory: Mapping[str, KnownIBAN],
    ) -> Optional[MatchSuggestion]:
        """Best candidate fee for one transaction, or None if it is excluded."""
        reason = self.exclusion_reason(transaction, iban_memory)
        if reason is not None:
            logger.debug("Transaction %s excluded from matching: %s", transaction.id, reason)
            return None

        detected = self.detect_fee_type(transaction.amount)
        identification = self.identify_child(transaction, iban_memory)
        if identification is None:
            return self._amount_only(transaction, detected, open_expectations)

        child_id = identification.child.id
        exact_tier, differs_tier = self._tiers(identification)
        child_open = [e for e in open_expectations if e.child_id == child_id]
        typed = [e for e in child_open if e.fee_type == detected]
        in_period = [e for e in typed if in_billing_period(e, transaction.booking_date)]
        exact_in_period = [e for e in in_period if e.amount == transaction.amount]
        exact_any = [e for e in typed if e.amount == transaction.amount]

        base = dict(
            transaction_id=transaction.id,
            detected_type=detected,
            matched_by=identification.matched_by,
            child_id=child_id,
        )

        if len(exact_in_period) == 1:
            target = exact_in_period[0]
            return self._log(MatchSuggestion(
                confidence=exact_tier,
                expectation_id=target.id,
                expectation_ids=(target.id,),
                amount_matches=True,
                in_billing_period=True,
                **base,
            ))

        if len(exact_any) == 1 and not exact_in_period:
            target = exact_any[0]
            confidence = exact_tier
            if identification.matched_by != MATCHED_BY_TRUSTED_IBAN:
                confidence = min(confidence, self.policy.out_of_period_cap)
            return self._log(MatchSuggestion(
                confidence=confidence,
                expectation_id=target.id,
                expectation_ids=(target.id,),
                amount_matches=True,
                **base,
            ))

        if len(exact_in_period) > 1 or len(exact_any) > 1:
            candidates = exact_in_period if len(exact_in_period) > 1 else exact_any
            return self._log(MatchSuggestion(
                confidence=exact_tier,
                warning_type=WarningType.MULTIPLE_OPEN_FEES,
                candidate_ids=tuple(e.id for e in candidates),
                **base,
            ))

        combined = self._fee_with_reminder(transaction.amount, child_open)
        if combined is not None:
            fee, reminder = combined
            base["matched_by"] = MATCHED_BY_COMBINED
            base["detected_type"] = fee.fee_type
            return self._log(MatchSuggestion(
                confidence=min(exact_tier + self.policy.combined_boost, self.policy.combined_cap),
                expectation_id=fee.id,
                expectation_ids=(fee.id, reminder.id),
                amount_matches=True,
                in_billing_period=in_billing_period(fee, transaction.booking_date),
                **base,
            ))

        if in_period:
            target = in_period[0]
            return self._log(MatchSuggestion(
                confidence=differs_tier,
                expectation_id=target.id,
                expectation_ids=(target.id,),
                in_billing_period=True,
                candidate_ids=tuple(e.id for e in typed),
                **base,
            ))

        return self._log(MatchSuggestion(
            confidence=differs_tier,
            candidate_ids=tuple(e.id for e in typed),
            **base,
        ))

    def _amount_only(
        self,
        transaction: BankTransaction,
        detected: FeeType,
        open_expectations: Sequence[FeeExpectation],
    ) -> MatchSuggestion:
        candidates = [
            e
            for e in open_expectations
            if e.fee_type != FeeType.REMINDER
            and e.amount == transaction.amount
            and in_billing_period(e, transaction.booking_date)
        ]
        if len(candidates) == 1:
            target = candidates[0]
            return self._log(MatchSuggestion(
                transaction_id=transaction.id,
                detected_type=target.fee_type,
                confidence=self.policy.amount_only,
                matched_by=MATCHED_BY_AMOUNT,
                child_id=target.child_id,
                expectation_id=target.id,
                expectation_ids=(target.id,),
                amount_matches=True,
                in_billing_period=True,
            ))
        return self._log(MatchSuggestion(
            transaction_id=transaction.id,
            detected_type=detected,
            confidence=0.0,
            matched_by=MATCHED_BY_NONE,
        ))

    def _fee_with_reminder(
        self, amount: Decimal, child_open: Sequence[FeeExpectation]
    ) -> Optional[tuple[FeeExpectation, FeeExpectation]]:
        """First open fee that, together with its open reminder, sums to the amount."""
        reminders = {
            e.reminder_for_id: e
            for e in child_open
            if e.fee_type == FeeType.REMINDER and e.reminder_for_id is not None
        }
        for fee in child_open:
            reminder = reminders.get(fee.id)
            if reminder is not None and fee.amount + reminder.amount == amount:
                return fee, reminder
        return None

    def is_auto_confirmable(self, suggestion: MatchSuggestion) -> bool:
        """High-confidence suggestions with a target can be confirmed without review."""
        return (
            suggestion.has_target
            and suggestion.warning_type is None
            and suggestion.amount_matches
            and suggestion.confidence >= self.policy.auto_confirm_threshold
        )

    def _log(self, suggestion: MatchSuggestion) -> MatchSuggestion:
        logger.debug(
            "Transaction %s: matched_by=%s child=%s fee=%s confidence=%.2f",
            suggestion.transaction_id,
            suggestion.matched_by,
            suggestion.child_id,
            suggestion.expectation_id,
            suggestion.confidence,
        )
        return suggestion
