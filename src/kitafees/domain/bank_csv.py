"""Bank statement CSV decoding.

The bank exports ISO-8859-1 text, ``;``-delimited, one header row, dates as
DD.MM.YYYY and amounts with a decimal comma. Columns by position:

    0  Bezeichnung Auftragskonto      10 Verwendungszweck
    1  IBAN Auftragskonto             11 Betrag
    2  BIC Auftragskonto              12 Waehrung
    3  Bankname Auftragskonto         13 Saldo nach Buchung
    4  Buchungstag                    14 Bemerkung
    5  Valutadatum                    15 Kategorie
    6  Name Zahlungsbeteiligter       16 Steuerrelevant
    7  IBAN Zahlungsbeteiligter       17 Glaeubiger ID
    8  BIC (SWIFT-Code) Zahlungsbet.  18 Mandatsreferenz
    9  Buchungstext

Only the first 13 columns are required.
"""

import csv
import io
import logging
from typing import Iterator, Optional

from kitafees.domain.entities import RawTransaction
from kitafees.domain.errors import ValidationError
from kitafees.utils.amount_parser import parse_amount
from kitafees.utils.date_parser import parse_german_date

logger = logging.getLogger(__name__)

COL_BOOKING_DATE = 4
COL_VALUE_DATE = 5
COL_PAYER_NAME = 6
COL_PAYER_IBAN = 7
COL_PAYER_BIC = 8
COL_TRANSACTION_TYPE = 9
COL_DESCRIPTION = 10
COL_AMOUNT = 11
COL_CURRENCY = 12
COL_BALANCE = 13
COL_NOTES = 14
COL_CREDITOR_ID = 17
COL_MANDATE_REFERENCE = 18
MIN_COLUMNS = 13

BANK_CSV_HEADER = (
    "Bezeichnung Auftragskonto",
    "IBAN Auftragskonto",
    "BIC Auftragskonto",
    "Bankname Auftragskonto",
    "Buchungstag",
    "Valutadatum",
    "Name Zahlungsbeteiligter",
    "IBAN Zahlungsbeteiligter",
    "BIC (SWIFT-Code) Zahlungsbeteiligter",
    "Buchungstext",
    "Verwendungszweck",
    "Betrag",
    "Waehrung",
    "Saldo nach Buchung",
    "Bemerkung",
    "Kategorie",
    "Steuerrelevant",
    "Glaeubiger ID",
    "Mandatsreferenz",
)


def normalize_iban(iban: Optional[str]) -> Optional[str]:
    """Upper-case an IBAN and drop spaces; empty becomes None."""
    if iban is None:
        return None
    cleaned = "".join(iban.split()).upper()
    return cleaned or None


def _text(record: list[str], index: int) -> Optional[str]:
    if index >= len(record):
        return None
    value = record[index].strip()
    return value or None


class BankCSVParser:
    """Decode raw bank export bytes into RawTransaction records.

    ``parse`` is a generator and can be consumed once. Malformed rows are
    skipped; after iteration ``skipped`` and ``errors`` describe them.
    """

    def __init__(self, encoding: str = "iso-8859-1", delimiter: str = ";"):
        self.encoding = encoding
        self.delimiter = delimiter
        self.total_rows = 0
        self.skipped = 0
        self.errors: list[str] = []

    def parse(self, raw: bytes) -> Iterator[RawTransaction]:
        """Yield transactions in file order."""
        text = raw.decode(self.encoding, errors="replace")
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=self.delimiter)

        header_seen = False
        for row_number, record in enumerate(reader, start=1):
            if not any(cell.strip() for cell in record):
                continue
            if not header_seen:
                header_seen = True
                if not self._looks_like_data(record):
                    continue

            self.total_rows += 1
            try:
                yield self.parse_row(record, row_number)
            except ValidationError as e:
                self.skipped += 1
                self.errors.append(f"Row {row_number}: {e}")
                logger.warning("Skipping bank CSV row %d: %s", row_number, e)

    def _looks_like_data(self, record: list[str]) -> bool:
        if len(record) <= COL_BOOKING_DATE:
            return False
        try:
            parse_german_date(record[COL_BOOKING_DATE])
        except ValueError:
            return False
        return True

    def parse_row(self, record: list[str], row_number: int = 0) -> RawTransaction:
        """Decode one CSV record.

        Raises:
            ValidationError: If the row is too short or the booking date or
                amount is malformed
        """
        if len(record) < MIN_COLUMNS:
            raise ValidationError(
                f"insufficient columns: got {len(record)}, need at least {MIN_COLUMNS}"
            )

        try:
            booking_date = parse_german_date(record[COL_BOOKING_DATE])
        except ValueError as e:
            raise ValidationError(f"invalid booking date: {e}") from None

        try:
            value_date = parse_german_date(record[COL_VALUE_DATE])
        except ValueError:
            value_date = booking_date

        try:
            amount = parse_amount(record[COL_AMOUNT])
        except ValueError as e:
            raise ValidationError(f"invalid amount: {e}") from None

        balance = None
        balance_text = _text(record, COL_BALANCE)
        if balance_text is not None:
            try:
                balance = parse_amount(balance_text)
            except ValueError:
                balance = None

        return RawTransaction(
            row_number=row_number,
            booking_date=booking_date,
            value_date=value_date,
            payer_name=_text(record, COL_PAYER_NAME),
            payer_iban=normalize_iban(_text(record, COL_PAYER_IBAN)),
            payer_bic=_text(record, COL_PAYER_BIC),
            transaction_type=_text(record, COL_TRANSACTION_TYPE),
            description=_text(record, COL_DESCRIPTION),
            amount=amount,
            currency=_text(record, COL_CURRENCY) or "EUR",
            balance=balance,
            notes=_text(record, COL_NOTES),
            creditor_id=_text(record, COL_CREDITOR_ID),
            mandate_reference=_text(record, COL_MANDATE_REFERENCE),
        )
