"""SQLAlchemy models for kitafees database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    DateTime,
    Date,
    Float,
    Numeric,
    Boolean,
    JSON,
    Index,
    UniqueConstraint,
    create_engine,
    event,
    func,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Household(Base):
    """Household model holding the income assessment."""

    __tablename__ = "households"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    annual_net_income = Column(Numeric(10, 2), nullable=True)
    income_status = Column(String, default="", nullable=False)
    sibling_count_override = Column(Integer, nullable=True)
    income_calculation = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    # Relationships
    parents = relationship("Parent", back_populates="household", cascade="all, delete-orphan")
    children = relationship("Child", back_populates="household")


class Parent(Base):
    """Parent model."""

    __tablename__ = "parents"

    id = Column(Integer, primary_key=True)
    household_id = Column(Integer, ForeignKey("households.id"), nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    # Relationships
    household = relationship("Household", back_populates="parents")


class Child(Base):
    """Child model."""

    __tablename__ = "children"

    id = Column(Integer, primary_key=True)
    member_number = Column(String(5), unique=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    birth_date = Column(Date, nullable=False)
    entry_date = Column(Date, nullable=False)
    exit_date = Column(Date, nullable=True)
    household_id = Column(Integer, ForeignKey("households.id"), nullable=True)
    care_hours = Column(Integer, nullable=True)
    legal_hours = Column(Integer, nullable=True)
    legal_hours_until = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    # Relationships
    household = relationship("Household", back_populates="children")
    fees = relationship("FeeExpectation", back_populates="child", cascade="all, delete-orphan")


class FeeExpectation(Base):
    """Billing obligation model."""

    __tablename__ = "fee_expectations"

    id = Column(Integer, primary_key=True)
    child_id = Column(Integer, ForeignKey("children.id"), nullable=False)
    fee_type = Column(String, nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    reminder_for_id = Column(Integer, ForeignKey("fee_expectations.id"), nullable=True)
    reconciliation_year = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    # Relationships
    child = relationship("Child", back_populates="fees")
    matches = relationship("PaymentMatch", back_populates="expectation", cascade="all, delete-orphan")


# One fee per child, type and period; annual fees have month NULL, reminders are
# keyed by reminder_for_id instead
Index(
    "uq_fee_child_type_period",
    FeeExpectation.child_id,
    FeeExpectation.fee_type,
    FeeExpectation.year,
    func.coalesce(FeeExpectation.month, 0),
    unique=True,
    sqlite_where=FeeExpectation.fee_type != "REMINDER",
    postgresql_where=FeeExpectation.fee_type != "REMINDER",
)


class ImportBatch(Base):
    """CSV upload metadata model."""

    __tablename__ = "import_batches"

    id = Column(Integer, primary_key=True)
    file_name = Column(String, nullable=False)
    imported_by = Column(String, nullable=False)
    imported_at = Column(DateTime, default=_utcnow, nullable=False)
    transaction_count = Column(Integer, default=0, nullable=False)
    matched_count = Column(Integer, default=0, nullable=False)

    # Relationships
    transactions = relationship("BankTransaction", back_populates="import_batch")


class BankTransaction(Base):
    """Imported bank statement line model."""

    __tablename__ = "bank_transactions"

    id = Column(Integer, primary_key=True)
    booking_date = Column(Date, nullable=False)
    value_date = Column(Date, nullable=False)
    payer_name = Column(String, nullable=True)
    payer_iban = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="EUR", nullable=False)
    transaction_type = Column(String, nullable=True)
    import_batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=True)
    is_hidden = Column(Boolean, default=False, nullable=False)
    hidden_at = Column(DateTime, nullable=True)
    hidden_by = Column(String, nullable=True)
    imported_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "booking_date", "payer_iban", "amount", "description", name="uq_transaction_statement_line"
        ),
    )

    # Relationships
    import_batch = relationship("ImportBatch", back_populates="transactions")
    matches = relationship("PaymentMatch", back_populates="transaction", cascade="all, delete-orphan")
    warnings = relationship(
        "TransactionWarning", back_populates="transaction", cascade="all, delete-orphan"
    )


class PaymentMatch(Base):
    """Transaction-to-fee match model."""

    __tablename__ = "payment_matches"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(Integer, ForeignKey("bank_transactions.id"), nullable=False)
    expectation_id = Column(Integer, ForeignKey("fee_expectations.id"), nullable=False)
    match_type = Column(String, nullable=False)
    confidence = Column(Float, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    matched_by = Column(String, nullable=True)
    matched_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("transaction_id", "expectation_id", name="uq_match_transaction_expectation"),
    )

    # Relationships
    transaction = relationship("BankTransaction", back_populates="matches")
    expectation = relationship("FeeExpectation", back_populates="matches")


class KnownIBAN(Base):
    """Learned payer account memory model."""

    __tablename__ = "known_ibans"

    iban = Column(String, primary_key=True)
    payer_name = Column(String, nullable=True)
    status = Column(String, nullable=False)
    child_id = Column(Integer, ForeignKey("children.id"), nullable=True)
    reason = Column(String, nullable=True)
    original_transaction_id = Column(Integer, nullable=True)
    original_description = Column(Text, nullable=True)
    original_amount = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class TransactionWarning(Base):
    """Anomaly raised against a transaction."""

    __tablename__ = "transaction_warnings"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(Integer, ForeignKey("bank_transactions.id"), nullable=False)
    warning_type = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    expected_amount = Column(Numeric(10, 2), nullable=True)
    actual_amount = Column(Numeric(10, 2), nullable=True)
    child_id = Column(Integer, ForeignKey("children.id"), nullable=True)
    matched_fee_id = Column(Integer, ForeignKey("fee_expectations.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String, nullable=True)
    resolution_type = Column(String, nullable=True)
    resolution_note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    # Relationships
    transaction = relationship("BankTransaction", back_populates="warnings")


class AppSetting(Base):
    """Key/value application setting."""

    __tablename__ = "app_settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)


class EmailLog(Base):
    """Record of a sent e-mail."""

    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True)
    to_email = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    email_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=True)
    sent_by = Column(String, nullable=True)
    sent_at = Column(DateTime, default=_utcnow, nullable=False)


def _enable_sqlite_savepoints(engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT nests inside it on pysqlite."""

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(connection):
        connection.exec_driver_sql("BEGIN")


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
