"""Overdue fee reminders.

Two stages per month: an initial notice listing overdue fees, and a final
stage that charges a REMINDER fee for each fee still open. Both stages send
a summary e-mail; delivery problems are reported, never rolled back.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from kitafees.database.base import Database
from kitafees.domain.entities import Child, EmailLogType, FeeExpectation
from kitafees.domain.errors import ExternalError, ValidationError
from kitafees.domain.fee_generation import FeeService
from kitafees.domain.policy import ReminderPolicy
from kitafees.mailer import DisabledEmailSender, EmailSender
from kitafees.utils.amount_parser import format_amount

logger = logging.getLogger(__name__)

AUTO_ENABLED_KEY = "reminder_auto_enabled"

STAGE_AUTO = "auto"
STAGE_INITIAL = "initial"
STAGE_FINAL = "final"
STAGE_NONE = "none"
STAGES = (STAGE_AUTO, STAGE_INITIAL, STAGE_FINAL)

_EMAIL_TYPES = {
    STAGE_INITIAL: EmailLogType.REMINDER_INITIAL,
    STAGE_FINAL: EmailLogType.REMINDER_FINAL,
}


@dataclass(frozen=True)
class OverdueFee:
    fee: FeeExpectation
    child: Optional[Child]
    days_overdue: int


@dataclass
class ReminderRunResult:
    """Outcome of a reminder run."""

    stage: str
    as_of: date
    dry_run: bool
    overdue: list[OverdueFee] = field(default_factory=list)
    already_reminded: int = 0
    reminders_created: list[FeeExpectation] = field(default_factory=list)
    email_sent: bool = False
    email_error: Optional[str] = None


class ReminderEngine:
    """Find overdue fees, charge reminder fees and notify by e-mail."""

    def __init__(
        self,
        db: Database,
        email_sender: Optional[EmailSender] = None,
        policy: Optional[ReminderPolicy] = None,
        default_recipient: Optional[str] = None,
    ):
        """Initialize the reminder engine.

        Args:
            db: Database instance
            email_sender: Delivery collaborator; e-mail is disabled when None
            policy: Stage days, grace periods and reminded fee types
            default_recipient: Address used when a run names none
        """
        self.db = db
        self.email_sender = email_sender or DisabledEmailSender()
        self.policy = policy or ReminderPolicy()
        self.default_recipient = default_recipient
        self.fees = FeeService(db)

    def get_auto_enabled(self) -> bool:
        """Whether the automatic stage is switched on."""
        return self.db.get_setting(AUTO_ENABLED_KEY) == "true"

    def set_auto_enabled(self, enabled: bool) -> None:
        self.db.set_setting(AUTO_ENABLED_KEY, "true" if enabled else "false")
        logger.info("Automatic reminders %s", "enabled" if enabled else "disabled")

    def resolve_stage(self, stage: str, as_of: date) -> str:
        """Map ``auto`` to the stage due on the given day, or ``none``.

        Raises:
            ValidationError: If the stage is unknown
        """
        if stage not in STAGES:
            raise ValidationError(f"Unknown reminder stage '{stage}', use one of {', '.join(STAGES)}")
        if stage != STAGE_AUTO:
            return stage
        if not self.get_auto_enabled():
            return STAGE_NONE
        if as_of.day == self.policy.initial_day:
            return STAGE_INITIAL
        if as_of.day == self.policy.final_day:
            return STAGE_FINAL
        return STAGE_NONE

    def find_overdue(self, stage: str, as_of: date) -> list[OverdueFee]:
        """Unpaid fees whose due date plus the stage's grace days is on or before ``as_of``."""
        grace = timedelta(days=self.policy.grace_days.get(stage, 0))
        children: dict[int, Optional[Child]] = {}
        overdue = []
        for fee in self.db.list_fee_expectations(fee_types=list(self.policy.fee_types), unpaid_only=True):
            if fee.due_date + grace > as_of:
                continue
            if fee.child_id not in children:
                children[fee.child_id] = self.db.get_child(fee.child_id)
            overdue.append(OverdueFee(fee, children[fee.child_id], (as_of - fee.due_date).days))
        return overdue

    def reminder_due_date(self, as_of: date) -> date:
        """The 15th of the run month, but never sooner than 14 days after the run."""
        fixed = date(as_of.year, as_of.month, self.policy.reminder_due_day)
        return max(fixed, as_of + timedelta(days=self.policy.min_payment_days))

    def run(
        self,
        stage: str = STAGE_AUTO,
        as_of: Optional[date] = None,
        recipient: Optional[str] = None,
        dry_run: bool = False,
        user: str = "system",
    ) -> ReminderRunResult:
        """Run one reminder stage.

        A fee listed in an earlier initial notice is not listed again, and a
        fee that already has a REMINDER fee gets no second one. With
        ``dry_run`` nothing is stored or sent.

        Args:
            stage: ``auto``, ``initial`` or ``final``
            as_of: Reference date, defaults to today
            recipient: E-mail address of the summary; defaults to the
                engine's default recipient
            dry_run: Only compute what would happen
            user: Who triggered the run

        Returns:
            ReminderRunResult describing the fees acted on

        Raises:
            ValidationError: If the stage is unknown
        """
        as_of = as_of or date.today()
        resolved = self.resolve_stage(stage, as_of)
        result = ReminderRunResult(stage=resolved, as_of=as_of, dry_run=dry_run)
        if resolved == STAGE_NONE:
            logger.debug("No reminder stage due on %s", as_of)
            return result

        overdue = self.find_overdue(resolved, as_of)
        if resolved == STAGE_INITIAL:
            notified = self._already_notified()
            pending = [o for o in overdue if o.fee.id not in notified]
        else:
            pending = [o for o in overdue if self.db.get_reminder_for(o.fee.id) is None]
        result.already_reminded = len(overdue) - len(pending)
        result.overdue = pending

        if dry_run or not pending:
            return result

        if resolved == STAGE_FINAL:
            due_date = self.reminder_due_date(as_of)
            with self.db.transaction():
                for item in pending:
                    result.reminders_created.append(
                        self.fees.create_reminder(item.fee.id, as_of=as_of, due_date=due_date)
                    )
            logger.info("Created %d reminder fees", len(result.reminders_created))

        self._notify(result, recipient or self.default_recipient, user)
        return result

    def _already_notified(self) -> set[int]:
        """Fee IDs listed in earlier initial notices."""
        fee_ids: set[int] = set()
        for log in self.db.list_email_logs(EmailLogType.REMINDER_INITIAL):
            if log.payload:
                fee_ids.update(log.payload.get("fee_ids", []))
        return fee_ids

    def _notify(self, result: ReminderRunResult, recipient: Optional[str], user: str) -> None:
        if not recipient:
            result.email_error = "No reminder recipient configured"
            logger.warning("Reminder e-mail not sent: %s", result.email_error)
            return

        subject, body = self.compose(result)
        try:
            self.email_sender.send_text_email(recipient, subject, body)
        except ExternalError as e:
            result.email_error = str(e)
            logger.warning("Reminder e-mail to %s failed: %s", recipient, e)
            return

        self.db.create_email_log(
            to_email=recipient,
            subject=subject,
            body=body,
            email_type=_EMAIL_TYPES[result.stage],
            payload={
                "stage": result.stage,
                "as_of": result.as_of.isoformat(),
                "fee_ids": [item.fee.id for item in result.overdue],
                "reminder_ids": [fee.id for fee in result.reminders_created],
            },
            sent_by=user,
        )
        result.email_sent = True

    def compose(self, result: ReminderRunResult) -> tuple[str, str]:
        """Subject and plain-text body of a reminder summary."""
        as_of = f"{result.as_of:%d.%m.%Y}"
        if result.stage == STAGE_FINAL:
            subject = f"Mahnung: {len(result.overdue)} offene Beiträge ({as_of})"
        else:
            subject = f"Zahlungserinnerung: {len(result.overdue)} offene Beiträge ({as_of})"

        reminders = {fee.reminder_for_id: fee for fee in result.reminders_created}
        lines = [f"Offene Beiträge, Stand {as_of}:", ""]
        for item in result.overdue:
            name = item.child.full_name if item.child else f"Kind {item.fee.child_id}"
            number = f" ({item.child.member_number})" if item.child else ""
            line = (
                f"- {name}{number}: {item.fee.fee_type.value} {item.fee.period_label}, "
                f"{format_amount(item.fee.amount)} EUR, fällig seit {item.fee.due_date:%d.%m.%Y}"
            )
            reminder = reminders.get(item.fee.id)
            if reminder is not None:
                line += (
                    f", Mahngebühr {format_amount(reminder.amount)} EUR "
                    f"bis {reminder.due_date:%d.%m.%Y}"
                )
            lines.append(line)
        return subject, "\n".join(lines) + "\n"
