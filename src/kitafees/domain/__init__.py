"""Domain layer for kitafees application."""

# Services import the database layer, which imports domain.entities; resolve
# them lazily so importing kitafees.database first does not cycle.
_SERVICES = {
    "HouseholdService": "kitafees.domain.household",
    "ChildService": "kitafees.domain.child",
    "FeeService": "kitafees.domain.fee_generation",
    "BankImportService": "kitafees.domain.bank_import",
    "ReconciliationLedger": "kitafees.domain.reconciliation",
    "IbanMemoryService": "kitafees.domain.iban_memory",
    "ReminderEngine": "kitafees.domain.reminders",
    "TransactionMatcher": "kitafees.domain.matching",
}

__all__ = list(_SERVICES)


def __getattr__(name):
    if name in _SERVICES:
        import importlib

        return getattr(importlib.import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
