"""
Invoice Lifecycle - the status state machine.

    DRAFT ──► SENT ──► PAID
      │        │  ▲
      │        ▼  │
      │      OVERDUE
      ▼        │
    CANCELLED ◄┘  (from any non-terminal state)

PAID and CANCELLED are terminal. OVERDUE is entered by an external trigger
once the due date has passed; no scheduling happens here.
"""
from datetime import date
from typing import Optional

from .errors import BusinessRuleViolation
from .models import Invoice, InvoiceStatus

ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({
        InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(invoice: Invoice, target: InvoiceStatus, today: Optional[date] = None):
    """Raise BusinessRuleViolation unless ``invoice`` may move to ``target``."""
    current = invoice.status
    if current in TERMINAL_STATES:
        raise BusinessRuleViolation(
            f"Invoice {invoice.invoice_number} is {current.value}; no further transitions allowed",
            code="terminal_state",
        )
    if not can_transition(current, target):
        raise BusinessRuleViolation(
            f"Cannot move invoice {invoice.invoice_number} from {current.value} to {target.value}",
            code="invalid_transition",
        )
    if target == InvoiceStatus.OVERDUE and today is not None and today <= invoice.due_date:
        raise BusinessRuleViolation(
            f"Invoice {invoice.invoice_number} is not past its due date {invoice.due_date.isoformat()}",
            code="not_overdue",
        )
