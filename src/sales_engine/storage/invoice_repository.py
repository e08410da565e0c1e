"""
Invoice persistence contract and the in-memory implementation.

The repository owns the two uniqueness guarantees of the invoice table:
at most one non-cancelled invoice per order, and unique invoice numbers.
``add`` enforces both atomically and reports a lost race as
ConcurrencyConflict.
"""
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..engine.errors import ConcurrencyConflict, NotFound
from ..engine.models import Invoice, InvoiceStatus


def issue_order(invoice: Invoice) -> tuple:
    """Issue date, then sequence; the sequence may grow past four digits."""
    return (invoice.issue_date, len(invoice.invoice_number), invoice.invoice_number)


class InvoiceRepository(ABC):

    @abstractmethod
    def add(self, invoice: Invoice) -> Invoice:
        """Insert atomically; ConcurrencyConflict on a uniqueness violation."""

    @abstractmethod
    def get(self, invoice_id: str) -> Optional[Invoice]:
        ...

    @abstractmethod
    def find_active_by_order(self, order_id: str) -> Optional[Invoice]:
        ...

    @abstractmethod
    def list_invoices(self, status: Optional[InvoiceStatus] = None) -> list[Invoice]:
        ...

    @abstractmethod
    def update_status(
        self,
        invoice_id: str,
        expected: InvoiceStatus,
        target: InvoiceStatus,
        updated_at: datetime,
    ) -> Invoice:
        """
        Compare-and-set the status. NotFound for an unknown invoice,
        ConcurrencyConflict if the stored status is no longer ``expected``.
        """


class InMemoryInvoiceRepository(InvoiceRepository):
    """Dict-backed repository; a single lock makes check+insert atomic."""

    def __init__(self):
        self._lock = threading.Lock()
        self._invoices: dict[str, Invoice] = {}

    def add(self, invoice: Invoice) -> Invoice:
        with self._lock:
            for existing in self._invoices.values():
                if existing.order_id == invoice.order_id and existing.is_active:
                    raise ConcurrencyConflict(
                        f"Invoice already exists for order {invoice.order_id}",
                        code="invoice_exists",
                    )
                if existing.invoice_number == invoice.invoice_number:
                    raise ConcurrencyConflict(
                        f"Invoice number {invoice.invoice_number} already issued",
                        code="duplicate_number",
                    )
            self._invoices[invoice.id] = invoice
        return invoice

    def get(self, invoice_id: str) -> Optional[Invoice]:
        with self._lock:
            return self._invoices.get(invoice_id)

    def find_active_by_order(self, order_id: str) -> Optional[Invoice]:
        with self._lock:
            for invoice in self._invoices.values():
                if invoice.order_id == order_id and invoice.is_active:
                    return invoice
        return None

    def list_invoices(self, status: Optional[InvoiceStatus] = None) -> list[Invoice]:
        with self._lock:
            invoices = list(self._invoices.values())
        if status is not None:
            invoices = [i for i in invoices if i.status == status]
        return sorted(invoices, key=issue_order)

    def update_status(
        self,
        invoice_id: str,
        expected: InvoiceStatus,
        target: InvoiceStatus,
        updated_at: datetime,
    ) -> Invoice:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            if invoice is None:
                raise NotFound("Invoice", invoice_id)
            if invoice.status != expected:
                raise ConcurrencyConflict(
                    f"Invoice {invoice.invoice_number} changed to {invoice.status.value} concurrently",
                    code="status_changed",
                )
            invoice = invoice.with_status(target, updated_at)
            self._invoices[invoice_id] = invoice
        return invoice
