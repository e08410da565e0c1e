"""
Invoice Service - assembles invoices from paid orders and moves them through
their lifecycle.

generate_invoice preconditions, first failure wins:
1. the order exists                          -> NotFound
2. the order is paid                         -> BusinessRuleViolation
3. no live invoice references the order      -> BusinessRuleViolation
The final insert re-checks (3) atomically in the repository; losing that race
raises ConcurrencyConflict. Nothing is stored unless the whole invoice was
built.
"""
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Union

import pandas as pd

from ..engine.errors import BusinessRuleViolation, ConcurrencyConflict, NotFound
from ..engine.lifecycle import check_transition
from ..engine.models import (
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    to_money,
    utc_now,
)
from ..engine.tax import TaxCalculator
from ..storage.invoice_repository import InvoiceRepository
from ..storage.numbering import InvoiceNumberGenerator
from .directory import Directory

logger = logging.getLogger(__name__)

PENDING_STATES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)


def parse_status(value: Union[str, InvoiceStatus]) -> InvoiceStatus:
    if isinstance(value, InvoiceStatus):
        return value
    try:
        return InvoiceStatus(str(value).strip().upper())
    except ValueError:
        raise BusinessRuleViolation(f"Unknown invoice status '{value}'", code="unknown_status")


class InvoiceService:

    def __init__(
        self,
        directory: Directory,
        repository: InvoiceRepository,
        numbers: InvoiceNumberGenerator,
        tax_calculator: TaxCalculator,
        payment_terms_days: int = 30,
        default_terms: Optional[str] = None,
        default_payment_instructions: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.directory = directory
        self.repository = repository
        self.numbers = numbers
        self.tax_calculator = tax_calculator
        self.payment_terms_days = payment_terms_days
        self.default_terms = default_terms
        self.default_payment_instructions = default_payment_instructions
        self.clock = clock

    def generate_invoice(
        self,
        order_id: str,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        terms_and_conditions: Optional[str] = None,
        payment_instructions: Optional[str] = None,
    ) -> Invoice:
        order = self.directory.get_order(order_id)
        if order is None:
            raise NotFound("Order", order_id)

        if not order.is_paid:
            logger.warning("Invoice refused for order %s: payment status %s", order_id, order.payment_status)
            raise BusinessRuleViolation("Can only generate invoices for paid orders", code="order_not_paid")

        if self.repository.find_active_by_order(order_id) is not None:
            logger.warning("Invoice refused for order %s: already invoiced", order_id)
            raise BusinessRuleViolation("Invoice already exists for this order", code="invoice_exists")

        customer = self.directory.get_customer(order.customer_id)
        if customer is None:
            raise NotFound("Customer", order.customer_id)

        now = self.clock()
        issue_date = now.date()
        due_date = due_date or issue_date + timedelta(days=self.payment_terms_days)
        if due_date < issue_date:
            raise BusinessRuleViolation("Due date cannot be before the issue date", code="invalid_due_date")

        subtotal = to_money(order.subtotal)
        discount = to_money(order.discount)
        tax = self.tax_calculator.split(subtotal - discount, customer.jurisdiction)

        items = tuple(
            InvoiceLineItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=to_money(item.unit_price),
                discount=to_money(item.discount),
                line_total=to_money(item.line_total),
            )
            for item in order.line_items
        )

        invoice = Invoice(
            id=f"inv_{uuid.uuid4().hex}",
            invoice_number=self.numbers.next_number(issue_date),
            order_id=order.id,
            customer_id=order.customer_id,
            issue_date=issue_date,
            due_date=due_date,
            items=items,
            subtotal=subtotal,
            discount_amount=discount,
            tax=tax,
            total_amount=subtotal - discount + tax.total_tax,
            status=InvoiceStatus.DRAFT,
            notes=notes,
            terms_and_conditions=terms_and_conditions or self.default_terms,
            payment_instructions=payment_instructions or self.default_payment_instructions,
            created_at=now,
            updated_at=now,
        )

        try:
            self.repository.add(invoice)
        except ConcurrencyConflict:
            logger.warning("Lost invoice race for order %s (number %s unused)", order_id, invoice.invoice_number)
            raise

        logger.info(
            "Invoice generated for order %s: %s total %s",
            order_id, invoice.invoice_number, invoice.total_amount,
        )
        return invoice

    def get_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.repository.get(invoice_id)
        if invoice is None:
            raise NotFound("Invoice", invoice_id)
        return invoice

    def list_invoices(self, status: Optional[Union[str, InvoiceStatus]] = None) -> list[Invoice]:
        return self.repository.list_invoices(parse_status(status) if status else None)

    def transition_invoice(self, invoice_id: str, target_status: Union[str, InvoiceStatus]) -> Invoice:
        target = parse_status(target_status)
        invoice = self.get_invoice(invoice_id)
        now = self.clock()

        try:
            check_transition(invoice, target, today=now.date())
        except BusinessRuleViolation as e:
            logger.warning("Rejected transition for %s: %s", invoice.invoice_number, e.reason)
            raise

        updated = self.repository.update_status(invoice_id, invoice.status, target, now)
        logger.info(
            "Invoice %s status updated %s -> %s",
            updated.invoice_number, invoice.status.value, target.value,
        )
        return updated

    def get_analytics(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """
        Invoice totals by status and by month.

        Cancelled invoices appear in the status breakdown but not in the
        amounts.
        """
        invoices = self.repository.list_invoices()
        if start_date:
            invoices = [i for i in invoices if i.issue_date >= start_date]
        if end_date:
            invoices = [i for i in invoices if i.issue_date <= end_date]

        summary = {
            "total_invoices": len(invoices),
            "total_amount": 0.0,
            "paid_amount": 0.0,
            "pending_amount": 0.0,
            "overdue_amount": 0.0,
            "average_amount": 0.0,
            "status_breakdown": {},
            "monthly_trends": [],
        }
        if not invoices:
            return summary

        df = pd.DataFrame([
            {
                "status": i.status.value,
                "amount": float(i.total_amount),
                "month": i.issue_date.strftime("%Y-%m"),
            }
            for i in invoices
        ])
        summary["status_breakdown"] = {k: int(v) for k, v in df["status"].value_counts().items()}

        billable = df[df["status"] != InvoiceStatus.CANCELLED.value]
        if billable.empty:
            return summary

        def amount_in(*states: InvoiceStatus) -> float:
            mask = billable["status"].isin([s.value for s in states])
            return round(float(billable.loc[mask, "amount"].sum()), 2)

        summary["total_amount"] = round(float(billable["amount"].sum()), 2)
        summary["paid_amount"] = amount_in(InvoiceStatus.PAID)
        summary["pending_amount"] = amount_in(*PENDING_STATES)
        summary["overdue_amount"] = amount_in(InvoiceStatus.OVERDUE)
        summary["average_amount"] = round(float(billable["amount"].mean()), 2)

        monthly = billable.groupby("month")["amount"].agg(["count", "sum"]).reset_index()
        summary["monthly_trends"] = [
            {"month": row["month"], "count": int(row["count"]), "amount": round(float(row["sum"]), 2)}
            for _, row in monthly.iterrows()
        ]
        return summary
