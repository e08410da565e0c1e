"""
SQLAlchemy storage for invoices and invoice-number counters.

Uniqueness is enforced by the database, not by application checks:

- ``uq_invoices_active_order``: partial unique index on ``order_id`` over
  non-cancelled invoices (at most one live invoice per order)
- ``invoices.invoice_number``: unique column
- ``invoice_counters``: one row per period, incremented in place

A violated constraint on insert is reported as ConcurrencyConflict. An
in-memory SQLite database has a single shared connection, so its sessions
are serialized.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, Optional, Union

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    func,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from ..engine.errors import ConcurrencyConflict, NotFound
from ..engine.models import (
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    TaxBreakdown,
    as_utc,
)
from .invoice_repository import InvoiceRepository
from .numbering import InvoiceCounter

logger = logging.getLogger(__name__)

MONEY = Numeric(14, 2)

ACTIVE_INVOICE = text("status != 'CANCELLED'")


class Base(DeclarativeBase):
    pass


class InvoiceRow(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    taxable_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    tax_component_a: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    tax_component_b: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    tax_inter_component: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_tax: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    terms_and_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["InvoiceItemRow"]] = relationship(
        order_by="InvoiceItemRow.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index(
            "uq_invoices_active_order",
            "order_id",
            unique=True,
            sqlite_where=ACTIVE_INVOICE,
            postgresql_where=ACTIVE_INVOICE,
        ),
    )


class InvoiceItemRow(Base):
    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[str] = mapped_column(ForeignKey("invoices.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    discount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)


class InvoiceCounterRow(Base):
    __tablename__ = "invoice_counters"

    period: Mapped[str] = mapped_column(String(16), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Setup
# ═══════════════════════════════════════════════════════════════════════════════

class SerializedSessions:
    """
    Session factory over a single shared connection.

    Transactions on one DBAPI connection must not interleave, so sessions are
    handed out one at a time. Offers the ``sessionmaker`` calls the stores use.
    """

    def __init__(self, factory: sessionmaker[Session]):
        self._factory = factory
        self._lock = threading.RLock()

    @contextmanager
    def __call__(self) -> Iterator[Session]:
        with self._lock, self._factory() as session:
            yield session

    @contextmanager
    def begin(self) -> Iterator[Session]:
        with self._lock, self._factory.begin() as session:
            yield session


SessionFactory = Union[sessionmaker[Session], SerializedSessions]


def create_session_factory(url: str = "sqlite://") -> tuple[SessionFactory, Engine]:
    """Create the schema and return (session_factory, engine)."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        return SerializedSessions(sessionmaker(engine, expire_on_commit=False)), engine

    engine = create_engine(url)
    Base.metadata.create_all(engine)
    return sessionmaker(engine, expire_on_commit=False), engine


# ═══════════════════════════════════════════════════════════════════════════════
# Mapping
# ═══════════════════════════════════════════════════════════════════════════════

def _optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def invoice_to_row(invoice: Invoice) -> InvoiceRow:
    tax = invoice.tax
    return InvoiceRow(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        order_id=invoice.order_id,
        customer_id=invoice.customer_id,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        subtotal=invoice.subtotal,
        discount_amount=invoice.discount_amount,
        taxable_amount=tax.taxable_amount,
        tax_rate=tax.rate,
        tax_component_a=tax.component_a,
        tax_component_b=tax.component_b,
        tax_inter_component=tax.inter_component,
        total_tax=tax.total_tax,
        total_amount=invoice.total_amount,
        status=invoice.status.value,
        notes=invoice.notes,
        terms_and_conditions=invoice.terms_and_conditions,
        payment_instructions=invoice.payment_instructions,
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
        items=[
            InvoiceItemRow(
                position=position,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discount=item.discount,
                line_total=item.line_total,
            )
            for position, item in enumerate(invoice.items)
        ],
    )


def row_to_invoice(row: InvoiceRow) -> Invoice:
    return Invoice(
        id=row.id,
        invoice_number=row.invoice_number,
        order_id=row.order_id,
        customer_id=row.customer_id,
        issue_date=row.issue_date,
        due_date=row.due_date,
        items=tuple(
            InvoiceLineItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discount=item.discount,
                line_total=item.line_total,
            )
            for item in row.items
        ),
        subtotal=row.subtotal,
        discount_amount=row.discount_amount,
        tax=TaxBreakdown(
            taxable_amount=row.taxable_amount,
            rate=row.tax_rate,
            component_a=row.tax_component_a,
            component_b=row.tax_component_b,
            inter_component=row.tax_inter_component,
            total_tax=row.total_tax,
        ),
        total_amount=row.total_amount,
        status=InvoiceStatus(row.status),
        notes=row.notes,
        terms_and_conditions=row.terms_and_conditions,
        payment_instructions=row.payment_instructions,
        created_at=_optional_utc(row.created_at),
        updated_at=_optional_utc(row.updated_at),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Repository + counter
# ═══════════════════════════════════════════════════════════════════════════════

class SqlInvoiceRepository(InvoiceRepository):

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def add(self, invoice: Invoice) -> Invoice:
        try:
            with self.session_factory.begin() as session:
                session.add(invoice_to_row(invoice))
        except IntegrityError as e:
            logger.warning("Invoice insert for order %s rejected by constraint: %s", invoice.order_id, e.orig)
            if "invoice_number" in str(e.orig):
                raise ConcurrencyConflict(
                    f"Invoice number {invoice.invoice_number} already issued",
                    code="duplicate_number",
                ) from e
            raise ConcurrencyConflict(
                f"Invoice already exists for order {invoice.order_id}",
                code="invoice_exists",
            ) from e
        return invoice

    def get(self, invoice_id: str) -> Optional[Invoice]:
        with self.session_factory() as session:
            row = session.get(InvoiceRow, invoice_id)
            return row_to_invoice(row) if row is not None else None

    def find_active_by_order(self, order_id: str) -> Optional[Invoice]:
        with self.session_factory() as session:
            row = session.scalars(
                select(InvoiceRow)
                .where(InvoiceRow.order_id == order_id)
                .where(InvoiceRow.status != InvoiceStatus.CANCELLED.value)
            ).first()
            return row_to_invoice(row) if row is not None else None

    def list_invoices(self, status: Optional[InvoiceStatus] = None) -> list[Invoice]:
        stmt = select(InvoiceRow).order_by(
            InvoiceRow.issue_date, func.length(InvoiceRow.invoice_number), InvoiceRow.invoice_number,
        )
        if status is not None:
            stmt = stmt.where(InvoiceRow.status == status.value)
        with self.session_factory() as session:
            return [row_to_invoice(row) for row in session.scalars(stmt)]

    def update_status(
        self,
        invoice_id: str,
        expected: InvoiceStatus,
        target: InvoiceStatus,
        updated_at: datetime,
    ) -> Invoice:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(InvoiceRow)
                .where(InvoiceRow.id == invoice_id)
                .where(InvoiceRow.status == expected.value)
                .values(status=target.value, updated_at=updated_at)
            )
            if result.rowcount == 0:
                row = session.get(InvoiceRow, invoice_id)
                if row is None:
                    raise NotFound("Invoice", invoice_id)
                raise ConcurrencyConflict(
                    f"Invoice {row.invoice_number} changed to {row.status} concurrently",
                    code="status_changed",
                )

        invoice = self.get(invoice_id)
        if invoice is None:
            raise NotFound("Invoice", invoice_id)
        return invoice


class SqlInvoiceCounter(InvoiceCounter):
    """Row-per-period counter incremented inside a single transaction."""

    MAX_ATTEMPTS = 5

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def next_value(self, period: str) -> int:
        for attempt in range(self.MAX_ATTEMPTS):
            try:
                return self._increment(period)
            except IntegrityError:
                # Another writer created the period row first; its row now exists
                logger.info("Counter row for %s created concurrently, retrying (%d)", period, attempt + 1)
        raise ConcurrencyConflict(f"Could not allocate invoice number for period {period}")

    def _increment(self, period: str) -> int:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(InvoiceCounterRow)
                .where(InvoiceCounterRow.period == period)
                .values(last_value=InvoiceCounterRow.last_value + 1)
            )
            if result.rowcount == 0:
                session.add(InvoiceCounterRow(period=period, last_value=1))
                session.flush()
                return 1
            return session.scalar(
                select(InvoiceCounterRow.last_value).where(InvoiceCounterRow.period == period)
            )
