import pytest
import sys
import os
import threading
from datetime import date, datetime, timezone
from decimal import Decimal

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from sales_engine.engine.errors import BusinessRuleViolation, ConcurrencyConflict, NotFound
from sales_engine.engine.models import Customer, Invoice, InvoiceLineItem, InvoiceStatus, Order
from sales_engine.engine.tax import TaxCalculator, split_tax
from sales_engine.services.directory import InMemoryDirectory
from sales_engine.services.invoice_service import InvoiceService
from sales_engine.storage.numbering import InvoiceNumberGenerator
from sales_engine.storage.sql import SqlInvoiceCounter, SqlInvoiceRepository, create_session_factory

NOW = datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)


def make_invoice(invoice_id, order_id, number, status=InvoiceStatus.DRAFT, issue_date=date(2026, 3, 15)):
    tax = split_tax(Decimal("10000.00"), "Haryana", "Haryana", Decimal("0.18"))
    return Invoice(
        id=invoice_id,
        invoice_number=number,
        order_id=order_id,
        customer_id="C-1001",
        issue_date=issue_date,
        due_date=date(2026, 4, 14),
        items=(
            InvoiceLineItem("CNC Lathe", 10, Decimal("1000.00"), Decimal("0.00"), Decimal("10000.00")),
            InvoiceLineItem("Installation", 1, Decimal("0.00"), Decimal("0.00"), Decimal("0.00")),
        ),
        subtotal=Decimal("10000.00"),
        discount_amount=Decimal("0.00"),
        tax=tax,
        total_amount=Decimal("11800.00"),
        status=status,
        notes="First order",
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture
def session_factory():
    factory, engine = create_session_factory("sqlite://")
    yield factory
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return SqlInvoiceRepository(session_factory)


def test_invoice_is_stored_and_read_back(repository):
    repository.add(make_invoice("inv_1", "O-1", "INV-202603-0001"))

    stored = repository.get("inv_1")

    assert stored.total_amount == Decimal("11800.00")
    assert stored.tax.component_a == Decimal("900.00")
    assert [i.description for i in stored.items] == ["CNC Lathe", "Installation"]
    assert stored.created_at == NOW
    assert repository.find_active_by_order("O-1").id == "inv_1"
    assert repository.get("inv_missing") is None


def test_second_live_invoice_for_order_is_rejected(repository):
    repository.add(make_invoice("inv_1", "O-1", "INV-202603-0001"))

    with pytest.raises(ConcurrencyConflict):
        repository.add(make_invoice("inv_2", "O-1", "INV-202603-0002"))

    assert [i.id for i in repository.list_invoices()] == ["inv_1"]


def test_cancelled_invoice_frees_the_order(repository):
    repository.add(make_invoice("inv_1", "O-1", "INV-202603-0001"))
    repository.update_status("inv_1", InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED, NOW)

    repository.add(make_invoice("inv_2", "O-1", "INV-202603-0002"))

    assert repository.find_active_by_order("O-1").id == "inv_2"
    assert len(repository.list_invoices(InvoiceStatus.CANCELLED)) == 1


def test_duplicate_invoice_number_is_rejected(repository):
    repository.add(make_invoice("inv_1", "O-1", "INV-202603-0001"))

    with pytest.raises(ConcurrencyConflict) as exc:
        repository.add(make_invoice("inv_2", "O-2", "INV-202603-0001"))

    assert exc.value.code == "duplicate_number"


def test_second_live_invoice_reports_order_conflict(repository):
    repository.add(make_invoice("inv_1", "O-1", "INV-202603-0001"))

    with pytest.raises(ConcurrencyConflict) as exc:
        repository.add(make_invoice("inv_2", "O-1", "INV-202603-0002"))

    assert exc.value.code == "invoice_exists"


def test_listing_orders_by_sequence_past_four_digits(repository):
    repository.add(make_invoice("inv_b", "O-2", "INV-202603-10000"))
    repository.add(make_invoice("inv_a", "O-1", "INV-202603-9999"))
    repository.add(make_invoice("inv_c", "O-3", "INV-202604-0001", issue_date=date(2026, 4, 1)))

    assert [i.invoice_number for i in repository.list_invoices()] == [
        "INV-202603-9999", "INV-202603-10000", "INV-202604-0001",
    ]


def test_status_update_is_compare_and_set(repository):
    repository.add(make_invoice("inv_1", "O-1", "INV-202603-0001"))

    sent = repository.update_status("inv_1", InvoiceStatus.DRAFT, InvoiceStatus.SENT, NOW)
    assert sent.status == InvoiceStatus.SENT

    with pytest.raises(ConcurrencyConflict):
        repository.update_status("inv_1", InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED, NOW)

    with pytest.raises(NotFound):
        repository.update_status("inv_missing", InvoiceStatus.DRAFT, InvoiceStatus.SENT, NOW)


def test_counter_increments_per_period(session_factory):
    counter = SqlInvoiceCounter(session_factory)

    assert [counter.next_value("202603") for _ in range(3)] == [1, 2, 3]
    assert counter.next_value("202604") == 1
    assert SqlInvoiceCounter(session_factory).next_value("202603") == 4


# ---------------------------------------------------------------------------
# Invoice generation over SQL storage from many threads
# ---------------------------------------------------------------------------

WORKERS = 8


@pytest.fixture(params=["memory", "file"])
def sql_invoices(request, tmp_path):
    url = "sqlite://" if request.param == "memory" else f"sqlite:///{tmp_path / 'invoices.db'}"
    factory, engine = create_session_factory(url)
    directory = InMemoryDirectory(
        customers=[Customer("C-1001", "ENTERPRISE", "Haryana", "Gurgaon Fabricators")],
        orders=[Order(f"O-{n}", "C-1001", "paid", Decimal("10000")) for n in range(40)],
    )
    service = InvoiceService(
        directory,
        SqlInvoiceRepository(factory),
        InvoiceNumberGenerator(SqlInvoiceCounter(factory)),
        TaxCalculator("Haryana", Decimal("0.18")),
        clock=lambda: NOW,
    )
    yield service
    engine.dispose()


def run_in_threads(target, jobs):
    """Run target(job) for every job over WORKERS threads; collect results and errors."""
    results, errors = [], []
    lock = threading.Lock()
    barrier = threading.Barrier(WORKERS)

    def worker(chunk):
        barrier.wait()
        for job in chunk:
            try:
                value = target(job)
            except Exception as e:
                with lock:
                    errors.append(e)
            else:
                with lock:
                    results.append(value)

    threads = [threading.Thread(target=worker, args=(jobs[i::WORKERS],)) for i in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def test_distinct_orders_from_many_threads_all_invoiced(sql_invoices):
    orders = [f"O-{n}" for n in range(40)]

    invoices, errors = run_in_threads(sql_invoices.generate_invoice, orders)

    assert errors == []
    assert sorted(i.order_id for i in invoices) == sorted(orders)
    numbers = {i.invoice_number for i in invoices}
    assert numbers == {f"INV-202603-{n:04d}" for n in range(1, 41)}
    assert len(sql_invoices.list_invoices()) == 40


def test_same_order_from_many_threads_invoiced_once(sql_invoices):
    invoices, errors = run_in_threads(sql_invoices.generate_invoice, ["O-7"] * WORKERS)

    assert len(invoices) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, BusinessRuleViolation) for e in errors)
    assert [i.order_id for i in sql_invoices.list_invoices()] == ["O-7"]
