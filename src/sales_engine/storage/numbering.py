"""
Invoice numbering - atomic per-period counters.

Numbers look like ``INV-202410-0001``: a prefix, the issue period (year and
month) and a sequence that restarts at 1 each period. The sequence is padded
to four digits and simply grows wider past 9999.
"""
import threading
from abc import ABC, abstractmethod
from datetime import date


def period_key(issue_date: date) -> str:
    return issue_date.strftime("%Y%m")


def format_invoice_number(prefix: str, period: str, sequence: int) -> str:
    return f"{prefix}-{period}-{sequence:04d}"


class InvoiceCounter(ABC):

    @abstractmethod
    def next_value(self, period: str) -> int:
        """Atomically allocate the next sequence value for ``period``."""


class InMemoryInvoiceCounter(InvoiceCounter):

    def __init__(self):
        self._lock = threading.Lock()
        self._last: dict[str, int] = {}

    def next_value(self, period: str) -> int:
        with self._lock:
            value = self._last.get(period, 0) + 1
            self._last[period] = value
        return value


class InvoiceNumberGenerator:
    """Formats invoice numbers from an injected counter."""

    def __init__(self, counter: InvoiceCounter, prefix: str = "INV"):
        self.counter = counter
        self.prefix = prefix

    def next_number(self, issue_date: date) -> str:
        period = period_key(issue_date)
        return format_invoice_number(self.prefix, period, self.counter.next_value(period))
