"""
Rule Store - holds pricing rules keyed by product.

Pure lookups only. An unknown product yields an empty list so callers can fall
back to base pricing. Three flavours:

- InMemoryRuleStore: dict-backed, used by tests and as the default store
- CsvRuleStore: persists rules to a rules.csv file, one row per rule
- CachedRuleStore: time-bounded read cache in front of another store
"""
import csv
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Optional

from .errors import InvalidRule, NotFound
from .models import GENERAL_SCOPE, FixedPrice, Percentage, PricingRule, as_utc

logger = logging.getLogger(__name__)


class RuleStore(ABC):
    """Storage contract for pricing rules."""

    @abstractmethod
    def rules_for(self, product_id: str) -> list[PricingRule]:
        """All stored rules (active or not) for a product."""

    @abstractmethod
    def all_rules(self) -> list[PricingRule]:
        ...

    @abstractmethod
    def add(self, rule: PricingRule) -> PricingRule:
        ...

    @abstractmethod
    def deactivate(self, rule_id: str) -> PricingRule:
        ...

    def get(self, rule_id: str) -> Optional[PricingRule]:
        for rule in self.all_rules():
            if rule.rule_id == rule_id:
                return rule
        return None

    def rule_ids(self) -> set[str]:
        return {r.rule_id for r in self.all_rules()}


class InMemoryRuleStore(RuleStore):

    def __init__(self, rules: Optional[list[PricingRule]] = None):
        self._lock = threading.Lock()
        self._rules: dict[str, PricingRule] = {}
        for rule in rules or []:
            self._rules[rule.rule_id] = rule

    def rules_for(self, product_id: str) -> list[PricingRule]:
        with self._lock:
            return [r for r in self._rules.values() if r.product_id == product_id]

    def all_rules(self) -> list[PricingRule]:
        with self._lock:
            return list(self._rules.values())

    def add(self, rule: PricingRule) -> PricingRule:
        with self._lock:
            if rule.rule_id in self._rules:
                raise ValueError(f"Rule with ID '{rule.rule_id}' already exists")
            self._rules[rule.rule_id] = rule
        return rule

    def deactivate(self, rule_id: str) -> PricingRule:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                raise NotFound("PricingRule", rule_id)
            rule = rule.deactivated()
            self._rules[rule_id] = rule
        return rule


# ---------------------------------------------------------------------------
# CSV persistence
# ---------------------------------------------------------------------------

CSV_COLUMNS = [
    'rule_id', 'name', 'product_id', 'active', 'scope', 'min_qty', 'max_qty',
    'discount_type', 'discount_value', 'valid_from', 'valid_until', 'created_at',
]


DISCOUNT_KINDS = {'percent': Percentage, 'fixed': FixedPrice}


def parse_bool(value: str) -> bool:
    """Parse a boolean from CSV string."""
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_optional_int(value: str) -> Optional[int]:
    if not value or value.strip() == '':
        return None
    return int(value)


def parse_optional_datetime(value: str) -> Optional[datetime]:
    if not value or value.strip() == '':
        return None
    return as_utc(datetime.fromisoformat(value.strip()))


def rule_to_csv_row(rule: PricingRule) -> dict:
    """Convert to CSV row format."""
    return {
        'rule_id': rule.rule_id,
        'name': rule.name,
        'product_id': rule.product_id,
        'active': 'true' if rule.active else 'false',
        'scope': rule.scope,
        'min_qty': str(rule.min_quantity),
        'max_qty': str(rule.max_quantity) if rule.max_quantity is not None else '',
        'discount_type': rule.discount.kind,
        'discount_value': str(rule.discount.value),
        'valid_from': rule.valid_from.isoformat(),
        'valid_until': rule.valid_until.isoformat() if rule.valid_until else '',
        'created_at': rule.created_at.isoformat() if rule.created_at else '',
    }


def rule_from_csv_row(row: dict) -> PricingRule:
    """Create a PricingRule from a CSV row; InvalidRule if the row cannot be priced."""
    rule_id = (row.get('rule_id') or '').strip()
    errors = []
    if not (row.get('valid_from') or '').strip():
        errors.append(f"Rule '{rule_id}' has no valid_from")

    kind = (row.get('discount_type') or '').strip().lower()
    if kind not in DISCOUNT_KINDS:
        errors.append(f"Rule '{rule_id}' has unknown discount_type '{kind}'")

    try:
        value = Decimal((row.get('discount_value') or '').strip())
    except InvalidOperation:
        errors.append(f"Rule '{rule_id}' has a non-numeric discount_value")

    if errors:
        raise InvalidRule(errors)

    discount = DISCOUNT_KINDS[kind](value)

    try:
        return PricingRule(
            rule_id=rule_id,
            name=row.get('name') or '',
            product_id=(row.get('product_id') or '').strip(),
            active=parse_bool(row.get('active', 'true')),
            scope=(row.get('scope') or '').strip() or GENERAL_SCOPE,
            min_quantity=parse_optional_int(row.get('min_qty', '')) or 1,
            max_quantity=parse_optional_int(row.get('max_qty', '')),
            discount=discount,
            valid_from=parse_optional_datetime(row['valid_from']),
            valid_until=parse_optional_datetime(row.get('valid_until', '')),
            created_at=parse_optional_datetime(row.get('created_at', '')),
        )
    except ValueError as e:
        raise InvalidRule([f"Rule '{rule_id}': {e}"]) from e


class CsvRuleStore(RuleStore):
    """
    Rules persisted to a CSV file.

    The whole file is rewritten on every change; rules change rarely and the
    file stays small. Rows that cannot be priced are skipped with a warning
    and written back unchanged so a hand-edited file loses nothing.
    """

    def __init__(self, rules_csv_path: Path):
        self.rules_csv_path = Path(rules_csv_path)
        self._lock = threading.Lock()
        self._rejected_rows: list[dict] = []

    def _read(self) -> list[PricingRule]:
        rules = []
        self._rejected_rows = []
        if not self.rules_csv_path.exists():
            return rules

        with open(self.rules_csv_path, 'r', encoding='utf-8', newline='') as f:
            reader = csv.DictReader(f)
            for row in reader:
                if not row.get('rule_id'):
                    continue
                try:
                    rules.append(rule_from_csv_row(row))
                except InvalidRule as e:
                    logger.warning("Skipping rule row in %s: %s", self.rules_csv_path, e)
                    self._rejected_rows.append(row)
        return rules

    def _write(self, rules: list[PricingRule]):
        self.rules_csv_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.rules_csv_path, 'w', encoding='utf-8', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
            writer.writeheader()
            for rule in rules:
                writer.writerow(rule_to_csv_row(rule))
            for row in self._rejected_rows:
                writer.writerow({k: row.get(k) or '' for k in CSV_COLUMNS})

    def rules_for(self, product_id: str) -> list[PricingRule]:
        with self._lock:
            return [r for r in self._read() if r.product_id == product_id]

    def all_rules(self) -> list[PricingRule]:
        with self._lock:
            return self._read()

    def add(self, rule: PricingRule) -> PricingRule:
        with self._lock:
            rules = self._read()
            taken = {r.rule_id for r in rules} | {row['rule_id'].strip() for row in self._rejected_rows}
            if rule.rule_id in taken:
                raise ValueError(f"Rule with ID '{rule.rule_id}' already exists")
            rules.append(rule)
            self._write(rules)
        return rule

    def deactivate(self, rule_id: str) -> PricingRule:
        with self._lock:
            rules = self._read()
            for i, rule in enumerate(rules):
                if rule.rule_id == rule_id:
                    rules[i] = rule.deactivated()
                    self._write(rules)
                    return rules[i]
        raise NotFound("PricingRule", rule_id)


class CachedRuleStore(RuleStore):
    """
    Per-product read cache with a bounded staleness window.

    Entries expire after ``ttl_seconds`` so validity-window transitions are
    observed promptly; writes through this store invalidate immediately.
    """

    def __init__(
        self,
        backend: RuleStore,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, list[PricingRule]]] = {}

    def rules_for(self, product_id: str) -> list[PricingRule]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(product_id)
            if entry is not None and now - entry[0] < self.ttl_seconds:
                return list(entry[1])

        rules = self.backend.rules_for(product_id)
        with self._lock:
            self._entries[product_id] = (now, rules)
        return list(rules)

    def all_rules(self) -> list[PricingRule]:
        return self.backend.all_rules()

    def add(self, rule: PricingRule) -> PricingRule:
        created = self.backend.add(rule)
        self.invalidate(rule.product_id)
        return created

    def deactivate(self, rule_id: str) -> PricingRule:
        rule = self.backend.deactivate(rule_id)
        self.invalidate(rule.product_id)
        return rule

    def invalidate(self, product_id: Optional[str] = None):
        with self._lock:
            if product_id is None:
                self._entries.clear()
            else:
                self._entries.pop(product_id, None)
