"""
Rules Service - create, validate, list and deactivate pricing rules.

Rules are never mutated or deleted: a superseded rule is deactivated and a new
one created. Malformed rules are rejected with InvalidRule before anything is
written.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from ..engine.errors import InvalidRule, NotFound
from ..engine.models import (
    GENERAL_SCOPE,
    DiscountSpec,
    FixedPrice,
    Percentage,
    PricingRule,
    as_utc,
    utc_now,
)
from ..engine.rule_store import RuleStore
from .directory import Directory

logger = logging.getLogger(__name__)


@dataclass
class RuleDraft:
    """Unvalidated input for a new pricing rule."""
    product_id: str
    min_quantity: int = 1
    max_quantity: Optional[int] = None
    scope: Optional[str] = None
    discount_percent: Optional[Decimal] = None
    fixed_price: Optional[Decimal] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    rule_id: Optional[str] = None
    name: str = ""


@dataclass
class ValidationResult:
    """Result of rule validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class RulesService:
    """Service for managing pricing rules."""

    def __init__(
        self,
        store: RuleStore,
        directory: Optional[Directory] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.directory = directory
        self.clock = clock

    def list_rules(self, product_id: Optional[str] = None, include_inactive: bool = True) -> list[PricingRule]:
        rules = self.store.rules_for(product_id) if product_id else self.store.all_rules()
        if not include_inactive:
            rules = [r for r in rules if r.active]
        return sorted(rules, key=lambda r: (r.product_id, r.rule_id))

    def get_rule(self, rule_id: str) -> PricingRule:
        rule = self.store.get(rule_id)
        if rule is None:
            raise NotFound("PricingRule", rule_id)
        return rule

    def validate_rule(self, draft: RuleDraft) -> ValidationResult:
        """Validate a rule before saving."""
        result = ValidationResult(valid=True)

        if not draft.product_id:
            result.errors.append("product_id is required")
        elif self.directory is not None and self.directory.get_product(draft.product_id) is None:
            result.errors.append(f"Product '{draft.product_id}' not found")

        if draft.min_quantity is None or draft.min_quantity < 1:
            result.errors.append("min_quantity must be at least 1")
        elif draft.max_quantity is not None and draft.max_quantity <= draft.min_quantity:
            result.errors.append("max_quantity must be greater than min_quantity")

        if draft.discount_percent is None and draft.fixed_price is None:
            result.errors.append("Either discount_percent or fixed_price must be provided")
        elif draft.discount_percent is not None and draft.fixed_price is not None:
            result.errors.append("discount_percent and fixed_price are mutually exclusive")
        elif draft.discount_percent is not None and Decimal(draft.discount_percent) < 0:
            result.errors.append("discount_percent must not be negative")
        elif draft.fixed_price is not None and Decimal(draft.fixed_price) < 0:
            result.errors.append("fixed_price must not be negative")

        if draft.valid_from and draft.valid_until:
            if as_utc(draft.valid_until) < as_utc(draft.valid_from):
                result.errors.append("valid_until must not be before valid_from")

        if draft.rule_id and self.store.get(draft.rule_id) is not None:
            result.errors.append(f"Rule with ID '{draft.rule_id}' already exists")

        result.valid = not result.errors
        if not result.valid:
            return result

        if draft.discount_percent is not None and Decimal(draft.discount_percent) > 100:
            result.warnings.append("discount_percent above 100 prices the product at zero")

        if draft.valid_until and as_utc(draft.valid_until) < self.clock():
            result.warnings.append("Rule has expired (valid_until is in the past)")

        result.warnings.extend(self._check_conflicts(draft))
        return result

    def create_rule(self, draft: RuleDraft) -> PricingRule:
        """Validate and persist a new rule; InvalidRule if malformed."""
        if draft.product_id and self.directory is not None:
            if self.directory.get_product(draft.product_id) is None:
                raise NotFound("Product", draft.product_id)

        validation = self.validate_rule(draft)
        if not validation.valid:
            logger.warning("Rejected pricing rule for %s: %s", draft.product_id, "; ".join(validation.errors))
            raise InvalidRule(validation.errors)

        now = self.clock()
        rule = PricingRule(
            rule_id=draft.rule_id or self._generate_rule_id(draft),
            name=draft.name or "",
            product_id=draft.product_id,
            scope=(draft.scope or GENERAL_SCOPE).strip() or GENERAL_SCOPE,
            min_quantity=draft.min_quantity,
            max_quantity=draft.max_quantity,
            discount=_discount_from(draft),
            valid_from=as_utc(draft.valid_from) if draft.valid_from else now,
            valid_until=as_utc(draft.valid_until) if draft.valid_until else None,
            active=True,
            created_at=now,
        )
        try:
            self.store.add(rule)
        except ValueError as e:
            raise InvalidRule([str(e)]) from e

        logger.info("Created pricing rule %s", rule.describe())
        return rule

    def create_pricing_rule(
        self,
        product_id: str,
        scope: Optional[str],
        min_quantity: int,
        max_quantity: Optional[int],
        discount_percent: Optional[Decimal] = None,
        fixed_price: Optional[Decimal] = None,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        name: str = "",
    ) -> PricingRule:
        return self.create_rule(RuleDraft(
            product_id=product_id,
            scope=scope,
            min_quantity=min_quantity,
            max_quantity=max_quantity,
            discount_percent=discount_percent,
            fixed_price=fixed_price,
            valid_from=valid_from,
            valid_until=valid_until,
            name=name,
        ))

    def deactivate_rule(self, rule_id: str) -> PricingRule:
        rule = self.store.deactivate(rule_id)
        logger.info("Deactivated pricing rule %s", rule_id)
        return rule

    def _check_conflicts(self, draft: RuleDraft) -> list[str]:
        """Warn about active rules with the same product, scope and an overlapping band."""
        warnings = []
        scope = (draft.scope or GENERAL_SCOPE).strip() or GENERAL_SCOPE
        high = draft.max_quantity if draft.max_quantity is not None else float('inf')

        for existing in self.store.rules_for(draft.product_id):
            if not existing.active or existing.scope != scope:
                continue
            existing_high = existing.max_quantity if existing.max_quantity is not None else float('inf')
            if draft.min_quantity <= existing_high and existing.min_quantity <= high:
                warnings.append(
                    f"Overlaps quantity band of rule '{existing.rule_id}' "
                    f"(min {existing.min_quantity} vs {draft.min_quantity})"
                )
        return warnings

    def _generate_rule_id(self, draft: RuleDraft) -> str:
        """Generate a unique, readable rule ID."""
        scope = (draft.scope or GENERAL_SCOPE).strip() or GENERAL_SCOPE
        product_hint = re.sub(r'[^A-Za-z0-9]', '', draft.product_id).upper()[:8]
        base = f"{scope.upper()[:4]}-{product_hint}-Q{draft.min_quantity}"

        existing_ids = self.store.rule_ids()
        candidate = base
        counter = 1
        while candidate in existing_ids:
            candidate = f"{base}-{counter}"
            counter += 1
        return candidate

    def get_stats(self) -> dict:
        """Get statistics about rules."""
        rules = self.store.all_rules()
        now = self.clock()

        active = [r for r in rules if r.active]
        expired = [r for r in rules if r.valid_until and as_utc(r.valid_until) < now]
        by_scope = {}
        for r in rules:
            by_scope[r.scope] = by_scope.get(r.scope, 0) + 1

        return {
            'total': len(rules),
            'active': len(active),
            'inactive': len(rules) - len(active),
            'expired': len(expired),
            'by_scope': by_scope,
        }


def _discount_from(draft: RuleDraft) -> DiscountSpec:
    if draft.fixed_price is not None:
        return FixedPrice(Decimal(str(draft.fixed_price)))
    return Percentage(Decimal(str(draft.discount_percent)))
