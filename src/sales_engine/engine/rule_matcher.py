"""
Rule Resolver - finds the pricing rules visible to a buyer and picks the best.

Visibility depends on the rule itself (active flag, validity window, buyer
scope). Quantity-band matching is left to the price calculator because it
depends on the requested quantity.
"""
from datetime import datetime
from typing import Optional

from .models import PricingRule
from .rule_store import RuleStore


def visibility_order(rule: PricingRule) -> tuple[int, int]:
    """Buyer-specific rules first, then ascending minimum quantity."""
    return (0 if rule.is_buyer_specific else 1, rule.min_quantity)


def rule_precedence(rule: PricingRule) -> tuple[bool, int]:
    """
    Total order used to select the best rule.

    Buyer specificity dominates volume: any buyer-specific rule outranks any
    general rule, whatever their thresholds. Within equal specificity the
    higher minimum quantity wins.
    """
    return (rule.is_buyer_specific, rule.min_quantity)


def compare_rules(a: PricingRule, b: PricingRule) -> int:
    """Comparator form of ``rule_precedence`` (-1, 0, 1)."""
    left, right = rule_precedence(a), rule_precedence(b)
    return (left > right) - (left < right)


def select_best_rule(rules: list[PricingRule]) -> Optional[PricingRule]:
    """
    Highest-precedence rule, or None for an empty list.

    Exact ties keep the earliest rule in the given order.
    """
    if not rules:
        return None
    return max(rules, key=rule_precedence)


def scope_matches(rule: PricingRule, buyer_classification: Optional[str]) -> bool:
    if not rule.is_buyer_specific:
        return True
    # Buyer-specific rules are invisible to anonymous pricing
    return buyer_classification is not None and rule.scope == buyer_classification


class RuleResolver:
    """Filters and orders stored rules for a product."""

    def __init__(self, store: RuleStore):
        self.store = store

    def applicable_rules(
        self,
        product_id: str,
        buyer_classification: Optional[str],
        as_of: datetime,
    ) -> list[PricingRule]:
        """
        Rules that are active, inside their validity window at ``as_of`` and
        in scope for the buyer, ordered buyer-specific first then by minimum
        quantity ascending.
        """
        candidates = [
            rule for rule in self.store.rules_for(product_id)
            if rule.is_live(as_of) and scope_matches(rule, buyer_classification)
        ]
        candidates.sort(key=visibility_order)
        return candidates
