"""
Price Calculator - applies the best pricing rule to a base price.

Resolution order:
1. Ask the resolver for rules visible to this buyer right now
2. Narrow to rules whose quantity band covers the requested quantity
3. No rule left: base price stands
4. Otherwise pick the best rule (buyer specificity, then volume threshold)
5. Apply its discount (fixed replacement price or percentage off)
6. Clamp the final price at zero
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .models import FixedPrice, ResolvedPrice, to_money
from .rule_matcher import RuleResolver, select_best_rule

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
ZERO = Decimal("0")


class PricingEngine:
    """
    Pure price calculation on top of a RuleResolver.

    Never raises on valid numeric input; a misconfigured rule clamps the
    price to zero instead.
    """

    def __init__(self, resolver: RuleResolver):
        self.resolver = resolver

    def price_for(
        self,
        product_id: str,
        quantity: int,
        buyer_classification: Optional[str],
        as_of: datetime,
        base_price: Decimal,
        buyer_id: Optional[str] = None,
    ) -> ResolvedPrice:
        base_price = to_money(base_price)
        result = ResolvedPrice(
            product_id=product_id,
            buyer_id=buyer_id,
            quantity=quantity,
            base_price=base_price,
            final_price=base_price,
        )
        result.add_trace("Base Price", f"Catalog price for {product_id}", f"{base_price}")
        if buyer_classification:
            result.add_trace("Context", "Buyer classification", buyer_classification)

        result.matched_rules = self.resolver.applicable_rules(
            product_id, buyer_classification, as_of
        )
        result.applicable_rules = [
            rule for rule in result.matched_rules if rule.covers_quantity(quantity)
        ]
        result.add_trace(
            "Rule Lookup",
            f"{len(result.matched_rules)} visible, {len(result.applicable_rules)} cover qty {quantity}",
        )

        best = select_best_rule(result.applicable_rules)
        if best is None:
            result.add_trace("Price Resolution", "No applicable rule, using base price", f"{base_price}")
            return result

        if isinstance(best.discount, FixedPrice):
            final_price = best.discount.value
        else:
            final_price = base_price - base_price * (best.discount.value / HUNDRED)

        if final_price < ZERO:
            logger.warning("Rule %s priced %s below zero; clamped", best.rule_id, product_id)
            result.add_trace("Clamp", f"Rule produced {to_money(final_price)}, clamped to zero")
            final_price = ZERO

        result.applied_rule = best
        result.final_price = to_money(final_price)
        result.discount_amount = result.base_price - result.final_price
        if base_price > ZERO:
            result.discount_percentage = to_money(result.discount_amount / base_price * HUNDRED)
        result.add_trace("Rule Applied", best.describe(), f"{result.final_price}")
        return result
