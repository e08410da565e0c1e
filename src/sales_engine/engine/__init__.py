"""Engine subpackage - rule resolution, pricing, tax and invoice lifecycle."""
from .pricing_engine import PricingEngine
from .rule_matcher import RuleResolver, select_best_rule
from .tax import TaxCalculator, split_tax
from .models import (
    FixedPrice,
    Invoice,
    InvoiceStatus,
    Percentage,
    PricingRule,
    ResolvedPrice,
    TaxBreakdown,
)

__all__ = [
    'PricingEngine', 'RuleResolver', 'select_best_rule', 'TaxCalculator', 'split_tax',
    'FixedPrice', 'Invoice', 'InvoiceStatus', 'Percentage', 'PricingRule',
    'ResolvedPrice', 'TaxBreakdown',
]
