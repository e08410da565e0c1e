"""
Pricing Service - resolves a buyer's unit price for a product and quantity.

Looks up the product's base price and the buyer's classification, then hands
off to the PricingEngine. Anonymous requests see general rules only.
"""
from datetime import datetime
from typing import Callable, Optional

from ..engine.errors import NotFound
from ..engine.models import ResolvedPrice, utc_now
from ..engine.pricing_engine import PricingEngine
from .directory import Directory


class PricingService:

    def __init__(
        self,
        engine: PricingEngine,
        directory: Directory,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.engine = engine
        self.directory = directory
        self.clock = clock

    def resolve_price(
        self,
        product_id: str,
        quantity: int,
        buyer_id: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> ResolvedPrice:
        product = self.directory.get_product(product_id)
        if product is None:
            raise NotFound("Product", product_id)

        classification = None
        if buyer_id:
            customer = self.directory.get_customer(buyer_id)
            if customer is None:
                raise NotFound("Customer", buyer_id)
            classification = customer.classification

        return self.engine.price_for(
            product_id=product_id,
            quantity=quantity,
            buyer_classification=classification,
            as_of=as_of or self.clock(),
            base_price=product.base_price,
            buyer_id=buyer_id,
        )
