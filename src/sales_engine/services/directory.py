"""
Lookups for records owned by other systems (products, customers, orders).

Only the contracts the engine consumes live here; CRUD for these records is
handled elsewhere. Missing records return None and the calling service
decides whether that is a NotFound.
"""
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..engine.models import Customer, Order, Product


class Directory(ABC):

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    def get_customer(self, customer_id: str) -> Optional[Customer]:
        ...

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        ...


class InMemoryDirectory(Directory):
    """Read-only dict-backed directory, seeded from catalog exports or by tests."""

    def __init__(
        self,
        products: Iterable[Product] = (),
        customers: Iterable[Customer] = (),
        orders: Iterable[Order] = (),
    ):
        self.products: dict[str, Product] = {p.id: p for p in products}
        self.customers: dict[str, Customer] = {c.id: c for c in customers}
        self.orders: dict[str, Order] = {o.id: o for o in orders}

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self.customers.get(customer_id)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

