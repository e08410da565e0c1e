"""
Catalog Loader - reads product and customer exports into engine records.

Expected columns:
- products.csv:  product_id, name, sku, base_price, currency
- customers.csv: customer_id, name, classification, jurisdiction
- orders.csv:    order_id, customer_id, payment_status, subtotal, discount
- order_items.csv: order_id, description, quantity, unit_price, discount, line_total
"""
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pandas as pd

from ..engine.models import Customer, Order, OrderLineItem, Product


def _clean(value) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    value = str(value).strip()
    return value or None


def load_products(path: Path) -> list[Product]:
    """Load products, skipping rows without an id or a price."""
    if not path.exists():
        return []

    df = pd.read_csv(path, dtype=str)
    df.columns = [c.strip() for c in df.columns]
    df = df.dropna(subset=['product_id', 'base_price'])
    # Keep the last row for duplicated ids (later exports win)
    df = df.drop_duplicates('product_id', keep='last')

    products = []
    for _, row in df.iterrows():
        products.append(Product(
            id=str(row['product_id']).strip(),
            base_price=Decimal(str(row['base_price']).strip()),
            name=_clean(row.get('name')) or "",
            sku=_clean(row.get('sku')) or "",
            currency=_clean(row.get('currency')) or "INR",
        ))
    return products


def load_customers(path: Path) -> list[Customer]:
    if not path.exists():
        return []

    df = pd.read_csv(path, dtype=str)
    df.columns = [c.strip() for c in df.columns]
    df = df.dropna(subset=['customer_id']).drop_duplicates('customer_id', keep='last')

    return [
        Customer(
            id=str(row['customer_id']).strip(),
            name=_clean(row.get('name')) or "",
            classification=_clean(row.get('classification')),
            jurisdiction=_clean(row.get('jurisdiction')),
        )
        for _, row in df.iterrows()
    ]


def _money(value, default: str = "0") -> Decimal:
    return Decimal(_clean(value) or default)


def load_orders(path: Path, items_path: Optional[Path] = None) -> list[Order]:
    """Load orders with their line items; lines keep file order per order."""
    if not path.exists():
        return []

    df = pd.read_csv(path, dtype=str)
    df.columns = [c.strip() for c in df.columns]
    df = df.dropna(subset=['order_id', 'customer_id']).drop_duplicates('order_id', keep='last')

    lines: dict[str, list[OrderLineItem]] = {}
    if items_path is not None and items_path.exists():
        items = pd.read_csv(items_path, dtype=str)
        items.columns = [c.strip() for c in items.columns]
        for _, row in items.dropna(subset=['order_id']).iterrows():
            lines.setdefault(str(row['order_id']).strip(), []).append(OrderLineItem(
                description=_clean(row.get('description')) or "",
                quantity=int(_clean(row.get('quantity')) or 1),
                unit_price=_money(row.get('unit_price')),
                line_total=_money(row.get('line_total')),
                discount=_money(row.get('discount')),
            ))

    orders = []
    for _, row in df.iterrows():
        order_id = str(row['order_id']).strip()
        orders.append(Order(
            id=order_id,
            customer_id=str(row['customer_id']).strip(),
            payment_status=_clean(row.get('payment_status')) or "pending",
            subtotal=_money(row.get('subtotal')),
            discount=_money(row.get('discount')),
            line_items=tuple(lines.get(order_id, [])),
        ))
    return orders
