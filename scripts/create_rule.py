#!/usr/bin/env python
"""
Create a pricing rule from the command line.

Usage:
    python scripts/create_rule.py PRODUCT_ID --min-qty 5 --percent 10
    python scripts/create_rule.py PRODUCT_ID --scope ENTERPRISE --fixed 700
"""
import argparse
import sys
from decimal import Decimal
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from sales_engine.api.state import build_container
from sales_engine.config.settings import configure_logging, get_settings
from sales_engine.engine.errors import InvalidRule, NotFound


def main():
    parser = argparse.ArgumentParser(description="Create a pricing rule")
    parser.add_argument("product_id")
    parser.add_argument("--scope", default=None, help="buyer classification (default: general)")
    parser.add_argument("--min-qty", type=int, default=1)
    parser.add_argument("--max-qty", type=int, default=None)
    parser.add_argument("--percent", type=Decimal, default=None)
    parser.add_argument("--fixed", type=Decimal, default=None)
    parser.add_argument("--name", default="")
    args = parser.parse_args()

    configure_logging()
    container = build_container(get_settings())

    try:
        rule = container.rules.create_pricing_rule(
            product_id=args.product_id,
            scope=args.scope,
            min_quantity=args.min_qty,
            max_quantity=args.max_qty,
            discount_percent=args.percent,
            fixed_price=args.fixed,
            name=args.name,
        )
    except NotFound as e:
        print(f"❌ {e}")
        sys.exit(1)
    except InvalidRule as e:
        print("❌ Rule rejected:")
        for err in e.errors:
            print(f"  {err}")
        sys.exit(1)

    print(f"✅ Created rule: {rule.describe()}")


if __name__ == "__main__":
    main()
