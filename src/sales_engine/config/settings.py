"""
Centralized settings and path configuration for the sales engine.

Every value can be overridden with a ``SALES_ENGINE_*`` environment variable.
"""
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

ENV_PREFIX = "SALES_ENGINE_"

DEFAULT_TERMS = "\n".join([
    "1. Payment is due within 30 days of invoice date.",
    "2. Late payments may incur additional charges.",
    "3. All disputes must be raised within 7 days of invoice receipt.",
    "4. Goods once sold will not be taken back.",
])

DEFAULT_PAYMENT_INSTRUCTIONS = (
    "Please pay by bank transfer quoting the invoice number, "
    "or use the payment link provided."
)


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Data files
    rules_csv: Path
    products_csv: Path
    customers_csv: Path
    orders_csv: Optional[Path] = None
    order_items_csv: Optional[Path] = None

    # Invoice storage; None keeps invoices in memory
    database_url: Optional[str] = None

    # Tax
    seller_jurisdiction: str = "Haryana"
    tax_rate: Decimal = Decimal("0.18")

    # Rule store read cache (seconds); 0 disables caching
    rule_cache_ttl_seconds: float = 60.0

    # Invoices
    payment_terms_days: int = 30
    invoice_prefix: str = "INV"
    default_terms: str = DEFAULT_TERMS
    default_payment_instructions: str = DEFAULT_PAYMENT_INSTRUCTIONS

    log_level: str = "INFO"

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()
        data_dir = Path(_env("DATA_DIR", str(root / 'data')))

        return cls(
            project_root=root,
            rules_csv=Path(_env("RULES_CSV", str(data_dir / 'rules.csv'))),
            products_csv=Path(_env("PRODUCTS_CSV", str(data_dir / 'products.csv'))),
            customers_csv=Path(_env("CUSTOMERS_CSV", str(data_dir / 'customers.csv'))),
            orders_csv=Path(_env("ORDERS_CSV", str(data_dir / 'orders.csv'))),
            order_items_csv=Path(_env("ORDER_ITEMS_CSV", str(data_dir / 'order_items.csv'))),
            database_url=_env("DATABASE_URL"),
            seller_jurisdiction=_env("SELLER_JURISDICTION", "Haryana"),
            tax_rate=Decimal(_env("TAX_RATE", "0.18")),
            rule_cache_ttl_seconds=float(_env("RULE_CACHE_TTL", "60")),
            payment_terms_days=int(_env("PAYMENT_TERMS_DAYS", "30")),
            invoice_prefix=_env("INVOICE_PREFIX", "INV"),
            default_terms=_env("DEFAULT_TERMS", DEFAULT_TERMS),
            default_payment_instructions=_env("PAYMENT_INSTRUCTIONS", DEFAULT_PAYMENT_INSTRUCTIONS),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def configure_logging(level: Optional[str] = None):
    """Root logging setup for entry points (API, scripts)."""
    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
