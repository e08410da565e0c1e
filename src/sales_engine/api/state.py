"""
Shared service wiring for the API.

Routers receive the container through ``Depends(get_container)``; tests swap
in their own with ``app.dependency_overrides``.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ..config.settings import Settings, get_settings
from ..data.catalog import load_customers, load_orders, load_products
from ..engine.pricing_engine import PricingEngine
from ..engine.rule_matcher import RuleResolver
from ..engine.rule_store import CachedRuleStore, CsvRuleStore, RuleStore
from ..engine.tax import TaxCalculator
from ..services.directory import InMemoryDirectory
from ..services.invoice_service import InvoiceService
from ..services.pricing_service import PricingService
from ..services.rules_service import RulesService
from ..storage.invoice_repository import InMemoryInvoiceRepository
from ..storage.numbering import InMemoryInvoiceCounter, InvoiceNumberGenerator

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    directory: InMemoryDirectory
    rule_store: RuleStore
    rules: RulesService
    pricing: PricingService
    invoices: InvoiceService


def build_container(settings: Settings, directory: Optional[InMemoryDirectory] = None) -> Container:
    """Wire stores and services from settings."""
    if directory is None:
        directory = InMemoryDirectory(
            products=load_products(settings.products_csv),
            customers=load_customers(settings.customers_csv),
            orders=load_orders(settings.orders_csv, settings.order_items_csv) if settings.orders_csv else [],
        )

    rule_store: RuleStore = CsvRuleStore(settings.rules_csv)
    if settings.rule_cache_ttl_seconds > 0:
        rule_store = CachedRuleStore(rule_store, ttl_seconds=settings.rule_cache_ttl_seconds)

    if settings.database_url:
        from ..storage.sql import SqlInvoiceCounter, SqlInvoiceRepository, create_session_factory

        session_factory, _ = create_session_factory(settings.database_url)
        repository = SqlInvoiceRepository(session_factory)
        counter = SqlInvoiceCounter(session_factory)
    else:
        repository = InMemoryInvoiceRepository()
        counter = InMemoryInvoiceCounter()

    engine = PricingEngine(RuleResolver(rule_store))
    container = Container(
        settings=settings,
        directory=directory,
        rule_store=rule_store,
        rules=RulesService(rule_store, directory),
        pricing=PricingService(engine, directory),
        invoices=InvoiceService(
            directory=directory,
            repository=repository,
            numbers=InvoiceNumberGenerator(counter, prefix=settings.invoice_prefix),
            tax_calculator=TaxCalculator(settings.seller_jurisdiction, settings.tax_rate),
            payment_terms_days=settings.payment_terms_days,
            default_terms=settings.default_terms,
            default_payment_instructions=settings.default_payment_instructions,
        ),
    )
    logger.info(
        "Loaded %d products, %d customers, %d orders; rules from %s",
        len(directory.products), len(directory.customers), len(directory.orders), settings.rules_csv,
    )
    return container


_container: Optional[Container] = None


def get_container() -> Container:
    global _container
    if _container is None:
        _container = build_container(get_settings())
    return _container
