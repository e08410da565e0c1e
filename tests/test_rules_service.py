import pytest
import sys
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from sales_engine.engine.errors import InvalidRule, NotFound
from sales_engine.engine.models import FixedPrice, Percentage, PricingRule, Product
from sales_engine.engine import PricingEngine, RuleResolver
from sales_engine.engine.rule_store import (
    CSV_COLUMNS,
    CachedRuleStore,
    CsvRuleStore,
    InMemoryRuleStore,
    rule_from_csv_row,
)
from sales_engine.services.directory import InMemoryDirectory
from sales_engine.services.rules_service import RuleDraft, RulesService

NOW = datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def directory():
    return InMemoryDirectory(products=[
        Product(id="P-LATHE-01", base_price=Decimal("1000"), name="Bench Lathe"),
        Product(id="P-PRESS-02", base_price=Decimal("250000"), name="Hydraulic Press"),
    ])


@pytest.fixture
def service(directory):
    return RulesService(InMemoryRuleStore(), directory, clock=lambda: NOW)


class TestRuleValidation:

    def test_valid_percentage_rule(self, service):
        result = service.validate_rule(RuleDraft("P-LATHE-01", min_quantity=5, discount_percent=Decimal("10")))

        assert result.valid
        assert result.errors == []

    @pytest.mark.parametrize("draft,fragment", [
        (RuleDraft("P-LATHE-01", min_quantity=0, discount_percent=Decimal("5")), "min_quantity"),
        (RuleDraft("P-LATHE-01", min_quantity=5, max_quantity=5, discount_percent=Decimal("5")), "max_quantity"),
        (RuleDraft("P-LATHE-01", min_quantity=5, max_quantity=2, discount_percent=Decimal("5")), "max_quantity"),
        (RuleDraft("P-LATHE-01"), "Either discount_percent or fixed_price"),
        (RuleDraft("P-LATHE-01", discount_percent=Decimal("5"), fixed_price=Decimal("700")), "mutually exclusive"),
        (RuleDraft("P-LATHE-01", discount_percent=Decimal("-1")), "negative"),
        (RuleDraft("P-LATHE-01", fixed_price=Decimal("-0.01")), "negative"),
        (RuleDraft(
            "P-LATHE-01", discount_percent=Decimal("5"),
            valid_from=NOW, valid_until=NOW - timedelta(days=1),
        ), "valid_until"),
    ])
    def test_malformed_rules_are_rejected(self, service, draft, fragment):
        result = service.validate_rule(draft)

        assert not result.valid
        assert any(fragment in e for e in result.errors), result.errors

    def test_percentage_over_hundred_is_a_warning(self, service):
        result = service.validate_rule(RuleDraft("P-LATHE-01", discount_percent=Decimal("120")))

        assert result.valid
        assert any("above 100" in w for w in result.warnings)

    def test_overlapping_band_is_a_warning(self, service):
        service.create_pricing_rule("P-LATHE-01", None, 5, 20, discount_percent=Decimal("10"))

        result = service.validate_rule(RuleDraft("P-LATHE-01", min_quantity=10, discount_percent=Decimal("12")))

        assert result.valid
        assert any("Overlaps" in w for w in result.warnings)

    def test_different_scope_does_not_overlap(self, service):
        service.create_pricing_rule("P-LATHE-01", None, 5, None, discount_percent=Decimal("10"))

        result = service.validate_rule(RuleDraft(
            "P-LATHE-01", min_quantity=5, scope="ENTERPRISE", discount_percent=Decimal("12"),
        ))

        assert result.warnings == []


class TestRuleCreation:

    def test_create_rule_defaults(self, service):
        rule = service.create_pricing_rule("P-LATHE-01", None, 5, None, discount_percent=Decimal("10"))

        assert rule.rule_id == "GENE-PLATHE01-Q5"
        assert rule.scope == "general"
        assert rule.active
        assert rule.valid_from == NOW
        assert rule.discount == Percentage(Decimal("10"))
        assert service.get_rule(rule.rule_id) == rule

    def test_generated_ids_stay_unique(self, service):
        first = service.create_pricing_rule("P-LATHE-01", None, 5, None, discount_percent=Decimal("10"))
        second = service.create_pricing_rule("P-LATHE-01", None, 5, None, discount_percent=Decimal("11"))

        assert first.rule_id != second.rule_id
        assert second.rule_id == "GENE-PLATHE01-Q5-1"

    def test_fixed_price_rule(self, service):
        rule = service.create_pricing_rule("P-LATHE-01", "ENTERPRISE", 1, None, fixed_price=Decimal("700"))

        assert rule.discount == FixedPrice(Decimal("700"))
        assert rule.is_buyer_specific

    def test_unknown_product_is_not_found(self, service):
        with pytest.raises(NotFound):
            service.create_pricing_rule("P-NOPE", None, 1, None, discount_percent=Decimal("5"))

    def test_invalid_rule_is_not_stored(self, service):
        with pytest.raises(InvalidRule) as exc:
            service.create_pricing_rule("P-LATHE-01", None, 1, None)

        assert exc.value.errors
        assert service.list_rules() == []

    def test_duplicate_explicit_id_is_invalid(self, service):
        service.create_rule(RuleDraft("P-LATHE-01", discount_percent=Decimal("5"), rule_id="R-1"))

        with pytest.raises(InvalidRule):
            service.create_rule(RuleDraft("P-LATHE-01", discount_percent=Decimal("6"), rule_id="R-1"))

    def test_deactivate_keeps_rule_but_hides_it(self, service):
        rule = service.create_pricing_rule("P-LATHE-01", None, 1, None, discount_percent=Decimal("5"))

        service.deactivate_rule(rule.rule_id)

        assert not service.get_rule(rule.rule_id).active
        assert service.list_rules(include_inactive=False) == []
        assert len(service.list_rules()) == 1

    def test_deactivate_unknown_rule(self, service):
        with pytest.raises(NotFound):
            service.deactivate_rule("R-MISSING")

    def test_stats(self, service):
        service.create_pricing_rule("P-LATHE-01", None, 1, None, discount_percent=Decimal("5"))
        service.create_pricing_rule("P-PRESS-02", "ENTERPRISE", 1, None, discount_percent=Decimal("5"))
        expired = service.create_pricing_rule(
            "P-PRESS-02", None, 2, None, discount_percent=Decimal("5"),
            valid_from=NOW - timedelta(days=10), valid_until=NOW - timedelta(days=1),
        )
        service.deactivate_rule(expired.rule_id)

        stats = service.get_stats()

        assert stats['total'] == 3
        assert stats['active'] == 2
        assert stats['inactive'] == 1
        assert stats['expired'] == 1
        assert stats['by_scope'] == {'general': 2, 'ENTERPRISE': 1}


class TestRuleStores:

    def test_csv_store_persists_rules(self, tmp_path):
        path = tmp_path / "rules.csv"
        store = CsvRuleStore(path)
        store.add(PricingRule(
            rule_id="FIX-1",
            product_id="P-LATHE-01",
            discount=FixedPrice(Decimal("700.50")),
            valid_from=NOW,
            scope="ENTERPRISE",
            min_quantity=3,
            max_quantity=10,
            valid_until=NOW + timedelta(days=30),
            name="Enterprise lathe",
        ))

        reopened = CsvRuleStore(path)
        rule = reopened.get("FIX-1")

        assert rule.discount == FixedPrice(Decimal("700.50"))
        assert rule.scope == "ENTERPRISE"
        assert (rule.min_quantity, rule.max_quantity) == (3, 10)
        assert rule.valid_until == NOW + timedelta(days=30)
        assert reopened.rules_for("P-PRESS-02") == []

    def test_csv_store_missing_file_is_empty(self, tmp_path):
        assert CsvRuleStore(tmp_path / "absent.csv").all_rules() == []

    def test_csv_store_deactivate(self, tmp_path):
        store = CsvRuleStore(tmp_path / "rules.csv")
        store.add(PricingRule("R-1", "P-LATHE-01", Percentage(Decimal("5")), NOW))

        store.deactivate("R-1")

        assert not CsvRuleStore(tmp_path / "rules.csv").get("R-1").active

    def test_cached_store_serves_stale_until_ttl(self):
        backend = InMemoryRuleStore()
        ticks = [0.0]
        cached = CachedRuleStore(backend, ttl_seconds=60, clock=lambda: ticks[0])

        assert cached.rules_for("P-LATHE-01") == []
        backend.add(PricingRule("R-1", "P-LATHE-01", Percentage(Decimal("5")), NOW))

        ticks[0] = 30.0
        assert cached.rules_for("P-LATHE-01") == []

        ticks[0] = 61.0
        assert [r.rule_id for r in cached.rules_for("P-LATHE-01")] == ["R-1"]

    def test_cached_store_writes_invalidate(self):
        cached = CachedRuleStore(InMemoryRuleStore(), ttl_seconds=600, clock=lambda: 0.0)
        assert cached.rules_for("P-LATHE-01") == []

        cached.add(PricingRule("R-1", "P-LATHE-01", Percentage(Decimal("5")), NOW))
        assert len(cached.rules_for("P-LATHE-01")) == 1

        cached.deactivate("R-1")
        assert not cached.rules_for("P-LATHE-01")[0].active

    def test_csv_rows_that_cannot_be_priced_are_skipped(self, tmp_path):
        path = tmp_path / "rules.csv"
        path.write_text(
            "rule_id,name,product_id,active,scope,min_qty,max_qty,discount_type,discount_value,"
            "valid_from,valid_until,created_at\n"
            "NO-START,x,P-LATHE-01,true,general,5,,percent,10,,,\n"
            "ODD-KIND,x,P-LATHE-01,true,general,1,,bogus,10,2025-01-01T00:00:00+00:00,,\n"
            "GOOD,x,P-LATHE-01,true,general,1,,percent,5,2025-01-01T00:00:00+00:00,,\n",
            encoding="utf-8",
        )
        store = CsvRuleStore(path)

        assert [r.rule_id for r in store.rules_for("P-LATHE-01")] == ["GOOD"]

        result = PricingEngine(RuleResolver(store)).price_for("P-LATHE-01", 10, None, NOW, Decimal("1000"))
        assert result.final_price == Decimal("950")

    def test_csv_skipped_rows_survive_rewrites(self, tmp_path):
        path = tmp_path / "rules.csv"
        path.write_text(
            ",".join(CSV_COLUMNS) + "\n"
            "NO-START,x,P-LATHE-01,true,general,5,,percent,10,,,\n",
            encoding="utf-8",
        )
        store = CsvRuleStore(path)

        store.add(PricingRule("R-1", "P-LATHE-01", Percentage(Decimal("5")), NOW))

        assert "NO-START" in path.read_text(encoding="utf-8")
        assert [r.rule_id for r in store.all_rules()] == ["R-1"]
        with pytest.raises(ValueError):
            store.add(PricingRule("NO-START", "P-LATHE-01", Percentage(Decimal("5")), NOW))

    @pytest.mark.parametrize("overrides,fragment", [
        ({'valid_from': ''}, "valid_from"),
        ({'discount_type': 'bogus'}, "discount_type"),
        ({'discount_value': 'ten'}, "discount_value"),
        ({'min_qty': 'five'}, "R-1"),
    ])
    def test_unpriceable_csv_row_is_invalid(self, overrides, fragment):
        row = {
            'rule_id': 'R-1', 'name': '', 'product_id': 'P-LATHE-01', 'active': 'true',
            'scope': 'general', 'min_qty': '1', 'max_qty': '', 'discount_type': 'percent',
            'discount_value': '5', 'valid_from': '2025-01-01T00:00:00+00:00',
            'valid_until': '', 'created_at': '',
        }
        row.update(overrides)

        with pytest.raises(InvalidRule) as exc:
            rule_from_csv_row(row)

        assert any(fragment in e for e in exc.value.errors)
