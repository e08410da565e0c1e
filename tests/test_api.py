import pytest
import sys
import os
from decimal import Decimal

from fastapi.testclient import TestClient

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from sales_engine.api.main import app
from sales_engine.api.state import build_container, get_container
from sales_engine.config.settings import Settings
from sales_engine.engine.models import Customer, Order, OrderLineItem, Product
from sales_engine.services.directory import InMemoryDirectory


@pytest.fixture
def container(tmp_path):
    settings = Settings(
        project_root=tmp_path,
        rules_csv=tmp_path / "rules.csv",
        products_csv=tmp_path / "products.csv",
        customers_csv=tmp_path / "customers.csv",
        rule_cache_ttl_seconds=0,
    )
    directory = InMemoryDirectory(
        products=[Product("P-LATHE-01", Decimal("1000"), "CNC Lathe")],
        customers=[
            Customer("C-1001", "ENTERPRISE", "Haryana", "Gurgaon Fabricators"),
            Customer("C-1002", "SMALL_BUSINESS", "Maharashtra", "Pune Tooling Works"),
        ],
        orders=[
            Order("O-1", "C-1001", "paid", Decimal("10000"), line_items=(
                OrderLineItem("CNC Lathe", 10, Decimal("1000"), Decimal("10000")),
            )),
            Order("O-2", "C-1002", "pending", Decimal("10000")),
        ],
    )
    return build_container(settings, directory)


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_volume_rule(client):
    response = client.post("/api/rules", json={
        "product_id": "P-LATHE-01",
        "min_quantity": 5,
        "discount_percent": "10",
    })
    assert response.status_code == 200, response.text
    return response.json()


def test_root(client):
    assert client.get("/").json()["status"] == "online"


def test_price_without_rules_is_base_price(client):
    response = client.post("/pricing/resolve", json={"product_id": "P-LATHE-01", "quantity": 1})

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["final_price"]) == Decimal("1000")
    assert body["applied_rule"] is None


def test_rule_then_price(client):
    rule = create_volume_rule(client)

    response = client.post("/pricing/resolve", json={
        "product_id": "P-LATHE-01", "quantity": 10, "buyer_id": "C-1001",
    })

    body = response.json()
    assert Decimal(body["final_price"]) == Decimal("900")
    assert Decimal(body["line_total"]) == Decimal("9000")
    assert body["applied_rule"]["rule_id"] == rule["rule_id"]
    assert body["trace"]


def test_price_unknown_product_or_buyer(client):
    assert client.post("/pricing/resolve", json={"product_id": "P-NOPE", "quantity": 1}).status_code == 404
    assert client.post("/pricing/resolve", json={
        "product_id": "P-LATHE-01", "quantity": 1, "buyer_id": "C-NOPE",
    }).status_code == 404


def test_price_rejects_non_positive_quantity(client):
    assert client.post("/pricing/resolve", json={"product_id": "P-LATHE-01", "quantity": 0}).status_code == 422


def test_invalid_rule_returns_errors(client):
    response = client.post("/api/rules", json={
        "product_id": "P-LATHE-01", "discount_percent": "5", "fixed_price": "700",
    })

    assert response.status_code == 400
    assert response.json()["detail"]["errors"]


def test_rule_for_unknown_product(client):
    response = client.post("/api/rules", json={"product_id": "P-NOPE", "discount_percent": "5"})

    assert response.status_code == 404


def test_rule_listing_and_deactivation(client):
    rule = create_volume_rule(client)

    assert len(client.get("/api/rules").json()) == 1
    assert client.get(f"/api/rules/{rule['rule_id']}").json()["active"] is True

    response = client.post(f"/api/rules/{rule['rule_id']}/deactivate")
    assert response.json()["active"] is False
    assert client.get("/api/rules", params={"include_inactive": False}).json() == []
    assert client.get("/api/rules/stats").json()["inactive"] == 1
    assert client.get("/api/rules/NOPE").status_code == 404


def test_validate_rule_does_not_save(client):
    response = client.post("/api/rules/validate", json={"product_id": "P-LATHE-01", "discount_percent": "150"})

    body = response.json()
    assert body["valid"] is True
    assert body["warnings"]
    assert client.get("/api/rules").json() == []


def test_invoice_flow(client):
    response = client.post("/invoices/generate", json={"order_id": "O-1"})
    assert response.status_code == 200, response.text
    invoice = response.json()

    assert invoice["status"] == "DRAFT"
    assert invoice["invoice_number"].startswith("INV-")
    assert invoice["invoice_number"].endswith("-0001")
    assert Decimal(invoice["tax"]["cgst"]) == Decimal("900")
    assert Decimal(invoice["tax"]["sgst"]) == Decimal("900")
    assert Decimal(invoice["tax"]["igst"]) == 0
    assert Decimal(invoice["total_amount"]) == Decimal("11800")

    again = client.post("/invoices/generate", json={"order_id": "O-1"})
    assert again.status_code == 400

    sent = client.post(f"/invoices/{invoice['id']}/status", json={"status": "SENT"})
    assert sent.json()["status"] == "SENT"

    back = client.post(f"/invoices/{invoice['id']}/status", json={"status": "DRAFT"})
    assert back.status_code == 400

    assert client.get(f"/invoices/{invoice['id']}").json()["status"] == "SENT"
    assert len(client.get("/invoices", params={"status": "SENT"}).json()) == 1
    assert client.get("/invoices/analytics/overview").json()["total_invoices"] == 1


def test_unpaid_order_is_refused(client):
    response = client.post("/invoices/generate", json={"order_id": "O-2"})

    assert response.status_code == 400
    assert "paid" in response.json()["detail"]
    assert client.get("/invoices").json() == []


def test_unknown_invoice_and_order(client):
    assert client.post("/invoices/generate", json={"order_id": "O-NOPE"}).status_code == 404
    assert client.get("/invoices/inv_missing").status_code == 404
    assert client.post("/invoices/inv_missing/status", json={"status": "SENT"}).status_code == 404
