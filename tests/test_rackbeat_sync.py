from __future__ import annotations

import pytest

from config import RackbeatConfig
from services import http_client, order_store
from services import rackbeat_sync as rackbeat

CONFIG = RackbeatConfig(api_key="rb-test-key")


class DummyResp:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        return self._payload


@pytest.mark.parametrize(
    "po, expected",
    [
        ({"is_received": True, "status": "shipped"}, "delivered"),
        ({"status": "In Transit"}, "in-transit"),
        ({"status": "sent"}, "in-transit"),
        ({"status": "OVERDUE"}, "delayed"),
        ({"status": "draft"}, "pending"),
        ({}, "pending"),
    ],
)
def test_status_rules(po, expected):
    assert rackbeat.status_for(po) == expected


def test_value_and_priority_rules():
    assert rackbeat.value_for({"total_subtotal": 0, "total_amount": "60000"}) == 60000.0
    assert rackbeat.value_for({"total_price_excl_vat": 25000}) == 25000.0
    assert rackbeat.value_for({}) == 0.0
    assert rackbeat.priority_for(50000.01) == "high"
    assert rackbeat.priority_for(50000) == "medium"
    assert rackbeat.priority_for(20000) == "low"


def test_normalize_purchase_order_with_fallbacks():
    po = rackbeat.normalize_purchase_order(
        {
            "id": 42,
            "supplier_name": "Trelast AS",
            "supplier_id": 9,
            "total_amount": 30000,
            "expected_delivery_date": "2025-07-15T00:00:00+02:00",
            "created_at": "2025-06-01 10:00:00",
        },
        [
            {"id": 1, "supplier_product_number": "TR-1", "name": "Plank", "quantity": 10, "line_price": 100, "line_total": 1000},
            {"id": 2, "name": "Screw", "quantity": "5"},
        ],
    )

    assert po.po_number == "PO-42"
    assert po.supplier == "Trelast AS"
    assert po.supplier_number == "S-9"
    assert po.currency == "NOK"
    assert po.priority == "medium"
    assert po.expected_delivery == "2025-07-15"
    assert po.order_date == "2025-06-01"
    assert po.items == 15
    assert po.lines[0].product_number == "TR-1"
    assert po.lines[1].line_total == 0.0


def test_nested_supplier_name_wins():
    po = rackbeat.normalize_purchase_order(
        {"number": 1007, "supplier": {"name": "Nested"}, "supplier_name": "Flat", "supplier_number": "S-1", "currency": "EUR"}
    )
    assert po.po_number == "1007"
    assert po.supplier == "Nested"
    assert po.supplier_number == "S-1"
    assert po.currency == "EUR"


def test_client_follows_pagination_and_skips_received(monkeypatch):
    pages = {
        1: {"data": [{"number": 1}, {"number": 2, "is_received": True}], "meta": {"pagination": {"current_page": 1, "last_page": 2}}},
        2: {"data": [{"number": 3}], "meta": {"pagination": {"current_page": 2, "last_page": 2}}},
    }
    calls = []

    def fake_get(url, headers=None, params=None, timeout=None):
        calls.append(params["page"])
        assert headers["Authorization"] == "Bearer rb-test-key"
        assert params["per_page"] == 20
        return DummyResp(200, pages[params["page"]])

    monkeypatch.setattr(http_client.requests, "get", fake_get)

    orders = rackbeat.RackbeatClient(CONFIG).fetch_open_purchase_orders()

    assert [po["number"] for po in orders] == [1, 3]
    assert calls == [1, 2]


def test_client_alternate_payload_and_limit(monkeypatch):
    def fake_get(url, headers=None, params=None, timeout=None):
        if params["page"] == 1:
            return DummyResp(200, {"purchase_orders": [{"number": 1}, {"number": 2}]})
        return DummyResp(200, {"purchase_orders": []})

    monkeypatch.setattr(http_client.requests, "get", fake_get)
    client = rackbeat.RackbeatClient(CONFIG)

    assert len(client.fetch_open_purchase_orders()) == 2
    assert len(client.fetch_open_purchase_orders(limit=1)) == 1


def test_lines_failure_yields_no_lines(monkeypatch):
    monkeypatch.setattr(http_client.requests, "get", lambda url, **kw: DummyResp(404, text="missing"))
    assert rackbeat.RackbeatClient(CONFIG).fetch_lines(1007) == []


def test_sync_purchase_orders(logistics_db):
    raw = [
        {"number": 1, "supplier_name": "A", "total_subtotal": 100, "preferred_delivery_date": "2025-08-01"},
        {"supplier_name": "broken"},
    ]
    lines = {1: [{"id": 5, "name": "Plank", "quantity": 4, "line_total": 80}]}

    result = rackbeat.sync_purchase_orders(fetcher=lambda limit=0: raw, lines_fetcher=lambda n: lines.get(n, []))

    assert result["synced"] == 1
    assert len(result["errors"]) == 1
    stored = order_store.list_purchase_orders()
    assert len(stored) == 1
    assert stored[0]["po_number"] == "1"
    assert stored[0]["expected_delivery"] == "2025-08-01"
    assert stored[0]["items"] == 4
    assert stored[0]["lines"][0]["name"] == "Plank"
