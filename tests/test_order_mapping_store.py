from __future__ import annotations

import sqlite3

import pytest

from services import db as db_service
from services import order_mapping_store as store
from services import order_store
from services.errors import ConflictError, NotFoundError, UnavailableError
from services.models import CommerceOrder, MappingCandidate, WarehouseOrder


def _seed_orders():
    commerce = CommerceOrder(
        id="wc-1001",
        order_number="1001",
        customer_name="Acme AS",
        total_value=1000.0,
        status="processing",
        woocommerce_order_id=1001,
    )
    warehouse = WarehouseOrder(
        id="ow-5001",
        order_number="1001",
        customer_name="Acme Corporation",
        total_value=950.0,
        status="Registered",
        ongoing_order_id=5001,
        status_number=200,
    )
    order_store.upsert_commerce_order(commerce, [])
    order_store.upsert_warehouse_order(warehouse)
    return commerce, warehouse


def test_create_and_list_mapping_with_snapshots(logistics_db):
    _seed_orders()

    mapping_id = store.create_order_mapping("wc-1001", "ow-5001", "manual", 90, notes="checked by phone")

    mappings = store.get_order_mappings()
    assert [m.id for m in mappings] == [mapping_id]
    mapping = mappings[0]
    assert mapping.is_active is True
    assert mapping.mapping_type == "manual"
    assert mapping.confidence == 90
    assert mapping.customer_name == "Acme AS"
    assert mapping.order_number == "1001"
    assert mapping.commerce_order == {
        "order_number": "1001",
        "customer_name": "Acme AS",
        "status": "processing",
        "total_value": 1000.0,
    }
    assert mapping.warehouse_order["customer_name"] == "Acme Corporation"
    assert mapping.warehouse_order["status"] == "Registered"
    assert mapping.mapped_at


def test_create_mapping_missing_order_raises_not_found(logistics_db):
    _seed_orders()
    with pytest.raises(NotFoundError):
        store.create_order_mapping("wc-1001", "ow-missing", "manual", 50)
    with pytest.raises(NotFoundError):
        store.create_order_mapping("wc-missing", "ow-5001", "manual", 50)
    assert store.get_order_mappings() == []


@pytest.mark.parametrize(
    "mapping_type, confidence",
    [("automatic", 50), ("manual", 101), ("manual", -1), ("manual", 55.5), ("manual", True)],
)
def test_create_mapping_rejects_bad_type_or_confidence(logistics_db, mapping_type, confidence):
    _seed_orders()
    with pytest.raises(ValueError):
        store.create_order_mapping("wc-1001", "ow-5001", mapping_type, confidence)


def test_second_active_mapping_for_same_pair_conflicts(logistics_db):
    _seed_orders()
    first = store.create_order_mapping("wc-1001", "ow-5001", "suggested", 90)

    with pytest.raises(ConflictError):
        store.create_order_mapping("wc-1001", "ow-5001", "manual", 100)

    store.deactivate_order_mapping(first)
    second = store.create_order_mapping("wc-1001", "ow-5001", "manual", 100)
    assert [m.id for m in store.get_order_mappings()] == [second]


def test_update_merges_fields_and_leaves_snapshots(logistics_db):
    _seed_orders()
    mapping_id = store.create_order_mapping("wc-1001", "ow-5001", "suggested", 70)
    before = store.get_mapping_by_id(mapping_id)

    updated = store.update_order_mapping(mapping_id, {"notes": "confirmed", "mapping_type": "exact"})

    assert updated.notes == "confirmed"
    assert updated.mapping_type == "exact"
    assert updated.confidence == 70
    assert updated.commerce_order == before.commerce_order
    assert updated.updated_at >= before.updated_at


def test_update_rejects_unknown_fields_and_missing_ids(logistics_db):
    _seed_orders()
    mapping_id = store.create_order_mapping("wc-1001", "ow-5001", "suggested", 70)

    with pytest.raises(ValueError):
        store.update_order_mapping(mapping_id, {"is_active": False})
    with pytest.raises(ValueError):
        store.update_order_mapping(mapping_id, {"confidence": 500})
    with pytest.raises(NotFoundError):
        store.update_order_mapping("nope", {"notes": "x"})


def test_deactivate_hides_mapping_but_keeps_row(logistics_db):
    _seed_orders()
    mapping_id = store.create_order_mapping("wc-1001", "ow-5001", "manual", 100)

    store.deactivate_order_mapping(mapping_id)

    assert store.get_order_mappings() == []
    assert store.get_order_mapping(commerce_order_id="wc-1001") is None
    row = store.get_mapping_by_id(mapping_id)
    assert row.is_active is False


def test_deactivate_unknown_mapping_raises(logistics_db):
    with pytest.raises(NotFoundError):
        store.deactivate_order_mapping("does-not-exist")


def test_find_mapping_by_either_or_both_ids(logistics_db):
    _seed_orders()
    mapping_id = store.create_order_mapping("wc-1001", "ow-5001", "manual", 100)

    assert store.get_order_mapping(commerce_order_id="wc-1001").id == mapping_id
    assert store.get_order_mapping(warehouse_order_id="ow-5001").id == mapping_id
    assert store.get_order_mapping("wc-1001", "ow-5001").id == mapping_id
    assert store.get_order_mapping("wc-1001", "ow-other") is None
    with pytest.raises(ValueError):
        store.get_order_mapping()


def test_accept_candidate_uses_confidence_and_reason(logistics_db):
    commerce, warehouse = _seed_orders()
    candidate = MappingCandidate(
        source_order_a=commerce,
        source_order_b=warehouse,
        confidence=90,
        match_reason="Order number match; Customer name partial match; Total value similar; ",
    )

    mapping_id = store.accept_candidate(candidate, mapped_by="ops")

    mapping = store.get_mapping_by_id(mapping_id)
    assert mapping.mapping_type == "suggested"
    assert mapping.confidence == 90
    assert mapping.mapped_by == "ops"
    assert mapping.notes == "Order number match; Customer name partial match; Total value similar;"


def test_locked_store_surfaces_unavailable(logistics_db, monkeypatch):
    def locked_connect(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(db_service.sqlite3, "connect", locked_connect)
    with pytest.raises(UnavailableError):
        store.get_order_mappings()
