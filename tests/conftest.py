import pytest

from services import db as db_service
from services import order_mapping_store, order_store


@pytest.fixture
def logistics_db(tmp_path, monkeypatch):
    db_path = tmp_path / "logistics.db"
    monkeypatch.setattr(db_service, "DB_PATH", db_path)
    order_store.ensure_order_store_schema()
    order_mapping_store.ensure_order_mappings_table()
    db_service.ensure_app_kv_table()
    return db_path
