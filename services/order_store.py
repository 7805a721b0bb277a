from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from services.db import execute_many_write, execute_write, get_db_connection, write_connection
from services.models import CommerceOrder, OrderLine, Product, PurchaseOrder, WarehouseOrder

logger = logging.getLogger(__name__)

STOCK_FILTERS = ("in-stock", "low-stock", "out-of-stock", "backordered")
LOW_STOCK_LIMIT = 10

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS commerce_orders (
        id TEXT PRIMARY KEY,
        woocommerce_order_id INTEGER UNIQUE,
        order_number TEXT,
        customer_name TEXT,
        total_value REAL,
        status TEXT,
        currency TEXT,
        date_created TEXT,
        delivery_date TEXT,
        delivery_type TEXT,
        shipping_method_title TEXT,
        billing_address TEXT,
        customer_note TEXT,
        total_items INTEGER DEFAULT 0,
        priority TEXT,
        permalink TEXT,
        raw_json TEXT,
        synced_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_commerce_orders_status ON commerce_orders(status)",
    """
    CREATE TABLE IF NOT EXISTS order_lines (
        id TEXT PRIMARY KEY,
        order_id TEXT NOT NULL,
        product_id INTEGER,
        name TEXT,
        sku TEXT,
        quantity REAL DEFAULT 0,
        total REAL,
        delivered_quantity REAL DEFAULT 0,
        delivery_date TEXT,
        delivery_status TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_order_lines_order ON order_lines(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_order_lines_product ON order_lines(product_id)",
    """
    CREATE TABLE IF NOT EXISTS warehouse_orders (
        id TEXT PRIMARY KEY,
        ongoing_order_id INTEGER UNIQUE,
        order_number TEXT,
        goods_owner_order_id TEXT,
        customer_name TEXT,
        customer_number TEXT,
        total_value REAL,
        status TEXT,
        status_number INTEGER,
        delivery_address TEXT,
        delivery_date TEXT,
        created_date TEXT,
        shipped_time TEXT,
        ordered_items INTEGER DEFAULT 0,
        allocated_items INTEGER DEFAULT 0,
        picked_items INTEGER DEFAULT 0,
        way_of_delivery TEXT,
        order_remark TEXT,
        lines_json TEXT,
        synced_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS products (
        id INTEGER PRIMARY KEY,
        name TEXT,
        sku TEXT,
        stock_quantity INTEGER DEFAULT 0,
        stock_status TEXT,
        manage_stock INTEGER DEFAULT 0,
        price TEXT,
        type TEXT,
        status TEXT,
        produkttype TEXT,
        synced_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS purchase_orders (
        id TEXT PRIMARY KEY,
        po_number TEXT,
        supplier TEXT,
        supplier_number TEXT,
        status TEXT,
        value REAL,
        currency TEXT,
        priority TEXT,
        order_date TEXT,
        expected_delivery TEXT,
        actual_delivery TEXT,
        items REAL DEFAULT 0,
        synced_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS purchase_order_lines (
        id TEXT PRIMARY KEY,
        po_id TEXT NOT NULL,
        product_number TEXT,
        name TEXT,
        quantity REAL DEFAULT 0,
        line_price REAL,
        line_total REAL
    )
    """,
]


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def ensure_order_store_schema() -> None:
    """Create order, product and purchase-order tables if missing. Safe to call repeatedly."""
    for sql in _SCHEMA:
        execute_write(sql)
    logger.debug("[OrderStore] schema ensured")


# ----------------------------
# Commerce orders
# ----------------------------
_COMMERCE_COLUMNS = (
    "id", "woocommerce_order_id", "order_number", "customer_name", "total_value", "status",
    "currency", "date_created", "delivery_date", "delivery_type", "shipping_method_title",
    "billing_address", "customer_note", "total_items", "priority", "permalink",
)


def _commerce_from_row(row) -> CommerceOrder:
    return CommerceOrder(**{col: row[col] for col in _COMMERCE_COLUMNS})


def upsert_commerce_order(order: CommerceOrder, lines: Iterable[OrderLine], raw: Optional[dict] = None) -> None:
    """Insert or replace one commerce order together with its lines."""
    values = [getattr(order, col) for col in _COMMERCE_COLUMNS]
    placeholders = ", ".join("?" for _ in range(len(_COMMERCE_COLUMNS) + 2))
    with write_connection() as conn:
        conn.execute(
            f"""
            INSERT OR REPLACE INTO commerce_orders ({", ".join(_COMMERCE_COLUMNS)}, raw_json, synced_at)
            VALUES ({placeholders})
            """,
            (*values, json.dumps(raw) if raw is not None else None, _now_iso()),
        )
        conn.execute("DELETE FROM order_lines WHERE order_id = ?", (order.id,))
        conn.executemany(
            """
            INSERT OR REPLACE INTO order_lines
                (id, order_id, product_id, name, sku, quantity, total,
                 delivered_quantity, delivery_date, delivery_status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    line.id, order.id, line.product_id, line.name, line.sku, line.quantity,
                    line.total, line.delivered_quantity, line.delivery_date, line.delivery_status,
                )
                for line in lines
            ],
        )


def get_commerce_order(order_id: str) -> Optional[CommerceOrder]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM commerce_orders WHERE id = ?", (order_id,)).fetchone()
    return _commerce_from_row(row) if row else None


def list_commerce_orders(statuses: Optional[Iterable[str]] = None) -> list[CommerceOrder]:
    sql = "SELECT * FROM commerce_orders"
    params: tuple = ()
    status_list = [s for s in (statuses or []) if s]
    if status_list:
        sql += f" WHERE status IN ({', '.join('?' for _ in status_list)})"
        params = tuple(status_list)
    sql += " ORDER BY date_created DESC, id"
    with get_db_connection() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_commerce_from_row(row) for row in rows]


def get_order_lines(order_id: str) -> list[dict[str, Any]]:
    """Lines of one commerce order with the current stock of each product (None if unknown)."""
    with get_db_connection() as conn:
        rows = conn.execute(
            """
            SELECT l.*, p.stock_quantity AS stock_quantity, p.produkttype AS produkttype
            FROM order_lines l
            LEFT JOIN products p ON p.id = l.product_id
            WHERE l.order_id = ?
            ORDER BY l.id
            """,
            (order_id,),
        ).fetchall()
    return [dict(row) for row in rows]


def list_orders_with_product(product_id: int) -> list[CommerceOrder]:
    with get_db_connection() as conn:
        rows = conn.execute(
            """
            SELECT DISTINCT o.* FROM commerce_orders o
            JOIN order_lines l ON l.order_id = o.id
            WHERE l.product_id = ?
            ORDER BY o.delivery_date, o.id
            """,
            (product_id,),
        ).fetchall()
    return [_commerce_from_row(row) for row in rows]


def prune_commerce_orders(statuses_to_keep: Iterable[str]) -> dict[str, Any]:
    """
    Delete stored commerce orders (and their lines) whose status is not in statuses_to_keep.
    """
    keep = [s for s in statuses_to_keep if s]
    if not keep:
        raise ValueError("statuses_to_keep must not be empty")
    marks = ", ".join("?" for _ in keep)
    with write_connection() as conn:
        conn.execute(
            f"""
            DELETE FROM order_lines WHERE order_id IN (
                SELECT id FROM commerce_orders WHERE status IS NULL OR status NOT IN ({marks})
            )
            """,
            tuple(keep),
        )
        cur = conn.execute(
            f"DELETE FROM commerce_orders WHERE status IS NULL OR status NOT IN ({marks})",
            tuple(keep),
        )
        deleted = cur.rowcount
        remaining = conn.execute("SELECT COUNT(*) FROM commerce_orders").fetchone()[0]
    logger.info("[OrderStore] Pruned %s commerce orders, kept statuses=%s", deleted, keep)
    return {"deleted_count": deleted, "remaining_count": remaining, "statuses_kept": keep}


# ----------------------------
# Warehouse orders
# ----------------------------
_WAREHOUSE_COLUMNS = (
    "id", "ongoing_order_id", "order_number", "goods_owner_order_id", "customer_name",
    "customer_number", "total_value", "status", "status_number", "delivery_address",
    "delivery_date", "created_date", "shipped_time", "ordered_items", "allocated_items",
    "picked_items", "way_of_delivery", "order_remark",
)


def _warehouse_from_row(row) -> WarehouseOrder:
    data = {col: row[col] for col in _WAREHOUSE_COLUMNS}
    data["lines"] = json.loads(row["lines_json"]) if row["lines_json"] else []
    return WarehouseOrder(**data)


def upsert_warehouse_order(order: WarehouseOrder) -> None:
    values = [getattr(order, col) for col in _WAREHOUSE_COLUMNS]
    placeholders = ", ".join("?" for _ in range(len(_WAREHOUSE_COLUMNS) + 2))
    execute_write(
        f"""
        INSERT OR REPLACE INTO warehouse_orders ({", ".join(_WAREHOUSE_COLUMNS)}, lines_json, synced_at)
        VALUES ({placeholders})
        """,
        (*values, json.dumps(list(order.lines)), _now_iso()),
    )


def get_warehouse_order(order_id: str) -> Optional[WarehouseOrder]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM warehouse_orders WHERE id = ?", (order_id,)).fetchone()
    return _warehouse_from_row(row) if row else None


def list_warehouse_orders(status_number: Optional[int] = None) -> list[WarehouseOrder]:
    sql = "SELECT * FROM warehouse_orders"
    params: tuple = ()
    if status_number is not None:
        sql += " WHERE status_number = ?"
        params = (status_number,)
    sql += " ORDER BY ongoing_order_id DESC"
    with get_db_connection() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_warehouse_from_row(row) for row in rows]


# ----------------------------
# Products
# ----------------------------
_PRODUCT_COLUMNS = (
    "id", "name", "sku", "stock_quantity", "stock_status", "manage_stock",
    "price", "type", "status", "produkttype",
)


def _product_from_row(row) -> Product:
    data = {col: row[col] for col in _PRODUCT_COLUMNS}
    data["manage_stock"] = bool(data["manage_stock"])
    return Product(**data)


def upsert_products(products: Iterable[Product]) -> int:
    now = _now_iso()
    rows = [
        (
            p.id, p.name, p.sku, p.stock_quantity, p.stock_status, int(p.manage_stock),
            p.price, p.type, p.status, p.produkttype, now,
        )
        for p in products
    ]
    if not rows:
        return 0
    execute_many_write(
        f"""
        INSERT OR REPLACE INTO products ({", ".join(_PRODUCT_COLUMNS)}, synced_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    return len(rows)


def get_product(product_id: int) -> Optional[Product]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
    return _product_from_row(row) if row else None


def list_products(stock_filter: Optional[str] = None, produkttype: Optional[str] = None) -> list[Product]:
    """
    stock_filter: in-stock (>0), low-stock (1..9), out-of-stock (0), backordered (<0).
    """
    clauses: list[str] = []
    params: list[Any] = []
    if stock_filter:
        if stock_filter not in STOCK_FILTERS:
            raise ValueError(f"Unknown stock filter: {stock_filter}")
        if stock_filter == "in-stock":
            clauses.append("stock_quantity > 0")
        elif stock_filter == "low-stock":
            clauses.append("stock_quantity > 0 AND stock_quantity < ?")
            params.append(LOW_STOCK_LIMIT)
        elif stock_filter == "out-of-stock":
            clauses.append("stock_quantity = 0")
        else:
            clauses.append("stock_quantity < 0")
    if produkttype:
        clauses.append("produkttype = ?")
        params.append(produkttype)
    sql = "SELECT * FROM products"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY stock_quantity, id"
    with get_db_connection() as conn:
        rows = conn.execute(sql, tuple(params)).fetchall()
    return [_product_from_row(row) for row in rows]


# ----------------------------
# Purchase orders
# ----------------------------
_PO_COLUMNS = (
    "id", "po_number", "supplier", "supplier_number", "status", "value", "currency",
    "priority", "order_date", "expected_delivery", "actual_delivery", "items",
)


def upsert_purchase_order(po: PurchaseOrder) -> None:
    values = [getattr(po, col) for col in _PO_COLUMNS]
    with write_connection() as conn:
        conn.execute(
            f"""
            INSERT OR REPLACE INTO purchase_orders ({", ".join(_PO_COLUMNS)}, synced_at)
            VALUES ({", ".join("?" for _ in range(len(_PO_COLUMNS) + 1))})
            """,
            (*values, _now_iso()),
        )
        conn.execute("DELETE FROM purchase_order_lines WHERE po_id = ?", (po.id,))
        conn.executemany(
            """
            INSERT OR REPLACE INTO purchase_order_lines
                (id, po_id, product_number, name, quantity, line_price, line_total)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (line.id, po.id, line.product_number, line.name, line.quantity, line.line_price, line.line_total)
                for line in po.lines
            ],
        )


def list_purchase_orders(status: Optional[str] = None) -> list[dict[str, Any]]:
    sql = "SELECT * FROM purchase_orders"
    params: tuple = ()
    if status:
        sql += " WHERE status = ?"
        params = (status,)
    sql += " ORDER BY expected_delivery IS NULL, expected_delivery, po_number"
    with get_db_connection() as conn:
        rows = conn.execute(sql, params).fetchall()
        lines = conn.execute("SELECT * FROM purchase_order_lines ORDER BY id").fetchall()
    by_po: dict[str, list[dict]] = {}
    for line in lines:
        by_po.setdefault(line["po_id"], []).append(
            {k: line[k] for k in ("id", "product_number", "name", "quantity", "line_price", "line_total")}
        )
    out = []
    for row in rows:
        item = {col: row[col] for col in _PO_COLUMNS}
        item["lines"] = by_po.get(row["id"], [])
        out.append(item)
    return out
