"""
Persistence for accepted order mappings (commerce order <-> warehouse order).

Mappings are never hard-deleted: deactivation flips is_active. At most one active
mapping may exist per (commerce_order_id, warehouse_order_id) pair; the partial unique
index enforces it and a second attempt raises ConflictError.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from services import order_store
from services.db import execute_write, get_db_connection, write_connection
from services.errors import ConflictError, NotFoundError
from services.models import MAPPING_TYPES, MappingCandidate, OrderMapping

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("mapping_type", "confidence", "notes", "mapped_by", "customer_name", "order_number")


def ensure_order_mappings_table() -> None:
    execute_write(
        """
        CREATE TABLE IF NOT EXISTS order_mappings (
            id TEXT PRIMARY KEY,
            commerce_order_id TEXT NOT NULL,
            warehouse_order_id TEXT NOT NULL,
            mapping_type TEXT NOT NULL,
            confidence INTEGER NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            notes TEXT,
            mapped_by TEXT,
            mapped_at TEXT NOT NULL,
            updated_at TEXT,
            customer_name TEXT,
            order_number TEXT,
            commerce_snapshot TEXT,
            warehouse_snapshot TEXT
        )
        """
    )
    execute_write(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_order_mappings_active_pair
        ON order_mappings(commerce_order_id, warehouse_order_id)
        WHERE is_active = 1
        """
    )
    execute_write("CREATE INDEX IF NOT EXISTS idx_order_mappings_warehouse ON order_mappings(warehouse_order_id)")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _validate_mapping_type(mapping_type: Any) -> str:
    if mapping_type not in MAPPING_TYPES:
        raise ValueError(f"mapping_type must be one of {', '.join(MAPPING_TYPES)}")
    return mapping_type


def _validate_confidence(confidence: Any) -> int:
    if isinstance(confidence, bool):
        raise ValueError("confidence must be an integer between 0 and 100")
    try:
        value = int(confidence)
    except (TypeError, ValueError):
        raise ValueError("confidence must be an integer between 0 and 100")
    if value != confidence or not 0 <= value <= 100:
        raise ValueError("confidence must be an integer between 0 and 100")
    return value


def _snapshot(order) -> dict[str, Any]:
    return {
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "status": order.status,
        "total_value": order.total_value,
    }


def _mapping_from_row(row) -> OrderMapping:
    return OrderMapping(
        id=row["id"],
        commerce_order_id=row["commerce_order_id"],
        warehouse_order_id=row["warehouse_order_id"],
        mapping_type=row["mapping_type"],
        confidence=row["confidence"],
        is_active=bool(row["is_active"]),
        notes=row["notes"],
        mapped_by=row["mapped_by"],
        mapped_at=row["mapped_at"],
        updated_at=row["updated_at"],
        customer_name=row["customer_name"] or "",
        order_number=row["order_number"] or "",
        commerce_order=json.loads(row["commerce_snapshot"]) if row["commerce_snapshot"] else {},
        warehouse_order=json.loads(row["warehouse_snapshot"]) if row["warehouse_snapshot"] else {},
    )


def create_order_mapping(
    commerce_order_id: str,
    warehouse_order_id: str,
    mapping_type: str,
    confidence: int,
    notes: Optional[str] = None,
    mapped_by: Optional[str] = None,
) -> str:
    """
    Persist a mapping between two stored orders and return its id.

    Raises NotFoundError when either order is missing, ConflictError when the pair
    already has an active mapping and ValueError on a bad type or confidence.
    """
    _validate_mapping_type(mapping_type)
    confidence = _validate_confidence(confidence)

    commerce = order_store.get_commerce_order(commerce_order_id)
    warehouse = order_store.get_warehouse_order(warehouse_order_id)
    if commerce is None or warehouse is None:
        missing = [oid for oid, found in ((commerce_order_id, commerce), (warehouse_order_id, warehouse)) if found is None]
        raise NotFoundError(f"One or both orders not found: {', '.join(missing)}")

    mapping_id = uuid.uuid4().hex
    now = _now_iso()
    try:
        with write_connection() as conn:
            conn.execute(
                """
                INSERT INTO order_mappings (
                    id, commerce_order_id, warehouse_order_id, mapping_type, confidence,
                    is_active, notes, mapped_by, mapped_at, updated_at,
                    customer_name, order_number, commerce_snapshot, warehouse_snapshot
                ) VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    mapping_id,
                    commerce_order_id,
                    warehouse_order_id,
                    mapping_type,
                    confidence,
                    notes,
                    mapped_by,
                    now,
                    now,
                    commerce.customer_name or warehouse.customer_name,
                    commerce.order_number or warehouse.order_number,
                    json.dumps(_snapshot(commerce)),
                    json.dumps(_snapshot(warehouse)),
                ),
            )
    except sqlite3.IntegrityError as exc:
        raise ConflictError(
            f"Active mapping already exists for {commerce_order_id} <-> {warehouse_order_id}"
        ) from exc

    logger.info(
        "[OrderMapping] Created %s mapping %s: %s <-> %s (confidence=%s)",
        mapping_type,
        mapping_id,
        commerce_order_id,
        warehouse_order_id,
        confidence,
    )
    return mapping_id


def accept_candidate(
    candidate: MappingCandidate,
    mapping_type: str = "suggested",
    mapped_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> str:
    """Persist a reconciliation candidate, carrying its confidence and match reason."""
    return create_order_mapping(
        candidate.source_order_a.id,
        candidate.source_order_b.id,
        mapping_type,
        min(candidate.confidence, 100),
        notes=notes if notes is not None else candidate.match_reason.strip() or None,
        mapped_by=mapped_by,
    )


def get_mapping_by_id(mapping_id: str) -> OrderMapping:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM order_mappings WHERE id = ?", (mapping_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Mapping not found: {mapping_id}")
    return _mapping_from_row(row)


def update_order_mapping(mapping_id: str, updates: dict[str, Any]) -> OrderMapping:
    """Merge the given fields into a mapping. Snapshots are left untouched."""
    unknown = sorted(set(updates) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(unknown)}")
    fields = dict(updates)
    if "mapping_type" in fields:
        _validate_mapping_type(fields["mapping_type"])
    if "confidence" in fields:
        fields["confidence"] = _validate_confidence(fields["confidence"])

    fields["updated_at"] = _now_iso()
    assignments = ", ".join(f"{name} = ?" for name in fields)
    with write_connection() as conn:
        cur = conn.execute(
            f"UPDATE order_mappings SET {assignments} WHERE id = ?",
            (*fields.values(), mapping_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Mapping not found: {mapping_id}")
    logger.info("[OrderMapping] Updated mapping %s: %s", mapping_id, sorted(updates))
    return get_mapping_by_id(mapping_id)


def deactivate_order_mapping(mapping_id: str) -> None:
    with write_connection() as conn:
        cur = conn.execute(
            "UPDATE order_mappings SET is_active = 0, updated_at = ? WHERE id = ?",
            (_now_iso(), mapping_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Mapping not found: {mapping_id}")
    logger.info("[OrderMapping] Deactivated mapping %s", mapping_id)


def get_order_mappings() -> list[OrderMapping]:
    """Active mappings, newest first."""
    with get_db_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM order_mappings WHERE is_active = 1 ORDER BY mapped_at DESC, rowid DESC"
        ).fetchall()
    return [_mapping_from_row(row) for row in rows]


def get_order_mapping(
    commerce_order_id: Optional[str] = None,
    warehouse_order_id: Optional[str] = None,
) -> Optional[OrderMapping]:
    """Active mapping matching the given id(s), or None."""
    if not commerce_order_id and not warehouse_order_id:
        raise ValueError("Either commerce_order_id or warehouse_order_id must be provided")
    clauses = ["is_active = 1"]
    params: list[str] = []
    if commerce_order_id:
        clauses.append("commerce_order_id = ?")
        params.append(commerce_order_id)
    if warehouse_order_id:
        clauses.append("warehouse_order_id = ?")
        params.append(warehouse_order_id)
    with get_db_connection() as conn:
        row = conn.execute(
            f"SELECT * FROM order_mappings WHERE {' AND '.join(clauses)} ORDER BY mapped_at DESC, rowid DESC LIMIT 1",
            tuple(params),
        ).fetchone()
    return _mapping_from_row(row) if row else None
