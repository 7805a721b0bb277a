import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

# Ensure repo root is on PYTHONPATH so `import services.*` works when running from /scripts
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services import db as db_service
from services import order_mapping_store, order_store
from services.errors import ConflictError, NotFoundError
from services.order_matching import MATCH_THRESHOLD, find_mapping_candidates

LOGGER = logging.getLogger("reconcile_orders")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Match stored commerce orders against warehouse orders and optionally save suggestions."
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the logistics SQLite file (default: LOGISTICS_DB_PATH)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=MATCH_THRESHOLD,
        help=f"Minimum confidence to report (default: {MATCH_THRESHOLD})",
    )
    parser.add_argument(
        "--status",
        type=str,
        default=None,
        help="Comma-separated commerce order statuses to include (default: all)",
    )
    parser.add_argument(
        "--accept-min-confidence",
        type=int,
        default=None,
        help="Save candidates at or above this confidence as 'suggested' mappings",
    )
    parser.add_argument("--json", action="store_true", help="Print candidates as JSON")
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress INFO logs; only warnings/errors.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    if args.db:
        db_service.DB_PATH = Path(args.db)

    order_store.ensure_order_store_schema()
    order_mapping_store.ensure_order_mappings_table()

    statuses = [s.strip() for s in args.status.split(",")] if args.status else None
    commerce_orders = order_store.list_commerce_orders(statuses)
    warehouse_orders = order_store.list_warehouse_orders()
    candidates = find_mapping_candidates(commerce_orders, warehouse_orders, threshold=args.threshold)
    LOGGER.info(
        "Scored %s commerce x %s warehouse orders -> %s candidates",
        len(commerce_orders),
        len(warehouse_orders),
        len(candidates),
    )

    if args.json:
        print(json.dumps([c.as_dict() for c in candidates], indent=2, default=str))
    else:
        for c in candidates:
            print(
                f"{c.confidence:>3}  {c.source_order_a.id:<16} {c.source_order_b.id:<16} "
                f"{c.source_order_a.order_number:<10} {c.match_reason}"
            )
        print(f"Candidates: {len(candidates)}")

    if args.accept_min_confidence is not None:
        saved = skipped = 0
        for c in candidates:
            if c.confidence < args.accept_min_confidence:
                continue
            try:
                order_mapping_store.accept_candidate(c, "suggested", mapped_by="reconcile_orders")
                saved += 1
            except (ConflictError, NotFoundError) as exc:
                LOGGER.warning("Skipping %s <-> %s: %s", c.source_order_a.id, c.source_order_b.id, exc)
                skipped += 1
        print(f"Saved mappings: {saved}, skipped: {skipped}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
