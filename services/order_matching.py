"""
Order reconciliation: score every (commerce order, warehouse order) pair and keep the
ones that probably describe the same real-world order.

Scoring is additive. Signals are evaluated in a fixed order and each one that fires
appends its fragment, followed by "; ", to the match reason:

    order number equal             +50  "Order number match"
    customer name equal            +30  "Customer name exact match"
    customer name overlaps         +20  "Customer name partial match"   (only if not exact)
    totals within 10% of larger    +20  "Total value similar"

Pairs scoring at least MATCH_THRESHOLD are returned, highest confidence first. Ties keep
input order (commerce order outer, warehouse order inner). Nothing here does I/O and
a malformed record only means its signals are skipped.
"""
from __future__ import annotations

import logging
import math
import re
from decimal import Decimal
from typing import Any, Iterable, Optional

from services.models import MappingCandidate

logger = logging.getLogger(__name__)

ORDER_NUMBER_POINTS = 50
NAME_EXACT_POINTS = 30
NAME_PARTIAL_POINTS = 20
VALUE_POINTS = 20
VALUE_TOLERANCE = 0.10
MATCH_THRESHOLD = 30

REASON_ORDER_NUMBER = "Order number match"
REASON_NAME_EXACT = "Customer name exact match"
REASON_NAME_PARTIAL = "Customer name partial match"
REASON_VALUE = "Total value similar"

_MIN_SHARED_WORD_LEN = 3
_WORD_RE = re.compile(r"\w+", re.UNICODE)


def _field(order: Any, name: str) -> Any:
    if isinstance(order, dict):
        return order.get(name)
    return getattr(order, name, None)


def _order_number(order: Any) -> Optional[str]:
    value = _field(order, "order_number")
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _normalized_name(order: Any) -> Optional[str]:
    value = _field(order, "customer_name")
    if not isinstance(value, str):
        return None
    name = value.strip().lower()
    return name or None


def _leading_word(name: str) -> Optional[str]:
    match = _WORD_RE.search(name)
    if not match:
        return None
    word = match.group(0)
    return word if len(word) >= _MIN_SHARED_WORD_LEN else None


def _coerce_value(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def names_partially_match(name_a: str, name_b: str) -> bool:
    """
    Substring containment either way, or the same leading word
    ("Acme AS" / "Acme Corporation"). Inputs are already trimmed and lower-cased.
    """
    if name_a in name_b or name_b in name_a:
        return True
    word_a = _leading_word(name_a)
    return word_a is not None and word_a == _leading_word(name_b)


def values_similar(value_a: Any, value_b: Any, tolerance: float = VALUE_TOLERANCE) -> bool:
    a = _coerce_value(value_a)
    b = _coerce_value(value_b)
    if a is None or b is None:
        return False
    larger = max(a, b)
    if larger <= 0:
        return False
    return abs(a - b) / larger <= tolerance


def score_pair(order_a: Any, order_b: Any) -> tuple[int, str]:
    """Return (confidence, match_reason) for one pair; never raises on bad fields."""
    confidence = 0
    reason = ""

    number_a = _order_number(order_a)
    number_b = _order_number(order_b)
    if number_a is not None and number_a == number_b:
        confidence += ORDER_NUMBER_POINTS
        reason += f"{REASON_ORDER_NUMBER}; "

    name_a = _normalized_name(order_a)
    name_b = _normalized_name(order_b)
    if name_a and name_b:
        if name_a == name_b:
            confidence += NAME_EXACT_POINTS
            reason += f"{REASON_NAME_EXACT}; "
        elif names_partially_match(name_a, name_b):
            confidence += NAME_PARTIAL_POINTS
            reason += f"{REASON_NAME_PARTIAL}; "

    if values_similar(_field(order_a, "total_value"), _field(order_b, "total_value")):
        confidence += VALUE_POINTS
        reason += f"{REASON_VALUE}; "

    return confidence, reason


def find_mapping_candidates(
    orders_a: Iterable[Any],
    orders_b: Iterable[Any],
    *,
    threshold: int = MATCH_THRESHOLD,
) -> list[MappingCandidate]:
    """
    Score every pair from the two collections and return those with
    confidence >= threshold, sorted by confidence descending.
    """
    list_a = list(orders_a)
    list_b = list(orders_b)
    candidates: list[MappingCandidate] = []
    for order_a in list_a:
        for order_b in list_b:
            confidence, reason = score_pair(order_a, order_b)
            if confidence >= threshold:
                candidates.append(
                    MappingCandidate(
                        source_order_a=order_a,
                        source_order_b=order_b,
                        confidence=confidence,
                        match_reason=reason,
                    )
                )
    # sorted() is stable, ties stay in input order
    candidates = sorted(candidates, key=lambda c: c.confidence, reverse=True)
    logger.debug(
        "[OrderMatching] %s x %s pairs scored, %s candidates >= %s",
        len(list_a),
        len(list_b),
        len(candidates),
        threshold,
    )
    return candidates
