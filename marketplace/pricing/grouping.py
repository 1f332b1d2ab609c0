from collections import OrderedDict
from decimal import Decimal
from typing import Iterable, List, Sequence

from marketplace.errors import CartValidationError

from .schemas import CartLine, StoreOrderGroup


def validate_cart(items: Sequence[CartLine]) -> List[CartLine]:
    """Reject structurally invalid carts before any pricing happens.

    Returns the selected lines. Nothing is coerced: a bad line fails the
    whole request with a reason code.
    """
    if not items:
        raise CartValidationError("empty_cart")

    for item in items:
        if item.quantity < 1:
            raise CartValidationError("invalid_quantity", product_id=item.product_id)
        if item.price < 0:
            raise CartValidationError("invalid_price", product_id=item.product_id)

    selected = [item for item in items if item.selected]
    if not selected:
        raise CartValidationError("no_selected_items")
    return selected


def group_by_store(items: Iterable[CartLine]) -> List[StoreOrderGroup]:
    """Partition selected lines by store, in order of first appearance."""
    buckets = OrderedDict()
    for item in items:
        if not item.selected:
            continue
        buckets.setdefault(item.store_id, []).append(item)

    groups = []
    for store_id, lines in buckets.items():
        subtotal = sum((line.line_total for line in lines), Decimal("0"))
        groups.append(StoreOrderGroup(
            store_id=store_id,
            store_name=lines[0].store_name,
            items=tuple(lines),
            subtotal=subtotal,
        ))
    return groups
