"""
Sufficiency resolver.

Decides, for one requested line, whether the destination warehouse covers it
from its own stock, which single warehouse could cover the shortfall, or
that no warehouse can. Read-only: nothing here writes to the ledger.

Candidate sources are ordered by quantity (highest first), then warehouse id,
and the first one holding the whole shortfall wins. Shortfalls are never
split across several source warehouses.
"""
from dataclasses import dataclass
from typing import Optional

from inventory.models import Inventory
from inventory.request_models import RequestItem
from inventory.stock_ledger import quantity_on_hand


LOCAL_SUFFICIENT = RequestItem.RESOLUTION_LOCAL
TRANSFERABLE = RequestItem.RESOLUTION_TRANSFERABLE
UNRESOLVABLE = RequestItem.RESOLUTION_UNRESOLVABLE


@dataclass(frozen=True)
class SufficiencyOutcome:
    outcome: str
    on_hand: int
    shortfall: int = 0
    source_warehouse_id: Optional[object] = None
    source_available: int = 0


@dataclass(frozen=True)
class TransferNeed:
    request_id: object
    line_item_id: object
    item_id: object
    destination_warehouse_id: object
    shortfall_qty: int
    source_warehouse_id: object


def candidate_sources(item_id, destination_warehouse_id):
    """Other active warehouses holding the item, in pick order."""
    return (
        Inventory.objects.filter(item_id=item_id, quantity__gt=0, warehouse__is_active=True)
        .exclude(warehouse_id=destination_warehouse_id)
        .order_by('-quantity', 'warehouse_id')
    )


def resolve_line(item_id, quantity: int, destination_warehouse_id) -> SufficiencyOutcome:
    on_hand = quantity_on_hand(item_id, destination_warehouse_id)
    if on_hand >= quantity:
        return SufficiencyOutcome(LOCAL_SUFFICIENT, on_hand)

    shortfall = quantity - on_hand
    for record in candidate_sources(item_id, destination_warehouse_id):
        if record.quantity >= shortfall:
            return SufficiencyOutcome(
                TRANSFERABLE,
                on_hand,
                shortfall=shortfall,
                source_warehouse_id=record.warehouse_id,
                source_available=record.quantity,
            )
        # Ordered by quantity, so no later candidate can cover it either
        break

    return SufficiencyOutcome(UNRESOLVABLE, on_hand, shortfall=shortfall)


def build_transfer_need(request_item: RequestItem, outcome: SufficiencyOutcome) -> TransferNeed:
    return TransferNeed(
        request_id=request_item.request_id,
        line_item_id=request_item.pk,
        item_id=request_item.item_id,
        destination_warehouse_id=request_item.request.warehouse_id,
        shortfall_qty=outcome.shortfall,
        source_warehouse_id=outcome.source_warehouse_id,
    )
