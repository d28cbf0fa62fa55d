"""
Stock ledger - the only code allowed to change Inventory.quantity.

Every mutation:
- runs inside one database transaction,
- row-locks the affected inventory records in (item_id, warehouse_id) order,
- writes with a conditional UPDATE on ``version``,
- records one StockMovement per affected record.

A debit that would take a record below zero fails the whole operation with
InsufficientStockError; nothing is partially applied.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from inventory.exceptions import InsufficientStockError, ValidationError
from inventory.models import Inventory, StockMovement, generate_movement_code

logger = logging.getLogger(__name__)

MOVEMENT_PREFIXES = {
    StockMovement.TYPE_CHECK_IN: 'CHK',
    StockMovement.TYPE_ISSUE: 'ISS',
    StockMovement.TYPE_TRANSFER_OUT: 'TRO',
    StockMovement.TYPE_TRANSFER_IN: 'TRI',
}


@dataclass(frozen=True)
class LedgerEntry:
    item_id: object
    warehouse_id: object
    delta: int
    movement_type: str


def quantity_on_hand(item_id, warehouse_id) -> int:
    """Live quantity for an (item, warehouse) pair, 0 when no record exists."""
    quantity = (
        Inventory.objects.filter(item_id=item_id, warehouse_id=warehouse_id)
        .values_list('quantity', flat=True)
        .first()
    )
    return quantity or 0


def total_on_hand(item_id) -> int:
    """Cross-warehouse total for an item."""
    return Inventory.objects.filter(item_id=item_id).aggregate(total=Sum('quantity'))['total'] or 0


def _lock_record(item_id, warehouse_id) -> Optional[Inventory]:
    return (
        Inventory.objects.select_for_update()
        .filter(item_id=item_id, warehouse_id=warehouse_id)
        .first()
    )


def locked_quantity(item_id, warehouse_id) -> int:
    """Quantity read under a row lock; call inside transaction.atomic()."""
    record = _lock_record(item_id, warehouse_id)
    return record.quantity if record else 0


def _sorted_keys(keys: Iterable[Tuple[object, object]]) -> List[Tuple[object, object]]:
    return sorted(set(keys), key=lambda key: (str(key[0]), str(key[1])))


def _lock_records(keys: Iterable[Tuple[object, object]],
                  credit_keys: Iterable[Tuple[object, object]]) -> Dict[Tuple[str, str], Inventory]:
    """
    Lock every affected record in a single (item_id, warehouse_id) ordered pass.

    Missing records for credited keys are created first so that the lock pass
    never interleaves inserts with row locks.
    """
    for item_id, warehouse_id in _sorted_keys(credit_keys):
        Inventory.objects.get_or_create(item_id=item_id, warehouse_id=warehouse_id)

    records = {}
    for item_id, warehouse_id in _sorted_keys(keys):
        record = _lock_record(item_id, warehouse_id)
        if record is not None:
            records[(str(item_id), str(warehouse_id))] = record
    return records


def _write(record: Inventory, delta: int) -> int:
    new_quantity = record.quantity + delta
    if new_quantity < 0:
        raise InsufficientStockError(
            f"Insufficient stock for item {record.item_id} in warehouse {record.warehouse_id}. "
            f"Available: {record.quantity}, Required: {-delta}",
            item_id=record.item_id,
            warehouse_id=record.warehouse_id,
            available=record.quantity,
            required=-delta,
        )

    updated = Inventory.objects.filter(pk=record.pk, version=record.version).update(
        quantity=F('quantity') + delta,
        version=F('version') + 1,
        last_updated=timezone.now(),
    )
    if updated != 1:
        raise InsufficientStockError(
            f"Inventory for item {record.item_id} in warehouse {record.warehouse_id} "
            f"was modified concurrently; re-check availability",
            item_id=record.item_id,
            warehouse_id=record.warehouse_id,
        )

    record.quantity = new_quantity
    record.version += 1
    return new_quantity


@transaction.atomic
def apply_entries(entries: List[LedgerEntry], actor=None, request=None, transfer=None, notes='') -> List[StockMovement]:
    """Apply a batch of signed entries atomically and return the movements written."""
    if not entries:
        raise ValidationError('No ledger entries to apply')
    for entry in entries:
        if entry.delta == 0:
            raise ValidationError('Ledger entries must change the quantity')

    keys = [(e.item_id, e.warehouse_id) for e in entries]
    credit_keys = [(e.item_id, e.warehouse_id) for e in entries if e.delta > 0]
    records = _lock_records(keys, credit_keys)

    # Validate every debit before writing anything
    for entry in entries:
        if entry.delta > 0:
            continue
        record = records.get((str(entry.item_id), str(entry.warehouse_id)))
        available = record.quantity if record else 0
        if available + entry.delta < 0:
            raise InsufficientStockError(
                f"Insufficient stock for item {entry.item_id} in warehouse {entry.warehouse_id}. "
                f"Available: {available}, Required: {-entry.delta}",
                item_id=entry.item_id,
                warehouse_id=entry.warehouse_id,
                available=available,
                required=-entry.delta,
            )

    movements = []
    for entry in entries:
        record = records[(str(entry.item_id), str(entry.warehouse_id))]
        balance = _write(record, entry.delta)
        movements.append(StockMovement.objects.create(
            code=generate_movement_code(MOVEMENT_PREFIXES[entry.movement_type]),
            movement_type=entry.movement_type,
            item_id=entry.item_id,
            warehouse_id=entry.warehouse_id,
            quantity_delta=entry.delta,
            balance_after=balance,
            request=request,
            transfer=transfer,
            actor=actor,
            notes=notes,
        ))

    logger.info(
        "Ledger applied %s entries (request=%s, transfer=%s)",
        len(entries),
        getattr(request, 'code', None),
        getattr(transfer, 'code', None),
    )
    return movements


def check_in(item, warehouse, quantity: int, actor=None, notes: str = '') -> StockMovement:
    """Credit a warehouse with an external receipt."""
    if quantity <= 0:
        raise ValidationError('Check-in quantity must be greater than zero', quantity=quantity)
    entry = LedgerEntry(item.pk, warehouse.pk, quantity, StockMovement.TYPE_CHECK_IN)
    return apply_entries([entry], actor=actor, notes=notes)[0]


def issue_request_lines(request, lines, actor=None) -> List[StockMovement]:
    """Debit the request warehouse for locally satisfied lines."""
    entries = [
        LedgerEntry(line.item_id, request.warehouse_id, -line.quantity, StockMovement.TYPE_ISSUE)
        for line in lines
    ]
    return apply_entries(entries, actor=actor, request=request, notes=f"Issued for request {request.code}")


def move_transfer(transfer, actor=None, request: Optional[object] = None) -> List[StockMovement]:
    """Debit the source and credit the destination for every transfer line."""
    entries = []
    for line in transfer.items.all():
        entries.append(LedgerEntry(line.item_id, transfer.source_warehouse_id, -line.quantity,
                                   StockMovement.TYPE_TRANSFER_OUT))
        entries.append(LedgerEntry(line.item_id, transfer.destination_warehouse_id, line.quantity,
                                   StockMovement.TYPE_TRANSFER_IN))
    return apply_entries(entries, actor=actor, request=request, transfer=transfer,
                         notes=f"Transfer {transfer.code}")
