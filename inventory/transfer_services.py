"""
Transfer execution.

    initiated  -> in-transit | cancelled
    in-transit -> received | disposed

``mark_received`` is the only place a transfer touches the stock ledger: the
source debit, the destination credit, the status flips of the transfer and its
notification and the re-evaluation of the parent request all commit together
or not at all.
"""
import datetime
import logging
from typing import Optional, Tuple

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from accounts.models import UserProfile
from accounts.rbac import Actor, can_resolve
from inventory import stock_ledger
from inventory.events import emit_transition
from inventory.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from inventory.request_models import InventoryRequest, RequestItem
from inventory.request_services import refresh_request_status
from inventory.transfer_models import Transfer, TransferNotification

logger = logging.getLogger(__name__)

COURIER_FIELDS = ('transfer_mode', 'courier_name', 'tracking_number', 'expected_arrival_date', 'notes')


def _get_transfer_for_update(transfer_id) -> Transfer:
    try:
        transfer = (
            Transfer.objects.select_for_update(of=('self',))
            .select_related('source_warehouse', 'destination_warehouse')
            .filter(pk=transfer_id)
            .first()
        )
    except (ValueError, TypeError, DjangoValidationError):
        transfer = None
    if transfer is None:
        raise NotFoundError(f"Transfer {transfer_id} not found", transfer_id=transfer_id)
    return transfer


def _authorize(actor: Actor, action: str, transfer: Transfer):
    if not can_resolve(actor, action, transfer):
        raise AuthorizationError(
            f"User {actor.user.get_username()} may not {action.replace('_', ' ')} {transfer.code}",
            transfer=transfer.code,
        )


def _check_transition(transfer: Transfer, new_status: str):
    if not transfer.can_transition_to(new_status):
        raise InvalidTransitionError(
            f"Cannot move transfer {transfer.code} from {transfer.status} to {new_status}",
            current_status=transfer.status,
            requested_status=new_status,
        )


def _lock_chain(transfer_id) -> Tuple[Optional[InventoryRequest], Optional[TransferNotification], Transfer]:
    """
    Lock a transfer together with its notification and parent request.

    Locks are taken request first, then notification, then transfer, the same
    order the request and notification services use.
    """
    try:
        parent = (
            Transfer.objects.filter(pk=transfer_id)
            .values('notification_id', 'notification__request_id')
            .first()
        )
    except (ValueError, TypeError, DjangoValidationError):
        parent = None
    if parent is None:
        raise NotFoundError(f"Transfer {transfer_id} not found", transfer_id=transfer_id)

    request = notification = None
    if parent['notification_id']:
        request = InventoryRequest.objects.select_for_update().get(pk=parent['notification__request_id'])
        notification = TransferNotification.objects.select_for_update().get(pk=parent['notification_id'])
    return request, notification, _get_transfer_for_update(transfer_id)


def _clean_courier_info(courier_info: Optional[dict]) -> dict:
    courier_info = dict(courier_info or {})
    unknown = set(courier_info) - set(COURIER_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown shipment fields: {', '.join(sorted(unknown))}")

    mode = courier_info.get('transfer_mode')
    if mode is not None and mode not in dict(Transfer.MODE_CHOICES):
        raise ValidationError(f"Unknown transfer mode '{mode}'")

    arrival = courier_info.get('expected_arrival_date')
    if isinstance(arrival, str):
        parsed = parse_date(arrival)
        if parsed is None:
            raise ValidationError(f"Invalid expected arrival date '{arrival}'")
        courier_info['expected_arrival_date'] = parsed
    elif arrival is not None and not isinstance(arrival, datetime.date):
        raise ValidationError('Expected arrival date must be a date')

    return courier_info


def mark_in_transit(transfer_id, actor: Actor, courier_info: Optional[dict] = None) -> Transfer:
    """Record shipment of an initiated transfer. No ledger effect."""
    details = _clean_courier_info(courier_info)

    with transaction.atomic():
        transfer = _get_transfer_for_update(transfer_id)
        _authorize(actor, 'ship_transfer', transfer)
        _check_transition(transfer, Transfer.STATUS_IN_TRANSIT)

        old_status = transfer.status
        for field, value in details.items():
            if value is None and field != 'expected_arrival_date':
                value = ''
            setattr(transfer, field, value)
        transfer.status = Transfer.STATUS_IN_TRANSIT
        transfer.shipped_at = timezone.now()
        transfer.shipped_by = actor.user
        transfer.save()

        emit_transition(transfer, 'ship', actor.user, old_status, transfer.status,
                        courier_name=transfer.courier_name, tracking_number=transfer.tracking_number)
    return transfer


def mark_received(transfer_id, actor: Actor) -> Transfer:
    """
    Receive an in-transit transfer: move the stock and propagate the outcome.

    Raises:
        NotFoundError: unknown transfer
        AuthorizationError: actor does not operate the destination warehouse
        InvalidTransitionError: transfer is not in transit (including already received)
        InsufficientStockError: a source line fell below its transfer quantity
    """
    with transaction.atomic():
        request, notification, transfer = _lock_chain(transfer_id)
        _authorize(actor, 'receive_transfer', transfer)
        _check_transition(transfer, Transfer.STATUS_RECEIVED)

        stock_ledger.move_transfer(transfer, actor=actor.user, request=request)

        old_status = transfer.status
        transfer.status = Transfer.STATUS_RECEIVED
        transfer.received_at = timezone.now()
        transfer.received_by = actor.user
        transfer.save(update_fields=['status', 'received_at', 'received_by', 'updated_at'])
        emit_transition(transfer, 'receive', actor.user, old_status, transfer.status)

        if notification is not None:
            if not notification.can_transition_to(TransferNotification.STATUS_TRANSFERRED):
                raise InvalidTransitionError(
                    f"Notification for transfer {transfer.code} is {notification.status}",
                    current_status=notification.status,
                )
            notification.status = TransferNotification.STATUS_TRANSFERRED
            notification.save(update_fields=['status'])
            emit_transition(notification, 'transfer', actor.user, TransferNotification.STATUS_APPROVED,
                            TransferNotification.STATUS_TRANSFERRED, transfer=transfer.code)

            RequestItem.objects.filter(
                pk=notification.request_item_id,
                resolution=RequestItem.RESOLUTION_TRANSFERABLE,
            ).update(resolution=RequestItem.RESOLUTION_TRANSFERRED)
            refresh_request_status(request, actor)

    logger.info(f"Transfer {transfer.code} received at {transfer.destination_warehouse.name}")
    return transfer


def _fail_request_line(request: Optional[InventoryRequest], notification: Optional[TransferNotification],
                       actor: Actor, reason: str):
    if notification is None:
        return
    RequestItem.objects.filter(
        pk=notification.request_item_id,
        resolution=RequestItem.RESOLUTION_TRANSFERABLE,
    ).update(resolution=RequestItem.RESOLUTION_UNRESOLVABLE)
    refresh_request_status(request, actor, reason=reason)


def cancel_transfer(transfer_id, actor: Actor, reason: str = '') -> Transfer:
    """Withdraw a transfer before it ships; the request line it covered becomes unresolvable."""
    with transaction.atomic():
        request, notification, transfer = _lock_chain(transfer_id)
        _authorize(actor, 'cancel_transfer', transfer)
        _check_transition(transfer, Transfer.STATUS_CANCELLED)

        old_status = transfer.status
        transfer.status = Transfer.STATUS_CANCELLED
        if reason:
            transfer.notes = '\n'.join(filter(None, [transfer.notes, reason]))
        transfer.save(update_fields=['status', 'notes', 'updated_at'])
        emit_transition(transfer, 'cancel', actor.user, old_status, transfer.status, reason=reason)

        _fail_request_line(request, notification, actor, reason=f"transfer {transfer.code} cancelled")
    return transfer


def mark_disposed(transfer_id, actor: Actor, reason: str) -> Transfer:
    """Close an in-transit transfer whose goods were lost or damaged. Bookkeeping only."""
    if not reason or not reason.strip():
        raise ValidationError('Disposal reason is required')

    with transaction.atomic():
        request, notification, transfer = _lock_chain(transfer_id)
        _authorize(actor, 'dispose_transfer', transfer)
        _check_transition(transfer, Transfer.STATUS_DISPOSED)

        old_status = transfer.status
        transfer.status = Transfer.STATUS_DISPOSED
        transfer.disposal_reason = reason.strip()
        transfer.save(update_fields=['status', 'disposal_reason', 'updated_at'])
        emit_transition(transfer, 'dispose', actor.user, old_status, transfer.status, reason=reason)

        _fail_request_line(request, notification, actor, reason=f"transfer {transfer.code} disposed")
    return transfer


def list_transfers_for_actor(actor: Actor, status: Optional[str] = None):
    queryset = Transfer.objects.select_related(
        'source_warehouse', 'destination_warehouse', 'notification__request'
    ).prefetch_related('items__item')
    if actor.role not in (UserProfile.ROLE_ADMIN, UserProfile.ROLE_MANAGER):
        queryset = queryset.filter(
            Q(source_warehouse_id__in=actor.warehouse_ids) | Q(destination_warehouse_id__in=actor.warehouse_ids)
        )
    if status:
        if status not in dict(Transfer.STATUS_CHOICES):
            raise ValidationError(f"Unknown transfer status '{status}'")
        queryset = queryset.filter(status=status)
    return queryset
