"""
Request lifecycle.

State graph (fulfilled, rejected and cancelled are terminal):

    submitted        -> approved | pending-transfer | rejected | cancelled
    approved         -> fulfilled | rejected | cancelled
    pending-transfer -> approved | fulfilled | rejected | cancelled

A request never takes a status that disagrees with the outcome of its lines
(see InventoryRequest.derive_status). The only ledger effect owned here is the
issue debit for locally satisfied lines, written in the same transaction as
the move to ``fulfilled``.
"""
import logging
from collections import OrderedDict
from typing import Iterable, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from accounts.rbac import Actor, can_resolve, requires_manual_approval
from inventory import stock_ledger
from inventory.events import emit_transition
from inventory.exceptions import (
    AuthorizationError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from inventory.models import Item, Warehouse
from inventory.request_models import InventoryRequest, RequestItem
from inventory.sufficiency import build_transfer_need, resolve_line

logger = logging.getLogger(__name__)

REASON_NO_STOCK = 'insufficient system-wide stock'
REASON_DENIED = 'rejected by approver'

CANCELLABLE_STATUSES = (
    InventoryRequest.STATUS_SUBMITTED,
    InventoryRequest.STATUS_APPROVED,
    InventoryRequest.STATUS_PENDING_TRANSFER,
)


def _user(actor: Optional[Actor]):
    return actor.user if actor is not None else None


def _lookup(model, pk, label):
    try:
        return model.objects.filter(pk=pk).first()
    except (ValueError, TypeError, DjangoValidationError):
        raise ValidationError(f"Invalid {label} id: {pk}")


def get_request_for_update(request_id) -> InventoryRequest:
    try:
        request = InventoryRequest.objects.select_for_update().filter(pk=request_id).first()
    except (ValueError, TypeError, DjangoValidationError):
        request = None
    if request is None:
        raise NotFoundError(f"Request {request_id} not found", request_id=request_id)
    return request


def set_request_status(request, new_status, actor=None, action='update_status', reason='', **details):
    """Write a status change and emit its transition event."""
    old_status = request.status
    request.status = new_status
    update_fields = ['status', 'updated_at']
    if reason:
        request.resolution_reason = reason
        update_fields.append('resolution_reason')
    if new_status in InventoryRequest.TERMINAL_STATUSES:
        request.resolved_at = timezone.now()
        request.resolved_by = _user(actor)
        update_fields.extend(['resolved_at', 'resolved_by'])
    request.save(update_fields=update_fields)
    emit_transition(request, action, _user(actor), old_status, new_status, reason=reason, **details)
    return request


def _normalise_lines(items: Iterable[dict]):
    """Validate line input and merge duplicate items, preserving order."""
    merged = OrderedDict()
    for index, line in enumerate(items or []):
        item_id = line.get('item_id', line.get('item'))
        quantity = line.get('quantity')
        if item_id is None:
            raise ValidationError(f"Line {index + 1}: item is required")
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError(f"Line {index + 1}: quantity must be a whole number")
        if quantity <= 0:
            raise ValidationError(f"Line {index + 1}: quantity must be greater than zero")

        item = _lookup(Item, item_id, 'item')
        if item is None:
            raise ValidationError(f"Line {index + 1}: item {item_id} does not exist")
        if not item.is_active:
            raise ValidationError(f"Line {index + 1}: item '{item.name}' is not active")

        if item.pk in merged:
            merged[item.pk] = (item, merged[item.pk][1] + quantity)
        else:
            merged[item.pk] = (item, quantity)

    if not merged:
        raise ValidationError('A request needs at least one line with quantity greater than zero')
    return list(merged.values())


def submit_request(actor: Actor, warehouse_id, items, priority=InventoryRequest.PRIORITY_NORMAL,
                   justification='', notes='') -> InventoryRequest:
    """
    Validate and record a request, resolve every line and set the aggregate status.

    Raises:
        ValidationError: inactive warehouse, unknown or inactive item, no lines, bad quantity or priority
        NotFoundError: unknown warehouse
        InsufficientStockError: auto-fulfilment lost a race for local stock
    """
    if priority not in dict(InventoryRequest.PRIORITY_CHOICES):
        raise ValidationError(f"Unknown priority '{priority}'")

    warehouse = _lookup(Warehouse, warehouse_id, 'warehouse')
    if warehouse is None:
        raise NotFoundError(f"Warehouse {warehouse_id} does not exist", warehouse_id=warehouse_id)
    if not warehouse.is_active:
        raise ValidationError(f"Warehouse '{warehouse.name}' is not active")

    lines = _normalise_lines(items)

    from inventory.notification_services import create_notification

    with transaction.atomic():
        request = InventoryRequest.objects.create(
            warehouse=warehouse,
            requester=actor.user,
            priority=priority,
            justification=justification or '',
            notes=notes or '',
        )
        emit_transition(request, 'submit', actor.user, None, InventoryRequest.STATUS_SUBMITTED)

        outcomes = []
        for item, quantity in lines:
            outcome = resolve_line(item.pk, quantity, warehouse.pk)
            request_item = RequestItem.objects.create(
                request=request,
                item=item,
                quantity=quantity,
                resolution=outcome.outcome,
                shortfall=outcome.shortfall,
            )
            outcomes.append((request_item, outcome))

        resolutions = {outcome.outcome for _, outcome in outcomes}

        if RequestItem.RESOLUTION_UNRESOLVABLE in resolutions:
            set_request_status(request, InventoryRequest.STATUS_REJECTED, actor, action='resolve',
                               reason=REASON_NO_STOCK)
            return request

        if RequestItem.RESOLUTION_TRANSFERABLE in resolutions:
            for request_item, outcome in outcomes:
                if outcome.outcome == RequestItem.RESOLUTION_TRANSFERABLE:
                    create_notification(build_transfer_need(request_item, outcome), actor=actor)
            set_request_status(request, InventoryRequest.STATUS_PENDING_TRANSFER, actor, action='resolve')
            return request

        manual = requires_manual_approval(request, actor)
        set_request_status(request, InventoryRequest.STATUS_APPROVED, actor, action='resolve',
                           approval_needed=manual)
        if not manual:
            fulfil_request(request, actor)
        return request


def fulfil_request(request: InventoryRequest, actor: Optional[Actor]) -> InventoryRequest:
    """Issue un-issued local lines from the ledger and mark the request fulfilled, atomically."""
    with transaction.atomic():
        lines = list(request.items.filter(resolution=RequestItem.RESOLUTION_LOCAL, issued=False))
        if lines:
            stock_ledger.issue_request_lines(request, lines, actor=_user(actor))
            RequestItem.objects.filter(pk__in=[line.pk for line in lines]).update(issued=True)
        return set_request_status(request, InventoryRequest.STATUS_FULFILLED, actor, action='fulfil')


def update_request_status(request_id, new_status, actor: Actor, reason: str = '') -> InventoryRequest:
    """
    Move a request along one edge of the state graph.

    Rejecting a request held for manual approval is a denial by the approver
    and does not depend on its lines.

    Raises:
        ValidationError: unknown status
        NotFoundError: unknown request
        AuthorizationError: actor may not resolve requests for this warehouse
        InvalidTransitionError: illegal edge, or a status the lines do not support
        InsufficientStockError: local stock no longer covers the lines being issued
    """
    if new_status not in dict(InventoryRequest.STATUS_CHOICES):
        raise ValidationError(f"Unknown request status '{new_status}'")
    if new_status == InventoryRequest.STATUS_CANCELLED:
        return cancel_request(request_id, actor, reason=reason)

    with transaction.atomic():
        request = get_request_for_update(request_id)
        if not can_resolve(actor, 'resolve_request', request):
            raise AuthorizationError(
                f"User {actor.user.get_username()} may not resolve request {request.code}",
                request=request.code,
            )
        if not request.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Cannot move request {request.code} from {request.status} to {new_status}",
                current_status=request.status,
                requested_status=new_status,
            )

        if new_status == InventoryRequest.STATUS_REJECTED and request.status == InventoryRequest.STATUS_APPROVED:
            reason = reason or REASON_DENIED
            close_open_work(request, actor, reason=f"Request {request.code} rejected")
            return set_request_status(request, new_status, actor, action='reject', reason=reason)

        derived = request.derive_status()
        if new_status == InventoryRequest.STATUS_FULFILLED:
            if derived != InventoryRequest.STATUS_APPROVED:
                raise InvalidTransitionError(
                    f"Request {request.code} still has unresolved lines ({derived})",
                    current_status=request.status,
                    requested_status=new_status,
                )
            return fulfil_request(request, actor)

        if new_status != derived:
            raise InvalidTransitionError(
                f"Request {request.code} lines resolve to {derived}, not {new_status}",
                current_status=request.status,
                requested_status=new_status,
            )
        return set_request_status(request, new_status, actor, reason=reason)


def cancel_pending_notifications(request, actor: Optional[Actor], reason: str):
    """Cancel every still-pending transfer notification of a request."""
    from inventory.transfer_models import TransferNotification

    pending = request.transfer_notifications.select_for_update().filter(
        status=TransferNotification.STATUS_PENDING
    )
    for notification in pending:
        notification.status = TransferNotification.STATUS_CANCELLED
        notification.resolved_at = timezone.now()
        notification.resolver = _user(actor)
        notification.notes = '\n'.join(filter(None, [notification.notes, reason]))
        notification.save(update_fields=['status', 'resolved_at', 'resolver', 'notes'])
        emit_transition(notification, 'cancel', _user(actor), TransferNotification.STATUS_PENDING,
                        TransferNotification.STATUS_CANCELLED, reason=reason)


def withdraw_initiated_transfers(request, actor: Optional[Actor], reason: str):
    """Cancel transfers for the request that have not shipped yet. In-transit goods are left alone."""
    from inventory.transfer_models import Transfer

    initiated = (
        Transfer.objects.select_for_update(of=('self',))
        .filter(notification__request=request, status=Transfer.STATUS_INITIATED)
        .order_by('pk')
    )
    for transfer in initiated:
        transfer.status = Transfer.STATUS_CANCELLED
        transfer.notes = '\n'.join(filter(None, [transfer.notes, reason]))
        transfer.save(update_fields=['status', 'notes', 'updated_at'])
        emit_transition(transfer, 'cancel', _user(actor), Transfer.STATUS_INITIATED,
                        Transfer.STATUS_CANCELLED, reason=reason)


def close_open_work(request, actor: Optional[Actor], reason: str):
    """Stop everything still in flight for a request that is being closed without fulfilment."""
    cancel_pending_notifications(request, actor, reason=reason)
    withdraw_initiated_transfers(request, actor, reason=reason)


def cancel_request(request_id, actor: Actor, reason: str = '') -> InventoryRequest:
    """Cancel a request that is not yet final, cascading to its pending notifications and unshipped transfers."""
    with transaction.atomic():
        request = get_request_for_update(request_id)
        if not can_resolve(actor, 'cancel_request', request):
            raise AuthorizationError(
                f"User {actor.user.get_username()} may not cancel request {request.code}",
                request=request.code,
            )
        if request.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError(
                f"Request {request.code} is {request.status} and can no longer be cancelled",
                current_status=request.status,
                requested_status=InventoryRequest.STATUS_CANCELLED,
            )

        close_open_work(request, actor, reason=f"Request {request.code} cancelled")
        return set_request_status(request, InventoryRequest.STATUS_CANCELLED, actor, action='cancel',
                                  reason=reason or 'cancelled')


def refresh_request_status(request: InventoryRequest, actor: Optional[Actor], reason: str = '') -> InventoryRequest:
    """
    Re-derive a request's status after one of its lines changed outcome.

    When every line is satisfied through transfers, the request is fulfilled in
    a savepoint; if local stock for the remaining lines is gone, it is left
    approved for manual fulfilment instead.
    """
    if request.is_terminal:
        return request

    derived = request.derive_status()
    if derived == request.status:
        return request

    if derived == InventoryRequest.STATUS_REJECTED:
        close_open_work(request, actor, reason=f"Request {request.code} rejected")
        return set_request_status(request, derived, actor, action='resolve', reason=reason)

    if derived == InventoryRequest.STATUS_APPROVED:
        try:
            with transaction.atomic():
                return fulfil_request(request, actor)
        except InsufficientStockError as exc:
            logger.warning(f"Request {request.code} could not be fulfilled automatically: {exc.message}")
            request.refresh_from_db()
            return set_request_status(request, derived, actor, action='resolve',
                                      reason='awaiting manual fulfilment')

    return set_request_status(request, derived, actor, action='resolve', reason=reason)


def list_requests_for_actor(actor: Actor, filters: Optional[dict] = None):
    """Requests visible to the actor, optionally narrowed by RequestFilter parameters."""
    from django.db.models import Q

    from accounts.models import UserProfile
    from inventory.filters import RequestFilter

    queryset = InventoryRequest.objects.select_related('warehouse', 'requester').prefetch_related('items__item')
    if actor.role == UserProfile.ROLE_REQUESTER and not actor.warehouse_ids:
        queryset = queryset.filter(requester=actor.user)
    elif actor.role not in (UserProfile.ROLE_ADMIN, UserProfile.ROLE_MANAGER):
        queryset = queryset.filter(Q(requester=actor.user) | Q(warehouse_id__in=actor.warehouse_ids))

    if not filters:
        return queryset

    filterset = RequestFilter(data=filters, queryset=queryset)
    if not filterset.is_valid():
        raise ValidationError(f"Invalid filters: {dict(filterset.errors)}")
    return filterset.qs
