"""
Transfer notification gate.

Turns a transfer need into a pending notification for the source warehouse,
and applies the reviewer's decision:

    pending  -> approved | rejected | cancelled
    approved -> transferred

Approval re-reads the live source quantity under a row lock; the snapshot
taken at creation time is informational only.
"""
import logging
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from accounts.models import UserProfile
from accounts.rbac import Actor, can_resolve, first_admin
from inventory import stock_ledger
from inventory.events import emit_transition
from inventory.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    StaleSufficiencyError,
    ValidationError,
)
from inventory.models import Warehouse, WarehouseEmployee
from inventory.request_models import InventoryRequest, RequestItem
from inventory.sufficiency import TransferNeed
from inventory.transfer_models import Transfer, TransferItem, TransferNotification

logger = logging.getLogger(__name__)

DECISION_APPROVE = 'approve'
DECISION_REJECT = 'reject'
DECISIONS = (DECISION_APPROVE, DECISION_REJECT)

REASON_TRANSFER_REJECTED = 'transfer rejected'


def _user(actor: Optional[Actor]):
    return actor.user if actor is not None else None


def find_source_reviewer(warehouse: Warehouse):
    """An operator or manager assigned to the warehouse, else its designated manager."""
    assignment = (
        WarehouseEmployee.objects.filter(warehouse=warehouse, is_active=True, user__is_active=True)
        .select_related('user')
        .order_by('assigned_at')
        .first()
    )
    if assignment is not None:
        return assignment.user
    if warehouse.manager_id and warehouse.manager.is_active:
        return warehouse.manager
    return None


def create_notification(need: TransferNeed, actor: Optional[Actor] = None) -> TransferNotification:
    """Raise a pending notification for a shortfall; escalate to an admin when the source has no reviewer."""
    source = Warehouse.objects.get(pk=need.source_warehouse_id)
    destination = Warehouse.objects.get(pk=need.destination_warehouse_id)
    request = InventoryRequest.objects.get(pk=need.request_id)
    available = stock_ledger.quantity_on_hand(need.item_id, source.pk)

    reviewer = find_source_reviewer(source)
    escalated = reviewer is None
    if escalated:
        reviewer = first_admin()
        if reviewer is None:
            logger.warning(
                f"No reviewer or administrator for warehouse {source.name}; "
                f"notification for request {request.code} left unassigned"
            )
        else:
            logger.warning(f"No reviewer at warehouse {source.name}; escalating request {request.code} to admin")

    with transaction.atomic():
        notification = TransferNotification.objects.create(
            request=request,
            request_item_id=need.line_item_id,
            item_id=need.item_id,
            source_warehouse=source,
            destination_warehouse=destination,
            required_quantity=need.shortfall_qty,
            available_quantity=available,
            notified_user=reviewer,
            escalated=escalated,
            notes=(
                f"Transfer needed for request {request.code}. Item shortage in {destination.name}. "
                f"Available in {source.name}."
            ),
        )
        emit_transition(notification, 'create', _user(actor), None, TransferNotification.STATUS_PENDING,
                        escalated=escalated, required_quantity=need.shortfall_qty, available_quantity=available)
    return notification


def _lock_parent_request(notification_id) -> InventoryRequest:
    """Requests are always locked before their notifications and transfers."""
    try:
        request_id = (
            TransferNotification.objects.filter(pk=notification_id)
            .values_list('request_id', flat=True)
            .first()
        )
    except (ValueError, TypeError, DjangoValidationError):
        request_id = None
    if request_id is None:
        raise NotFoundError(f"Transfer notification {notification_id} not found", notification_id=notification_id)
    return InventoryRequest.objects.select_for_update().get(pk=request_id)


def _get_notification_for_update(notification_id) -> TransferNotification:
    try:
        notification = (
            TransferNotification.objects.select_for_update(of=('self',))
            .select_related('request', 'request_item', 'source_warehouse', 'destination_warehouse', 'item')
            .filter(pk=notification_id)
            .first()
        )
    except (ValueError, TypeError, DjangoValidationError):
        notification = None
    if notification is None:
        raise NotFoundError(f"Transfer notification {notification_id} not found", notification_id=notification_id)
    return notification


def resolve_notification(notification_id, decision: str, actor: Actor, notes: str = ''):
    """
    Approve or reject a pending notification.

    On approval a Transfer (initiated) is created in the same transaction.

    Raises:
        NotFoundError: unknown notification
        ValidationError: decision is not approve/reject
        AuthorizationError: actor does not review the source warehouse
        InvalidTransitionError: notification already resolved
        StaleSufficiencyError: live source quantity is below the required quantity
    """
    if decision not in DECISIONS:
        raise ValidationError(f"Decision must be one of {', '.join(DECISIONS)}", decision=decision)

    with transaction.atomic():
        request = _lock_parent_request(notification_id)
        notification = _get_notification_for_update(notification_id)
        if not can_resolve(actor, 'resolve_transfernotification', notification):
            raise AuthorizationError(
                f"User {actor.user.get_username()} may not resolve transfers from {notification.source_warehouse.name}",
                source_warehouse=notification.source_warehouse.name,
            )
        if notification.status != TransferNotification.STATUS_PENDING:
            raise InvalidTransitionError(
                f"Transfer notification already resolved ({notification.status})",
                current_status=notification.status,
            )
        if request.is_terminal:
            raise InvalidTransitionError(
                f"Request {request.code} is already {request.status}",
                current_status=request.status,
            )

        if decision == DECISION_APPROVE:
            return _approve(notification, actor, notes)
        return _reject(notification, request, actor, notes)


def _approve(notification: TransferNotification, actor: Actor, notes: str) -> TransferNotification:
    live = stock_ledger.locked_quantity(notification.item_id, notification.source_warehouse_id)
    if live < notification.required_quantity:
        raise StaleSufficiencyError(
            f"{notification.source_warehouse.name} now holds {live} x {notification.item.name}, "
            f"{notification.required_quantity} required; re-resolve the request",
            available=live,
            required=notification.required_quantity,
            snapshot=notification.available_quantity,
        )

    transfer = Transfer.objects.create(
        source_warehouse_id=notification.source_warehouse_id,
        destination_warehouse_id=notification.destination_warehouse_id,
        notification=notification,
        initiated_by=actor.user,
        notes=f"Created from transfer notification for request {notification.request.code}",
    )
    TransferItem.objects.create(transfer=transfer, item_id=notification.item_id,
                                quantity=notification.required_quantity)

    notification.status = TransferNotification.STATUS_APPROVED
    notification.resolver = actor.user
    notification.resolved_at = timezone.now()
    if notes:
        notification.notes = '\n'.join(filter(None, [notification.notes, notes]))
    notification.save(update_fields=['status', 'resolver', 'resolved_at', 'notes'])

    emit_transition(notification, 'approve', actor.user, TransferNotification.STATUS_PENDING,
                    TransferNotification.STATUS_APPROVED, transfer=transfer.code, live_quantity=live)
    emit_transition(transfer, 'create', actor.user, None, Transfer.STATUS_INITIATED)
    return notification


def _reject(notification: TransferNotification, request: InventoryRequest, actor: Actor,
            notes: str) -> TransferNotification:
    from inventory.request_services import refresh_request_status

    notification.status = TransferNotification.STATUS_REJECTED
    notification.resolver = actor.user
    notification.resolved_at = timezone.now()
    if notes:
        notification.notes = '\n'.join(filter(None, [notification.notes, notes]))
    notification.save(update_fields=['status', 'resolver', 'resolved_at', 'notes'])
    emit_transition(notification, 'reject', actor.user, TransferNotification.STATUS_PENDING,
                    TransferNotification.STATUS_REJECTED, notes=notes)

    RequestItem.objects.filter(pk=notification.request_item_id).update(
        resolution=RequestItem.RESOLUTION_UNRESOLVABLE
    )
    refresh_request_status(request, actor, reason=REASON_TRANSFER_REJECTED)
    return notification


def list_notifications_for_actor(actor: Actor, status: Optional[str] = None):
    """Review queue: everything for managers and admins, else notifications for warehouses the actor operates."""
    queryset = TransferNotification.objects.select_related(
        'request', 'item', 'source_warehouse', 'destination_warehouse', 'notified_user'
    )
    if actor.role not in (UserProfile.ROLE_ADMIN, UserProfile.ROLE_MANAGER):
        queryset = queryset.filter(Q(source_warehouse_id__in=actor.warehouse_ids) | Q(notified_user=actor.user))
    if status:
        if status not in dict(TransferNotification.STATUS_CHOICES):
            raise ValidationError(f"Unknown notification status '{status}'")
        queryset = queryset.filter(status=status)
    return queryset
