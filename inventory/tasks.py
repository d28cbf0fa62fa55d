"""
Celery tasks for Inventory Management
Delivers "approval needed" and "request resolved" messages
"""

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
import logging

logger = logging.getLogger(__name__)


def _deliver(subject, message, recipient):
    email = getattr(recipient, 'email', None)
    if not email:
        logger.warning(f"No email address for {recipient}; message '{subject}' not delivered")
        return {'status': 'skipped', 'subject': subject}

    send_mail(
        subject=subject,
        message=message,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[email],
        fail_silently=False,
    )
    logger.info(f"Sent '{subject}' to {email}")
    return {'status': 'sent', 'subject': subject, 'recipient': email}


@shared_task(name='inventory.send_transfer_approval_needed')
def send_transfer_approval_needed(notification_id: str):
    """
    Ask the source warehouse reviewer to approve or reject a transfer notification.

    Args:
        notification_id: UUID of the TransferNotification

    Returns:
        dict: Delivery result
    """
    from inventory.models import TransferNotification

    try:
        notification = TransferNotification.objects.select_related(
            'request', 'item', 'source_warehouse', 'destination_warehouse', 'notified_user'
        ).get(id=notification_id)
    except TransferNotification.DoesNotExist:
        logger.error(f"Transfer notification {notification_id} not found")
        return {'status': 'error', 'message': 'Notification not found'}

    if notification.notified_user is None:
        logger.warning(f"Transfer notification {notification_id} has no reviewer assigned")
        return {'status': 'skipped', 'message': 'No reviewer assigned'}

    subject = f"Transfer approval needed - {notification.request.code}"
    message = f"""
Hello {notification.notified_user.get_username()},

Request {notification.request.code} needs {notification.required_quantity} x {notification.item.name}
at {notification.destination_warehouse.name}.

{notification.source_warehouse.name} held {notification.available_quantity} units when this
notification was raised. Please approve or reject the transfer.
{'This notification was escalated because no reviewer is assigned to the source warehouse.' if notification.escalated else ''}
"""
    return _deliver(subject, message, notification.notified_user)


@shared_task(name='inventory.send_request_approval_needed')
def send_request_approval_needed(request_id: str):
    """Ask the requester's approver to fulfil a request held for manual approval."""
    from accounts.rbac import find_request_approver
    from inventory.models import InventoryRequest

    try:
        request = InventoryRequest.objects.select_related('requester', 'warehouse').get(id=request_id)
    except InventoryRequest.DoesNotExist:
        logger.error(f"Inventory request {request_id} not found")
        return {'status': 'error', 'message': 'Request not found'}

    approver = find_request_approver(request.requester)
    if approver is None:
        logger.warning(f"No approver found for request {request.code}")
        return {'status': 'skipped', 'message': 'No approver found'}

    subject = f"Request approval needed - {request.code}"
    message = (
        f"Request {request.code} from {request.requester.get_username()} for "
        f"{request.warehouse.name} ({request.get_priority_display()} priority) "
        f"is awaiting your approval."
    )
    return _deliver(subject, message, approver)


@shared_task(name='inventory.send_request_resolved')
def send_request_resolved(request_id: str):
    """Tell the requester their request reached a final status."""
    from inventory.models import InventoryRequest

    try:
        request = InventoryRequest.objects.select_related('requester').get(id=request_id)
    except InventoryRequest.DoesNotExist:
        logger.error(f"Inventory request {request_id} not found")
        return {'status': 'error', 'message': 'Request not found'}

    subject = f"Request {request.code} {request.get_status_display().lower()}"
    message = f"Your request {request.code} is now {request.get_status_display()}."
    if request.resolution_reason:
        message += f"\nReason: {request.resolution_reason}"
    return _deliver(subject, message, request.requester)
