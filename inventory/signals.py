"""
Inventory signal handlers

Subscribers to ``inventory.events.status_changed``:
- persist every transition to the audit log
- enqueue "approval needed" and "request resolved" messages once the
  surrounding transaction commits
"""
import logging

from django.db import transaction
from django.dispatch import receiver

from accounts.models import AuditLog
from inventory.events import status_changed

logger = logging.getLogger(__name__)


@receiver(status_changed, dispatch_uid='inventory_audit_log')
def record_audit_log(sender, event, **kwargs):
    AuditLog.objects.create(
        user_id=event.actor_id,
        action=event.action,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        old_status=event.old_status,
        new_status=event.new_status,
        changes={key: str(value) for key, value in event.details.items()},
        timestamp=event.timestamp,
    )


@receiver(status_changed, dispatch_uid='inventory_message_queue')
def queue_messages(sender, event, instance=None, **kwargs):
    from inventory import tasks
    from inventory.models import InventoryRequest, TransferNotification

    if sender is TransferNotification and event.action == 'create':
        notification_id = str(event.entity_id)
        transaction.on_commit(lambda: tasks.send_transfer_approval_needed.delay(notification_id))
        return

    if sender is InventoryRequest:
        request_id = str(event.entity_id)
        if event.details.get('approval_needed'):
            transaction.on_commit(lambda: tasks.send_request_approval_needed.delay(request_id))
        if event.new_status in InventoryRequest.TERMINAL_STATUSES:
            transaction.on_commit(lambda: tasks.send_request_resolved.delay(request_id))
