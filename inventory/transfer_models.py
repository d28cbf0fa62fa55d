"""
Transfer models - notifications raised for request shortfalls and the
warehouse-to-warehouse transfers created when a notification is approved.

Notification status workflow:
- pending: awaiting review by the source warehouse
- approved: reviewer accepted, a Transfer has been initiated
- rejected: reviewer declined, the request line is unresolvable
- transferred: the linked Transfer was received at the destination
- cancelled: the parent request was cancelled while still pending

Transfer status workflow:
- initiated: created from an approved notification
- in_transit: shipped by the source warehouse
- received: stock moved, ledger debit/credit applied
- disposed: goods lost or damaged in transit, bookkeeping only
- cancelled: withdrawn before shipping, no inventory movement
"""
import uuid

from django.conf import settings
from django.db import models

from inventory.models import generate_reference


User = settings.AUTH_USER_MODEL


class TransferNotification(models.Model):
    """Human-reviewable proposal to cover a request shortfall from another warehouse."""

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_TRANSFERRED = 'transferred'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_TRANSFERRED, 'Transferred'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TRANSITIONS = {
        STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED, STATUS_CANCELLED},
        STATUS_APPROVED: {STATUS_TRANSFERRED},
        STATUS_REJECTED: set(),
        STATUS_TRANSFERRED: set(),
        STATUS_CANCELLED: set(),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    request = models.ForeignKey(
        'inventory.InventoryRequest',
        on_delete=models.PROTECT,
        related_name='transfer_notifications',
    )
    request_item = models.ForeignKey(
        'inventory.RequestItem',
        on_delete=models.PROTECT,
        related_name='transfer_notifications',
    )
    item = models.ForeignKey('inventory.Item', on_delete=models.PROTECT, related_name='transfer_notifications')
    source_warehouse = models.ForeignKey(
        'inventory.Warehouse',
        on_delete=models.PROTECT,
        related_name='outbound_notifications',
    )
    destination_warehouse = models.ForeignKey(
        'inventory.Warehouse',
        on_delete=models.PROTECT,
        related_name='inbound_notifications',
    )
    required_quantity = models.PositiveIntegerField()
    available_quantity = models.IntegerField(
        default=0,
        help_text='Source quantity when the notification was raised; re-checked before approval',
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    notified_user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transfer_notifications',
    )
    escalated = models.BooleanField(default=False, help_text='No reviewer at the source warehouse; routed to an administrator')
    resolver = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='resolved_transfer_notifications',
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'transfer_notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['source_warehouse', 'status'], name='notif_source_status_idx'),
            models.Index(fields=['request', 'status'], name='notif_request_status_idx'),
        ]

    def __str__(self):
        return f"{self.item.name} x{self.required_quantity} from {self.source_warehouse.name} ({self.status})"

    def can_transition_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, set())


class Transfer(models.Model):
    """Movement of stock from one warehouse to another."""

    STATUS_INITIATED = 'initiated'
    STATUS_IN_TRANSIT = 'in-transit'
    STATUS_RECEIVED = 'received'
    STATUS_DISPOSED = 'disposed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_INITIATED, 'Initiated'),
        (STATUS_IN_TRANSIT, 'In Transit'),
        (STATUS_RECEIVED, 'Received'),
        (STATUS_DISPOSED, 'Disposed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TRANSITIONS = {
        STATUS_INITIATED: {STATUS_IN_TRANSIT, STATUS_CANCELLED},
        STATUS_IN_TRANSIT: {STATUS_RECEIVED, STATUS_DISPOSED},
        STATUS_RECEIVED: set(),
        STATUS_DISPOSED: set(),
        STATUS_CANCELLED: set(),
    }

    MODE_COURIER = 'courier'
    MODE_HANDOVER = 'handover'
    MODE_PICKUP = 'pickup'
    MODE_CHOICES = [
        (MODE_COURIER, 'Courier'),
        (MODE_HANDOVER, 'Handover'),
        (MODE_PICKUP, 'Pickup'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Auto-generated if not provided: TRF-YYYYMMDDHHMMSS",
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_INITIATED, db_index=True)
    source_warehouse = models.ForeignKey(
        'inventory.Warehouse',
        on_delete=models.PROTECT,
        related_name='outbound_transfers',
    )
    destination_warehouse = models.ForeignKey(
        'inventory.Warehouse',
        on_delete=models.PROTECT,
        related_name='inbound_transfers',
    )
    notification = models.OneToOneField(
        TransferNotification,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transfer',
    )

    # Shipment details
    transfer_mode = models.CharField(max_length=20, choices=MODE_CHOICES, default=MODE_COURIER)
    courier_name = models.CharField(max_length=255, blank=True, default='')
    tracking_number = models.CharField(max_length=255, blank=True, default='')
    expected_arrival_date = models.DateField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    shipped_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='shipped_transfers')

    # Reception / closing
    received_at = models.DateTimeField(null=True, blank=True)
    received_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='received_transfers')
    disposal_reason = models.TextField(blank=True, default='')
    notes = models.TextField(blank=True, default='')

    initiated_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='initiated_transfers')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'inventory_transfer'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['source_warehouse', 'status'], name='transfer_source_status_idx'),
            models.Index(fields=['destination_warehouse', 'status'], name='transfer_dest_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(source_warehouse=models.F('destination_warehouse')),
                name='transfer_distinct_warehouses',
            ),
        ]

    def __str__(self):
        return f"{self.code} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        """Auto-generate code if not provided."""
        if not self.code:
            self.code = generate_reference(Transfer, 'code', 'TRF')
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, set())

    @property
    def total_quantity(self):
        """Get total quantity across all items."""
        return self.items.aggregate(total=models.Sum('quantity'))['total'] or 0


class TransferItem(models.Model):
    """Individual item line within a transfer."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    transfer = models.ForeignKey(Transfer, on_delete=models.CASCADE, related_name='items')
    item = models.ForeignKey('inventory.Item', on_delete=models.PROTECT)
    quantity = models.PositiveIntegerField(help_text="Quantity to transfer")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'inventory_transfer_item'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['transfer', 'item'], name='unique_item_per_transfer'),
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name='transfer_item_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.item.name} x{self.quantity}"
