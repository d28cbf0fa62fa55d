"""
Inventory request models.

A request asks for quantities of items at one warehouse. Each line carries the
outcome of the sufficiency check, and the request status is always derived
from those line outcomes:

- any line unresolvable  -> rejected
- any line transferable  -> pending-transfer
- otherwise              -> approved

``fulfilled`` and ``cancelled`` are set only by the lifecycle operations.
"""
import uuid

from django.conf import settings
from django.db import models


class InventoryRequest(models.Model):
    """A staff member's request for items at a warehouse."""

    PRIORITY_URGENT = 'urgent'
    PRIORITY_HIGH = 'high'
    PRIORITY_NORMAL = 'normal'
    PRIORITY_CHOICES = [
        (PRIORITY_URGENT, 'Urgent'),
        (PRIORITY_HIGH, 'High'),
        (PRIORITY_NORMAL, 'Normal'),
    ]

    STATUS_SUBMITTED = 'submitted'
    STATUS_APPROVED = 'approved'
    STATUS_PENDING_TRANSFER = 'pending-transfer'
    STATUS_REJECTED = 'rejected'
    STATUS_FULFILLED = 'fulfilled'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_SUBMITTED, 'Submitted'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_PENDING_TRANSFER, 'Pending Transfer'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_FULFILLED, 'Fulfilled'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TERMINAL_STATUSES = frozenset({STATUS_FULFILLED, STATUS_REJECTED, STATUS_CANCELLED})

    TRANSITIONS = {
        STATUS_SUBMITTED: {STATUS_APPROVED, STATUS_PENDING_TRANSFER, STATUS_REJECTED, STATUS_CANCELLED},
        STATUS_APPROVED: {STATUS_FULFILLED, STATUS_REJECTED, STATUS_CANCELLED},
        STATUS_PENDING_TRANSFER: {STATUS_APPROVED, STATUS_FULFILLED, STATUS_REJECTED, STATUS_CANCELLED},
        STATUS_REJECTED: set(),
        STATUS_FULFILLED: set(),
        STATUS_CANCELLED: set(),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=32, unique=True, db_index=True)
    warehouse = models.ForeignKey('inventory.Warehouse', on_delete=models.PROTECT, related_name='requests')
    requester = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='inventory_requests')
    priority = models.CharField(max_length=16, choices=PRIORITY_CHOICES, default=PRIORITY_NORMAL)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SUBMITTED, db_index=True)
    justification = models.TextField(blank=True, default='')
    notes = models.TextField(blank=True, default='')
    resolution_reason = models.CharField(max_length=255, blank=True, default='')
    submitted_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='resolved_inventory_requests',
    )

    class Meta:
        db_table = 'inventory_requests'
        ordering = ['-submitted_at']
        indexes = [
            models.Index(fields=['warehouse', 'status'], name='request_wh_status_idx'),
            models.Index(fields=['requester', 'status'], name='request_requester_status_idx'),
        ]

    def __str__(self):
        return f"{self.code} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = self._generate_code()
        super().save(*args, **kwargs)

    @classmethod
    def _generate_code(cls):
        """Sequential code REQ-NNNN, numbered from 1000."""
        sequence = cls.objects.count() + 1000
        code = f"REQ-{sequence:04d}"
        while cls.objects.filter(code=code).exists():
            sequence += 1
            code = f"REQ-{sequence:04d}"
        return code

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def can_transition_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, set())

    def derive_status(self):
        """Status implied by the current line outcomes."""
        resolutions = set(self.items.values_list('resolution', flat=True))
        if RequestItem.RESOLUTION_UNRESOLVABLE in resolutions:
            return self.STATUS_REJECTED
        if RequestItem.RESOLUTION_TRANSFERABLE in resolutions:
            return self.STATUS_PENDING_TRANSFER
        return self.STATUS_APPROVED

    @property
    def total_quantity(self):
        return self.items.aggregate(total=models.Sum('quantity'))['total'] or 0


class RequestItem(models.Model):
    """A requested quantity of one item, with its sufficiency outcome."""

    RESOLUTION_LOCAL = 'local-sufficient'
    RESOLUTION_TRANSFERABLE = 'transferable'
    RESOLUTION_UNRESOLVABLE = 'unresolvable'
    RESOLUTION_TRANSFERRED = 'transferred'
    RESOLUTION_CHOICES = [
        (RESOLUTION_LOCAL, 'Local stock sufficient'),
        (RESOLUTION_TRANSFERABLE, 'Awaiting transfer'),
        (RESOLUTION_UNRESOLVABLE, 'Unresolvable'),
        (RESOLUTION_TRANSFERRED, 'Covered by transfer'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    request = models.ForeignKey(InventoryRequest, on_delete=models.CASCADE, related_name='items')
    item = models.ForeignKey('inventory.Item', on_delete=models.PROTECT, related_name='request_items')
    quantity = models.PositiveIntegerField()
    resolution = models.CharField(max_length=20, choices=RESOLUTION_CHOICES)
    shortfall = models.PositiveIntegerField(default=0)
    issued = models.BooleanField(default=False, help_text='Local stock has been debited for this line')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'request_items'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['request', 'item'], name='unique_item_per_request'),
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name='request_item_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.item.name} x{self.quantity} ({self.resolution})"
