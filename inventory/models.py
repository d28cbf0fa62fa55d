import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone


User = settings.AUTH_USER_MODEL


def generate_movement_code(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def generate_reference(model, field: str, prefix: str) -> str:
    """Generate a unique reference: PREFIX-YYYYMMDDHHMMSS with a counter suffix on collision."""
    base_reference = f"{prefix}-{timezone.now().strftime('%Y%m%d%H%M%S')}"

    reference = base_reference
    counter = 1
    while model.objects.filter(**{field: reference}).exists():
        reference = f"{base_reference}-{counter}"
        counter += 1

    return reference


class Category(models.Model):
    """Item categories"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']

    def __str__(self):
        return self.name


class Item(models.Model):
    """Catalog item that can be stocked in warehouses."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True, null=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, null=True, blank=True, related_name='items')
    unit = models.CharField(max_length=50, default='pcs')
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    min_stock_level = models.PositiveIntegerField(default=10)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'items'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.sku})"


class Warehouse(models.Model):
    """Warehouses for storing inventory"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    location = models.TextField(blank=True, default='')
    manager = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='managed_warehouses')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'warehouses'
        ordering = ['name']

    def __str__(self):
        return self.name


class WarehouseEmployee(models.Model):
    """Staff assignments to warehouses."""
    ROLE_OPERATOR = 'operator'
    ROLE_MANAGER = 'manager'
    ROLE_CHOICES = [
        (ROLE_OPERATOR, 'Operator'),
        (ROLE_MANAGER, 'Manager'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    warehouse = models.ForeignKey(Warehouse, on_delete=models.CASCADE, related_name='employees')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='warehouse_assignments')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_OPERATOR)
    is_active = models.BooleanField(default=True)
    assigned_at = models.DateTimeField(auto_now_add=True)
    removed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'warehouse_employees'
        unique_together = ['warehouse', 'user']
        ordering = ['warehouse__name', 'assigned_at']

    def __str__(self):
        return f"{self.user} @ {self.warehouse.name}"


class Inventory(models.Model):
    """
    On-hand quantity of an item in a warehouse.

    Only the stock ledger writes to this table. ``version`` is bumped on every
    write so a conditional update detects a concurrent modification.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='inventory_records')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='inventory_records')
    quantity = models.IntegerField(default=0)
    version = models.PositiveIntegerField(default=0)
    last_updated = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'inventory'
        verbose_name_plural = 'inventory'
        constraints = [
            models.UniqueConstraint(
                fields=['item', 'warehouse'],
                name='unique_item_per_warehouse',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name='inventory_quantity_non_negative',
                violation_error_message='Inventory quantity cannot be negative',
            ),
        ]
        indexes = [
            models.Index(fields=['item', 'quantity'], name='inventory_item_qty_idx'),
        ]

    def __str__(self):
        return f"{self.item.name} - {self.warehouse.name} Qty: {self.quantity}"


class StockMovement(models.Model):
    """Immutable log of every change to an inventory record."""
    TYPE_CHECK_IN = 'check-in'
    TYPE_ISSUE = 'issue'
    TYPE_TRANSFER_OUT = 'transfer-out'
    TYPE_TRANSFER_IN = 'transfer-in'
    TYPE_CHOICES = [
        (TYPE_CHECK_IN, 'Check-in'),
        (TYPE_ISSUE, 'Issue'),
        (TYPE_TRANSFER_OUT, 'Transfer Out'),
        (TYPE_TRANSFER_IN, 'Transfer In'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=64, unique=True)
    movement_type = models.CharField(max_length=20, choices=TYPE_CHOICES, db_index=True)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='movements')
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name='movements')
    quantity_delta = models.IntegerField()
    balance_after = models.IntegerField()
    request = models.ForeignKey(
        'inventory.InventoryRequest',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='movements',
    )
    transfer = models.ForeignKey(
        'inventory.Transfer',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='movements',
    )
    actor = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_movements')
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'stock_movements'
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['item', 'warehouse', 'created_at'], name='movement_item_wh_ts_idx'),
        ]

    def __str__(self):
        return f"{self.code} {self.movement_type} {self.quantity_delta:+d}"


from .request_models import InventoryRequest, RequestItem  # noqa: E402
from .transfer_models import TransferNotification, Transfer, TransferItem  # noqa: E402

__all__ = [
    'Category', 'Item', 'Warehouse', 'WarehouseEmployee', 'Inventory', 'StockMovement',
    'InventoryRequest', 'RequestItem',
    'TransferNotification', 'Transfer', 'TransferItem',
    'generate_reference',
]
