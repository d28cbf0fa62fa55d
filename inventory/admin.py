from django.contrib import admin
from .models import (
    Category, Item, Warehouse, WarehouseEmployee, Inventory, StockMovement,
    InventoryRequest, RequestItem, TransferNotification, Transfer, TransferItem,
)


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at']
    search_fields = ['name', 'description']
    readonly_fields = ['id', 'created_at']
    ordering = ['name']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'category', 'unit', 'unit_cost', 'is_active']
    search_fields = ['name', 'sku', 'description']
    list_filter = ['category', 'is_active', 'created_at']
    readonly_fields = ['id', 'created_at', 'updated_at']
    ordering = ['name']


class WarehouseEmployeeInline(admin.TabularInline):
    model = WarehouseEmployee
    extra = 0
    readonly_fields = ['assigned_at']


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ['name', 'location', 'manager', 'is_active', 'created_at']
    search_fields = ['name', 'location']
    list_filter = ['is_active', 'created_at']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [WarehouseEmployeeInline]
    ordering = ['name']


@admin.register(Inventory)
class InventoryAdmin(admin.ModelAdmin):
    list_display = ['item', 'warehouse', 'quantity', 'version', 'last_updated']
    search_fields = ['item__name', 'item__sku', 'warehouse__name']
    list_filter = ['warehouse']
    # Quantities change through the stock ledger only
    readonly_fields = ['id', 'item', 'warehouse', 'quantity', 'version', 'last_updated']

    def has_add_permission(self, request):
        return False


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['code', 'movement_type', 'item', 'warehouse', 'quantity_delta', 'balance_after', 'created_at']
    search_fields = ['code', 'item__name', 'warehouse__name']
    list_filter = ['movement_type', 'warehouse', 'created_at']
    readonly_fields = [field.name for field in StockMovement._meta.fields]
    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class RequestItemInline(admin.TabularInline):
    model = RequestItem
    extra = 0
    readonly_fields = ['item', 'quantity', 'resolution', 'shortfall', 'issued']
    can_delete = False


@admin.register(InventoryRequest)
class InventoryRequestAdmin(admin.ModelAdmin):
    list_display = ['code', 'warehouse', 'requester', 'priority', 'status', 'submitted_at']
    search_fields = ['code', 'requester__username', 'notes']
    list_filter = ['status', 'priority', 'warehouse', 'submitted_at']
    readonly_fields = ['id', 'code', 'status', 'resolution_reason', 'submitted_at', 'updated_at', 'resolved_at', 'resolved_by']
    inlines = [RequestItemInline]
    ordering = ['-submitted_at']


@admin.register(TransferNotification)
class TransferNotificationAdmin(admin.ModelAdmin):
    list_display = ['request', 'item', 'source_warehouse', 'destination_warehouse', 'required_quantity', 'status', 'escalated']
    list_filter = ['status', 'escalated', 'source_warehouse']
    search_fields = ['request__code', 'item__name']
    readonly_fields = ['id', 'status', 'available_quantity', 'resolver', 'resolved_at', 'created_at']


class TransferItemInline(admin.TabularInline):
    model = TransferItem
    extra = 0
    readonly_fields = ['item', 'quantity']
    can_delete = False


@admin.register(Transfer)
class TransferAdmin(admin.ModelAdmin):
    list_display = ['code', 'source_warehouse', 'destination_warehouse', 'status', 'transfer_mode', 'created_at']
    list_filter = ['status', 'transfer_mode', 'created_at']
    search_fields = ['code', 'tracking_number', 'courier_name']
    readonly_fields = ['id', 'code', 'status', 'shipped_at', 'shipped_by', 'received_at', 'received_by', 'created_at', 'updated_at']
    inlines = [TransferItemInline]
    ordering = ['-created_at']
