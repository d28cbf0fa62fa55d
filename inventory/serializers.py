from rest_framework import serializers

from .models import Inventory, Item, StockMovement, Warehouse
from .request_models import InventoryRequest, RequestItem
from .transfer_models import Transfer, TransferItem, TransferNotification


class ItemSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, allow_null=True)

    class Meta:
        model = Item
        fields = ['id', 'name', 'sku', 'category', 'category_name', 'unit', 'unit_cost', 'min_stock_level', 'is_active']
        read_only_fields = fields


class WarehouseSerializer(serializers.ModelSerializer):
    manager_name = serializers.CharField(source='manager.username', read_only=True, allow_null=True)

    class Meta:
        model = Warehouse
        fields = ['id', 'name', 'location', 'manager', 'manager_name', 'is_active']
        read_only_fields = fields


class InventorySerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)

    class Meta:
        model = Inventory
        fields = ['id', 'item', 'item_name', 'warehouse', 'warehouse_name', 'quantity', 'last_updated']
        read_only_fields = fields


class StockMovementSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'code', 'movement_type', 'item', 'item_name', 'warehouse', 'warehouse_name',
            'quantity_delta', 'balance_after', 'request', 'transfer', 'notes', 'created_at'
        ]
        read_only_fields = fields


class RequestItemSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    item_sku = serializers.CharField(source='item.sku', read_only=True)

    class Meta:
        model = RequestItem
        fields = ['id', 'item', 'item_name', 'item_sku', 'quantity', 'resolution', 'shortfall', 'issued']
        read_only_fields = fields


class InventoryRequestSerializer(serializers.ModelSerializer):
    warehouse_name = serializers.CharField(source='warehouse.name', read_only=True)
    requester_name = serializers.CharField(source='requester.username', read_only=True)
    resolved_by_name = serializers.CharField(source='resolved_by.username', read_only=True, allow_null=True)
    items = RequestItemSerializer(many=True, read_only=True)

    class Meta:
        model = InventoryRequest
        fields = [
            'id', 'code', 'warehouse', 'warehouse_name', 'requester', 'requester_name',
            'priority', 'status', 'justification', 'notes', 'resolution_reason',
            'items', 'submitted_at', 'updated_at', 'resolved_at', 'resolved_by', 'resolved_by_name'
        ]
        read_only_fields = fields


class TransferNotificationSerializer(serializers.ModelSerializer):
    request_code = serializers.CharField(source='request.code', read_only=True)
    item_name = serializers.CharField(source='item.name', read_only=True)
    source_warehouse_name = serializers.CharField(source='source_warehouse.name', read_only=True)
    destination_warehouse_name = serializers.CharField(source='destination_warehouse.name', read_only=True)
    notified_user_name = serializers.CharField(source='notified_user.username', read_only=True, allow_null=True)
    transfer_code = serializers.SerializerMethodField()

    class Meta:
        model = TransferNotification
        fields = [
            'id', 'request', 'request_code', 'request_item', 'item', 'item_name',
            'source_warehouse', 'source_warehouse_name',
            'destination_warehouse', 'destination_warehouse_name',
            'required_quantity', 'available_quantity', 'status',
            'notified_user', 'notified_user_name', 'escalated',
            'resolver', 'resolved_at', 'notes', 'transfer_code', 'created_at'
        ]
        read_only_fields = fields

    def get_transfer_code(self, obj):
        transfer = Transfer.objects.filter(notification=obj).values_list('code', flat=True).first()
        return transfer


class TransferItemSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    item_sku = serializers.CharField(source='item.sku', read_only=True)

    class Meta:
        model = TransferItem
        fields = ['id', 'item', 'item_name', 'item_sku', 'quantity']
        read_only_fields = fields


class TransferSerializer(serializers.ModelSerializer):
    items = TransferItemSerializer(many=True, read_only=True)
    source_warehouse_name = serializers.CharField(source='source_warehouse.name', read_only=True)
    destination_warehouse_name = serializers.CharField(source='destination_warehouse.name', read_only=True)
    request_code = serializers.SerializerMethodField()

    class Meta:
        model = Transfer
        fields = [
            'id', 'code', 'status', 'source_warehouse', 'source_warehouse_name',
            'destination_warehouse', 'destination_warehouse_name', 'notification', 'request_code',
            'transfer_mode', 'courier_name', 'tracking_number', 'expected_arrival_date',
            'shipped_at', 'shipped_by', 'received_at', 'received_by', 'disposal_reason',
            'notes', 'items', 'initiated_by', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_request_code(self, obj):
        notification = obj.notification
        return notification.request.code if notification else None


# Input serializers. Shape checks only; business rules live in the services.

class RequestLineInputSerializer(serializers.Serializer):
    item = serializers.UUIDField()
    quantity = serializers.IntegerField()

    def validate_quantity(self, value):
        """Ensure quantity is positive"""
        if value <= 0:
            raise serializers.ValidationError("Quantity must be greater than 0")
        return value


class SubmitRequestSerializer(serializers.Serializer):
    warehouse = serializers.UUIDField()
    priority = serializers.ChoiceField(choices=InventoryRequest.PRIORITY_CHOICES,
                                       default=InventoryRequest.PRIORITY_NORMAL)
    justification = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    items = RequestLineInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("At least one line is required")
        return value


class RequestStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=InventoryRequest.STATUS_CHOICES)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class ResolveNotificationSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=['approve', 'reject'])
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ShipTransferSerializer(serializers.Serializer):
    transfer_mode = serializers.ChoiceField(choices=Transfer.MODE_CHOICES, required=False)
    courier_name = serializers.CharField(required=False, allow_blank=True)
    tracking_number = serializers.CharField(required=False, allow_blank=True)
    expected_arrival_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class DisposeTransferSerializer(serializers.Serializer):
    reason = serializers.CharField()


class CheckInSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=Item.objects.filter(is_active=True))
    warehouse = serializers.PrimaryKeyRelatedField(queryset=Warehouse.objects.filter(is_active=True))
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
