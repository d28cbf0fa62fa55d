# Initial schema for items, warehouses, the stock ledger, requests and transfers

import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Category',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255, unique=True)),
                ('description', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'categories',
                'verbose_name_plural': 'categories',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Warehouse',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('location', models.TextField(blank=True, default='')),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('manager', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='managed_warehouses', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'warehouses',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('sku', models.CharField(max_length=100, unique=True)),
                ('description', models.TextField(blank=True, null=True)),
                ('unit', models.CharField(default='pcs', max_length=50)),
                ('unit_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('min_stock_level', models.PositiveIntegerField(default=10)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='items', to='inventory.category')),
            ],
            options={
                'db_table': 'items',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='WarehouseEmployee',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('role', models.CharField(choices=[('operator', 'Operator'), ('manager', 'Manager')], default='operator', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('assigned_at', models.DateTimeField(auto_now_add=True)),
                ('removed_at', models.DateTimeField(blank=True, null=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='warehouse_assignments', to=settings.AUTH_USER_MODEL)),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='employees', to='inventory.warehouse')),
            ],
            options={
                'db_table': 'warehouse_employees',
                'ordering': ['warehouse__name', 'assigned_at'],
                'unique_together': {('warehouse', 'user')},
            },
        ),
        migrations.CreateModel(
            name='Inventory',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.IntegerField(default=0)),
                ('version', models.PositiveIntegerField(default=0)),
                ('last_updated', models.DateTimeField(default=django.utils.timezone.now)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='inventory_records', to='inventory.item')),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='inventory_records', to='inventory.warehouse')),
            ],
            options={
                'db_table': 'inventory',
                'verbose_name_plural': 'inventory',
                'indexes': [models.Index(fields=['item', 'quantity'], name='inventory_item_qty_idx')],
                'constraints': [
                    models.UniqueConstraint(fields=('item', 'warehouse'), name='unique_item_per_warehouse'),
                    models.CheckConstraint(condition=models.Q(quantity__gte=0), name='inventory_quantity_non_negative', violation_error_message='Inventory quantity cannot be negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InventoryRequest',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('code', models.CharField(db_index=True, max_length=32, unique=True)),
                ('priority', models.CharField(choices=[('urgent', 'Urgent'), ('high', 'High'), ('normal', 'Normal')], default='normal', max_length=16)),
                ('status', models.CharField(choices=[('submitted', 'Submitted'), ('approved', 'Approved'), ('pending-transfer', 'Pending Transfer'), ('rejected', 'Rejected'), ('fulfilled', 'Fulfilled'), ('cancelled', 'Cancelled')], db_index=True, default='submitted', max_length=20)),
                ('justification', models.TextField(blank=True, default='')),
                ('notes', models.TextField(blank=True, default='')),
                ('resolution_reason', models.CharField(blank=True, default='', max_length=255)),
                ('submitted_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='inventory_requests', to=settings.AUTH_USER_MODEL)),
                ('resolved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='resolved_inventory_requests', to=settings.AUTH_USER_MODEL)),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='requests', to='inventory.warehouse')),
            ],
            options={
                'db_table': 'inventory_requests',
                'ordering': ['-submitted_at'],
                'indexes': [
                    models.Index(fields=['warehouse', 'status'], name='request_wh_status_idx'),
                    models.Index(fields=['requester', 'status'], name='request_requester_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RequestItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.PositiveIntegerField()),
                ('resolution', models.CharField(choices=[('local-sufficient', 'Local stock sufficient'), ('transferable', 'Awaiting transfer'), ('unresolvable', 'Unresolvable'), ('transferred', 'Covered by transfer')], max_length=20)),
                ('shortfall', models.PositiveIntegerField(default=0)),
                ('issued', models.BooleanField(default=False, help_text='Local stock has been debited for this line')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='request_items', to='inventory.item')),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='inventory.inventoryrequest')),
            ],
            options={
                'db_table': 'request_items',
                'ordering': ['created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('request', 'item'), name='unique_item_per_request'),
                    models.CheckConstraint(condition=models.Q(quantity__gt=0), name='request_item_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TransferNotification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('required_quantity', models.PositiveIntegerField()),
                ('available_quantity', models.IntegerField(default=0, help_text='Source quantity when the notification was raised; re-checked before approval')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('transferred', 'Transferred'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=20)),
                ('escalated', models.BooleanField(default=False, help_text='No reviewer at the source warehouse; routed to an administrator')),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('destination_warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='inbound_notifications', to='inventory.warehouse')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transfer_notifications', to='inventory.item')),
                ('notified_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transfer_notifications', to=settings.AUTH_USER_MODEL)),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transfer_notifications', to='inventory.inventoryrequest')),
                ('request_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transfer_notifications', to='inventory.requestitem')),
                ('resolver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='resolved_transfer_notifications', to=settings.AUTH_USER_MODEL)),
                ('source_warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='outbound_notifications', to='inventory.warehouse')),
            ],
            options={
                'db_table': 'transfer_notifications',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['source_warehouse', 'status'], name='notif_source_status_idx'),
                    models.Index(fields=['request', 'status'], name='notif_request_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Transfer',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('code', models.CharField(db_index=True, help_text='Auto-generated if not provided: TRF-YYYYMMDDHHMMSS', max_length=100, unique=True)),
                ('status', models.CharField(choices=[('initiated', 'Initiated'), ('in-transit', 'In Transit'), ('received', 'Received'), ('disposed', 'Disposed'), ('cancelled', 'Cancelled')], db_index=True, default='initiated', max_length=20)),
                ('transfer_mode', models.CharField(choices=[('courier', 'Courier'), ('handover', 'Handover'), ('pickup', 'Pickup')], default='courier', max_length=20)),
                ('courier_name', models.CharField(blank=True, default='', max_length=255)),
                ('tracking_number', models.CharField(blank=True, default='', max_length=255)),
                ('expected_arrival_date', models.DateField(blank=True, null=True)),
                ('shipped_at', models.DateTimeField(blank=True, null=True)),
                ('received_at', models.DateTimeField(blank=True, null=True)),
                ('disposal_reason', models.TextField(blank=True, default='')),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('destination_warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='inbound_transfers', to='inventory.warehouse')),
                ('initiated_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='initiated_transfers', to=settings.AUTH_USER_MODEL)),
                ('notification', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='transfer', to='inventory.transfernotification')),
                ('received_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='received_transfers', to=settings.AUTH_USER_MODEL)),
                ('shipped_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='shipped_transfers', to=settings.AUTH_USER_MODEL)),
                ('source_warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='outbound_transfers', to='inventory.warehouse')),
            ],
            options={
                'db_table': 'inventory_transfer',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['source_warehouse', 'status'], name='transfer_source_status_idx'),
                    models.Index(fields=['destination_warehouse', 'status'], name='transfer_dest_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=~models.Q(source_warehouse=models.F('destination_warehouse')), name='transfer_distinct_warehouses'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TransferItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.PositiveIntegerField(help_text='Quantity to transfer')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to='inventory.item')),
                ('transfer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='inventory.transfer')),
            ],
            options={
                'db_table': 'inventory_transfer_item',
                'ordering': ['created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('transfer', 'item'), name='unique_item_per_transfer'),
                    models.CheckConstraint(condition=models.Q(quantity__gt=0), name='transfer_item_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('code', models.CharField(max_length=64, unique=True)),
                ('movement_type', models.CharField(choices=[('check-in', 'Check-in'), ('issue', 'Issue'), ('transfer-out', 'Transfer Out'), ('transfer-in', 'Transfer In')], db_index=True, max_length=20)),
                ('quantity_delta', models.IntegerField()),
                ('balance_after', models.IntegerField()),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='stock_movements', to=settings.AUTH_USER_MODEL)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='inventory.item')),
                ('request', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='inventory.inventoryrequest')),
                ('transfer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='inventory.transfer')),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='inventory.warehouse')),
            ],
            options={
                'db_table': 'stock_movements',
                'ordering': ['created_at'],
                'indexes': [models.Index(fields=['item', 'warehouse', 'created_at'], name='movement_item_wh_ts_idx')],
            },
        ),
    ]
