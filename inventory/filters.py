"""
Inventory Filters for request listing
"""
from django_filters import rest_framework as filters
from django.db.models import Q

from .request_models import InventoryRequest


class RequestFilter(filters.FilterSet):
    """Filtering for inventory requests"""

    # Status filter (allow multiple)
    status = filters.MultipleChoiceFilter(
        choices=InventoryRequest.STATUS_CHOICES,
        conjoined=False  # OR logic
    )

    priority = filters.ChoiceFilter(choices=InventoryRequest.PRIORITY_CHOICES)

    warehouse = filters.UUIDFilter(field_name='warehouse__id')
    requester = filters.NumberFilter(field_name='requester__id')

    # Date range filters
    submitted_from = filters.DateTimeFilter(field_name='submitted_at', lookup_expr='gte')
    submitted_to = filters.DateTimeFilter(field_name='submitted_at', lookup_expr='lte')

    # Only requests still waiting on a transfer notification
    awaiting_transfer = filters.BooleanFilter(method='filter_awaiting_transfer')

    search = filters.CharFilter(method='filter_search')

    class Meta:
        model = InventoryRequest
        fields = ['status', 'priority', 'warehouse', 'requester']

    def filter_awaiting_transfer(self, queryset, name, value):
        from .transfer_models import TransferNotification

        awaiting = Q(transfer_notifications__status__in=[
            TransferNotification.STATUS_PENDING,
            TransferNotification.STATUS_APPROVED,
        ])
        if value:
            return queryset.filter(awaiting).distinct()
        return queryset.exclude(awaiting)

    def filter_search(self, queryset, name, value):
        """Search by request code, notes or item name"""
        if not value:
            return queryset
        return queryset.filter(
            Q(code__icontains=value) |
            Q(notes__icontains=value) |
            Q(items__item__name__icontains=value)
        ).distinct()
