"""
Inventory request and transfer API views.

Viewsets are thin: they validate request shape with a serializer, resolve
the caller into an Actor and hand off to the service modules, which own the
state machines, authorization checks and ledger writes.
"""
import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from accounts.rbac import can_resolve, get_actor
from inventory import notification_services, request_services, stock_ledger, transfer_services
from inventory.exceptions import AuthorizationError, FulfillmentError, NotFoundError
from inventory.request_models import InventoryRequest
from inventory.serializers import (
    CancelSerializer,
    CheckInSerializer,
    DisposeTransferSerializer,
    InventoryRequestSerializer,
    RequestStatusSerializer,
    ResolveNotificationSerializer,
    ShipTransferSerializer,
    StockMovementSerializer,
    SubmitRequestSerializer,
    TransferNotificationSerializer,
    TransferSerializer,
)

logger = logging.getLogger(__name__)


def fulfillment_exception_handler(exc, context):
    """Render service errors as {"error", "detail", ...}; defer everything else to DRF."""
    if isinstance(exc, FulfillmentError):
        if exc.status_code >= 500:
            logger.error(f"Unhandled fulfilment error: {exc.message}")
        return Response(exc.as_dict(), status=exc.status_code)
    return exception_handler(exc, context)


class RequestViewSet(viewsets.ViewSet):
    """
    Inventory requests

    Endpoints:
    - GET  /api/requests/               - List requests visible to the caller
    - POST /api/requests/               - Submit a request
    - GET  /api/requests/{id}/          - Request detail
    - POST /api/requests/{id}/cancel/   - Cancel a request
    - POST /api/requests/{id}/status/   - Move a request to a new status

    Query Parameters (list):
    - status, priority, warehouse, requester, submitted_from, submitted_to,
      awaiting_transfer, search
    """

    permission_classes = [IsAuthenticated]

    def list(self, request):
        actor = get_actor(request.user)
        queryset = request_services.list_requests_for_actor(actor, request.query_params or None)
        serializer = InventoryRequestSerializer(queryset.order_by('-submitted_at'), many=True)
        return Response(serializer.data)

    def create(self, request):
        serializer = SubmitRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        inventory_request = request_services.submit_request(
            get_actor(request.user),
            warehouse_id=data['warehouse'],
            items=[{'item_id': line['item'], 'quantity': line['quantity']} for line in data['items']],
            priority=data['priority'],
            justification=data['justification'],
            notes=data['notes'],
        )
        return Response(InventoryRequestSerializer(inventory_request).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        inventory_request = (
            InventoryRequest.objects.select_related('warehouse', 'requester')
            .prefetch_related('items__item')
            .filter(pk=pk)
            .first()
        )
        if inventory_request is None:
            raise NotFoundError(f"Request {pk} not found")
        if not can_resolve(get_actor(request.user), 'view_request', inventory_request):
            raise AuthorizationError(f"You may not view request {inventory_request.code}")
        return Response(InventoryRequestSerializer(inventory_request).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        inventory_request = request_services.cancel_request(
            pk, get_actor(request.user), reason=serializer.validated_data['reason']
        )
        return Response(InventoryRequestSerializer(inventory_request).data)

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        serializer = RequestStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        inventory_request = request_services.update_request_status(
            pk,
            serializer.validated_data['status'],
            get_actor(request.user),
            reason=serializer.validated_data['reason'],
        )
        return Response(InventoryRequestSerializer(inventory_request).data)


class TransferNotificationViewSet(viewsets.ViewSet):
    """
    Transfer review queue

    - GET  /api/transfer-notifications/?status=pending
    - GET  /api/transfer-notifications/{id}/
    - POST /api/transfer-notifications/{id}/resolve/  {"decision": "approve"|"reject", "notes": ""}
    """

    permission_classes = [IsAuthenticated]

    def list(self, request):
        actor = get_actor(request.user)
        queryset = notification_services.list_notifications_for_actor(actor, request.query_params.get('status'))
        return Response(TransferNotificationSerializer(queryset.order_by('-created_at'), many=True).data)

    def retrieve(self, request, pk=None):
        actor = get_actor(request.user)
        notification = notification_services.list_notifications_for_actor(actor).filter(pk=pk).first()
        if notification is None:
            raise NotFoundError(f"Transfer notification {pk} not found")
        return Response(TransferNotificationSerializer(notification).data)

    @action(detail=True, methods=['post'])
    def resolve(self, request, pk=None):
        serializer = ResolveNotificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        notification = notification_services.resolve_notification(
            pk,
            serializer.validated_data['decision'],
            get_actor(request.user),
            notes=serializer.validated_data['notes'],
        )
        notification.refresh_from_db()
        return Response(TransferNotificationSerializer(notification).data)


class TransferViewSet(viewsets.ViewSet):
    """
    Transfers between warehouses

    - GET  /api/transfers/?status=in-transit
    - GET  /api/transfers/{id}/
    - POST /api/transfers/{id}/ship/      - Record shipment (courier details)
    - POST /api/transfers/{id}/receive/   - Receive at destination, moves stock
    - POST /api/transfers/{id}/cancel/    - Cancel before shipping
    - POST /api/transfers/{id}/dispose/   - Write off a lost shipment (admins)
    """

    permission_classes = [IsAuthenticated]

    def _respond(self, transfer):
        transfer.refresh_from_db()
        return Response(TransferSerializer(transfer).data)

    def list(self, request):
        actor = get_actor(request.user)
        queryset = transfer_services.list_transfers_for_actor(actor, request.query_params.get('status'))
        return Response(TransferSerializer(queryset.order_by('-created_at'), many=True).data)

    def retrieve(self, request, pk=None):
        actor = get_actor(request.user)
        transfer = transfer_services.list_transfers_for_actor(actor).filter(pk=pk).first()
        if transfer is None:
            raise NotFoundError(f"Transfer {pk} not found")
        return Response(TransferSerializer(transfer).data)

    @action(detail=True, methods=['post'])
    def ship(self, request, pk=None):
        serializer = ShipTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        transfer = transfer_services.mark_in_transit(pk, get_actor(request.user), dict(serializer.validated_data))
        return self._respond(transfer)

    @action(detail=True, methods=['post'])
    def receive(self, request, pk=None):
        transfer = transfer_services.mark_received(pk, get_actor(request.user))
        return self._respond(transfer)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        transfer = transfer_services.cancel_transfer(
            pk, get_actor(request.user), reason=serializer.validated_data['reason']
        )
        return self._respond(transfer)

    @action(detail=True, methods=['post'])
    def dispose(self, request, pk=None):
        serializer = DisposeTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        transfer = transfer_services.mark_disposed(
            pk, get_actor(request.user), reason=serializer.validated_data['reason']
        )
        return self._respond(transfer)


class StockCheckInView(APIView):
    """POST /api/stock/check-in/ - credit a warehouse with received goods."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CheckInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        actor = get_actor(request.user)
        if not can_resolve(actor, 'check_in_stock', data['warehouse']):
            raise AuthorizationError(f"You may not check stock into {data['warehouse'].name}")

        movement = stock_ledger.check_in(data['item'], data['warehouse'], data['quantity'],
                                         actor=request.user, notes=data['notes'])
        return Response(StockMovementSerializer(movement).data, status=status.HTTP_201_CREATED)
