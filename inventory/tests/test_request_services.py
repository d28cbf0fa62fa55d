"""
Request lifecycle tests.

Covers submission outcomes (local, transfer, rejection), manual approval
thresholds, status updates along the state graph and cancellation.
"""
import uuid
from decimal import Decimal

from django.test import TestCase, override_settings

from accounts.models import AuditLog, UserProfile
from inventory import request_services, stock_ledger
from inventory.exceptions import (
    AuthorizationError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from inventory.models import Inventory, StockMovement
from inventory.request_models import InventoryRequest, RequestItem
from inventory.stock_ledger import LedgerEntry
from inventory.tests.mixins import FulfilmentTestMixin
from inventory.transfer_models import TransferNotification


class RequestTestBase(FulfilmentTestMixin, TestCase):

    def setUp(self):
        self.manager = self.create_user('manager', role=UserProfile.ROLE_MANAGER)
        self.requester = self.create_user('requester', reports_to=self.manager)
        self.operator1 = self.create_user('operator1', role=UserProfile.ROLE_OPERATOR)
        self.operator2 = self.create_user('operator2', role=UserProfile.ROLE_OPERATOR)
        self.w1 = self.create_warehouse('W1')
        self.w2 = self.create_warehouse('W2')
        self.assign(self.operator1, self.w1)
        self.assign(self.operator2, self.w2)
        self.item = self.create_item('Widget', unit_cost=Decimal('10.00'))

    def submit(self, quantity, user=None, warehouse=None, **kwargs):
        return request_services.submit_request(
            self.actor(user or self.requester),
            (warehouse or self.w1).pk,
            [self.line(self.item, quantity)],
            **kwargs
        )


class SubmitRequestTest(RequestTestBase):

    def test_local_stock_fulfils_without_notification(self):
        self.stock(self.item, self.w1, 10)

        request = self.submit(6)

        request.refresh_from_db()
        self.assertEqual(request.status, InventoryRequest.STATUS_FULFILLED)
        self.assertFalse(TransferNotification.objects.filter(request=request).exists())
        self.assertEqual(self.quantity(self.item, self.w1), 4)
        line = request.items.get()
        self.assertEqual(line.resolution, RequestItem.RESOLUTION_LOCAL)
        self.assertTrue(line.issued)
        issue = StockMovement.objects.get(request=request)
        self.assertEqual(issue.movement_type, StockMovement.TYPE_ISSUE)
        self.assertEqual(issue.quantity_delta, -6)

    def test_shortfall_raises_transfer_notification(self):
        self.stock(self.item, self.w1, 2)
        self.stock(self.item, self.w2, 20)

        request = self.submit(6)

        request.refresh_from_db()
        self.assertEqual(request.status, InventoryRequest.STATUS_PENDING_TRANSFER)
        notification = TransferNotification.objects.get(request=request)
        self.assertEqual(notification.source_warehouse, self.w2)
        self.assertEqual(notification.destination_warehouse, self.w1)
        self.assertEqual(notification.required_quantity, 4)
        self.assertEqual(notification.available_quantity, 20)
        self.assertEqual(notification.status, TransferNotification.STATUS_PENDING)
        self.assertEqual(notification.notified_user, self.operator2)
        self.assertFalse(notification.escalated)
        # Nothing moves until a transfer is received
        self.assertEqual(self.quantity(self.item, self.w1), 2)
        self.assertEqual(self.quantity(self.item, self.w2), 20)

    def test_unresolvable_shortfall_rejects_request(self):
        w3 = self.create_warehouse('W3')
        self.stock(self.item, self.w2, 5)
        self.stock(self.item, w3, 5)

        request = self.submit(15)

        request.refresh_from_db()
        self.assertEqual(request.status, InventoryRequest.STATUS_REJECTED)
        self.assertEqual(request.resolution_reason, request_services.REASON_NO_STOCK)
        self.assertIsNotNone(request.resolved_at)
        self.assertFalse(TransferNotification.objects.exists())

    def test_one_unresolvable_line_rejects_whole_request(self):
        other = self.create_item('Gadget')
        self.stock(self.item, self.w2, 20)

        request = request_services.submit_request(
            self.actor(self.requester),
            self.w1.pk,
            [self.line(self.item, 5), self.line(other, 1)],
        )

        self.assertEqual(request.status, InventoryRequest.STATUS_REJECTED)
        self.assertFalse(TransferNotification.objects.exists())

    def test_request_code_is_sequential(self):
        self.stock(self.item, self.w1, 10)
        first = self.submit(1)
        second = self.submit(1)
        self.assertTrue(first.code.startswith('REQ-'))
        self.assertEqual(int(second.code.split('-')[1]), int(first.code.split('-')[1]) + 1)

    def test_duplicate_lines_are_merged(self):
        self.stock(self.item, self.w1, 10)
        request = request_services.submit_request(
            self.actor(self.requester),
            self.w1.pk,
            [self.line(self.item, 3), self.line(self.item, 3)],
        )
        self.assertEqual(request.items.count(), 1)
        self.assertEqual(request.items.get().quantity, 6)

    def test_transitions_are_audited(self):
        self.stock(self.item, self.w1, 10)
        request = self.submit(2)

        entries = AuditLog.objects.filter(entity_id=request.pk).values_list('action', 'new_status')
        self.assertCountEqual(entries, [
            ('submit', InventoryRequest.STATUS_SUBMITTED),
            ('resolve', InventoryRequest.STATUS_APPROVED),
            ('fulfil', InventoryRequest.STATUS_FULFILLED),
        ])

    def test_resolution_message_queued_after_commit(self):
        self.stock(self.item, self.w1, 10)
        with self.captureOnCommitCallbacks() as callbacks:
            self.submit(2)
        self.assertEqual(len(callbacks), 1)


class SubmitValidationTest(RequestTestBase):

    def test_requires_lines(self):
        with self.assertRaises(ValidationError):
            request_services.submit_request(self.actor(self.requester), self.w1.pk, [])

    def test_rejects_zero_quantity(self):
        with self.assertRaises(ValidationError):
            self.submit(0)

    def test_rejects_unknown_warehouse(self):
        with self.assertRaises(NotFoundError):
            request_services.submit_request(self.actor(self.requester), uuid.uuid4(), [self.line(self.item, 1)])

    def test_rejects_inactive_warehouse(self):
        closed = self.create_warehouse('Closed', is_active=False)
        with self.assertRaises(ValidationError):
            self.submit(1, warehouse=closed)

    def test_rejects_inactive_item(self):
        self.item.is_active = False
        self.item.save()
        with self.assertRaises(ValidationError):
            self.submit(1)

    def test_rejects_unknown_priority(self):
        with self.assertRaises(ValidationError):
            self.submit(1, priority='whenever')

    def test_nothing_is_written_on_validation_failure(self):
        with self.assertRaises(ValidationError):
            self.submit(-3)
        self.assertFalse(InventoryRequest.objects.exists())


class ManualApprovalTest(RequestTestBase):

    def setUp(self):
        super().setUp()
        self.stock(self.item, self.w1, 200)

    def test_urgent_request_waits_for_manager(self):
        with self.captureOnCommitCallbacks() as callbacks:
            request = self.submit(5, priority=InventoryRequest.PRIORITY_URGENT)

        self.assertEqual(request.status, InventoryRequest.STATUS_APPROVED)
        self.assertEqual(self.quantity(self.item, self.w1), 200)
        self.assertEqual(len(callbacks), 1)

    def test_large_quantity_waits_for_manager(self):
        request = self.submit(60)
        self.assertEqual(request.status, InventoryRequest.STATUS_APPROVED)

    @override_settings(INVENTORY_APPROVALS={'AUTO_APPROVE_MAX_VALUE': Decimal('100.00')})
    def test_high_value_waits_for_manager(self):
        request = self.submit(11)
        self.assertEqual(request.status, InventoryRequest.STATUS_APPROVED)

    def test_manager_requests_are_not_gated(self):
        request = self.submit(60, user=self.manager, priority=InventoryRequest.PRIORITY_URGENT)
        self.assertEqual(request.status, InventoryRequest.STATUS_FULFILLED)
        self.assertEqual(self.quantity(self.item, self.w1), 140)

    def test_manager_fulfils_approved_request(self):
        request = self.submit(60)

        request = request_services.update_request_status(
            request.pk, InventoryRequest.STATUS_FULFILLED, self.actor(self.manager)
        )

        self.assertEqual(request.status, InventoryRequest.STATUS_FULFILLED)
        self.assertEqual(request.resolved_by, self.manager)
        self.assertEqual(self.quantity(self.item, self.w1), 140)

    def test_operator_of_request_warehouse_may_fulfil(self):
        request = self.submit(60)
        request = request_services.update_request_status(
            request.pk, InventoryRequest.STATUS_FULFILLED, self.actor(self.operator1)
        )
        self.assertEqual(request.status, InventoryRequest.STATUS_FULFILLED)

    def test_fulfilment_fails_when_stock_is_gone(self):
        request = self.submit(60)
        stock_ledger.apply_entries([
            LedgerEntry(self.item.pk, self.w1.pk, -150, StockMovement.TYPE_ISSUE),
        ])

        with self.assertRaises(InsufficientStockError):
            request_services.update_request_status(
                request.pk, InventoryRequest.STATUS_FULFILLED, self.actor(self.manager)
            )

        request.refresh_from_db()
        self.assertEqual(request.status, InventoryRequest.STATUS_APPROVED)
        self.assertFalse(request.items.get().issued)
        self.assertEqual(self.quantity(self.item, self.w1), 50)
        self.assertFalse(StockMovement.objects.filter(request=request).exists())
        self.assertFalse(Inventory.objects.filter(quantity__lt=0).exists())

    def test_lost_race_for_last_units_leaves_stock_at_zero(self):
        request = self.submit(60)
        # Another consumer drains the warehouse after the request was held
        stock_ledger.apply_entries([
            LedgerEntry(self.item.pk, self.w1.pk, -200, StockMovement.TYPE_ISSUE),
        ])

        with self.assertRaises(InsufficientStockError):
            request_services.update_request_status(
                request.pk, InventoryRequest.STATUS_FULFILLED, self.actor(self.manager)
            )

        self.assertEqual(self.quantity(self.item, self.w1), 0)
        self.assertEqual(Inventory.objects.get(item=self.item, warehouse=self.w1).quantity, 0)
        self.assertFalse(StockMovement.objects.filter(request=request).exists())
        request.refresh_from_db()
        self.assertEqual(request.status, InventoryRequest.STATUS_APPROVED)

    def test_manager_rejects_held_request(self):
        request = self.submit(5, priority=InventoryRequest.PRIORITY_URGENT)
        self.assertEqual(request.status, InventoryRequest.STATUS_APPROVED)

        with self.captureOnCommitCallbacks() as callbacks:
            request = request_services.update_request_status(
                request.pk, InventoryRequest.STATUS_REJECTED, self.actor(self.manager),
                reason='not in this budget',
            )

        self.assertEqual(request.status, InventoryRequest.STATUS_REJECTED)
        self.assertEqual(request.resolution_reason, 'not in this budget')
        self.assertEqual(request.resolved_by, self.manager)
        self.assertEqual(self.quantity(self.item, self.w1), 200)
        self.assertEqual(len(callbacks), 1)
        self.assertTrue(AuditLog.objects.filter(
            entity_id=request.pk, action='reject', new_status=InventoryRequest.STATUS_REJECTED
        ).exists())

    def test_denial_has_a_default_reason(self):
        request = self.submit(60)
        request = request_services.update_request_status(
            request.pk, InventoryRequest.STATUS_REJECTED, self.actor(self.operator1)
        )
        self.assertEqual(request.resolution_reason, request_services.REASON_DENIED)

    def test_requester_may_not_reject_own_held_request(self):
        request = self.submit(60)
        with self.assertRaises(AuthorizationError):
            request_services.update_request_status(
                request.pk, InventoryRequest.STATUS_REJECTED, self.actor(self.requester)
            )
        request.refresh_from_db()
        self.assertEqual(request.status, InventoryRequest.STATUS_APPROVED)


class UpdateRequestStatusTest(RequestTestBase):

    def test_requester_may_not_resolve(self):
        self.stock(self.item, self.w1, 100)
        request = self.submit(60)
        with self.assertRaises(AuthorizationError):
            request_services.update_request_status(
                request.pk, InventoryRequest.STATUS_FULFILLED, self.actor(self.requester)
            )

    def test_operator_of_other_warehouse_may_not_resolve(self):
        self.stock(self.item, self.w1, 100)
        request = self.submit(60)
        with self.assertRaises(AuthorizationError):
            request_services.update_request_status(
                request.pk, InventoryRequest.STATUS_FULFILLED, self.actor(self.operator2)
            )

    def test_unknown_request(self):
        with self.assertRaises(NotFoundError):
            request_services.update_request_status(
                uuid.uuid4(), InventoryRequest.STATUS_FULFILLED, self.actor(self.manager)
            )

    def test_unknown_status(self):
        with self.assertRaises(ValidationError):
            request_services.update_request_status(uuid.uuid4(), 'shipped', self.actor(self.manager))

    def test_cannot_fulfil_while_transfer_pending(self):
        self.stock(self.item, self.w2, 20)
        request = self.submit(6)
        with self.assertRaises(InvalidTransitionError):
            request_services.update_request_status(
                request.pk, InventoryRequest.STATUS_FULFILLED, self.actor(self.manager)
            )
        request.refresh_from_db()
        self.assertEqual(request.status, InventoryRequest.STATUS_PENDING_TRANSFER)

    def test_cannot_approve_while_transfer_pending(self):
        self.stock(self.item, self.w2, 20)
        request = self.submit(6)
        with self.assertRaises(InvalidTransitionError):
            request_services.update_request_status(
                request.pk, InventoryRequest.STATUS_APPROVED, self.actor(self.manager)
            )

    def test_terminal_request_cannot_move(self):
        self.stock(self.item, self.w1, 10)
        request = self.submit(1)
        for new_status in (InventoryRequest.STATUS_APPROVED, InventoryRequest.STATUS_FULFILLED):
            with self.assertRaises(InvalidTransitionError):
                request_services.update_request_status(request.pk, new_status, self.actor(self.manager))

    def test_state_graph(self):
        graph = InventoryRequest.TRANSITIONS
        self.assertEqual(set(graph), {choice for choice, _ in InventoryRequest.STATUS_CHOICES})
        for terminal in InventoryRequest.TERMINAL_STATUSES:
            self.assertEqual(graph[terminal], set())
        self.assertNotIn(InventoryRequest.STATUS_PENDING_TRANSFER, graph[InventoryRequest.STATUS_APPROVED])


class CancelRequestTest(RequestTestBase):

    def test_requester_cancels_own_request_and_pending_notifications(self):
        self.stock(self.item, self.w2, 20)
        request = self.submit(6)

        request = request_services.cancel_request(request.pk, self.actor(self.requester), reason='no longer needed')

        self.assertEqual(request.status, InventoryRequest.STATUS_CANCELLED)
        self.assertEqual(request.resolution_reason, 'no longer needed')
        notification = TransferNotification.objects.get(request=request)
        self.assertEqual(notification.status, TransferNotification.STATUS_CANCELLED)

    def test_update_to_cancelled_delegates_to_cancel(self):
        self.stock(self.item, self.w1, 100)
        request = self.submit(60)
        request = request_services.update_request_status(
            request.pk, InventoryRequest.STATUS_CANCELLED, self.actor(self.manager)
        )
        self.assertEqual(request.status, InventoryRequest.STATUS_CANCELLED)

    def test_other_requester_may_not_cancel(self):
        self.stock(self.item, self.w1, 100)
        request = self.submit(60)
        stranger = self.create_user('stranger')
        with self.assertRaises(AuthorizationError):
            request_services.cancel_request(request.pk, self.actor(stranger))

    def test_fulfilled_request_cannot_be_cancelled(self):
        self.stock(self.item, self.w1, 10)
        request = self.submit(1)
        with self.assertRaises(InvalidTransitionError):
            request_services.cancel_request(request.pk, self.actor(self.requester))


class ListRequestsTest(RequestTestBase):

    def setUp(self):
        super().setUp()
        self.stock(self.item, self.w1, 100)
        self.stock(self.item, self.w2, 100)
        self.other_requester = self.create_user('other')
        self.mine = self.submit(1)
        self.theirs = self.submit(1, user=self.other_requester, warehouse=self.w2)

    def test_requester_sees_own_requests(self):
        ids = set(request_services.list_requests_for_actor(self.actor(self.requester)).values_list('id', flat=True))
        self.assertEqual(ids, {self.mine.pk})

    def test_operator_sees_requests_for_their_warehouse(self):
        ids = set(request_services.list_requests_for_actor(self.actor(self.operator2)).values_list('id', flat=True))
        self.assertEqual(ids, {self.theirs.pk})

    def test_manager_sees_everything(self):
        self.assertEqual(request_services.list_requests_for_actor(self.actor(self.manager)).count(), 2)

    def test_filters_by_status(self):
        pending = self.submit(60)
        queryset = request_services.list_requests_for_actor(
            self.actor(self.manager), {'status': [InventoryRequest.STATUS_APPROVED]}
        )
        self.assertEqual(list(queryset.values_list('id', flat=True)), [pending.pk])

    def test_invalid_filter_value(self):
        with self.assertRaises(ValidationError):
            list(request_services.list_requests_for_actor(self.actor(self.manager), {'status': ['shipped']}))
