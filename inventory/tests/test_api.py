"""
Fulfilment API tests.

Exercises the viewsets end to end: request submission, the review queue,
transfer actions, stock check-in and error rendering.
"""
import uuid
from decimal import Decimal

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import UserProfile
from inventory.request_models import InventoryRequest
from inventory.tests.mixins import FulfilmentTestMixin
from inventory.transfer_models import Transfer, TransferNotification


class FulfilmentAPITestBase(FulfilmentTestMixin, APITestCase):

    def setUp(self):
        self.admin = self.create_user('admin', role=UserProfile.ROLE_ADMIN)
        self.manager = self.create_user('manager', role=UserProfile.ROLE_MANAGER)
        self.requester = self.create_user('requester')
        self.operator1 = self.create_user('operator1', role=UserProfile.ROLE_OPERATOR)
        self.operator2 = self.create_user('operator2', role=UserProfile.ROLE_OPERATOR)
        self.w1 = self.create_warehouse('W1')
        self.w2 = self.create_warehouse('W2')
        self.assign(self.operator1, self.w1)
        self.assign(self.operator2, self.w2)
        self.item = self.create_item('Widget', unit_cost=Decimal('10.00'))

    def login(self, user):
        self.client.force_authenticate(user=user)

    def submit(self, quantity, **extra):
        self.login(self.requester)
        payload = {
            'warehouse': str(self.w1.pk),
            'items': [{'item': str(self.item.pk), 'quantity': quantity}],
        }
        payload.update(extra)
        return self.client.post(reverse('requests-list'), payload, format='json')


class RequestAPITest(FulfilmentAPITestBase):

    def test_requires_authentication(self):
        response = self.client.get(reverse('requests-list'))
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_submit_fulfilled_locally(self):
        self.stock(self.item, self.w1, 10)

        response = self.submit(6)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], InventoryRequest.STATUS_FULFILLED)
        self.assertEqual(response.data['items'][0]['resolution'], 'local-sufficient')
        self.assertEqual(self.quantity(self.item, self.w1), 4)

    def test_submit_with_shortfall(self):
        self.stock(self.item, self.w1, 2)
        self.stock(self.item, self.w2, 20)

        response = self.submit(6)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], InventoryRequest.STATUS_PENDING_TRANSFER)
        self.assertEqual(response.data['items'][0]['shortfall'], 4)

    def test_submit_rejected(self):
        response = self.submit(15)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], InventoryRequest.STATUS_REJECTED)
        self.assertEqual(response.data['resolution_reason'], 'insufficient system-wide stock')

    def test_submit_invalid_payload(self):
        response = self.submit(0)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)

    def test_submit_unknown_item_renders_service_error(self):
        self.login(self.requester)
        response = self.client.post(reverse('requests-list'), {
            'warehouse': str(self.w1.pk),
            'items': [{'item': str(uuid.uuid4()), 'quantity': 1}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'validation_error')

    def test_list_is_scoped_to_requester(self):
        self.stock(self.item, self.w1, 10)
        self.submit(1)
        other = self.create_user('other')
        self.login(other)
        response = self.client.get(reverse('requests-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [])

    def test_list_filters_by_status(self):
        self.stock(self.item, self.w1, 100)
        self.submit(1)
        held = self.submit(60).data
        self.login(self.manager)
        response = self.client.get(reverse('requests-list'), {'status': InventoryRequest.STATUS_APPROVED})
        self.assertEqual([row['id'] for row in response.data], [held['id']])

    def test_status_update_by_manager(self):
        self.stock(self.item, self.w1, 100)
        held = self.submit(60).data
        self.login(self.manager)

        response = self.client.post(reverse('requests-update-status', args=[held['id']]),
                                    {'status': 'fulfilled'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], InventoryRequest.STATUS_FULFILLED)

    def test_status_update_by_requester_is_forbidden(self):
        self.stock(self.item, self.w1, 100)
        held = self.submit(60).data
        response = self.client.post(reverse('requests-update-status', args=[held['id']]),
                                    {'status': 'fulfilled'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'not_authorized')

    def test_manager_denies_held_request_with_reason(self):
        self.stock(self.item, self.w1, 100)
        held = self.submit(60).data
        self.login(self.manager)

        response = self.client.post(reverse('requests-update-status', args=[held['id']]),
                                    {'status': 'rejected', 'reason': 'over budget'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], InventoryRequest.STATUS_REJECTED)
        self.assertEqual(response.data['resolution_reason'], 'over budget')
        self.assertEqual(self.quantity(self.item, self.w1), 100)

    def test_illegal_transition_is_conflict(self):
        self.stock(self.item, self.w1, 10)
        done = self.submit(1).data
        self.login(self.manager)
        response = self.client.post(reverse('requests-update-status', args=[done['id']]),
                                    {'status': 'approved'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'invalid_transition')
        self.assertEqual(response.data['current_status'], InventoryRequest.STATUS_FULFILLED)

    def test_cancel(self):
        self.stock(self.item, self.w2, 20)
        pending = self.submit(6).data
        response = self.client.post(reverse('requests-cancel', args=[pending['id']]),
                                    {'reason': 'changed my mind'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], InventoryRequest.STATUS_CANCELLED)
        self.assertEqual(
            TransferNotification.objects.get(request_id=pending['id']).status,
            TransferNotification.STATUS_CANCELLED,
        )

    def test_retrieve_and_not_found(self):
        self.stock(self.item, self.w1, 10)
        created = self.submit(1).data
        response = self.client.get(reverse('requests-detail', args=[created['id']]))
        self.assertEqual(response.data['code'], created['code'])

        response = self.client.get(reverse('requests-detail', args=[uuid.uuid4()]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_retrieve_someone_elses_request_is_forbidden(self):
        self.stock(self.item, self.w1, 10)
        created = self.submit(1).data
        self.login(self.create_user('other'))
        response = self.client.get(reverse('requests-detail', args=[created['id']]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class TransferAPITest(FulfilmentAPITestBase):

    def setUp(self):
        super().setUp()
        self.stock(self.item, self.w1, 2)
        self.stock(self.item, self.w2, 20)
        self.request_id = self.submit(6).data['id']
        self.notification = TransferNotification.objects.get(request_id=self.request_id)

    def resolve(self, decision, user=None):
        self.login(user or self.operator2)
        return self.client.post(
            reverse('transfer-notifications-resolve', args=[self.notification.pk]),
            {'decision': decision}, format='json',
        )

    def test_review_queue(self):
        self.login(self.operator2)
        response = self.client.get(reverse('transfer-notifications-list'), {'status': 'pending'})
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['required_quantity'], 4)
        self.assertEqual(response.data[0]['source_warehouse_name'], 'W2')

    def test_full_transfer_flow(self):
        response = self.resolve('approve')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], TransferNotification.STATUS_APPROVED)
        transfer_id = str(Transfer.objects.get(notification=self.notification).pk)

        response = self.client.post(reverse('transfers-ship', args=[transfer_id]),
                                    {'courier_name': 'FastShip', 'tracking_number': 'TRK-9'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Transfer.STATUS_IN_TRANSIT)

        self.login(self.operator1)
        response = self.client.post(reverse('transfers-receive', args=[transfer_id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Transfer.STATUS_RECEIVED)

        response = self.client.post(reverse('transfers-receive', args=[transfer_id]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        self.assertEqual(self.quantity(self.item, self.w1), 6)
        self.assertEqual(self.quantity(self.item, self.w2), 16)
        self.assertEqual(InventoryRequest.objects.get(pk=self.request_id).status, InventoryRequest.STATUS_FULFILLED)

    def test_stale_approval_is_conflict(self):
        from inventory import stock_ledger
        from inventory.models import StockMovement
        from inventory.stock_ledger import LedgerEntry

        stock_ledger.apply_entries([LedgerEntry(self.item.pk, self.w2.pk, -17, StockMovement.TYPE_ISSUE)])

        response = self.resolve('approve')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'stale_sufficiency')

    def test_wrong_reviewer_is_forbidden(self):
        response = self.resolve('approve', user=self.operator1)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reject(self):
        response = self.resolve('reject')
        self.assertEqual(response.data['status'], TransferNotification.STATUS_REJECTED)
        self.assertEqual(InventoryRequest.objects.get(pk=self.request_id).status, InventoryRequest.STATUS_REJECTED)

    def test_cancel_and_dispose(self):
        self.resolve('approve')
        transfer_id = str(Transfer.objects.get(notification=self.notification).pk)

        response = self.client.post(reverse('transfers-dispose', args=[transfer_id]), {'reason': 'lost'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.post(reverse('transfers-cancel', args=[transfer_id]), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Transfer.STATUS_CANCELLED)

    def test_transfer_list(self):
        self.resolve('approve')
        self.login(self.operator1)
        response = self.client.get(reverse('transfers-list'))
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['request_code'], InventoryRequest.objects.get(pk=self.request_id).code)


class StockCheckInAPITest(FulfilmentAPITestBase):

    def post(self, user, warehouse, quantity=5):
        self.login(user)
        return self.client.post(reverse('stock-check-in'), {
            'item': str(self.item.pk),
            'warehouse': str(warehouse.pk),
            'quantity': quantity,
        }, format='json')

    def test_operator_checks_in_to_own_warehouse(self):
        response = self.post(self.operator1, self.w1)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['movement_type'], 'check-in')
        self.assertEqual(self.quantity(self.item, self.w1), 5)

    def test_operator_cannot_check_in_elsewhere(self):
        response = self.post(self.operator1, self.w2)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.quantity(self.item, self.w2), 0)

    def test_requester_cannot_check_in(self):
        self.assertEqual(self.post(self.requester, self.w1).status_code, status.HTTP_403_FORBIDDEN)

    def test_quantity_must_be_positive(self):
        self.assertEqual(self.post(self.manager, self.w1, quantity=0).status_code, status.HTTP_400_BAD_REQUEST)
