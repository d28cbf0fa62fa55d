"""Approval policy for the fulfillment core, expressed as django-rules predicates.

Capabilities are resolved once per call into an ``Actor``:
requester, warehouse operator (per assigned warehouse), manager, admin.
The predicates only read; they never change state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import FrozenSet, Optional

import rules

from django.conf import settings
from django.contrib.auth import get_user_model

from accounts.models import UserProfile


@dataclass(frozen=True)
class Actor:
    user: object
    role: str = UserProfile.ROLE_REQUESTER
    warehouse_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def id(self):
        return self.user.pk

    def operates(self, warehouse_id) -> bool:
        return warehouse_id is not None and str(warehouse_id) in self.warehouse_ids


def get_actor(user) -> Actor:
    """Resolve the capability set of a user from their profile and warehouse assignments."""
    from inventory.models import Warehouse, WarehouseEmployee  # Local import to avoid cycles

    if user.is_superuser:
        role = UserProfile.ROLE_ADMIN
    else:
        role = (
            UserProfile.objects.filter(user=user).values_list('role', flat=True).first()
            or UserProfile.ROLE_REQUESTER
        )

    warehouse_ids = {
        str(pk) for pk in WarehouseEmployee.objects.filter(user=user, is_active=True)
        .values_list('warehouse_id', flat=True)
    }
    warehouse_ids.update(str(pk) for pk in Warehouse.objects.filter(manager=user).values_list('id', flat=True))
    return Actor(user=user, role=role, warehouse_ids=frozenset(warehouse_ids))


def _scoped_warehouse_id(action: str, context) -> Optional[object]:
    """The warehouse an action is scoped to, given the object it acts on."""
    from inventory.models import InventoryRequest, Transfer, TransferNotification, Warehouse

    if context is None:
        return None
    if isinstance(context, Warehouse):
        return context.pk
    if isinstance(context, InventoryRequest):
        return context.warehouse_id
    if isinstance(context, TransferNotification):
        return context.source_warehouse_id
    if isinstance(context, Transfer):
        if action == 'receive_transfer':
            return context.destination_warehouse_id
        return context.source_warehouse_id
    return None


@rules.predicate
def is_admin(actor: Actor):
    return actor.role == UserProfile.ROLE_ADMIN


@rules.predicate
def is_manager(actor: Actor):
    return actor.role == UserProfile.ROLE_MANAGER


@rules.predicate
def owns_request(actor: Actor, context=None):
    return getattr(context, 'requester_id', None) == actor.id


def _operates(action: str):
    @rules.predicate(name=f'operates_warehouse_for_{action}')
    def operates_warehouse(actor: Actor, context=None):
        return actor.operates(_scoped_warehouse_id(action, context))
    return operates_warehouse


approval_rules = rules.RuleSet()

RESOLVERS = is_admin | is_manager

approval_rules.add_rule('view_request', RESOLVERS | owns_request | _operates('view_request'))
approval_rules.add_rule('cancel_request', RESOLVERS | owns_request | _operates('cancel_request'))
approval_rules.add_rule('resolve_request', RESOLVERS | _operates('resolve_request'))
approval_rules.add_rule('resolve_transfernotification', RESOLVERS | _operates('resolve_transfernotification'))
approval_rules.add_rule('ship_transfer', RESOLVERS | _operates('ship_transfer'))
approval_rules.add_rule('receive_transfer', RESOLVERS | _operates('receive_transfer'))
approval_rules.add_rule('cancel_transfer', RESOLVERS | _operates('cancel_transfer'))
approval_rules.add_rule('dispose_transfer', is_admin)
approval_rules.add_rule('check_in_stock', RESOLVERS | _operates('check_in_stock'))


def can_resolve(actor: Actor, action: str, context=None) -> bool:
    """Whether ``actor`` may perform ``action`` on ``context``. Unknown actions are denied."""
    if not approval_rules.rule_exists(action):
        return False
    return approval_rules.test_rule(action, actor, context)


# Thresholds -------------------------------------------------------------------

def _approval_settings() -> dict:
    defaults = {
        'AUTO_APPROVE_MAX_QUANTITY': 50,
        'AUTO_APPROVE_MAX_VALUE': Decimal('1000.00'),
        'MANUAL_REVIEW_PRIORITIES': ('urgent',),
    }
    defaults.update(getattr(settings, 'INVENTORY_APPROVALS', {}))
    return defaults


def requires_manual_approval(request, actor: Optional[Actor] = None) -> bool:
    """Whether a locally satisfiable request must wait for a manager before it is fulfilled."""
    if actor is not None and actor.role in (UserProfile.ROLE_ADMIN, UserProfile.ROLE_MANAGER):
        return False

    config = _approval_settings()
    if request.priority in config['MANUAL_REVIEW_PRIORITIES']:
        return True

    total_quantity = 0
    total_value = Decimal('0.00')
    for line in request.items.select_related('item'):
        total_quantity += line.quantity
        total_value += line.item.unit_cost * line.quantity

    max_quantity = config['AUTO_APPROVE_MAX_QUANTITY']
    max_value = config['AUTO_APPROVE_MAX_VALUE']
    if max_quantity is not None and total_quantity > max_quantity:
        return True
    if max_value is not None and total_value > Decimal(str(max_value)):
        return True
    return False


def first_admin():
    User = get_user_model()
    admin = (
        User.objects.filter(is_active=True, profile__role=UserProfile.ROLE_ADMIN)
        .order_by('date_joined')
        .first()
    )
    if admin is None:
        admin = User.objects.filter(is_active=True, is_superuser=True).order_by('date_joined').first()
    return admin


def find_request_approver(user):
    """The requester's reporting manager, else an administrator."""
    profile = UserProfile.objects.filter(user=user).select_related('reports_to').first()
    if profile and profile.reports_to and profile.reports_to.is_active:
        return profile.reports_to
    return first_admin()
