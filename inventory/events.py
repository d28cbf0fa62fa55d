"""Domain events emitted on every state transition of requests, notifications and transfers."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from django.dispatch import Signal
from django.utils import timezone

logger = logging.getLogger(__name__)

# Sent with ``event`` (a TransitionEvent). Receivers run inside the caller's
# transaction, so anything they write rolls back with a failed operation.
status_changed = Signal()


@dataclass(frozen=True)
class TransitionEvent:
    entity_type: str
    entity_id: object
    action: str
    actor_id: Optional[object]
    old_status: Optional[str]
    new_status: Optional[str]
    timestamp: datetime
    details: dict = field(default_factory=dict)


def emit_transition(entity, action, actor=None, old_status=None, new_status=None, **details) -> TransitionEvent:
    event = TransitionEvent(
        entity_type=entity.__class__.__name__,
        entity_id=entity.pk,
        action=action,
        actor_id=getattr(actor, 'pk', None),
        old_status=old_status,
        new_status=new_status,
        timestamp=timezone.now(),
        details=details,
    )
    logger.info(
        "%s %s %s: %s -> %s (actor=%s)",
        event.entity_type, event.entity_id, action, old_status, new_status, event.actor_id,
    )
    status_changed.send(sender=entity.__class__, event=event, instance=entity)
    return event
