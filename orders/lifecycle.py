# orders/lifecycle.py
"""
Order status graph.

Which status may follow which, who may ask for it, and which timestamp
field a transition stamps. The service layer applies transitions with
conditional updates; this module only answers questions.
"""
from .models import OrderStatus as S, DeliveryType, OrderActor

TRANSITIONS = {
    S.NEW: {S.PENDING_PAYMENT, S.PENDING_CONFIRMATION, S.PROCESSING, S.PROCESSED, S.CANCELED, S.REJECTED},
    S.PENDING_PAYMENT: {S.PENDING_CONFIRMATION, S.PROCESSING, S.PROCESSED, S.REJECTED},
    S.PENDING_CONFIRMATION: {S.PROCESSING, S.PROCESSED, S.CANCELED, S.REJECTED},
    S.PROCESSING: {S.PROCESSED, S.ASSIGNED, S.SENT, S.REJECTED},
    S.PROCESSED: {S.ASSIGNED, S.SENT, S.DONE},
    S.ASSIGNED: {S.PICKED_UP},
    S.PICKED_UP: {S.SENT, S.ON_DELIVERY, S.DELIVERED},
    S.SENT: {S.ON_DELIVERY, S.DELIVERED, S.DONE},
    S.ON_DELIVERY: {S.DELIVERED},
    S.DELIVERED: {S.DONE, S.REFUNDED},
    S.DONE: set(),
    S.CANCELED: set(),
    S.REJECTED: set(),
    S.REFUNDED: set(),
}

TERMINAL_STATUSES = frozenset({S.DONE, S.CANCELED, S.REJECTED, S.REFUNDED})

# Buyer may cancel only before the merchant confirms.
CANCELLABLE_STATUSES = frozenset({S.NEW, S.PENDING_CONFIRMATION})

# Orders counted as courier workload.
COURIER_ACTIVE_STATUSES = frozenset({S.ASSIGNED, S.PICKED_UP, S.SENT})

# Where an unassigned platform-delivery order waits for a courier.
ASSIGNABLE_STATUSES = frozenset({S.PROCESSING, S.PROCESSED})

# A courier holding the order may upload proof of delivery from these.
POD_STATUSES = frozenset({S.PICKED_UP, S.SENT, S.ON_DELIVERY})

# Targets reserved for dedicated operations.
RESERVED_TARGETS = {
    S.ASSIGNED: 'courier assignment',
    S.CANCELED: 'cancel',
    S.REFUNDED: 'refund',
}

ACTOR_TARGETS = {
    OrderActor.MERCHANT: frozenset({
        S.PENDING_PAYMENT, S.PENDING_CONFIRMATION, S.PROCESSING, S.PROCESSED,
        S.SENT, S.DONE, S.REJECTED,
    }),
    OrderActor.COURIER: frozenset({S.PICKED_UP, S.SENT, S.ON_DELIVERY, S.DELIVERED}),
    OrderActor.BUYER: frozenset({S.DONE}),
    OrderActor.ADMIN: frozenset(S),
    OrderActor.SYSTEM: frozenset(S),
}

TIMESTAMP_FIELDS = {
    S.PROCESSING: 'confirmed_at',
    S.PROCESSED: 'confirmed_at',
    S.ASSIGNED: 'assigned_at',
    S.PICKED_UP: 'picked_up_at',
    S.DELIVERED: 'delivered_at',
    S.DONE: 'completed_at',
    S.CANCELED: 'cancelled_at',
    S.REJECTED: 'rejected_at',
}

# Stamped only the first time (confirmation may pass through both).
STAMP_ONCE = frozenset({'confirmed_at'})


def allowed_next(status, delivery_type=None):
    targets = set(TRANSITIONS.get(status, ()))
    if delivery_type == DeliveryType.PICKUP:
        targets.discard(S.ASSIGNED)
    elif delivery_type == DeliveryType.INTERNAL and status == S.PROCESSED:
        targets.discard(S.DONE)
    return targets


def can_transition(current, target, delivery_type=None):
    return target in allowed_next(current, delivery_type)


def actor_may_request(actor, target):
    return target in ACTOR_TARGETS.get(actor, ())
