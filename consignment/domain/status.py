"""
Status state machines.

Every status axis is monotonic: a value can only move forward along its
rank. Re-applying the current value is always a no-op so that at-least-once
delivery of the same payment event stays harmless.
"""
from enum import Enum
from typing import Mapping

from .errors import InvalidStatusTransition
from .models import TransactionStatus, PaymentStatus, LineItemStatus

TRANSACTION_STATUS_RANK = {
    TransactionStatus.PENDING: 0,
    TransactionStatus.COMPLETED: 1,
    TransactionStatus.SUCCEEDED: 2,
    TransactionStatus.FAILED: 2,
}

PAYMENT_STATUS_RANK = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.PAID: 1,
}

LINE_ITEM_STATUS_RANK = {
    LineItemStatus.TRANSIT: 0,
    LineItemStatus.USABLE: 1,
    LineItemStatus.CLOSED: 2,
}


class Transition(str, Enum):
    APPLY = "apply"
    NOOP = "noop"
    STALE = "stale"


def classify_transition(current: Enum, target: Enum, ranks: Mapping[Enum, int]) -> Transition:
    """Decide what to do when ``target`` is requested while at ``current``.

    Raises InvalidStatusTransition when two different values share a rank
    (e.g. succeeded vs failed): those are competing terminal outcomes.
    """
    if current == target:
        return Transition.NOOP
    if ranks[target] > ranks[current]:
        return Transition.APPLY
    if ranks[target] == ranks[current]:
        raise InvalidStatusTransition(
            f"Cannot move from {current.value} to {target.value}",
            {"current": current.value, "target": target.value},
        )
    return Transition.STALE


def check_forward(current: Enum, target: Enum, ranks: Mapping[Enum, int]) -> bool:
    """Strict variant: returns True if an update is needed, raises on any regression."""
    transition = classify_transition(current, target, ranks)
    if transition is Transition.STALE:
        raise InvalidStatusTransition(
            f"Cannot move back from {current.value} to {target.value}",
            {"current": current.value, "target": target.value},
        )
    return transition is Transition.APPLY
