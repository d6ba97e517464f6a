"""
Queue entry state machine.

    queued      -> in_progress | error
    in_progress -> uploaded | error | queued   (queued: operator released it)
    error       -> queued                      (manual retry, counts toward retry_count)

``uploaded`` is terminal. Every transition not listed in
``ALLOWED_TRANSITIONS`` is rejected with ``InvalidTransitionError``.
"""

from typing import Dict, FrozenSet

from ..errors import InvalidTransitionError
from ..models.enums import DocumentStatus, QueueStatus

ALLOWED_TRANSITIONS: Dict[QueueStatus, FrozenSet[QueueStatus]] = {
    QueueStatus.QUEUED: frozenset({QueueStatus.IN_PROGRESS, QueueStatus.ERROR}),
    QueueStatus.IN_PROGRESS: frozenset(
        {QueueStatus.UPLOADED, QueueStatus.ERROR, QueueStatus.QUEUED}
    ),
    QueueStatus.ERROR: frozenset({QueueStatus.QUEUED}),
    QueueStatus.UPLOADED: frozenset(),
}

ACTIVE_STATUSES = frozenset({QueueStatus.QUEUED, QueueStatus.IN_PROGRESS})

# Document status that mirrors each queue status
DOCUMENT_STATUS_FOR_QUEUE: Dict[QueueStatus, DocumentStatus] = {
    QueueStatus.QUEUED: DocumentStatus.PENDING,
    QueueStatus.IN_PROGRESS: DocumentStatus.PROCESSING,
    QueueStatus.UPLOADED: DocumentStatus.UPLOADED,
    QueueStatus.ERROR: DocumentStatus.ERROR,
}


def validate_transition(old: QueueStatus, new: QueueStatus) -> None:
    """
    Raises:
        InvalidTransitionError: If ``old -> new`` is not allowed
    """
    old, new = QueueStatus(old), QueueStatus(new)
    if new not in ALLOWED_TRANSITIONS[old]:
        raise InvalidTransitionError(old.value, new.value)


def is_retry(old: QueueStatus, new: QueueStatus) -> bool:
    return QueueStatus(old) is QueueStatus.ERROR and QueueStatus(new) is QueueStatus.QUEUED
