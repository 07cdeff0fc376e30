"""
Sermon status state machine.

    draft -> processing -> transcribing -> processing -> generating -> complete
                                  \\             \\            \\
                                   +--> error <--+-------------+

error -> draft is the explicit retry path. Everything else is rejected.

Status writes are conditional on the status we read, so two requests
racing on the same sermon cannot both apply the same transition.
"""

import logging
from typing import Optional

from ..models import SermonStatus
from .errors import InvalidTransitionError


logger = logging.getLogger(__name__)

TRANSITIONS = {
    SermonStatus.DRAFT: {SermonStatus.PROCESSING, SermonStatus.GENERATING},
    SermonStatus.PROCESSING: {
        SermonStatus.TRANSCRIBING,
        SermonStatus.GENERATING,
        SermonStatus.ERROR,
    },
    SermonStatus.TRANSCRIBING: {SermonStatus.PROCESSING, SermonStatus.ERROR},
    SermonStatus.GENERATING: {SermonStatus.COMPLETE, SermonStatus.ERROR},
    SermonStatus.COMPLETE: set(),
    SermonStatus.ERROR: {SermonStatus.DRAFT},
}

ACTIVE_STATES = frozenset({
    SermonStatus.PROCESSING,
    SermonStatus.TRANSCRIBING,
    SermonStatus.GENERATING,
})


def can_transition(current, target) -> bool:
    return SermonStatus(target) in TRANSITIONS[SermonStatus(current)]


def ensure_transition(current, target) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move sermon from {SermonStatus(current).value} "
            f"to {SermonStatus(target).value}"
        )


class SermonLifecycle:
    """Applies status transitions against the sermons table."""

    def __init__(self, client):
        self.client = client

    def current_status(self, sermon_id: str) -> Optional[SermonStatus]:
        result = (
            self.client.table("sermons")
            .select("status")
            .eq("id", sermon_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return SermonStatus(result.data[0]["status"])

    def transition(self, sermon_id: str, current, target, extra: Optional[dict] = None) -> bool:
        """
        Move a sermon from `current` to `target`.

        Returns False when the row was no longer in `current` (another
        request got there first). Raises InvalidTransitionError for moves
        that are not in the table.
        """
        ensure_transition(current, target)

        update = {"status": SermonStatus(target).value}
        if extra:
            update.update(extra)

        result = (
            self.client.table("sermons")
            .update(update)
            .eq("id", sermon_id)
            .eq("status", SermonStatus(current).value)
            .execute()
        )

        applied = bool(result.data)
        if applied:
            logger.info(
                "Sermon %s: %s -> %s",
                sermon_id, SermonStatus(current).value, SermonStatus(target).value,
            )
        else:
            logger.info(
                "Sermon %s: transition %s -> %s skipped, status changed concurrently",
                sermon_id, SermonStatus(current).value, SermonStatus(target).value,
            )
        return applied

    def fail(self, sermon_id: str, reason: str) -> bool:
        """Move an active sermon to error. No-op for sermons not in an active state."""
        status = self.current_status(sermon_id)
        if status not in ACTIVE_STATES:
            logger.warning("Sermon %s failed in state %s: %s", sermon_id, status, reason)
            return False
        logger.error("Sermon %s failed: %s", sermon_id, reason)
        return self.transition(sermon_id, status, SermonStatus.ERROR)
