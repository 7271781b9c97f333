"""
Response Queue

In-memory store of generated responses and their lifecycle.

Status flow:
    pending -> approved -> sending -> sent | failed
    pending -> sending            (immediate mode)
    pending -> rejected | dismissed
    hand-raised -> sending | dismissed
    hand-raised -> pending        (hand raise failed)

The store keeps at most ``max_size`` entries. When full, the oldest
terminal entry (sent, failed, rejected, dismissed) is evicted; responses
that still need action are never dropped implicitly.
"""

import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..common.schemas import (
    PendingResponse,
    QueueStats,
    ResponseStatus,
    can_transition,
)
from ..common.schemas.behavior import BehaviorMode

logger = logging.getLogger("emcee.responder.queue")

DEFAULT_MAX_SIZE = 20
DEFAULT_RETENTION_MS = 30 * 60 * 1000


class InvalidTransitionError(ValueError):
    """Raised when a response is moved to a status its current status cannot reach"""

    def __init__(self, response_id: str, current: ResponseStatus, target: ResponseStatus):
        self.response_id = response_id
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move response {response_id} from {current.value} to {target.value}"
        )


def generate_response_id() -> str:
    """Sortable-ish id: ``pr-<epoch ms>-<random hex>``"""
    return f"pr-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class ResponseQueue:
    """
    Holds PendingResponses in creation order.

    Usage:
        queue = ResponseQueue()
        queue.add(response)
        queue.approve(response.id)
        queue.update_status(response.id, ResponseStatus.SENDING)
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        self._max_size = max_size
        self._items: List[PendingResponse] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def max_size(self) -> int:
        return self._max_size

    def add(self, response: PendingResponse) -> str:
        """
        Add a response to the store.

        Returns:
            Response ID
        """
        self._items.append(response)
        self._evict()
        logger.info(
            "Queued response %s (%s, %s, status: %s)",
            response.id, response.behavior_mode.value,
            response.response_channel.value, response.status.value,
        )
        return response.id

    def _evict(self) -> None:
        while len(self._items) > self._max_size:
            victim = next((item for item in self._items if item.is_terminal), None)
            if victim is None:
                logger.warning(
                    "Response queue over capacity (%d/%d) with no completed entries to evict",
                    len(self._items), self._max_size,
                )
                return
            self._items.remove(victim)
            logger.debug("Evicted response %s (%s)", victim.id, victim.status.value)

    def get_item(self, response_id: str) -> Optional[PendingResponse]:
        """Get a specific response by ID"""
        for item in self._items:
            if item.id == response_id:
                return item
        return None

    def list(self) -> List[PendingResponse]:
        """All responses, oldest first"""
        return list(self._items)

    def get_by_status(self, status: ResponseStatus) -> List[PendingResponse]:
        return [item for item in self._items if item.status == status]

    def get_pending(self) -> List[PendingResponse]:
        """Responses waiting for approval"""
        return self.get_by_status(ResponseStatus.PENDING)

    def next_for_hand(self) -> Optional[PendingResponse]:
        """Oldest queued response whose hand is raised"""
        for item in self._items:
            if item.status == ResponseStatus.HAND_RAISED and item.behavior_mode == BehaviorMode.QUEUED:
                return item
        return None

    def update_status(
        self,
        response_id: str,
        status: ResponseStatus,
        error_message: Optional[str] = None,
    ) -> PendingResponse:
        """
        Move a response to ``status``.

        Raises:
            KeyError: unknown response ID
            InvalidTransitionError: the move is not allowed from the current status
        """
        item = self.get_item(response_id)
        if item is None:
            raise KeyError(response_id)

        if not can_transition(item.status, status):
            raise InvalidTransitionError(response_id, item.status, status)

        previous = item.status
        item.status = status
        item.status_changed_at = datetime.now(timezone.utc)
        if error_message is not None:
            item.error_message = error_message

        logger.debug("Response %s: %s -> %s", response_id, previous.value, status.value)
        return item

    def approve(self, response_id: str) -> PendingResponse:
        return self.update_status(response_id, ResponseStatus.APPROVED)

    def reject(self, response_id: str) -> PendingResponse:
        return self.update_status(response_id, ResponseStatus.REJECTED)

    def dismiss(self, response_id: str) -> PendingResponse:
        return self.update_status(response_id, ResponseStatus.DISMISSED)

    def clear_completed(self, retention_ms: int = DEFAULT_RETENTION_MS) -> int:
        """
        Drop terminal responses whose last status change is older than the retention.

        Returns:
            Number of responses removed
        """
        cutoff = datetime.now(timezone.utc) - timedelta(milliseconds=retention_ms)
        original_len = len(self._items)
        self._items = [
            item for item in self._items
            if not (item.is_terminal and item.status_changed_at < cutoff)
        ]
        removed = original_len - len(self._items)
        if removed:
            logger.info("Cleared %d completed responses", removed)
        return removed

    def get_stats(self) -> QueueStats:
        """Count responses per status"""
        stats = QueueStats(total=len(self._items))
        for item in self._items:
            field_name = item.status.value.replace("-", "_")
            setattr(stats, field_name, getattr(stats, field_name) + 1)
        return stats

    def format_for_review(self, item: PendingResponse) -> str:
        """Format a response for a controller to approve or reject"""
        lines = [
            "=" * 60,
            f"RESPONSE: {item.id}",
            f"Status: {item.status.value}",
            f"Mode: {item.behavior_mode.value} via {item.response_channel.value}",
            f"Created: {item.created_at.isoformat()}",
            "=" * 60,
            "",
            f"Trigger ({item.trigger_source.value}) from {item.trigger_author}:",
            f"  {item.trigger_content[:200]}",
            "",
            "Response:",
            f"  {item.response_text[:500]}",
        ]

        if item.error_message:
            lines.extend(["", f"Error: {item.error_message}"])

        if item.channel_results:
            lines.append("")
            lines.append("Channels:")
            for channel, outcome in item.channel_results.items():
                lines.append(f"  {channel}: {outcome}")

        lines.append("=" * 60)

        return "\n".join(lines)
