"""Simulated sender for channels without a real backend (SMS, push, in-app).

Also used for every channel in dry-run mode, where nothing leaves the
process and each delivery is only logged.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Final

from notification_dispatch.types import Channel, Notification
from notification_dispatch.utils.logging import get_logger

__all__ = ["SimulatedSender"]

DELIVERED_HISTORY_SIZE: Final[int] = 100


class SimulatedSender:
    """Log deliveries instead of performing them.

    Args:
        channel: Channel this sender is registered for
        confirm_delivery: Report confirmed delivery, moving records straight
            to DELIVERED
        history_size: How many recent delivery ids to keep for inspection
    """

    def __init__(
        self,
        channel: Channel,
        *,
        confirm_delivery: bool = False,
        history_size: int = DELIVERED_HISTORY_SIZE,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self.channel: Channel = channel
        self.confirm_delivery: bool = confirm_delivery
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self._delivered: deque[str] = deque(maxlen=history_size)

    @property
    def delivered_ids(self) -> tuple[str, ...]:
        """Most recent delivered ids, oldest first; older ids are dropped."""
        return tuple(self._delivered)

    async def deliver(self, notification: Notification) -> bool:
        self._delivered.append(notification.id)
        self._logger.info(
            "Simulated %s delivery of notification %s (priority=%s, confirmed=%s)",
            self.channel.value,
            notification.id,
            notification.priority.value,
            self.confirm_delivery,
        )
        return self.confirm_delivery
