"""
pypubsub topics published by the engine.

Front ends subscribe with ``pub.subscribe(listener, TOPIC)``; listeners take
the keyword arguments listed next to each topic.
"""

from __future__ import annotations

import logging
from typing import Any

from pubsub import pub

CONNECTION_ESTABLISHED = "rodent.connection.established"  # address
CONNECTION_CLOSED = "rodent.connection.closed"            # address
TRANSFER_PROGRESS = "rodent.transfer.progress"            # transfer, transferred
TRANSFER_FINISHED = "rodent.transfer.finished"            # transfer


def publish(topic: str, logger: logging.Logger, **data: Any) -> None:
    """Send a message, logging listener failures instead of aborting the engine."""
    try:
        pub.sendMessage(topic, **data)
    except Exception as e:
        logger.error("listener error on %s: %s", topic, e)


__all__ = [
    "CONNECTION_ESTABLISHED",
    "CONNECTION_CLOSED",
    "TRANSFER_PROGRESS",
    "TRANSFER_FINISHED",
    "publish",
]
