"""Options describing a topic subscription."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from canrosnode.callbacks import CallbackQueueInterface


@dataclass
class SubscribeOptions:
    """Everything needed to create a subscriber on a topic.

    ``helper`` is the object that delivers incoming message events to user
    code. By default callbacks for one subscription run one at a time and in
    order; ``allow_concurrent_callbacks`` lifts that restriction.
    """

    topic: str = ""
    queue_size: int = 1
    md5sum: str = ""
    datatype: str = ""
    helper: Any = None
    callback_queue: Optional[CallbackQueueInterface] = None
    allow_concurrent_callbacks: bool = False
    tracked_object: Any = None
    transport_hints: Any = None

    @staticmethod
    def create(
        topic: str,
        queue_size: int,
        md5sum: str,
        datatype: str,
        helper: Any,
        tracked_object: Any = None,
        callback_queue: Optional[CallbackQueueInterface] = None,
    ) -> "SubscribeOptions":
        """Build options with tracked object and callback queue filled in."""
        return SubscribeOptions(
            topic=topic,
            queue_size=queue_size,
            md5sum=md5sum,
            datatype=datatype,
            helper=helper,
            callback_queue=callback_queue,
            tracked_object=tracked_object,
        )