"""Options describing a topic advertisement."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from canrosnode.callbacks import CallbackQueueInterface

SubscriberStatusCallback = Callable[..., None]


@dataclass
class AdvertiseOptions:
    """Everything needed to create a publisher on a topic."""

    topic: str = ""
    queue_size: int = 0
    md5sum: str = ""
    datatype: str = ""
    message_definition: str = ""
    connect_cb: Optional[SubscriberStatusCallback] = None
    disconnect_cb: Optional[SubscriberStatusCallback] = None
    callback_queue: Optional[CallbackQueueInterface] = None
    tracked_object: Any = None
    latch: bool = False
    has_header: bool = False

    @staticmethod
    def create(
        topic: str,
        queue_size: int,
        md5sum: str,
        datatype: str,
        message_definition: str,
        connect_cb: Optional[SubscriberStatusCallback] = None,
        disconnect_cb: Optional[SubscriberStatusCallback] = None,
        tracked_object: Any = None,
        callback_queue: Optional[CallbackQueueInterface] = None,
    ) -> "AdvertiseOptions":
        """Build options with tracked object and callback queue filled in."""
        return AdvertiseOptions(
            topic=topic,
            queue_size=queue_size,
            md5sum=md5sum,
            datatype=datatype,
            message_definition=message_definition,
            connect_cb=connect_cb,
            disconnect_cb=disconnect_cb,
            callback_queue=callback_queue,
            tracked_object=tracked_object,
        )