"""Bounded queue of received messages awaiting delivery to a subscriber callback."""

from __future__ import annotations

import collections
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from canrosnode.callbacks import CallbackInterface, CallResult


class MessageDeserializer(Protocol):
    """Produces a message on demand; may return None when deserialisation fails."""

    connection_header: Any

    def deserialize(self) -> Any: ...


class SubscriptionCallbackHelper(Protocol):
    """Delivers a message event to user code."""

    def call(self, event: "MessageEvent") -> None: ...


@dataclass(frozen=True)
class MessageEvent:
    """A deserialised message together with its delivery metadata."""

    message: Any
    connection_header: Any
    receipt_time: float
    nonconst_need_copy: bool


@dataclass
class _Item:
    helper: SubscriptionCallbackHelper
    deserializer: MessageDeserializer
    has_tracked_object: bool
    tracked_object: Optional[Callable[[], Any]]
    nonconst_need_copy: bool
    receipt_time: float


class SubscriptionQueue(CallbackInterface):
    """Queue of incoming messages for one subscription.

    A ``queue_size`` above zero bounds the queue; when it is full the oldest
    item is discarded to make room. Zero or less means unbounded.
    """

    def __init__(self, topic: str, queue_size: int, allow_concurrent_callbacks: bool = False) -> None:
        self.topic = topic
        self._size = queue_size
        self._full = False
        self._allow_concurrent_callbacks = allow_concurrent_callbacks
        self._queue: collections.deque[_Item] = collections.deque()
        self._queue_lock = threading.Lock()
        self._callback_lock = threading.RLock()

    def _full_no_lock(self) -> bool:
        return self._size > 0 and len(self._queue) >= self._size

    def push(
        self,
        helper: SubscriptionCallbackHelper,
        deserializer: MessageDeserializer,
        has_tracked_object: bool,
        tracked_object: Optional[Callable[[], Any]],
        nonconst_need_copy: bool,
        receipt_time: float = 0.0,
    ) -> bool:
        """Queue a message; return True if an older message was dropped to fit it.

        ``tracked_object`` is a weak reference (any callable returning the
        object or None); when ``has_tracked_object`` is set and the object is
        gone, the item is not delivered.
        """
        with self._queue_lock:
            was_full = self._full_no_lock()
            if was_full:
                self._queue.popleft()
            self._full = was_full
            self._queue.append(
                _Item(
                    helper=helper,
                    deserializer=deserializer,
                    has_tracked_object=has_tracked_object,
                    tracked_object=tracked_object,
                    nonconst_need_copy=nonconst_need_copy,
                    receipt_time=receipt_time,
                )
            )
            return was_full

    def clear(self) -> None:
        """Drop every queued message."""
        with self._callback_lock, self._queue_lock:
            self._queue.clear()

    def call(self) -> CallResult:
        """Deliver the oldest queued message to its helper."""
        locked = False
        if not self._allow_concurrent_callbacks:
            locked = self._callback_lock.acquire(blocking=False)
            if not locked:
                return CallResult.TRY_AGAIN
        try:
            with self._queue_lock:
                if not self._queue:
                    return CallResult.INVALID
                item = self._queue[0]
                if item.has_tracked_object:
                    tracker = item.tracked_object() if item.tracked_object is not None else None
                    if tracker is None:
                        return CallResult.INVALID
                self._queue.popleft()

            message = item.deserializer.deserialize()
            if message is not None:
                item.helper.call(
                    MessageEvent(
                        message=message,
                        connection_header=item.deserializer.connection_header,
                        receipt_time=item.receipt_time,
                        nonconst_need_copy=item.nonconst_need_copy,
                    )
                )
            return CallResult.SUCCESS
        finally:
            if locked:
                self._callback_lock.release()

    def ready(self) -> bool:
        return True

    def full(self) -> bool:
        """Whether the queue has reached its bound."""
        with self._queue_lock:
            return self._full_no_lock()

    def __len__(self) -> int:
        with self._queue_lock:
            return len(self._queue)