"""Abstract callback and callback-queue interfaces."""

from __future__ import annotations

import abc
import enum


class CallResult(enum.Enum):
    """Outcome of invoking a queued callback."""

    SUCCESS = "success"
    """The call succeeded."""
    TRY_AGAIN = "try_again"
    """The call was not ready; try again later."""
    INVALID = "invalid"
    """The call is no longer valid."""


class CallbackInterface(abc.ABC):
    """An item that can be added to a callback queue."""

    @abc.abstractmethod
    def call(self) -> CallResult:
        """Invoke the callback and report the outcome."""

    def ready(self) -> bool:
        """Whether the callback may be called now."""
        return True


class CallbackQueueInterface(abc.ABC):
    """A queue that runs callbacks, optionally grouped by owner id."""

    @abc.abstractmethod
    def add_callback(self, callback: CallbackInterface, owner_id: int = 0) -> None:
        """Add a callback, tagged with an owner id."""

    @abc.abstractmethod
    def remove_by_id(self, owner_id: int) -> None:
        """Remove every callback tagged with the given owner id."""