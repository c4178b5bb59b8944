"""Exception types shared by the relay and the client engines."""
from __future__ import annotations


class RoomCallError(RuntimeError):
    """Base class for recoverable chat and call failures."""


class MediaAccessError(RoomCallError):
    """Raised when the local camera or microphone cannot be opened."""


class MissingLocalStreamError(RoomCallError):
    """Raised when a peer connection is requested before local media exists."""


class InvalidTransitionError(RoomCallError):
    """Raised when a peer connection is driven through an illegal state change."""

    def __init__(self, state: object, event: object) -> None:
        super().__init__(f"cannot apply {event} in state {state}")
        self.state = state
        self.event = event
