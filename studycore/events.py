"""
Session event signals.

External code (a UI, a sound engine, an account widget showing XP) listens to
the engine's channel instead of reaching into its state. Each channel owns a
blinker namespace with one signal per SessionEventType.

Usage:
    # Any event
    unsubscribe = engine.events.subscribe(lambda event: print(event.type))

    # One event type, blinker style
    @engine.events.signal(SessionEventType.ANSWERED).connect
    def on_answered(sender, event):
        ...
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from blinker import Namespace, Signal

logger = logging.getLogger(__name__)


class SessionEventType(str, Enum):
    CREATED = "created"
    RESUMED = "resumed"
    ANSWERED = "answered"
    SKIPPED = "skipped"
    NAVIGATED = "navigated"
    HINT_REVEALED = "hint_revealed"
    RESET = "reset"
    PROGRESS_PERSISTED = "progress_persisted"
    PERSIST_FAILED = "persist_failed"
    USER_TOTALS_UPDATED = "user_totals_updated"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class SessionEvent:
    type: SessionEventType
    session_id: Optional[UUID]
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[SessionEvent], None]


class EventChannel:
    """
    Synchronous signals for one engine.

    Receivers run on the thread that emits. A failing receiver is logged and
    does not stop the others or the engine.
    """

    def __init__(self) -> None:
        namespace = Namespace()
        self._signals: Dict[SessionEventType, Signal] = {
            event_type: namespace.signal(event_type.value) for event_type in SessionEventType
        }
        self._subscriptions: List[Tuple[Listener, List[Tuple[Signal, Callable]]]] = []

    def signal(self, event_type: SessionEventType) -> Signal:
        """The blinker signal for an event type. Receivers get `(sender, event=...)`."""
        return self._signals[SessionEventType(event_type)]

    def subscribe(
        self,
        listener: Listener,
        event_types: Optional[Iterable[SessionEventType]] = None,
    ) -> Callable[[], None]:
        """
        Call `listener(event)` for the given event types (all when omitted).

        Returns:
            A function that unsubscribes the listener.
        """

        def receiver(sender, event: SessionEvent) -> None:
            listener(event)

        connections = []
        for event_type in event_types or list(SessionEventType):
            sig = self.signal(event_type)
            # The adapter has no other owner, so blinker must hold it strongly.
            sig.connect(receiver, weak=False)
            connections.append((sig, receiver))
        self._subscriptions.append((listener, connections))

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        remaining = []
        for subscribed, connections in self._subscriptions:
            if subscribed is listener:
                for sig, receiver in connections:
                    sig.disconnect(receiver)
            else:
                remaining.append((subscribed, connections))
        self._subscriptions = remaining

    def emit(self, event: SessionEvent) -> None:
        sig = self.signal(event.type)
        for receiver in list(sig.receivers_for(self)):
            try:
                receiver(self, event=event)
            except Exception:
                logger.exception(
                    f"Listener {receiver!r} failed handling '{event.type.value}' event"
                )

    def __len__(self) -> int:
        return len(self._subscriptions)
