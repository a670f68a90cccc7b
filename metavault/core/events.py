"""
Event system for allocation and vault observability.

Events are published for external indexing only. A failing handler is
logged and isolated; it never changes the outcome of the vault operation
that produced the event.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from metavault.core.logging import get_logger

logger = get_logger(__name__)


class VaultEventType(Enum):
    """Event types emitted by the allocation manager and the MetaVault."""

    # Allocation manager
    ALLOCATED = "allocated"
    ALLOCATION_WITHDRAWN = "allocation_withdrawn"
    ALLOCATION_REDEEMED = "allocation_redeemed"
    ALLOCATION_CLAIMED = "allocation_claimed"
    ALLOCATION_CLAIMED_EXTERNALLY = "allocation_claimed_externally"
    CLAIM_SWEEP_COMPLETED = "claim_sweep_completed"

    # MetaVault
    DEPOSITED = "deposited"
    WITHDRAWN = "withdrawn"
    WITHDRAW_REQUESTED = "withdraw_requested"
    WITHDRAW_CLAIMED = "withdraw_claimed"
    SHUTDOWN = "shutdown"


@dataclass
class VaultEvent:
    """Vault event data structure."""

    event_type: VaultEventType
    source: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid4()))


class EventHandler:
    """Base class for event handlers."""

    def __init__(self, handler_name: str):
        self.handler_name = handler_name
        self.logger = get_logger(f"EventHandler.{handler_name}")

    async def handle(self, event: VaultEvent) -> None:
        """Handle an event. Override in subclasses."""
        raise NotImplementedError


class RecordingEventHandler(EventHandler):
    """Handler that keeps every event it receives, in order."""

    def __init__(self, handler_name: str = "recorder"):
        super().__init__(handler_name)
        self.events: list[VaultEvent] = []

    async def handle(self, event: VaultEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: VaultEventType) -> list[VaultEvent]:
        return [e for e in self.events if e.event_type == event_type]


class EventPublisher:
    """Publishes vault events to subscribed handlers."""

    def __init__(self, max_history: int = 1000):
        self.logger = get_logger(self.__class__.__name__)
        self._handlers: dict[VaultEventType, list[EventHandler]] = {}
        self._global_handlers: list[EventHandler] = []
        self._event_history: deque[VaultEvent] = deque(maxlen=max_history)
        self._max_history = max_history

    def subscribe(self, event_type: VaultEventType, handler: EventHandler) -> None:
        """Subscribe a handler to specific event type."""
        self._handlers.setdefault(event_type, []).append(handler)
        self.logger.debug(
            "Handler subscribed", handler=handler.handler_name, event_type=event_type.value
        )

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to all event types."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: VaultEventType, handler: EventHandler) -> None:
        """Unsubscribe a handler from event type."""
        if event_type in self._handlers:
            self._handlers[event_type] = [h for h in self._handlers[event_type] if h != handler]

    async def publish(self, event: VaultEvent) -> None:
        """Publish an event to all subscribed handlers, in subscription order."""
        self._event_history.append(event)

        self.logger.debug(
            "Publishing event",
            event_type=event.event_type.value,
            event_id=event.event_id,
            source=event.source,
        )

        for handler in self._handlers.get(event.event_type, []) + self._global_handlers:
            await self._safe_handle(handler, event)

    async def emit(self, event_type: VaultEventType, source: str, **data: Any) -> VaultEvent:
        """Build and publish an event in one call."""
        event = VaultEvent(event_type=event_type, source=source, data=data)
        await self.publish(event)
        return event

    async def _safe_handle(self, handler: EventHandler, event: VaultEvent) -> None:
        """Execute handler with error isolation."""
        try:
            await handler.handle(event)
        except Exception as e:
            self.logger.error(
                "Event handler failed",
                handler=handler.handler_name,
                event_type=event.event_type.value,
                error=str(e),
            )

    def get_recent_events(
        self, limit: int = 100, event_type: VaultEventType | None = None
    ) -> list[VaultEvent]:
        """Get recent events, optionally filtered by type."""
        events = list(self._event_history)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events[-limit:] if limit else []
