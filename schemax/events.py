"""Event channel for diagram sessions.

Every model mutation publishes a semantic event (``add_tables``,
``remove_field``, ...) so rendering, websocket broadcast and the code editor
can react without polling. Listeners subscribe explicitly.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic_core import to_jsonable_python

logger = logging.getLogger(__name__)


@dataclass
class DiagramEvent:
    action: str
    data: dict[str, Any]
    diagram_id: str = ""
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_message(self) -> dict[str, Any]:
        """JSON-serializable form, as sent over the websocket."""
        return {
            "type": self.action,
            "diagram_id": self.diagram_id,
            "payload": to_jsonable_python(self.data),
            "created_at": self.created_at,
        }


Listener = Callable[[DiagramEvent], Awaitable[None] | None]


class EventBus:
    """Publishes diagram events to subscribed listeners in subscription order."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def emit(self, event: DiagramEvent) -> None:
        """Deliver an event to every listener.

        Listeners may be plain callables or coroutine functions. A failing
        listener is logged and does not stop delivery to the others.
        """
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Event listener failed for %s", event.action)
