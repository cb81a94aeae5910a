"""Text side of a diagram session.

CodeEditorSession keeps the editor text and the model consistent in both
directions. Text edits are parsed and reconciled immediately. Model changes
regenerate the text only once the user has stopped typing for the quiet
window, so generated output never overwrites a half-typed line.
"""

import logging
import time
from collections.abc import Callable

from schemax.code.generator import generate_dbml
from schemax.code.parser import parse_code
from schemax.code.reconcile import ReconcileReport, reconcile
from schemax.diagram import DiagramSession
from schemax.events import DiagramEvent

logger = logging.getLogger(__name__)

DEFAULT_QUIET_WINDOW = 1.0

# Events that do not change what the text would say
_IGNORED_EVENTS = {"focus_table"}


class CodeEditorSession:
    def __init__(
        self,
        session: DiagramSession,
        quiet_window: float = DEFAULT_QUIET_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.quiet_window = quiet_window
        self.clock = clock
        self.last_edit: float | None = None
        # Set when a model change arrives while the user is typing
        self.stale = False
        self._code = self._generate()
        self._unsubscribe = session.events.subscribe(self._on_event)

    @property
    def code(self) -> str:
        """Current editor text, catching up on deferred model changes once quiet."""
        if self.stale and self.is_quiet:
            self.on_model_changed()
        return self._code

    def _generate(self) -> str:
        if self.session.diagram is None:
            return ""
        return generate_dbml(self.session.tables, self.session.relationships)

    def _on_event(self, event: DiagramEvent) -> None:
        if event.action not in _IGNORED_EVENTS:
            self.on_model_changed()

    @property
    def is_quiet(self) -> bool:
        return self.last_edit is None or self.clock() - self.last_edit >= self.quiet_window

    def on_model_changed(self) -> bool:
        """Regenerate text from the model. Returns False while the user is typing."""
        if not self.is_quiet:
            self.stale = True
            return False
        self._code = self._generate()
        self.stale = False
        return True

    async def on_code_changed(self, text: str) -> ReconcileReport:
        """Accept the full editor text and reconcile it into the model."""
        self._code = text
        self.stale = False
        self.last_edit = self.clock()
        parsed = parse_code(text, self.session.database_type)
        logger.debug(
            "Parsed %d tables, %d relationships",
            len(parsed.tables),
            len(parsed.relationships),
        )
        return await reconcile(self.session, parsed)

    def close(self) -> None:
        self._unsubscribe()
