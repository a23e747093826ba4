"""Ordered registry of open editor tabs and their execution lifecycle.

Every operation that names a tab id tolerates ids that are no longer
registered: the call does nothing and mutators return ``False``.  Such ids
come from UI races (a result arriving for a tab the user already closed)
and are expected, not exceptional.
"""

import logging
import uuid
from typing import Iterable, List, Optional

from query_workbench.components.models import ExecutionState, QueryResult, Tab

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns the open tabs and which of them has focus."""

    def __init__(self):
        self._tabs: List[Tab] = []
        self._active_id: Optional[str] = None
        # Titles are never reused, even after the tab that carried one closes.
        self._title_counter = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def tabs(self) -> List[Tab]:
        return list(self._tabs)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_tab(self) -> Optional[Tab]:
        return self.get(self._active_id) if self._active_id else None

    def get(self, tab_id: str) -> Optional[Tab]:
        for tab in self._tabs:
            if tab.id == tab_id:
                return tab
        return None

    def __contains__(self, tab_id: str) -> bool:
        return self.get(tab_id) is not None

    def __len__(self) -> int:
        return len(self._tabs)

    def tabs_for_connection(self, connection_ref: str) -> List[Tab]:
        return [t for t in self._tabs if t.connection_ref == connection_ref]

    # ------------------------------------------------------------------
    # Tab lifecycle
    # ------------------------------------------------------------------

    def create_tab(
        self,
        connection_ref: Optional[str] = None,
        database_ref: Optional[str] = None,
        content: str = "",
    ) -> str:
        """Append a new idle tab and focus it."""
        self._title_counter += 1
        tab = Tab(
            id=uuid.uuid4().hex,
            title=f"Query {self._title_counter}",
            content=content,
            connection_ref=connection_ref,
            database_ref=database_ref,
        )
        self._tabs.append(tab)
        self._active_id = tab.id
        logger.info("Tab created: %s (%s)", tab.title, tab.id)
        return tab.id

    def close_tab(self, tab_id: str) -> bool:
        return self.close_tabs([tab_id]) > 0

    def close_tabs(self, tab_ids: Iterable[str]) -> int:
        """Remove tabs, moving focus to the neighbour of the active one if it closed.

        Focus goes to the tab that now sits at the active tab's old position,
        or to the new last tab when the active one was at the end.
        """
        ids = set(tab_ids)
        if not ids:
            return 0
        old_tabs = self._tabs
        remaining = [t for t in old_tabs if t.id not in ids]
        removed = len(old_tabs) - len(remaining)
        if not removed:
            return 0

        if self._active_id in ids:
            active_index = next(i for i, t in enumerate(old_tabs) if t.id == self._active_id)
            if remaining:
                self._active_id = remaining[min(active_index, len(remaining) - 1)].id
            else:
                self._active_id = None
        self._tabs = remaining
        logger.info("Closed %d tab(s); active=%s", removed, self._active_id)
        return removed

    def set_active(self, tab_id: str) -> bool:
        if tab_id not in self:
            return False
        self._active_id = tab_id
        return True

    def rename_tab(self, tab_id: str, title: str) -> bool:
        tab = self.get(tab_id)
        if tab is None:
            return False
        tab.title = title
        return True

    # ------------------------------------------------------------------
    # Buffer and bindings
    # ------------------------------------------------------------------

    def update_content(self, tab_id: str, text: str) -> bool:
        tab = self.get(tab_id)
        if tab is None:
            return False
        tab.content = text
        return True

    def set_database(self, tab_id: str, database_ref: Optional[str]) -> bool:
        tab = self.get(tab_id)
        if tab is None:
            return False
        tab.database_ref = database_ref
        return True

    def clear_database_refs(self, connection_ref: str, database_ref: str) -> int:
        """Unbind every tab pointing at a database that went away."""
        cleared = 0
        for tab in self._tabs:
            if tab.connection_ref == connection_ref and tab.database_ref == database_ref:
                tab.database_ref = None
                cleared += 1
        return cleared

    # ------------------------------------------------------------------
    # Execution state machine: IDLE <-> EXECUTING -> {IDLE, FAILED}
    # ------------------------------------------------------------------

    def begin_execution(self, tab_id: str) -> bool:
        tab = self.get(tab_id)
        if tab is None or tab.execution_state == ExecutionState.EXECUTING:
            return False
        tab.execution_state = ExecutionState.EXECUTING
        return True

    def complete_execution(self, tab_id: str, result: QueryResult) -> bool:
        tab = self.get(tab_id)
        if tab is None or tab.execution_state != ExecutionState.EXECUTING:
            logger.debug("Dropped completion for tab %s", tab_id)
            return False
        tab.result = result
        tab.last_error = None
        tab.execution_state = ExecutionState.IDLE
        return True

    def fail_execution(self, tab_id: str, message: str) -> bool:
        tab = self.get(tab_id)
        if tab is None or tab.execution_state != ExecutionState.EXECUTING:
            logger.debug("Dropped failure for tab %s: %s", tab_id, message)
            return False
        tab.last_error = message
        tab.execution_state = ExecutionState.FAILED
        return True
