# nexus_search/controller.py
"""
Client-side state for the search screen.

The controller holds transient UI state and drives a session-scoped client
(LocalSearchClient or HttpSearchClient). The `recent` and `history` views are
refreshed only through the client's change subscription; operations never
refetch them directly.

Overlapping submits are ignored while a search is in flight. Selecting a
history entry re-runs the search live unless the controller was built with
history_mode="replay", which shows the stored answer without a provider call.
"""

import threading
from typing import List, Optional

from nexus_search import monitoring
from nexus_search.schemas import SearchRecord, SearchResult

HISTORY_RERUN = "rerun"
HISTORY_REPLAY = "replay"


class SearchController:
    def __init__(self, client, history_mode: str = HISTORY_RERUN):
        if history_mode not in (HISTORY_RERUN, HISTORY_REPLAY):
            raise ValueError(f"unknown history_mode: {history_mode}")
        self.client = client
        self.history_mode = history_mode

        self.query_text = ""
        self.is_searching = False
        self.current_result: Optional[SearchResult] = None
        self.error_message: Optional[str] = None
        self.show_history = False
        self.recent: List[SearchRecord] = []
        self.history: List[SearchRecord] = []

        self._search_lock = threading.Lock()
        self._unsubscribe = None

    # --- subscription lifecycle
    def start(self):
        if self._unsubscribe is None:
            self._unsubscribe = self.client.subscribe(self._on_change)
        self._on_change()

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self):
        self.recent = self.client.list_recent()
        self.history = self.client.list_all()

    # --- actions
    def submit(self, text: Optional[str] = None) -> Optional[SearchResult]:
        q = text if text is not None else self.query_text
        if not q or not q.strip():
            return None
        if not self._search_lock.acquire(blocking=False):
            monitoring.logger.info("Ignoring submit while a search is in flight")
            return None

        self.is_searching = True
        self.error_message = None
        self.current_result = None
        try:
            self.current_result = self.client.perform_search(q)
        except Exception as e:
            self.error_message = str(e) or "Search failed"
        finally:
            self.is_searching = False
            self._search_lock.release()
        return self.current_result

    def select_history_entry(self, record: SearchRecord) -> Optional[SearchResult]:
        self.query_text = record.query
        self.show_history = False
        if self.history_mode == HISTORY_REPLAY:
            self.error_message = None
            self.current_result = SearchResult(response=record.response, sources=record.sources)
            return self.current_result
        return self.submit(record.query)

    def delete_entry(self, record: SearchRecord) -> bool:
        try:
            self.client.delete_record(record.id)
        except Exception as e:
            monitoring.logger.warning(
                "Failed to delete search record", extra={"search_id": record.id, "error": str(e)}
            )
            self.error_message = f"Could not delete search: {e}"
            return False
        return True

    def toggle_history(self):
        self.show_history = not self.show_history
