# tests/test_controller.py
"""
Search screen state: submit flow, overlap handling, history selection modes,
delete feedback and subscription-driven refresh of the history views.
"""
import pytest

import nexus_search.provider as provider
from nexus_search import store
from nexus_search.client import LocalSearchClient
from nexus_search.controller import SearchController, HISTORY_REPLAY
from nexus_search.errors import NotFound
from nexus_search.schemas import SearchRecord, SearchResult


@pytest.fixture
def controller(fake_perplexity):
    ctl = SearchController(LocalSearchClient("alice"))
    ctl.start()
    yield ctl
    ctl.close()


def test_submit_success_updates_state_and_history(controller):
    assert controller.recent == []

    result = controller.submit("capital of France")

    assert result.response == "Paris"
    assert controller.current_result == result
    assert controller.error_message is None
    assert controller.is_searching is False
    # refreshed via the store subscription, not a manual refetch
    assert [r.query for r in controller.recent] == ["capital of France"]
    assert [r.query for r in controller.history] == ["capital of France"]


def test_submit_uses_query_text_when_no_argument(controller, fake_perplexity):
    controller.query_text = "typed text"
    controller.submit()
    assert fake_perplexity.calls[0]["json"]["messages"][1]["content"] == "typed text"


def test_blank_submit_is_noop(controller, fake_perplexity):
    controller.current_result = SearchResult(response="old", sources=[])
    assert controller.submit("   ") is None
    assert fake_perplexity.calls == []
    assert controller.current_result.response == "old"


def test_failure_sets_error_message_and_clears_flag(controller, fake_perplexity):
    fake_perplexity.respond(500, None, text="upstream down")
    assert controller.submit("anything") is None
    assert "upstream down" in controller.error_message
    assert controller.current_result is None
    assert controller.is_searching is False
    assert controller.recent == []


def test_new_submit_clears_previous_error(controller, fake_perplexity, monkeypatch):
    monkeypatch.setattr(provider, "PERPLEXITY_API_KEY", "")
    controller.submit("first")
    assert controller.error_message

    monkeypatch.setattr(provider, "PERPLEXITY_API_KEY", "pplx-test-key")
    controller.submit("second")
    assert controller.error_message is None
    assert controller.current_result.response == "Paris"


class ReentrantClient:
    """Client whose search triggers a second submit while the first is in flight."""

    def __init__(self):
        self.controller = None
        self.calls = []
        self.nested_result = "unset"

    def perform_search(self, query):
        self.calls.append(query)
        assert self.controller.is_searching is True
        self.nested_result = self.controller.submit("overlapping")
        return SearchResult(response=f"answer to {query}", sources=[])

    def list_recent(self):
        return []

    def list_all(self):
        return []

    def subscribe(self, callback):
        return lambda: None


def test_overlapping_submit_is_ignored():
    client = ReentrantClient()
    ctl = SearchController(client)
    client.controller = ctl

    result = ctl.submit("first")

    assert client.calls == ["first"]
    assert client.nested_result is None
    assert result.response == "answer to first"
    # lock released afterwards
    ctl.submit("third")
    assert client.calls[-1] == "third"


def test_select_history_entry_reruns_search_live(controller, fake_perplexity):
    controller.submit("capital of France")
    controller.show_history = True
    record = controller.history[0]

    fake_perplexity.respond(200, {"choices": [{"message": {"content": "Still Paris"}}]})
    controller.select_history_entry(record)

    assert controller.query_text == "capital of France"
    assert controller.show_history is False
    assert controller.current_result.response == "Still Paris"
    assert len(fake_perplexity.calls) == 2
    assert len(store.list_all("alice")) == 2


def test_select_history_entry_replay_mode_skips_provider(fake_perplexity):
    ctl = SearchController(LocalSearchClient("alice"), history_mode=HISTORY_REPLAY)
    ctl.start()
    ctl.submit("capital of France")
    record = ctl.history[0]

    result = ctl.select_history_entry(record)

    assert result.response == "Paris"
    assert result.sources[0].url == "https://a.example"
    assert len(fake_perplexity.calls) == 1
    assert len(store.list_all("alice")) == 1
    ctl.close()


def test_unknown_history_mode_rejected():
    with pytest.raises(ValueError):
        SearchController(LocalSearchClient("alice"), history_mode="sometimes")


def test_delete_entry_refreshes_views(controller):
    controller.submit("one")
    record = controller.history[0]
    assert controller.delete_entry(record) is True
    assert controller.history == []
    assert controller.recent == []


def test_delete_entry_failure_is_surfaced(controller):
    ghost = SearchRecord(id="missing", query="q", response="a", sources=[], created_at=0)
    assert controller.delete_entry(ghost) is False
    assert controller.error_message.startswith("Could not delete search")


def test_foreign_delete_from_another_session_refreshes_only_owner_views(fake_perplexity):
    alice = SearchController(LocalSearchClient("alice"))
    bob = SearchController(LocalSearchClient("bob"))
    alice.start()
    bob.start()

    alice.submit("alice's question")
    assert len(alice.recent) == 1
    assert bob.recent == []

    with pytest.raises(NotFound):
        LocalSearchClient("bob").delete_record(alice.recent[0].id)
    assert len(alice.recent) == 1

    alice.close()
    bob.close()


def test_toggle_history():
    ctl = SearchController(LocalSearchClient("alice"))
    ctl.toggle_history()
    assert ctl.show_history is True
    ctl.toggle_history()
    assert ctl.show_history is False


def test_close_stops_refresh(controller):
    controller.close()
    store.insert("alice", "added elsewhere", "a", [])
    assert controller.recent == []
