import pytest

from nexus_search import db as dbmod
from nexus_search import store
import nexus_search.provider as provider


@pytest.fixture(autouse=True)
def fresh_db(tmp_path):
    """Point the store at a disposable SQLite file for each test."""
    dbmod.reconfigure(f"sqlite:///{tmp_path / 'test_nexus_search.db'}")
    dbmod.init_db()
    store.clear_subscribers()
    yield
    store.clear_subscribers()
    dbmod.engine.dispose()


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


@pytest.fixture
def fake_perplexity(monkeypatch):
    """
    Replace requests.post inside the provider module. Set `.response` on the
    returned object to control what the provider answers; `.calls` records requests.
    """
    class _Fake:
        def __init__(self):
            self.calls = []
            self.response = FakeResponse(200, {
                "id": "resp-1",
                "choices": [{"message": {"content": "Paris"}}],
                "citations": ["https://a.example"],
            })

        def respond(self, status_code=200, payload=None, text=None):
            self.response = FakeResponse(status_code, payload, text)

        def post(self, url, json=None, headers=None, timeout=None):
            self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
            return self.response

    fake = _Fake()
    monkeypatch.setattr(provider, "MOCK_PROVIDER", False)
    monkeypatch.setattr(provider, "PERPLEXITY_API_KEY", "pplx-test-key")
    monkeypatch.setattr(provider.requests, "post", fake.post)
    return fake
