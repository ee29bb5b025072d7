# nexus_search/client.py
"""
Session-scoped clients used by the state controller.

Both expose the same operations: list_recent(), list_all(), perform_search(query),
delete_record(id) and subscribe(callback). None of them take an identity; the
local client is bound to one, the HTTP client sends a session token.
"""

from typing import Any, Callable, Dict, List, Optional

import requests

from nexus_search import auth as authmod
from nexus_search import monitoring
from nexus_search import store as _store
from nexus_search.errors import ERRORS_BY_CODE, E_UPSTREAM, SearchAppError, UpstreamError
from nexus_search.gateway import SearchGateway
from nexus_search.schemas import SearchRecord, SearchResult

Listener = Callable[[], None]


class LocalSearchClient:
    """In-process client; change notifications come straight from the store."""

    def __init__(self, identity: Optional[str], gateway: Optional[SearchGateway] = None):
        self.identity = identity
        self.gateway = gateway or SearchGateway()

    def list_recent(self) -> List[SearchRecord]:
        return _store.list_recent(self.identity)

    def list_all(self) -> List[SearchRecord]:
        return _store.list_all(self.identity)

    def perform_search(self, query: str) -> SearchResult:
        return self.gateway.perform_search(self.identity, query)

    def delete_record(self, record_id: str) -> None:
        _store.delete(self.identity, record_id)

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        return _store.subscribe(self.identity, lambda _identity: callback())


class HttpSearchClient:
    """
    Client for the HTTP API. There is no server push, so subscribers are
    notified after this client's own successful mutations.
    """

    def __init__(self, base_url: str, session_token: Optional[str] = None,
                 user_id: Optional[str] = None, session=None, timeout: Optional[float] = None):
        self.base_url = base_url.rstrip("/")
        self.headers: Dict[str, str] = {}
        if session_token:
            self.headers[authmod.SESSION_TOKEN_HEADER] = session_token
        if user_id:
            # Only honoured by a server running with MOCK_AUTH
            self.headers[authmod.USER_ID_HEADER] = user_id
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self._listeners: List[Listener] = []

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": self.headers}
        if json is not None:
            kwargs["json"] = json
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        r = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        try:
            payload = r.json()
        except ValueError:
            payload = {}
        if r.status_code >= 400 or payload.get("status") == "error":
            raise _error_from_payload(r.status_code, payload)
        return payload

    def list_recent(self) -> List[SearchRecord]:
        payload = self._request("GET", "/api/searches/recent")
        return [SearchRecord(**s) for s in payload.get("searches", [])]

    def list_all(self) -> List[SearchRecord]:
        payload = self._request("GET", "/api/searches")
        return [SearchRecord(**s) for s in payload.get("searches", [])]

    def perform_search(self, query: str) -> SearchResult:
        payload = self._request("POST", "/api/search", json={"query": query})
        result = SearchResult(response=payload.get("response", ""), sources=payload.get("sources", []))
        self._notify()
        return result

    def delete_record(self, record_id: str) -> None:
        self._request("DELETE", f"/api/searches/{record_id}")
        self._notify()

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self):
        for cb in list(self._listeners):
            try:
                cb()
            except Exception:
                # The mutation already succeeded on the server; a failed refresh must not report it as failed
                monitoring.logger.exception("Search client subscriber failed")


def _error_from_payload(status_code: int, payload: Dict[str, Any]) -> SearchAppError:
    code = payload.get("error_code")
    message = payload.get("message")
    details = payload.get("details") or {}
    if code == E_UPSTREAM:
        return UpstreamError(details.get("provider_body", message or ""), status=details.get("provider_status"))
    cls = ERRORS_BY_CODE.get(code)
    if cls is not None:
        return cls(message, details)
    err = SearchAppError(message or f"HTTP {status_code}", details)
    err.status_code = status_code
    if code:
        err.error_code = code
    return err
