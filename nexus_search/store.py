# nexus_search/store.py
"""
Record store for search history.

Every operation takes the caller's identity and filters on it; a record owned
by another identity behaves exactly like a missing one. Reads degrade to an
empty result without an identity, mutations raise Unauthenticated.

Subscribers registered per identity are called after each committed insert or
delete for that identity, so views can re-query instead of polling.
"""

import json
import threading
import time
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from nexus_search import db as dbmod
from nexus_search import monitoring
from nexus_search.errors import NotFound, Unauthenticated
from nexus_search.models import SearchRecord as SearchRow
from nexus_search.schemas import SearchRecord, Source

RECENT_LIMIT = 5
ALL_LIMIT = 20

Listener = Callable[[str], None]

_subscribers: Dict[str, List[Listener]] = {}
_sub_lock = threading.Lock()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_record(row: SearchRow) -> SearchRecord:
    return SearchRecord(
        id=row.search_id,
        query=row.query,
        response=row.response,
        sources=json.loads(row.sources_json or "[]"),
        created_at=row.created_at,
    )


def _normalize_sources(sources: Optional[Iterable[Any]]) -> List[Dict[str, str]]:
    out = []
    for s in sources or []:
        if isinstance(s, Source):
            out.append(s.model_dump())
        else:
            out.append(Source(**s).model_dump())
    return out


def _list(identity: Optional[str], limit: int) -> List[SearchRecord]:
    if not identity or limit <= 0:
        return []
    with dbmod.session_scope() as db:
        rows = (
            db.query(SearchRow)
            .filter(SearchRow.owner_id == identity)
            .order_by(SearchRow.created_at.desc(), SearchRow.id.desc())
            .limit(limit)
            .all()
        )
        return [_to_record(r) for r in rows]


def list_recent(identity: Optional[str], limit: int = RECENT_LIMIT) -> List[SearchRecord]:
    return _list(identity, limit)


def list_all(identity: Optional[str], limit: int = ALL_LIMIT) -> List[SearchRecord]:
    return _list(identity, limit)


def get(identity: Optional[str], record_id: str) -> Optional[SearchRecord]:
    if not identity:
        return None
    with dbmod.session_scope() as db:
        row = (
            db.query(SearchRow)
            .filter(SearchRow.search_id == record_id, SearchRow.owner_id == identity)
            .first()
        )
        return _to_record(row) if row else None


def insert(identity: Optional[str], query: str, response: str, sources=None) -> str:
    """Persist a new record and return its id. Database errors propagate."""
    if not identity:
        raise Unauthenticated()
    record_id = str(uuid.uuid4())
    try:
        with dbmod.session_scope() as db:
            db.add(SearchRow(
                search_id=record_id,
                owner_id=identity,
                query=query,
                response=response,
                sources_json=json.dumps(_normalize_sources(sources)),
                created_at=_now_ms(),
            ))
    except Exception:
        monitoring.inc_record_mutation("insert", "fail")
        monitoring.logger.exception("Failed to save search record", extra={"owner_id": identity})
        raise
    monitoring.inc_record_mutation("insert", "success")
    _notify(identity)
    return record_id


def delete(identity: Optional[str], record_id: str) -> None:
    if not identity:
        raise Unauthenticated()
    with dbmod.session_scope() as db:
        row = db.query(SearchRow).filter(SearchRow.search_id == record_id).first()
        if row is None or row.owner_id != identity:
            monitoring.inc_record_mutation("delete", "not_found")
            raise NotFound()
        db.delete(row)
    monitoring.inc_record_mutation("delete", "success")
    _notify(identity)


# ---------------------------------------------------------------------------
# Change subscriptions
# ---------------------------------------------------------------------------
def subscribe(identity: Optional[str], callback: Listener) -> Callable[[], None]:
    """Register `callback(identity)` for changes to identity's records. Returns an unsubscribe function."""
    if not identity:
        return lambda: None
    with _sub_lock:
        _subscribers.setdefault(identity, []).append(callback)

    def unsubscribe():
        with _sub_lock:
            listeners = _subscribers.get(identity, [])
            if callback in listeners:
                listeners.remove(callback)
            if not listeners:
                _subscribers.pop(identity, None)

    return unsubscribe


def _notify(identity: str):
    with _sub_lock:
        listeners = list(_subscribers.get(identity, []))
    for cb in listeners:
        try:
            cb(identity)
        except Exception:
            # The mutation already committed; one bad listener must not hide it from the others
            monitoring.logger.exception("Search record subscriber failed", extra={"owner_id": identity})


def clear_subscribers():
    """Drop all subscriptions (useful for tests)."""
    with _sub_lock:
        _subscribers.clear()
