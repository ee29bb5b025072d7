# nexus_search/gateway.py
import time
from typing import Dict, List, Optional

# Import modules (not bare functions) so monkeypatching in tests works correctly
import nexus_search.provider as _provider
import nexus_search.store as _store
from nexus_search import monitoring
from nexus_search.errors import SearchAppError, Unauthenticated, ValidationError
from nexus_search.schemas import SearchResult, Source


def citations_to_sources(citations: List[str]) -> List[Dict[str, str]]:
    """Pair each citation URL with a placeholder label; order kept, duplicates kept."""
    return [{"title": f"Source {i}", "url": url} for i, url in enumerate(citations, start=1)]


class SearchGateway:
    def __init__(self, model: Optional[str] = None):
        self.model = model

    def perform_search(self, identity: Optional[str], query_text: str) -> SearchResult:
        """
        Synchronous flow:
        1. Check identity
        2. Provider call (single attempt)
        3. Synthesize placeholder sources from citations
        4. Persist the record; a failed insert fails the search
        """
        if not identity:
            monitoring.inc_search("unauthenticated")
            raise Unauthenticated()
        if not query_text or not query_text.strip():
            monitoring.inc_search("invalid")
            raise ValidationError("query must not be empty")

        start = time.time()
        try:
            completion = _provider.search_completion(query_text, model=self.model)
        except SearchAppError as e:
            monitoring.inc_search(e.error_code.lower())
            monitoring.logger.warning(
                "Search provider call failed",
                extra={"error_code": e.error_code, "owner_id": identity},
            )
            raise

        answer = completion.get("text") or _provider.NO_RESPONSE_TEXT
        sources = citations_to_sources(completion.get("citations") or [])

        try:
            record_id = _store.insert(identity, query_text, answer, sources)
        except Exception:
            monitoring.inc_search("persist_fail")
            raise

        monitoring.inc_search("success")
        monitoring.logger.info(
            "Search completed",
            extra={
                "record_id": record_id,
                "owner_id": identity,
                "model": completion.get("model"),
                "source_count": len(sources),
                "elapsed_ms": int((time.time() - start) * 1000),
            },
        )
        return SearchResult(response=answer, sources=[Source(**s) for s in sources])
