# nexus_search/provider.py
"""
Perplexity chat-completion client. Returns a standardized dict:
{
  "text": "<answer text>",
  "citations": ["<url>", ...],
  "model": "<model used>",
  "response_id": "<provider response id if available>",
  "raw": <decoded JSON payload>
}

Configuration (env vars):
  PERPLEXITY_API_KEY=...          (required unless MOCK_PROVIDER is on)
  PERPLEXITY_MODEL=sonar
  PERPLEXITY_API_URL=https://api.perplexity.ai/chat/completions
  PROVIDER_TIMEOUT_SECONDS=...    (default: no timeout)
  MOCK_PROVIDER=true              (mock mode for dev/tests)

A single attempt is made per call; failures are raised, never retried.
"""

import os
import time
from typing import Any, Dict, List, Optional

import requests

from nexus_search import monitoring
from nexus_search.errors import ConfigurationError, UpstreamError

MOCK_PROVIDER = os.getenv("MOCK_PROVIDER", "false").lower() in ("1", "true", "yes")
PERPLEXITY_API_KEY = os.getenv("PERPLEXITY_API_KEY", "").strip()
PERPLEXITY_MODEL = os.getenv("PERPLEXITY_MODEL", "sonar")
PERPLEXITY_API_URL = os.getenv("PERPLEXITY_API_URL", "https://api.perplexity.ai/chat/completions")
_timeout_env = os.getenv("PROVIDER_TIMEOUT_SECONDS", "").strip()
PROVIDER_TIMEOUT: Optional[float] = float(_timeout_env) if _timeout_env else None

NO_RESPONSE_TEXT = "No response received"

SYSTEM_PROMPT = (
    "You are a helpful search assistant. Provide clear, concise, and accurate answers "
    "based on web search results. Cite your sources. "
    "Format your response in markdown for readability."
)


def build_messages(query_text: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": query_text},
    ]


def parse_completion(data: Dict[str, Any]) -> Dict[str, Any]:
    """Pull answer text and citation URLs out of a chat-completion payload."""
    text = ""
    choices = data.get("choices") or []
    if choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}
        text = message.get("content") or ""
    citations = data.get("citations") or []
    return {
        "text": text or NO_RESPONSE_TEXT,
        "citations": [c for c in citations if isinstance(c, str)],
        "response_id": data.get("id"),
    }


# ---------------------------------------------------------------------------
# Perplexity backend
# ---------------------------------------------------------------------------
def _real_perplexity_completion(query_text: str, model: str) -> Dict[str, Any]:
    if not PERPLEXITY_API_KEY:
        raise ConfigurationError("PERPLEXITY_API_KEY environment variable not set")

    body = {
        "model": model,
        "messages": build_messages(query_text),
        "return_citations": True,
        "return_images": False,
    }
    headers = {
        "Authorization": f"Bearer {PERPLEXITY_API_KEY}",
        "Content-Type": "application/json",
    }
    start = time.time()
    try:
        r = requests.post(PERPLEXITY_API_URL, json=body, headers=headers, timeout=PROVIDER_TIMEOUT)
    except requests.RequestException as e:
        raise UpstreamError(str(e)) from e
    finally:
        monitoring.observe_provider_call(start)

    if not r.ok:
        monitoring.logger.warning(
            "Perplexity returned an error",
            extra={"status_code": r.status_code, "body_preview": r.text[:500]},
        )
        raise UpstreamError(r.text, status=r.status_code)

    try:
        data = r.json()
    except ValueError as e:
        raise UpstreamError(f"invalid JSON in provider response: {e}", status=r.status_code) from e
    if not isinstance(data, dict):
        data = {}

    parsed = parse_completion(data)
    return {**parsed, "model": model, "raw": data}


# ---------------------------------------------------------------------------
# Mock backend
# ---------------------------------------------------------------------------
def _mock_completion(query_text: str, model: str) -> Dict[str, Any]:
    """Deterministic mock used in dev/tests: echoes the query with one fixed citation."""
    data = {
        "id": f"mock-{model}-{int(time.time() * 1000)}",
        "choices": [{"message": {"content": f"**Mock answer** for: {query_text}"}}],
        "citations": ["https://example.com/mock-source"],
    }
    parsed = parse_completion(data)
    return {**parsed, "model": model, "raw": {"mock": True, **data}}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def search_completion(query_text: str, model: Optional[str] = None) -> Dict[str, Any]:
    """
    Ask the provider to answer `query_text` with citations.
    Raises ConfigurationError when no credential is set, UpstreamError on a
    non-2xx status or transport failure.
    """
    model = model or PERPLEXITY_MODEL
    if MOCK_PROVIDER:
        return _mock_completion(query_text, model)
    return _real_perplexity_completion(query_text, model)
