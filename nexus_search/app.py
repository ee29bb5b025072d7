# nexus_search/app.py
import time
from typing import Optional

# Load .env BEFORE any nexus_search imports (they read env vars at import time)
from dotenv import load_dotenv
load_dotenv(override=True)

from fastapi import FastAPI, Request, Depends, Path
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, PlainTextResponse

from nexus_search.gateway import SearchGateway
from nexus_search.schemas import SearchRequest
from nexus_search.errors import SearchAppError, E_INTERNAL, E_RATE_LIMIT, E_VALIDATION
from nexus_search import monitoring
from nexus_search import auth as authmod
from nexus_search import db as dbmod
from nexus_search import store

app = FastAPI(title="Nexus Search API")

# Initialize DB tables on startup
dbmod.init_db()

# instantiate gateway once
gateway = SearchGateway()


# ---------------------------------------------------------------------------
# Identity + rate-limit middleware (runs first on /api/* paths)
# ---------------------------------------------------------------------------
@app.middleware("http")
async def identity_and_rate_limit_middleware(request: Request, call_next):
    path = request.url.path
    if not path.startswith("/api/"):
        return await call_next(request)

    # No identity is not rejected here: reads return empty lists, mutations raise Unauthenticated
    identity = authmod.resolve_identity(request.headers)
    request.state.identity = identity

    if identity:
        allowed, _remaining = authmod.check_rate_limit(identity)
        if not allowed:
            resp = JSONResponse(
                status_code=429,
                content={
                    "status": "error",
                    "error_code": E_RATE_LIMIT,
                    "message": "Rate limit exceeded",
                    "details": {},
                },
            )
            resp.headers["Retry-After"] = "60"
            return resp

    return await call_next(request)


# ---------------------------------------------------------------------------
# Metrics middleware
# ---------------------------------------------------------------------------
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    endpoint = request.url.path
    method = request.method
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        return response
    except Exception:
        monitoring.logger.exception("Unhandled exception in request", extra={"path": endpoint})
        raise
    finally:
        monitoring.observe_request(start, endpoint, method, status)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(SearchAppError)
async def search_app_error_handler(request: Request, exc: SearchAppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "status": "error",
            "error_code": E_VALIDATION,
            "message": "Invalid request",
            "details": {"errors": [e.get("msg") for e in exc.errors()]},
        },
    )


def _internal_error(e: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "error_code": E_INTERNAL,
            "message": "Internal server error",
            "details": {"exception": str(e)},
        },
    )


def current_identity(request: Request) -> Optional[str]:
    return getattr(request.state, "identity", None)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.get("/api/searches/recent")
def list_recent_searches(identity: Optional[str] = Depends(current_identity)):
    records = store.list_recent(identity)
    return {"status": "success", "searches": [r.model_dump() for r in records]}


@app.get("/api/searches")
def list_all_searches(identity: Optional[str] = Depends(current_identity)):
    records = store.list_all(identity)
    return {"status": "success", "searches": [r.model_dump() for r in records]}


@app.post("/api/search")
def perform_search(req: SearchRequest, identity: Optional[str] = Depends(current_identity)):
    """
    POST /api/search
    Body: { "query": "..." }
    """
    monitoring.logger.info("Received /api/search request", extra={"query_preview": req.query[:200]})
    try:
        result = gateway.perform_search(identity, req.query)
    except SearchAppError:
        raise
    except Exception as e:
        monitoring.logger.exception("Unexpected error in /api/search handler")
        return _internal_error(e)
    return {"status": "success", **result.model_dump()}


@app.delete("/api/searches/{search_id}")
def delete_search(
    search_id: str = Path(..., description="Search record id to delete"),
    identity: Optional[str] = Depends(current_identity),
):
    try:
        store.delete(identity, search_id)
    except SearchAppError as e:
        monitoring.logger.info(
            "Delete rejected", extra={"search_id": search_id, "error_code": e.error_code}
        )
        raise
    except Exception as e:
        monitoring.logger.exception("Unexpected error in delete handler", extra={"search_id": search_id})
        return _internal_error(e)
    return {"status": "success", "id": search_id}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    if not monitoring.PROMETHEUS_ENABLED:
        return PlainTextResponse("Prometheus disabled", status_code=404)
    payload, content_type = monitoring.prometheus_metrics_response()
    return Response(content=payload, media_type=content_type)
