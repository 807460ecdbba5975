"""FastAPI status API for the federator."""

import asyncio
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel

from .context import FederationContext
from .exceptions import GSLBFederationError
from .logging_config import get_logger, log_api_request, log_api_response, log_function_entry, log_function_exit
from .models import OBJECT_TYPES, FederatorConfig, FilterSnapshot
from .retry import request_retry
from .utils import extract_namespace_object_name

logger = get_logger(__name__)

app = FastAPI(
    title="gslbfed",
    description="Multi-cluster GSLB federation status",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests and responses."""
    start_time = asyncio.get_event_loop().time()

    log_api_request(logger, request.method, str(request.url.path),
                    client_ip=request.client.host if request.client else "unknown")

    response = await call_next(request)

    duration = asyncio.get_event_loop().time() - start_time
    log_api_response(logger, request.method, str(request.url.path),
                     response.status_code,
                     duration_ms=round(duration * 1000, 2))
    return response


# Application context, set by initialize_context before serving
context: Optional[FederationContext] = None
_stop_event: Optional[asyncio.Event] = None
_run_watchers = True


class RetryRequest(BaseModel):
    key: str


async def get_context() -> FederationContext:
    """Get the application context."""
    if context is None:
        raise HTTPException(status_code=503, detail="Federator not initialized")
    return context


def initialize_context(config: FederatorConfig, watch: bool = True) -> FederationContext:
    """Build the application context the API serves."""
    log_function_entry(logger, "initialize_context", clusters_count=len(config.clusters))
    global context, _run_watchers
    context = FederationContext(config)
    _run_watchers = watch
    logger.info("Federation context initialized",
                clusters=[c.name for c in config.clusters if c.enabled],
                gdp_namespace=config.gdp_namespace)
    log_function_exit(logger, "initialize_context", status="success")
    return context


def _check_kind(kind: str) -> str:
    if kind not in OBJECT_TYPES:
        raise HTTPException(status_code=404, detail=f"Unknown object kind {kind}")
    return kind


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "gslbfed"}


@app.get("/filter", response_model=FilterSnapshot)
async def get_filter():
    """Current global filter and its checksum."""
    ctx = await get_context()
    return ctx.global_filter.snapshot()


@app.get("/objects/{kind}")
async def get_objects(
    kind: str,
    state: str = Query("accepted", pattern="^(accepted|rejected)$", description="Filter decision"),
    cluster: Optional[str] = Query(None, description="Filter by cluster"),
    namespace: Optional[str] = Query(None, description="Filter by namespace"),
) -> List[Dict[str, Any]]:
    """Objects currently held in the accepted or rejected store."""
    ctx = await get_context()
    _check_kind(kind)
    store = ctx.stores.accepted_store(kind) if state == "accepted" else ctx.stores.rejected_store(kind)

    objects = []
    for obj_cluster, obj_ns, _, obj in store.get_all_cluster_ns_objects():
        if cluster and obj_cluster != cluster:
            continue
        if namespace and obj_ns != namespace:
            continue
        objects.append({"key": obj.get_federation_key(), **obj.model_dump()})
    logger.debug("Returning objects", kind=kind, state=state, count=len(objects))
    return sorted(objects, key=lambda o: o["key"])


@app.get("/hostmap/{kind}")
async def get_host(kind: str, key: str = Query(..., description="Federation key")):
    """Hostname remembered for a federation key."""
    ctx = await get_context()
    _check_kind(kind)
    entry = ctx.host_maps.for_type(kind).recall_entry(key)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No host remembered for {key}")
    return entry.model_dump()


@app.post("/retry")
async def post_retry(request: RetryRequest):
    """Queue a graph key (namespace/name) for another pass."""
    ctx = await get_context()
    try:
        extract_namespace_object_name(request.key)
        request_retry(request.key, ctx.queues)
    except GSLBFederationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    return {"status": "queued", "key": request.key}


@app.on_event("startup")
async def startup_event():
    """Start the federator alongside the API."""
    global _stop_event
    if context:
        _stop_event = asyncio.Event()
        asyncio.create_task(context.run(_stop_event, watch=_run_watchers))
        logger.info("Federator started in background")


@app.on_event("shutdown")
async def shutdown_event():
    """Signal the federator to stop."""
    if _stop_event is not None:
        _stop_event.set()
