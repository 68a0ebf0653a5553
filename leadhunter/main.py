"""LeadHunter Backend: FastAPI application entry point.

Thin HTTP layer over the search orchestrator. User identity arrives in the
``X-User-Id`` header; authentication happens upstream.
"""

import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leadhunter.config import settings
from leadhunter.exceptions import ResultNotFoundError, TaskNotFoundError
from leadhunter.orchestrator.router import SearchOrchestrator
from leadhunter.orchestrator.schemas import SearchParams
from leadhunter.services.cache import cache_service
from leadhunter.storage import build_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("leadhunter")


# ═══════════════ RATE LIMITER ═══════════════

class RateLimiter:
    """Fixed-window rate limiter by IP."""

    def __init__(self, max_requests: int, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window = window_seconds
        self._hits: dict[str, list[float]] = defaultdict(list)

    def is_limited(self, ip: str) -> bool:
        now = time.monotonic()
        window_start = now - self.window
        self._hits[ip] = [t for t in self._hits[ip] if t > window_start]
        if len(self._hits[ip]) >= self.max_requests:
            return True
        self._hits[ip].append(now)
        return False


rate_limiter = RateLimiter(settings.rate_limit_per_minute)
orchestrator = SearchOrchestrator(build_store(), hot_cache=cache_service)


def get_orchestrator() -> SearchOrchestrator:
    return orchestrator


def _client_ip(request: Request) -> str:
    client_ip = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return client_ip


def _too_many_requests() -> JSONResponse:
    return JSONResponse(status_code=429, content={"error": "Too many requests. Please wait a minute."})


def _task_not_found(task_id: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": f"Task {task_id} not found"})


def _database_ready() -> bool:
    if settings.storage_backend != "sql":
        return True
    return getattr(app.state, "database_ready", False)


# ═══════════════ LIFESPAN ═══════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("LeadHunter backend starting | storage=%s | credits=%s", settings.storage_backend, settings.credit_discipline)

    if settings.storage_backend == "sql":
        from leadhunter.database import close_db, init_db
        db_ok = await init_db()
        app.state.database_ready = db_ok
        logger.info("Database: %s", "connected" if db_ok else "unavailable")

    redis_ok = await cache_service.connect()
    logger.info("Redis: %s", "connected" if redis_ok else "unavailable (using in-memory fallback)")

    yield

    await cache_service.disconnect()
    if settings.storage_backend == "sql":
        await close_db()
    logger.info("LeadHunter backend shutting down")


# ═══════════════ APP ═══════════════

app = FastAPI(
    title="LeadHunter API",
    description="People search with phone verification and credit metering",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["POST", "OPTIONS", "GET"],
    allow_headers=["Content-Type", "X-User-Id"],
)


# ═══════════════ ENDPOINTS ═══════════════

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "storage": settings.storage_backend,
        "database": _database_ready(),
        "redis": cache_service.available,
        "has_fuzzy_provider": settings.has_fuzzy_provider,
        "has_exact_provider": settings.has_exact_provider,
    }


@app.get("/api/search/credits-config")
async def credits_config(orch: SearchOrchestrator = Depends(get_orchestrator)):
    configs = await orch.credits_config()
    return {mode: config.model_dump(mode="json") for mode, config in configs.items()}


@app.post("/api/search/preview")
async def preview(
    params: SearchParams,
    request: Request,
    x_user_id: int = Header(...),
    orch: SearchOrchestrator = Depends(get_orchestrator),
):
    if rate_limiter.is_limited(_client_ip(request)):
        return _too_many_requests()
    result = await orch.preview(x_user_id, params)
    return result.model_dump(mode="json")


@app.post("/api/search/start")
async def start(
    params: SearchParams,
    request: Request,
    x_user_id: int = Header(...),
    orch: SearchOrchestrator = Depends(get_orchestrator),
):
    client_ip = _client_ip(request)
    if rate_limiter.is_limited(client_ip):
        return _too_many_requests()
    if not _database_ready():
        logger.warning("Search refused | user=%d | database unavailable", x_user_id)
        return JSONResponse(status_code=503, content={"error": "Database unavailable"})

    result = await orch.start_task(x_user_id, params)
    if not result.accepted:
        logger.info("Search rejected | user=%d | ip=%s | %s", x_user_id, client_ip, result.message)
        return JSONResponse(status_code=402, content=result.model_dump(mode="json"))
    return result.model_dump(mode="json")


@app.get("/api/search/tasks/{task_id}")
async def task_progress(task_id: str, orch: SearchOrchestrator = Depends(get_orchestrator)):
    try:
        report = await orch.get_progress(task_id)
    except TaskNotFoundError:
        return _task_not_found(task_id)
    return report.model_dump(mode="json")


@app.post("/api/search/tasks/{task_id}/stop")
async def stop_task(task_id: str, orch: SearchOrchestrator = Depends(get_orchestrator)):
    try:
        stopped = await orch.request_stop(task_id)
    except TaskNotFoundError:
        return _task_not_found(task_id)
    if not stopped:
        return JSONResponse(status_code=409, content={"stopped": False, "error": "Task already finished"})
    return {"stopped": True}


@app.get("/api/search/tasks/{task_id}/results")
async def task_results(task_id: str, orch: SearchOrchestrator = Depends(get_orchestrator)):
    try:
        results = await orch.list_results(task_id)
    except TaskNotFoundError:
        return _task_not_found(task_id)
    return {"task_id": task_id, "count": len(results), "results": [r.model_dump(mode="json") for r in results]}


@app.post("/api/search/tasks/{task_id}/results/{result_id}/verify")
async def verify_result(task_id: str, result_id: int, orch: SearchOrchestrator = Depends(get_orchestrator)):
    try:
        item = await orch.verify_result(task_id, result_id)
    except TaskNotFoundError:
        return _task_not_found(task_id)
    except ResultNotFoundError:
        return JSONResponse(status_code=404, content={"error": f"Result {result_id} not found"})
    return item.model_dump(mode="json")
