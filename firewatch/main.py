import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from firewatch import cache, services
from firewatch.cache_routes import router as cache_router
from firewatch.errors import FirewatchError, error_body
from firewatch.fires.routes import router as fires_router
from firewatch.settings import S

logging.basicConfig(
    level=S.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await cache.init_cache()
    services.init_services(cache.get_cache_service(), cache.get_location_cache())
    logger.info(
        "Started: sources=%s cache_enabled=%s boundaries=%s",
        ",".join(S.firms_sources), S.cache_enabled, services.boundary_count(),
    )
    try:
        yield
    finally:
        await services.close_services()
        await cache.close_cache()


app = FastAPI(title="Firewatch Hotspot API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=(['*'] if ('*' in S.cors_origins) else S.cors_origins),
    allow_origin_regex=S.cors_origin_regex,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FirewatchError)
async def firewatch_error_handler(request: Request, exc: FirewatchError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "ok": True,
        "cacheEnabled": cache.get_cache_service().is_enabled(),
        "boundaries": services.boundary_count(),
    }


app.include_router(fires_router)
app.include_router(cache_router)
