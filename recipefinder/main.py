# Recipe Finder API Main Entry Point
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .db import init_db
from .deps import get_background, get_revalidator
from .infra.redis_client import close_redis
from .settings import settings
from .routers.ready import router as ready_router
from .routers.search import router as search_router, limiter
from .routers.cache import router as cache_router
from .routers.history import router as history_router
from .routers.quota import router as quota_router

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("recipefinder")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        logger.info("Creating database tables")
        init_db()
    yield
    # Let refreshes and history writes finish before the redis client goes away
    await get_revalidator().wait_idle()
    await get_background().drain()
    await close_redis()


app = FastAPI(title="Recipe Finder API", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(search_router, prefix="/api", tags=["search"])
app.include_router(cache_router, prefix="/api", tags=["cache"])
app.include_router(history_router, prefix="/api", tags=["history"])
app.include_router(quota_router, prefix="/api", tags=["quota"])
