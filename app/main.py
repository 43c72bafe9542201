import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.cache import cache
from app.errors import AppError
from app.logging_config import setup_logging
from app.middleware import RequestContextMiddleware
from app.routers import articles, categories, engagement, feed, notifications, search, tags, users

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    await cache.connect()  # falls back to no-cache mode when Redis is down
    yield
    # Shutdown
    await cache.disconnect()

app = FastAPI(
    title="Content Engagement API",
    description="Articles, categories, tags, engagement, comments, notifications and feeds",
    version="1.0.0",
    lifespan=lifespan,
)

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Middleware
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(articles.router)
app.include_router(engagement.router)
app.include_router(categories.router)
app.include_router(tags.router)
app.include_router(users.router)
app.include_router(notifications.router)
app.include_router(feed.router)
app.include_router(search.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "cache": cache.stats}
