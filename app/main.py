# app/main.py
"""
uvicorn app.main:app --host 0.0.0.0 --port 8000 --workers 2
"""
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import schemas
from app.cache import init_cache
from app.config import settings
from app.database import create_tables
from app.errors import register_exception_handlers
from app.logging_config import log_request, setup_logging
from app.ratelimit import limiter
from app.routes import comments, health, likes, playlists, subscriptions, tweets, users, videos

setup_logging()

if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, traces_sample_rate=0.1)

app = FastAPI(title=settings.app_name)
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(log_request)
register_exception_handlers(app)


@app.on_event("startup")
async def startup_event():
    await create_tables()
    await init_cache()


@app.get("/")
async def root():
    return schemas.ApiResponse.ok({"name": settings.app_name}, "Server is running")


for module in (health, users, videos, comments, tweets, likes, subscriptions, playlists):
    app.include_router(module.router, prefix=settings.api_prefix)
