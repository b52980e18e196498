# cache.py
from fastapi import Request
from fastapi_cache import FastAPICache
from fastapi_cache.backends.inmemory import InMemoryBackend
from fastapi_cache.backends.redis import RedisBackend
from redis import asyncio as aioredis

from app.config import settings

PLAYLISTS = "playlists"


async def init_cache():
    if settings.redis_url:
        redis_client = aioredis.from_url(settings.redis_url, encoding="utf8", decode_responses=False)
        FastAPICache.init(RedisBackend(redis_client), prefix="videotube-cache")
    else:
        FastAPICache.init(InMemoryBackend(), prefix="videotube-cache")


def request_key_builder(func, namespace: str = "", *, request: Request = None, response=None, args=(), kwargs=None):
    # keyed by URL only; the session and actor differ per request.
    # namespace already carries the backend prefix
    return f"{namespace}:{request.url.path}?{request.url.query}"


async def clear_playlists():
    await FastAPICache.clear(namespace=PLAYLISTS)
