import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError

from .config import settings
from .database import init_db
from .redis_client import redis_client
from .routers import availability, bookings, slots

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    task = None
    if settings.calendar_sync_worker_enabled:
        from .services.calendar_sync_worker import calendar_sync_loop
        task = asyncio.create_task(calendar_sync_loop(settings.redis_url))

    yield

    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Appointments API", lifespan=lifespan)

app.include_router(slots.router)
app.include_router(bookings.router)
app.include_router(availability.router)


@app.get("/health")
def health():
    try:
        redis_ok = bool(redis_client.ping())
    except RedisError:
        logger.warning("Redis ping failed")
        redis_ok = False
    return {"redis": redis_ok}
