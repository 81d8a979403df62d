import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from dotenv import load_dotenv

from core.db import mongo_manager
from core.dependencies import get_cache, get_redis_relay
from core.environment import get_environment
from core.indexes import ensure_indexes
from core.settings import settings
from domain.errors import ChatError
from routes import chat_routes, realtime, support_routes
from utils.cache import Cache

load_dotenv()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    stream=sys.stdout,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

env = get_environment()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await mongo_manager.connect()
    await ensure_indexes(mongo_manager.get_db())

    relay_task = None
    if env.REALTIME_BACKEND == "redis":
        relay_task = asyncio.create_task(get_redis_relay().run())

    logger.info("%s started (%s)", settings.APP_NAME, settings.ENV)
    try:
        yield
    finally:
        if relay_task:
            relay_task.cancel()
            try:
                await relay_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error("Realtime relay stopped with an error: %s", e)
            await get_redis_relay().close()
        await get_cache().close()
        await mongo_manager.disconnect()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    if exc.status_code >= 500:
        logger.error("Unhandled chat error on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(chat_routes.router)
app.include_router(support_routes.router)
app.include_router(realtime.router)

if env.STORAGE_BACKEND == "local":
    Path(env.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    app.mount(env.UPLOAD_URL_PREFIX, StaticFiles(directory=env.UPLOAD_DIR), name="chat-attachments")


@app.get("/health")
async def health(cache: Cache = Depends(get_cache)):
    components = {"database": "ok" if await mongo_manager.ping() else "down"}
    if cache is not None:
        components["cache"] = "ok" if await cache.ping() else "down"

    status = "ok" if all(v == "ok" for v in components.values()) else "degraded"
    return {"status": status, "components": components}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)
