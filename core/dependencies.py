from functools import lru_cache

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorCollection

from core.db import mongo_manager
from core.environment import get_environment
from core.indexes import MESSAGES_COLLECTION, SESSIONS_COLLECTION
from core.websocket import manager
from infrastructure.realtime.redis_relay import RedisRelay
from infrastructure.storage.local import LocalFileStorage
from infrastructure.storage.r2 import R2Storage
from repositories.customer_context import CustomerContextRepository
from repositories.message import MessageRepository
from repositories.session import SessionRepository
from services.attachment_service import AttachmentService
from services.broadcast_service import BroadcastService
from services.message_service import MessageService
from services.session_service import SessionService
from utils.cache import Cache


def get_db_collection(collection_name: str) -> AsyncIOMotorCollection:
    """Retorna uma coleção do MongoDB."""
    db = mongo_manager.get_db(db_name=get_environment().DATABASE_NAME)
    return db[collection_name]


@lru_cache
def get_cache() -> Cache:
    """Instância única do cache (o pool do Redis é compartilhado)."""
    env = get_environment()
    return Cache(env.REDIS_URL, default_ttl=env.UNREAD_CACHE_TTL_SECONDS)


@lru_cache
def get_redis_relay() -> RedisRelay:
    return RedisRelay(get_environment().REDIS_URL, manager)


def get_publisher():
    if get_environment().REALTIME_BACKEND == "redis":
        return get_redis_relay()
    return manager


@lru_cache
def get_storage():
    env = get_environment()
    if env.STORAGE_BACKEND == "r2":
        return R2Storage(
            account_id=env.R2_ACCOUNT_ID,
            access_key=env.R2_ACCESS_KEY,
            secret_key=env.R2_SECRET_KEY,
            bucket_name=env.R2_BUCKET,
        )
    return LocalFileStorage(env.UPLOAD_DIR, env.UPLOAD_URL_PREFIX)


async def get_session_repository():
    return SessionRepository(get_db_collection(SESSIONS_COLLECTION))


async def get_message_repository():
    return MessageRepository(get_db_collection(MESSAGES_COLLECTION))


async def get_broadcast_service():
    return BroadcastService(get_publisher())


async def get_customer_directory():
    return CustomerContextRepository(mongo_manager.get_db(db_name=get_environment().DATABASE_NAME))


async def get_message_service(
    message_repo: MessageRepository = Depends(get_message_repository),
    session_repo: SessionRepository = Depends(get_session_repository),
    broadcaster: BroadcastService = Depends(get_broadcast_service),
    cache: Cache = Depends(get_cache),
):
    return MessageService(
        message_repo,
        session_repo,
        broadcaster,
        cache=cache,
        cache_ttl=get_environment().UNREAD_CACHE_TTL_SECONDS,
    )


async def get_session_service(
    session_repo: SessionRepository = Depends(get_session_repository),
    message_service: MessageService = Depends(get_message_service),
    broadcaster: BroadcastService = Depends(get_broadcast_service),
    customer_directory: CustomerContextRepository = Depends(get_customer_directory),
):
    return SessionService(session_repo, message_service, broadcaster, customer_directory)


async def get_attachment_service():
    return AttachmentService(get_storage())
