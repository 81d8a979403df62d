import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from core.environment import get_environment

logger = logging.getLogger(__name__)


class MongoManager:
    """Owns the one motor client of the process; opened and closed by the app lifespan."""

    def __init__(self, uri: Optional[str] = None, db_name: Optional[str] = None):
        env = get_environment()
        self._uri = uri or env.DATABASE_URI
        self._db_name = db_name or env.DATABASE_NAME
        self._client: Optional[AsyncIOMotorClient] = None

    async def connect(self) -> None:
        if self._client:
            return
        # tz_aware: datas voltam em UTC com tzinfo, iguais às que gravamos
        self._client = AsyncIOMotorClient(self._uri, tz_aware=True)
        logger.info("MongoDB connected (%s)", self._db_name)

    async def disconnect(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            logger.info("MongoDB disconnected")

    def get_db(self, db_name: Optional[str] = None) -> AsyncIOMotorDatabase:
        if not self._client:
            raise RuntimeError("MongoDB client not initialized. Call connect() first.")
        return self._client[db_name or self._db_name]

    async def ping(self) -> bool:
        try:
            await self.get_db().command("ping")
            return True
        except Exception as e:
            logger.error("MongoDB ping failed: %s", e)
            return False


mongo_manager = MongoManager()
