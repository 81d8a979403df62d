from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

SESSIONS_COLLECTION = "chat_sessions"
MESSAGES_COLLECTION = "chat_messages"


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    sessions = db.get_collection(SESSIONS_COLLECTION)
    messages = db.get_collection(MESSAGES_COLLECTION)

    # Busca da sessão aberta mais recente por cliente
    await sessions.create_index(
        [("customer_key", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)]
    )
    # Fila de espera dos agentes
    await sessions.create_index([("status", ASCENDING), ("created_at", ASCENDING)])
    await sessions.create_index([("agent_id", ASCENDING), ("status", ASCENDING)])

    await messages.create_index([("session_id", ASCENDING), ("created_at", ASCENDING)])
    # Contagem do badge de não lidas (poll a cada 5s)
    await messages.create_index(
        [("session_id", ASCENDING), ("sender_role", ASCENDING), ("is_read", ASCENDING)]
    )
