from datetime import datetime
from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument

from domain.session.chat_session import SessionStatus


def _serialize_doc(doc: dict) -> dict:
    """Convert MongoDB ObjectId to string for JSON serialization."""
    if doc is None:
        return None

    if "_id" in doc and isinstance(doc["_id"], ObjectId):
        doc["_id"] = str(doc["_id"])

    return doc


def _object_id(session_id: str) -> Optional[ObjectId]:
    if isinstance(session_id, ObjectId):
        return session_id
    return ObjectId(session_id) if ObjectId.is_valid(session_id) else None


class SessionRepository:
    def __init__(self, collection: AsyncIOMotorCollection):
        self._collection = collection

    # ------------------------
    # Query Operations
    # ------------------------
    async def get_by_id(self, session_id: str) -> Optional[dict]:
        oid = _object_id(session_id)
        if oid is None:
            return None
        return _serialize_doc(await self._collection.find_one({"_id": oid}))

    async def find_open_by_customer_key(self, customer_key: str) -> Optional[dict]:
        """Recupera a sessão não encerrada mais recente do cliente."""
        cursor = self._collection.find({
            "customer_key": customer_key,
            "status": {"$ne": SessionStatus.CLOSED.value},
        }).sort("created_at", -1).limit(1)

        results = await cursor.to_list(length=1)
        if results:
            return _serialize_doc(results[0])
        return None

    async def list_waiting(self, limit: int = 100) -> list[dict]:
        """Fila de espera, mais antigas primeiro."""
        cursor = self._collection.find(
            {"status": SessionStatus.WAITING.value}
        ).sort("created_at", 1).limit(limit)
        return [_serialize_doc(doc) async for doc in cursor]

    async def list_active_for_agent(self, agent_id: str) -> list[dict]:
        cursor = self._collection.find({
            "agent_id": agent_id,
            "status": SessionStatus.ACTIVE.value,
        })
        docs = [_serialize_doc(doc) async for doc in cursor]
        # last_message_at pode ser nulo; ordena em memória com fallback para updated_at
        docs.sort(key=lambda d: d.get("last_message_at") or d["updated_at"], reverse=True)
        return docs

    # ------------------------
    # Write Operations
    # ------------------------
    async def create(self, session: dict) -> dict:
        result = await self._collection.insert_one(dict(session))
        return _serialize_doc({**session, "_id": result.inserted_id})

    async def transition(self,
                         session_id: str,
                         expected_status: SessionStatus,
                         changes: dict) -> Optional[dict]:
        """
        Compare-and-swap on the status field.

        Only matches while the stored status is still ``expected_status``, so
        two concurrent writers cannot both win. Returns the updated document,
        or None when nothing matched.
        """
        oid = _object_id(session_id)
        if oid is None:
            return None
        result = await self._collection.find_one_and_update(
            {"_id": oid, "status": expected_status.value},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return _serialize_doc(result)

    async def touch(self, session_id: str, at: datetime) -> bool:
        oid = _object_id(session_id)
        if oid is None:
            return False
        response = await self._collection.update_one(
            {"_id": oid},
            {"$set": {"last_message_at": at, "updated_at": at}},
        )
        return response.modified_count > 0
