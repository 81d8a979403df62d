from typing import Optional

from bson import ObjectId


def _serialize_doc(doc: dict) -> dict:
    if doc is None:
        return None
    if "_id" in doc and isinstance(doc["_id"], ObjectId):
        doc["_id"] = str(doc["_id"])
    return doc


class MessageRepository():
    def __init__(self, collection) -> None:
        self._collection = collection

    async def insert(self, message: dict) -> dict:
        result = await self._collection.insert_one(dict(message))
        return _serialize_doc({**message, "_id": result.inserted_id})

    async def list_by_session(self, session_id: str, limit: Optional[int] = None, skip: int = 0) -> list[dict]:
        # _id desempata mensagens no mesmo milissegundo
        cursor = (
            self._collection.find({"session_id": session_id})
            .sort([("created_at", 1), ("_id", 1)])
            .skip(skip)
        )
        if limit:
            cursor = cursor.limit(limit)
        return [_serialize_doc(doc) async for doc in cursor]

    async def mark_read(self, session_id: str, sender_role: str) -> int:
        result = await self._collection.update_many(
            {"session_id": session_id, "sender_role": sender_role, "is_read": False},
            {"$set": {"is_read": True}},
        )
        return result.modified_count

    async def count_unread(self, session_id: str, sender_role: str) -> int:
        return await self._collection.count_documents(
            {"session_id": session_id, "sender_role": sender_role, "is_read": False}
        )
