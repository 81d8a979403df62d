"""Read-only view over the storefront's order, cart and wishlist collections."""
import logging
from typing import Optional, Protocol

from bson import Decimal128
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from domain.session.views import CustomerContext, OrderSummary

logger = logging.getLogger(__name__)

ORDERS_COLLECTION = "Orders"
CARTS_COLLECTION = "ShoppingCarts"
WISHLISTS_COLLECTION = "WishLists"
RECENT_ORDERS_LIMIT = 5


def _as_float(value) -> float:
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    return float(value or 0)


class CustomerDirectory(Protocol):
    async def get_context(self, customer_id: str) -> Optional[CustomerContext]: ...


class CustomerContextRepository:
    # Documentos gravados pela loja: nomes de campo seguem o schema dela
    def __init__(self, db: AsyncIOMotorDatabase, orders_limit: int = RECENT_ORDERS_LIMIT):
        self._orders = db[ORDERS_COLLECTION]
        self._carts = db[CARTS_COLLECTION]
        self._wishlists = db[WISHLISTS_COLLECTION]
        self._orders_limit = orders_limit

    async def get_context(self, customer_id: str) -> Optional[CustomerContext]:
        if not customer_id:
            return None

        cart = await self._carts.find_one({"userId": customer_id})
        wishlist = await self._wishlists.find_one({"UserId": customer_id})
        cursor = (
            self._orders.find({"UserId": customer_id})
            .sort("CreatedAt", DESCENDING)
            .limit(self._orders_limit)
        )
        orders = [
            OrderSummary(
                id=str(doc["_id"]),
                status=doc.get("Status", "Processing"),
                total_price=_as_float(doc.get("TotalPrice")),
                created_at=doc.get("CreatedAt"),
            )
            async for doc in cursor
        ]
        return CustomerContext(
            cart_item_count=len((cart or {}).get("items") or []),
            wishlist_item_count=len((wishlist or {}).get("Items") or []),
            recent_orders=orders,
        )
