from dataclasses import dataclass, replace
from typing import Iterable, List


@dataclass(frozen=True)
class CartItem:
    product_id: str
    quantity: int
    product_name: str = ""
    unit_price: float = 0.0


def merge_cart_items(user_items: Iterable[CartItem], guest_items: Iterable[CartItem]) -> List[CartItem]:
    """
    Merge a guest cart into the user's cart on login.

    Keyed by product id; quantities are summed when both carts hold the same
    product. Order is the user's cart first, then products only the guest cart
    had, in their original order. Same inputs always give the same output.
    """
    merged: dict[str, CartItem] = {}
    for item in list(user_items) + list(guest_items):
        current = merged.get(item.product_id)
        if current is None:
            merged[item.product_id] = item
        else:
            merged[item.product_id] = replace(current, quantity=current.quantity + item.quantity)
    return list(merged.values())
