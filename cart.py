from typing import Optional

import structlog
from bson import ObjectId

from catalog import effective_price
from errors import InsufficientStock, NotFound, ValidationError
from repositories import CartRepository, MedicineRepository
from schemas import Cart, CartItem

logger = structlog.get_logger(__name__)


def empty_cart() -> dict:
    return {"items": [], "total_amount": 0, "total_items": 0}


def load_cart(doc: dict) -> Cart:
    return Cart(user_id=doc["user_id"], items=[CartItem(**i) for i in doc.get("items", [])])


class CartService:
    def __init__(self, carts: CartRepository, medicines: MedicineRepository):
        self.carts = carts
        self.medicines = medicines

    def expand(self, cart_doc: Optional[dict]) -> dict:
        """Cart with each line's medicine details and the running totals."""
        if not cart_doc:
            return empty_cart()
        items = cart_doc.get("items", [])
        medicines = self.medicines.find_many(i["medicine_id"] for i in items)
        expanded = []
        for item in items:
            med = medicines.get(item["medicine_id"])
            expanded.append({
                **item,
                "subtotal": round(item["price"] * item["quantity"], 2),
                "medicine": {
                    "id": str(med["_id"]),
                    "name": med["name"],
                    "price": med["price"],
                    "discount_price": med.get("discount_price"),
                    "images": med.get("images", []),
                    "stock": med["stock"],
                } if med else None,
            })
        return {
            "id": str(cart_doc["_id"]),
            "user_id": cart_doc["user_id"],
            "items": expanded,
            "total_items": sum(i["quantity"] for i in items),
            "total_amount": round(sum(i["price"] * i["quantity"] for i in items), 2),
        }

    def get(self, user_id: str) -> dict:
        return self.expand(self.carts.find_by_user(user_id))

    def add_item(self, user_id: str, medicine_id: str, quantity: int = 1) -> dict:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        medicine = self.medicines.find_by_id(medicine_id)
        if not medicine:
            raise NotFound("Medicine not found")
        if medicine["stock"] < quantity:
            raise InsufficientStock("Insufficient stock")

        medicine_id = str(medicine["_id"])
        doc = self.carts.find_by_user(user_id)
        cart = load_cart(doc) if doc else Cart(user_id=user_id)

        existing = next((i for i in cart.items if i.medicine_id == medicine_id), None)
        if existing:
            new_quantity = existing.quantity + quantity
            if medicine["stock"] < new_quantity:
                raise InsufficientStock("Insufficient stock for requested quantity")
            existing.quantity = new_quantity
        else:
            cart.items.append(CartItem(
                item_id=str(ObjectId()),
                medicine_id=medicine_id,
                quantity=quantity,
                price=effective_price(medicine),
            ))

        saved = self.carts.save(cart)
        logger.debug("cart_item_added", user_id=user_id, medicine_id=medicine_id, quantity=quantity)
        return self.expand(saved)

    def update_item(self, user_id: str, item_id: str, quantity: int) -> dict:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        doc = self.carts.find_by_user(user_id)
        if not doc:
            raise NotFound("Cart not found")
        cart = load_cart(doc)
        item = next((i for i in cart.items if i.item_id == item_id), None)
        if item is None:
            raise NotFound("Item not found in cart")

        medicine = self.medicines.find_by_id(item.medicine_id)
        if not medicine:
            raise NotFound("Medicine not found")
        if medicine["stock"] < quantity:
            raise InsufficientStock("Insufficient stock")

        item.quantity = quantity
        return self.expand(self.carts.save(cart))

    def remove_item(self, user_id: str, item_id: str) -> dict:
        doc = self.carts.find_by_user(user_id)
        if not doc:
            return empty_cart()
        cart = load_cart(doc)
        remaining = [i for i in cart.items if i.item_id != item_id]
        if len(remaining) == len(cart.items):
            return self.expand(doc)
        cart.items = remaining
        return self.expand(self.carts.save(cart))

    def clear(self, user_id: str) -> dict:
        return self.expand(self.carts.clear(user_id))
