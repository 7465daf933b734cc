"""
Order placement and the order status lifecycle.

Placing an order validates every line against the catalog, reserves stock for
all of them as one unit, snapshots names and prices into the order and only
then empties the stored cart. Any failure after the first reservation releases
what was taken, so a rejected order never changes catalog stock.
"""
import math
import secrets
import string
import time
from typing import List, Optional, Tuple

import structlog
from pymongo.errors import PyMongoError

from auth import attach_users
from catalog import StockReservation, effective_price
from database import now
from errors import AccessDenied, InvalidState, InsufficientStock, NotFound, ServerError, ValidationError
from policy import ADMIN, authorize
from repositories import CartRepository, MedicineRepository, OrderRepository, UserRepository
from schemas import CreateOrderRequest, Order, OrderItem

logger = structlog.get_logger(__name__)

FREE_SHIPPING_ABOVE = 500
SHIPPING_FEE = 40.0
TAX_RATE = 0.05

ORDER_STATUSES = ["pending", "confirmed", "packed", "shipped", "delivered", "cancelled"]
FULFILMENT_FLOW = ["pending", "confirmed", "packed", "shipped", "delivered"]
ADMIN_SETTABLE = {"confirmed", "packed", "shipped", "delivered", "cancelled"}
FINAL_STATUSES = {"delivered", "cancelled"}


def generate_order_id() -> str:
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(3))
    return f"ORD-{timestamp}-{suffix}"


def compute_totals(subtotal: float) -> Tuple[float, float, float, float]:
    """Return (subtotal, shipping_fee, tax, total_amount) rounded to cents."""
    subtotal = round(subtotal, 2)
    shipping_fee = 0.0 if subtotal > FREE_SHIPPING_ABOVE else SHIPPING_FEE
    tax = round(subtotal * TAX_RATE, 2)
    return subtotal, shipping_fee, tax, round(subtotal + shipping_fee + tax, 2)


def can_transition(current: str, target: str) -> bool:
    if current in FINAL_STATUSES:
        return False
    if target == "cancelled":
        return current == "pending"
    return FULFILMENT_FLOW.index(target) >= FULFILMENT_FLOW.index(current)


class OrderService:
    def __init__(self, orders: OrderRepository, carts: CartRepository, medicines: MedicineRepository, users: UserRepository):
        self.orders = orders
        self.carts = carts
        self.medicines = medicines
        self.users = users

    def _with_user(self, order: dict) -> dict:
        return attach_users(self.users, [order], {"user_id": "user"})[0]

    def _requested_lines(self, user_id: str, payload: CreateOrderRequest) -> Tuple[List[Tuple[str, int]], bool]:
        if payload.cart_items:
            return [(line.medicine_id, line.quantity) for line in payload.cart_items], False
        cart = self.carts.find_by_user(user_id)
        lines = [(i["medicine_id"], i["quantity"]) for i in cart.get("items", [])] if cart else []
        return lines, True

    def place_order(self, user: dict, payload: CreateOrderRequest) -> dict:
        authorize("order:create", user)
        user_id = str(user["_id"])
        lines, from_cart = self._requested_lines(user_id, payload)
        if not lines:
            raise ValidationError("Cart is empty")

        # Check every line before touching stock.
        checked = []
        for medicine_id, quantity in lines:
            if quantity < 1:
                raise ValidationError("Quantity must be at least 1")
            medicine = self.medicines.find_by_id(medicine_id)
            if not medicine:
                raise NotFound(f"Medicine not found: {medicine_id}")
            if medicine["stock"] < quantity:
                raise InsufficientStock(f"Insufficient stock for {medicine['name']}")
            checked.append((medicine, quantity))

        items = []
        running = 0.0
        for medicine, quantity in checked:
            price = effective_price(medicine)
            line_total = round(price * quantity, 2)
            items.append(OrderItem(
                medicine_id=str(medicine["_id"]),
                name=medicine["name"],
                quantity=quantity,
                price=price,
                total=line_total,
            ))
            running += line_total
        subtotal, shipping_fee, tax, total_amount = compute_totals(running)

        try:
            with StockReservation(self.medicines) as reservation:
                for medicine, quantity in checked:
                    reservation.hold(medicine, quantity)
                order_doc = self.orders.create(Order(
                    order_id=generate_order_id(),
                    user_id=user_id,
                    items=items,
                    shipping_address=payload.shipping_address,
                    payment_method=payload.payment_method,
                    subtotal=subtotal,
                    shipping_fee=shipping_fee,
                    tax=tax,
                    total_amount=total_amount,
                ))
        except PyMongoError as e:
            logger.exception("order_create_failed", user_id=user_id)
            raise ServerError("Error creating order") from e

        if from_cart:
            self.carts.clear(user_id)
        logger.info(
            "order_placed",
            order_id=order_doc["order_id"],
            user_id=user_id,
            items=len(items),
            total_amount=total_amount,
            from_cart=from_cart,
        )
        return self._with_user(order_doc)

    def _load(self, order_id: str) -> dict:
        order = self.orders.find_by_id(order_id)
        if not order:
            raise NotFound("Order not found")
        return order

    def get(self, user: dict, order_id: str) -> dict:
        authorize("order:read_own", user)
        order = self._load(order_id)
        if order["user_id"] != str(user["_id"]) and user.get("role") != ADMIN:
            raise AccessDenied("Access denied")
        return self._with_user(order)

    def list_for_user(self, user: dict) -> List[dict]:
        authorize("order:read_own", user)
        return attach_users(self.users, self.orders.find_by_user(str(user["_id"])), {"user_id": "user"})

    def list_all(self, user: dict, status: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
        authorize("order:read_all", user)
        if status == "all":
            status = None
        if status is not None and status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid order status: {status}")
        docs, total = self.orders.find_all(status=status, page=page, limit=limit)
        return {
            "count": len(docs),
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit),
            "data": attach_users(self.users, docs, {"user_id": "user"}),
        }

    def update_status(self, user: dict, order_id: str, status: str, tracking_number: Optional[str] = None) -> dict:
        authorize("order:update_status", user)
        if status not in ADMIN_SETTABLE:
            raise ValidationError(f"Invalid order status: {status}")
        order = self._load(order_id)
        current = order["order_status"]
        if not can_transition(current, status):
            raise ValidationError(f"Invalid order status: {status} (order is {current})")

        fields = {"order_status": status}
        if tracking_number:
            fields["tracking_number"] = tracking_number
        if status == "delivered":
            fields["delivery_date"] = now()
        updated = self.orders.update_status(order_id, fields, expected_status=current)
        if updated is None:
            raise InvalidState("Order status changed while updating, please retry")
        logger.info("order_status_updated", order_id=updated["order_id"], old=current, new=status)
        return self._with_user(updated)

    def cancel(self, user: dict, order_id: str) -> dict:
        authorize("order:cancel", user)
        order = self._load(order_id)
        if order["user_id"] != str(user["_id"]):
            raise AccessDenied("Access denied")
        if order["order_status"] != "pending":
            raise InvalidState("Order cannot be cancelled at this stage")

        updated = self.orders.update_status(order_id, {"order_status": "cancelled"}, expected_status="pending")
        if updated is None:
            raise InvalidState("Order cannot be cancelled at this stage")

        for item in order["items"]:
            if self.medicines.release(item["medicine_id"], item["quantity"]) is None:
                # Medicine removed from the catalog since the order was placed.
                logger.warning("restock_skipped", order_id=order["order_id"], medicine_id=item["medicine_id"])
        logger.info("order_cancelled", order_id=order["order_id"], user_id=order["user_id"])
        return self._with_user(updated)
