"""
Medicine catalog: effective pricing, lookups and stock reservation.
"""
from typing import List, Optional, Tuple

import structlog

from errors import InsufficientStock, NotFound
from policy import authorize
from repositories import MedicineRepository
from schemas import Medicine

logger = structlog.get_logger(__name__)


def effective_price(medicine: dict) -> float:
    """Discount price when it is set and below the list price, else the list price."""
    price = float(medicine["price"])
    discount = medicine.get("discount_price")
    if discount and 0 < float(discount) < price:
        return float(discount)
    return price


class CatalogService:
    def __init__(self, medicines: MedicineRepository):
        self.medicines = medicines

    def list(self, category: Optional[str] = None, q: Optional[str] = None) -> List[dict]:
        return self.medicines.search(category=category, q=q)

    def get(self, medicine_id: str) -> dict:
        medicine = self.medicines.find_by_id(medicine_id)
        if not medicine:
            raise NotFound("Medicine not found")
        return medicine

    def create(self, user: dict, medicine: Medicine) -> dict:
        authorize("medicine:create", user)
        doc = self.medicines.create(medicine)
        logger.info("medicine_created", medicine_id=str(doc["_id"]), stock=doc["stock"])
        return doc


class StockReservation:
    """
    Holds stock for several medicines as one unit.

    Each hold is a conditional decrement, so stock is never driven below zero
    even when requests race. Used as a context manager: if the block raises,
    every hold taken so far is released before the exception propagates.
    """

    def __init__(self, medicines: MedicineRepository):
        self.medicines = medicines
        self.held: List[Tuple[str, int]] = []

    def hold(self, medicine: dict, quantity: int) -> None:
        medicine_id = str(medicine["_id"])
        if self.medicines.reserve(medicine_id, quantity) is None:
            raise InsufficientStock(f"Insufficient stock for {medicine['name']}")
        self.held.append((medicine_id, quantity))

    def release_all(self) -> None:
        while self.held:
            medicine_id, quantity = self.held.pop()
            try:
                self.medicines.release(medicine_id, quantity)
            except Exception:
                logger.exception("stock_release_failed", medicine_id=medicine_id, quantity=quantity)
            else:
                logger.info("stock_released", medicine_id=medicine_id, quantity=quantity)

    def __enter__(self) -> "StockReservation":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.release_all()
        return False
