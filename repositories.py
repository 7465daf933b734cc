"""
Collection repositories.

Each repository wraps one MongoDB collection of an explicitly passed Database
handle. Services depend on these objects, never on a global connection, so
tests can hand in an in-memory database.
"""
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import create_document, now, to_object_id
from schemas import Cart, Medicine, Order, Prescriptionrequest, User


class Repository:
    collection_name: str = ""

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def find_by_id(self, doc_id: Any) -> Optional[dict]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def insert(self, data) -> dict:
        new_id = create_document(self.db, self.collection_name, data)
        return self.find_by_id(new_id)

    def _page(self, filter_dict: Dict[str, Any], page: int, limit: int) -> Tuple[List[dict], int]:
        total = self.collection.count_documents(filter_dict)
        cursor = (
            self.collection.find(filter_dict)
            .sort("created_at", DESCENDING)
            .skip((page - 1) * limit)
            .limit(limit)
        )
        return list(cursor), total


class UserRepository(Repository):
    collection_name = "user"

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email})

    def create(self, user: User) -> dict:
        return self.insert(user)

    def find_many(self, ids: Iterable[str]) -> Dict[str, dict]:
        oids = [oid for oid in (to_object_id(i) for i in ids if i) if oid is not None]
        if not oids:
            return {}
        return {str(u["_id"]): u for u in self.collection.find({"_id": {"$in": oids}})}


class MedicineRepository(Repository):
    collection_name = "medicine"

    def create(self, medicine: Medicine) -> dict:
        return self.insert(medicine)

    def search(self, category: Optional[str] = None, q: Optional[str] = None) -> List[dict]:
        filt: Dict[str, Any] = {}
        if category:
            filt["category"] = category
        if q:
            filt["name"] = {"$regex": re.escape(q), "$options": "i"}
        return list(self.collection.find(filt).sort("name"))

    def find_many(self, ids: Iterable[str]) -> Dict[str, dict]:
        oids = [oid for oid in (to_object_id(i) for i in ids) if oid is not None]
        if not oids:
            return {}
        return {str(m["_id"]): m for m in self.collection.find({"_id": {"$in": oids}})}

    def reserve(self, medicine_id: str, quantity: int) -> Optional[dict]:
        """Decrement stock only while it still covers `quantity`; None if it does not."""
        oid = to_object_id(medicine_id)
        if oid is None:
            return None
        return self.collection.find_one_and_update(
            {"_id": oid, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}, "$set": {"updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )

    def release(self, medicine_id: str, quantity: int) -> Optional[dict]:
        oid = to_object_id(medicine_id)
        if oid is None:
            return None
        return self.collection.find_one_and_update(
            {"_id": oid},
            {"$inc": {"stock": quantity}, "$set": {"updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )


class CartRepository(Repository):
    collection_name = "cart"

    def find_by_user(self, user_id: str) -> Optional[dict]:
        return self.collection.find_one({"user_id": user_id})

    def save(self, cart: Cart) -> dict:
        stamp = now()
        return self.collection.find_one_and_update(
            {"user_id": cart.user_id},
            {
                "$set": {"items": [i.model_dump() for i in cart.items], "updated_at": stamp},
                "$setOnInsert": {"created_at": stamp},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    def clear(self, user_id: str) -> Optional[dict]:
        return self.collection.find_one_and_update(
            {"user_id": user_id},
            {"$set": {"items": [], "updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )


class OrderRepository(Repository):
    collection_name = "order"

    def create(self, order: Order) -> dict:
        return self.insert(order)

    def find_by_user(self, user_id: str) -> List[dict]:
        return list(self.collection.find({"user_id": user_id}).sort("created_at", DESCENDING))

    def find_all(self, status: Optional[str] = None, page: int = 1, limit: int = 10) -> Tuple[List[dict], int]:
        filt = {"order_status": status} if status else {}
        return self._page(filt, page, limit)

    def update_status(self, order_id: str, fields: Dict[str, Any], expected_status: Optional[str] = None) -> Optional[dict]:
        """Apply `fields`; when `expected_status` is given the write only lands if the order is still in it."""
        oid = to_object_id(order_id)
        if oid is None:
            return None
        filt: Dict[str, Any] = {"_id": oid}
        if expected_status is not None:
            filt["order_status"] = expected_status
        return self.collection.find_one_and_update(
            filt,
            {"$set": {**fields, "updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )


class PrescriptionRepository(Repository):
    collection_name = "prescriptionrequest"

    def create(self, request: Prescriptionrequest) -> dict:
        return self.insert(request)

    def find_by_patient(self, patient_id: str) -> List[dict]:
        return list(self.collection.find({"patient_id": patient_id}).sort("created_at", DESCENDING))

    def find_all(self, status: Optional[str] = None, page: int = 1, limit: int = 10) -> Tuple[List[dict], int]:
        filt = {"status": status} if status else {}
        return self._page(filt, page, limit)

    def update(self, request_id: str, fields: Dict[str, Any], from_statuses: List[str]) -> Optional[dict]:
        oid = to_object_id(request_id)
        if oid is None:
            return None
        return self.collection.find_one_and_update(
            {"_id": oid, "status": {"$in": from_statuses}},
            {"$set": {**fields, "updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )


class Repositories:
    """The full set of stores, built once per Database handle."""

    def __init__(self, db: Database):
        self.db = db
        self.users = UserRepository(db)
        self.medicines = MedicineRepository(db)
        self.carts = CartRepository(db)
        self.orders = OrderRepository(db)
        self.prescriptions = PrescriptionRepository(db)
