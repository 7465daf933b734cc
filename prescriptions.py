"""
Prescription requests between patients and pharmacists.

A patient files symptoms (optionally with photos); a pharmacist answers once
with notes and suggested medicines, which closes the request for good.
"""
import math
from typing import List, Optional

import structlog
from fastapi import UploadFile

from auth import attach_users
from database import now
from errors import AccessDenied, InvalidState, NotFound, ValidationError
from policy import PATIENT, authorize
from repositories import PrescriptionRepository, UserRepository
from schemas import Prescriptionrequest, PrescriptionResponseRequest
from uploads import ImageStore

logger = structlog.get_logger(__name__)

REQUEST_STATUSES = ["pending", "in_review", "completed"]
NEXT_STATUSES = {
    "pending": {"in_review", "completed"},
    "in_review": {"completed"},
    "completed": set(),
}
USER_FIELDS = {"patient_id": "patient", "responded_by": "responder"}


class PrescriptionService:
    def __init__(self, requests: PrescriptionRepository, images: ImageStore, users: UserRepository):
        self.requests = requests
        self.images = images
        self.users = users

    def _with_users(self, docs: List[dict]) -> List[dict]:
        return attach_users(self.users, docs, USER_FIELDS)

    def _load(self, request_id: str) -> dict:
        request = self.requests.find_by_id(request_id)
        if not request:
            raise NotFound("Prescription request not found")
        return request

    def create(self, user: dict, symptoms: str, description: str, files: Optional[List[UploadFile]] = None) -> dict:
        authorize("prescription:create", user)
        symptoms = (symptoms or "").strip()
        description = (description or "").strip()
        if not symptoms or not description:
            raise ValidationError("Symptoms and description are required")

        images = self.images.save(files or [])
        try:
            doc = self.requests.create(Prescriptionrequest(
                patient_id=str(user["_id"]),
                symptoms=symptoms,
                description=description,
                images=images,
            ))
        except Exception:
            self.images.discard(images)
            raise
        logger.info("prescription_request_created", request_id=str(doc["_id"]), images=len(images))
        return self._with_users([doc])[0]

    def list_for_patient(self, user: dict) -> List[dict]:
        authorize("prescription:read_own", user)
        return self._with_users(self.requests.find_by_patient(str(user["_id"])))

    def list_all(self, user: dict, status: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
        authorize("prescription:read_all", user)
        if status not in REQUEST_STATUSES:
            status = None
        docs, total = self.requests.find_all(status=status, page=page, limit=limit)
        return {
            "count": len(docs),
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit),
            "data": self._with_users(docs),
        }

    def get(self, user: dict, request_id: str) -> dict:
        authorize("prescription:read", user)
        request = self._load(request_id)
        if user.get("role") == PATIENT and request["patient_id"] != str(user["_id"]):
            raise AccessDenied("Access denied to this prescription request")
        return self._with_users([request])[0]

    def respond(self, user: dict, request_id: str, payload: PrescriptionResponseRequest) -> dict:
        authorize("prescription:respond", user)
        notes = (payload.pharmacist_notes or "").strip()
        if not notes or not payload.suggested_medicines:
            raise ValidationError("Pharmacist notes and suggested medicines are required")
        for med in payload.suggested_medicines:
            if not all(v.strip() for v in (med.name, med.dosage, med.frequency, med.duration)):
                raise ValidationError("Each medicine must have name, dosage, frequency, and duration")

        request = self._load(request_id)
        if request["status"] == "completed":
            raise InvalidState("This request has already been completed")

        updated = self.requests.update(
            request_id,
            {
                "pharmacist_notes": notes,
                "suggested_medicines": [m.model_dump() for m in payload.suggested_medicines],
                "responded_by": str(user["_id"]),
                "responded_at": now(),
                "status": "completed",
            },
            from_statuses=["pending", "in_review"],
        )
        if updated is None:
            raise InvalidState("This request has already been completed")
        logger.info("prescription_request_answered", request_id=request_id, pharmacist_id=str(user["_id"]))
        return self._with_users([updated])[0]

    def update_status(self, user: dict, request_id: str, status: str) -> dict:
        authorize("prescription:update_status", user)
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Invalid status value: {status}")
        request = self._load(request_id)
        current = request["status"]
        if current == "completed":
            raise InvalidState("This request has already been completed")
        if status not in NEXT_STATUSES[current]:
            raise InvalidState(f"Cannot move request from {current} to {status}")

        updated = self.requests.update(request_id, {"status": status}, from_statuses=[current])
        if updated is None:
            raise InvalidState("Request status changed while updating, please retry")
        logger.info("prescription_status_updated", request_id=request_id, old=current, new=status)
        return self._with_users([updated])[0]
