"""
Role-based access policy.

One table maps each operation to the roles allowed to call it. Services call
`authorize` before doing any work; ownership checks stay in the services since
they depend on the loaded document.
"""
from typing import Dict, FrozenSet

from errors import AccessDenied

PATIENT = "patient"
PHARMACIST = "pharmacist"
ADMIN = "admin"

EVERYONE = frozenset({PATIENT, PHARMACIST, ADMIN})

POLICY: Dict[str, FrozenSet[str]] = {
    "medicine:create": frozenset({ADMIN}),
    "order:create": EVERYONE,
    "order:read_own": EVERYONE,
    "order:read_all": frozenset({ADMIN}),
    "order:update_status": frozenset({ADMIN}),
    "order:cancel": EVERYONE,
    "prescription:create": frozenset({PATIENT}),
    "prescription:read_own": frozenset({PATIENT}),
    "prescription:read_all": frozenset({PHARMACIST, ADMIN}),
    "prescription:read": EVERYONE,
    "prescription:respond": frozenset({PHARMACIST, ADMIN}),
    "prescription:update_status": frozenset({PHARMACIST, ADMIN}),
}

MESSAGES = {
    "prescription:create": "Only patients can create prescription requests",
    "prescription:read_all": "Access denied. Pharmacist role required",
    "prescription:respond": "Access denied. Pharmacist role required",
    "prescription:update_status": "Access denied. Pharmacist role required",
    "medicine:create": "Admin only",
    "order:read_all": "Admin only",
    "order:update_status": "Admin only",
}


def is_allowed(operation: str, role: str) -> bool:
    return role in POLICY.get(operation, frozenset())


def authorize(operation: str, user: dict) -> None:
    if not is_allowed(operation, user.get("role", "")):
        raise AccessDenied(MESSAGES.get(operation, "Access denied"))
