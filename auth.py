from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import bcrypt
import jwt
import structlog

from config import Settings
from errors import NotAuthenticated, ValidationError
from repositories import UserRepository
from schemas import LoginRequest, RegisterRequest, User

logger = structlog.get_logger(__name__)


def public_user(user_doc: dict) -> dict:
    return {
        "id": str(user_doc["_id"]),
        "name": user_doc["name"],
        "email": user_doc["email"],
        "phone": user_doc.get("phone"),
        "role": user_doc.get("role", "patient"),
    }


def attach_users(users: UserRepository, docs: List[dict], fields: Dict[str, str]) -> List[dict]:
    """
    Copy each doc, adding the public profile of every referenced user.

    `fields` maps the id field to the key the profile is stored under, e.g.
    {"patient_id": "patient"}. Unknown or missing ids give None.
    """
    ids = {doc.get(id_field) for doc in docs for id_field in fields}
    found = users.find_many(i for i in ids if i)
    expanded = []
    for doc in docs:
        doc = {**doc}
        for id_field, key in fields.items():
            user = found.get(doc.get(id_field) or "")
            doc[key] = public_user(user) if user else None
        expanded.append(doc)
    return expanded


class AuthService:
    def __init__(self, users: UserRepository, settings: Settings):
        self.users = users
        self.settings = settings

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.settings.bcrypt_rounds)
        return bcrypt.hashpw(password.encode(), salt).decode()

    def create_token(self, user_doc: dict) -> str:
        payload = {
            "sub": str(user_doc["_id"]),
            "email": user_doc["email"],
            "role": user_doc.get("role", "patient"),
            "exp": datetime.now(timezone.utc) + timedelta(days=self.settings.jwt_expire_days),
        }
        return jwt.encode(payload, self.settings.jwt_secret, algorithm=self.settings.jwt_algo)

    def register(self, payload: RegisterRequest) -> dict:
        if self.users.find_by_email(payload.email):
            raise ValidationError("User already exists")
        user = User(
            name=payload.name,
            email=payload.email,
            password_hash=self.hash_password(payload.password),
            role=payload.role,
            phone=payload.phone,
            date_of_birth=payload.date_of_birth,
        )
        user_doc = self.users.create(user)
        logger.info("user_registered", user_id=str(user_doc["_id"]), role=user_doc["role"])
        return {**public_user(user_doc), "token": self.create_token(user_doc)}

    def login(self, payload: LoginRequest) -> dict:
        user = self.users.find_by_email(payload.email)
        if not user or not bcrypt.checkpw(payload.password.encode(), user["password_hash"].encode()):
            raise NotAuthenticated("Invalid email or password")
        return {**public_user(user), "token": self.create_token(user)}

    def user_from_token(self, authorization: Optional[str]) -> dict:
        """Resolve an `Authorization: Bearer <token>` header to the stored user."""
        if not authorization:
            raise NotAuthenticated("Not authorized, no token")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise NotAuthenticated("Not authorized, no token")
        try:
            payload = jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algo])
        except jwt.PyJWTError:
            raise NotAuthenticated("Not authorized, token failed")
        user = self.users.find_by_id(payload.get("sub"))
        if not user:
            raise NotAuthenticated("Not authorized, user not found")
        return user
