import os
from dataclasses import dataclass, field
from typing import List


def _split(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "pharmacy"
    jwt_secret: str = "devsecret"
    jwt_algo: str = "HS256"
    jwt_expire_days: int = 7
    bcrypt_rounds: int = 12
    upload_dir: str = "uploads"
    max_upload_files: int = 5
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "pharmacy"),
            jwt_secret=os.getenv("JWT_SECRET", "devsecret"),
            jwt_expire_days=int(os.getenv("JWT_EXPIRE_DAYS", 7)),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 12)),
            upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
            max_upload_files=int(os.getenv("MAX_UPLOAD_FILES", 5)),
            cors_origins=_split(os.getenv("CORS_ORIGINS", "*")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", 8000)),
        )
