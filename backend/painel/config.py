"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    DATABASE_URL: str
    STORAGE_DIR: Path
    STORAGE_BUCKET: str
    PUBLIC_BASE_URL: str
    SERVICE_ROLE_KEY: str
    MAX_UPLOAD_BYTES: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    EVOLUTION_API_URL: str
    EVOLUTION_API_KEY: str
    EVOLUTION_INSTANCE: str
    HTTP_TIMEOUT_SECONDS: float
    MOCKUP_QUEUE_PRUNE_SECONDS: float
    CLEANUP_BATCH_SIZE: int
    GOOGLE_TOKEN_URL: str
    LOGIN_RATE_LIMIT_PER_MIN: int
    WEBHOOK_RATE_LIMIT_PER_MIN: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.DATABASE_URL = os.getenv("PAINEL_DATABASE_URL", f"sqlite:///{BASE / 'painel.db'}")
        self.STORAGE_DIR = Path(os.getenv("PAINEL_STORAGE_DIR", str(BASE / "data" / "storage"))).expanduser()
        self.STORAGE_BUCKET = os.getenv("PAINEL_STORAGE_BUCKET", "mockup-images")
        self.PUBLIC_BASE_URL = os.getenv("PAINEL_PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
        self.SERVICE_ROLE_KEY = os.getenv("SERVICE_ROLE_KEY", "")
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10 MB default
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        # env endpoint used by dispatch only when no instance is configured
        self.EVOLUTION_API_URL = os.getenv("EVOLUTION_API_URL", "").rstrip("/")
        self.EVOLUTION_API_KEY = os.getenv("EVOLUTION_API_KEY", "")
        self.EVOLUTION_INSTANCE = os.getenv("EVOLUTION_INSTANCE", "")
        self.HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "20"))
        self.MOCKUP_QUEUE_PRUNE_SECONDS = float(os.getenv("MOCKUP_QUEUE_PRUNE_SECONDS", "10"))
        self.CLEANUP_BATCH_SIZE = int(os.getenv("CLEANUP_BATCH_SIZE", "100"))
        self.GOOGLE_TOKEN_URL = os.getenv("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token")
        # per client ip, per minute; 0 disables
        self.LOGIN_RATE_LIMIT_PER_MIN = int(os.getenv("LOGIN_RATE_LIMIT_PER_MIN", "20"))
        self.WEBHOOK_RATE_LIMIT_PER_MIN = int(os.getenv("WEBHOOK_RATE_LIMIT_PER_MIN", "600"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.CLEANUP_BATCH_SIZE < 1:
            raise RuntimeError("CLEANUP_BATCH_SIZE must be positive")


settings = Settings()
