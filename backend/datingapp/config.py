"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent

DEFAULT_TOKEN_KEY = "change_me_for_prod_" + "x" * 64


class Settings:
    ENV: str
    LOG_LEVEL: str
    DATABASE_URL: str
    TOKEN_KEY: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_DAYS: int
    MAX_UPLOAD_BYTES: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    CORS_ORIGINS: list
    CLOUDINARY_CLOUD_NAME: str
    CLOUDINARY_API_KEY: str
    CLOUDINARY_API_SECRET: str
    PHOTO_STORAGE_DIR: Path
    MEDIA_URL: str
    SEED_ON_STARTUP: bool
    SEED_PASSWORD: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.TOKEN_KEY = os.getenv("TOKEN_KEY", DEFAULT_TOKEN_KEY)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS512")
        self.JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10 MB default
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.CORS_ORIGINS = [
            o.strip()
            for o in os.getenv("CORS_ORIGINS", "http://localhost:4200,https://localhost:4200").split(",")
            if o.strip()
        ]
        self.CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
        self.CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
        self.CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
        self.PHOTO_STORAGE_DIR = Path(os.getenv("PHOTO_STORAGE_DIR", str(BASE / "media"))).expanduser().resolve()
        self.MEDIA_URL = "/" + os.getenv("MEDIA_URL", "/media").strip("/")
        self.SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "true").lower() == "true"
        self.SEED_PASSWORD = os.getenv("SEED_PASSWORD", "Pa$$w0rd")
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.TOKEN_KEY == DEFAULT_TOKEN_KEY:
            raise RuntimeError("TOKEN_KEY must be set to a non-default value in non-dev environments")
        if self.JWT_EXPIRE_DAYS <= 0:
            raise RuntimeError("JWT_EXPIRE_DAYS must be positive")

    @property
    def use_cloudinary(self) -> bool:
        return bool(self.CLOUDINARY_CLOUD_NAME)


settings = Settings()
