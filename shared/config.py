from pydantic_settings import BaseSettings
from typing import List
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # Service Info
    SERVICE_NAME: str = "Order QR"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # MongoDB Settings
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "order_qr"

    # JWT Settings
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    MANAGE_TOKEN_EXPIRE_MINUTES: int = 1440

    # Public site
    SITE_URL: str = "http://localhost:8000"
    SITE_HEADER: str = "www.example.com"
    COMPANY_NAME: str = "QR Company"
    LOGIN_URL: str = "/login"
    DATE_FORMAT: str = "%B %d, %Y"
    TIME_FORMAT: str = "%H:%M"

    # Service URLs
    QR_SERVICE_URL: str = "http://qr-service:8000"

    # Rendering
    ASSET_DIR: str = "qr-assets"
    FONT_DIR: str = "assets"
    ORDER_QR_SCALE: int = 8
    ORDER_QR_MARGIN: int = 2
    CAPTION_MAX_LENGTH: int = 30

    # MinIO Settings
    MINIO_ENABLED: bool = False
    MINIO_ENDPOINT: str = "minio:9000"
    MINIO_ACCESS_KEY: str = "qr_service_user"
    MINIO_SECRET_KEY: str = "qr_service_password_123"
    MINIO_USE_SSL: bool = False
    MINIO_BUCKET_NAME: str = "qrcodes"
    MINIO_PUBLIC_URL: str = "http://localhost:9000"

    # CORS Settings
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:8000"]

    model_config = {
        "env_file": ".env",
        "extra": "allow"
    }

    def scan_url(self, slug: str) -> str:
        return f"{self.SITE_URL.rstrip('/')}/q/{slug}"

    def manage_url(self, slug: str) -> str:
        return f"{self.scan_url(slug)}/manage"

settings = Settings()
