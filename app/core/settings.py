"""
Core settings and environment variables for Crime Alert Hub.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "Crime Alert Hub"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - Frontend URLs allowed to access this API (comma separated)
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON
    FIREBASE_STORAGE_BUCKET: Optional[str] = None

    # Mock DB mode for local development without Firebase credentials
    USE_MOCK_DB: bool = False
    MOCK_DB_PATH: Optional[str] = "./mock_db.json"

    # Attachment storage
    # - BLOB_STORE_PROVIDER: "firebase" (Firebase Storage bucket) or "local" (directory on disk)
    BLOB_STORE_PROVIDER: str = "firebase"
    LOCAL_UPLOAD_DIR: str = "./uploads"
    LOCAL_UPLOAD_BASE_URL: str = "http://localhost:8000/uploads"
    ATTACHMENT_FOLDER: str = "crime_alert_evidence"
    MAX_UPLOAD_WORKERS: int = 4

    # Trust scoring sweep (0 disables the background loop)
    TRUST_RESCORE_INTERVAL_MINUTES: int = 60

    # Nearby alerts
    NEARBY_DEFAULT_RADIUS_KM: float = 5.0
    NEARBY_MAX_RESULTS: int = 50

    # Admin - user ids (X-User-ID) allowed to verify reports and trigger the sweep (comma separated)
    ADMIN_USER_IDS: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def admin_user_ids_list(self) -> List[str]:
        return [user_id.strip() for user_id in self.ADMIN_USER_IDS.split(",") if user_id.strip()]


# Global settings instance
settings = Settings()
