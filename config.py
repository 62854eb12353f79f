"""Environment-aware configuration for the civic intake service."""
import os


class BaseConfig:
    def __init__(self) -> None:
        self.SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
        db_url = os.getenv("DATABASE_URL")
        if db_url:
            self.SQLALCHEMY_DATABASE_URI = db_url
        else:
            self.SQLALCHEMY_DATABASE_URI = os.getenv(
                "SQLITE_URL",
                f"sqlite:///{os.path.join(os.getcwd(), 'instance', 'civic.db')}",
            )
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        # SQLite pools reject the QueuePool sizing arguments.
        if not self.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            self.SQLALCHEMY_ENGINE_OPTIONS = {
                "pool_size": int(os.getenv("DB_POOL_SIZE", 10)),
                "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", 20)),
                "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", 30)),
                "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", 1800)),
                "pool_pre_ping": True,
            }
        # auto: use the database when reachable, otherwise keep data in memory.
        self.STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "auto").lower()
        self.SESSION_COOKIE_HTTPONLY = True
        self.SESSION_COOKIE_SAMESITE = "Lax"
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_VISION_MODEL = os.getenv("GEMINI_VISION_MODEL", "gemini-2.5-flash")
        self.VISION_TIMEOUT_SECONDS = float(os.getenv("VISION_TIMEOUT_SECONDS", 20))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
        self.UPLOAD_FOLDER = os.getenv(
            "UPLOAD_FOLDER",
            os.path.join(os.getcwd(), "instance", "uploads"),
        )
        self.PUBLIC_UPLOAD_PATH = "/uploads"
        self.MAX_IMAGE_UPLOAD_BYTES = int(os.getenv("MAX_IMAGE_UPLOAD_BYTES", 10 * 1024 * 1024))
        self.MAX_CONTENT_LENGTH = int(os.getenv("MAX_REQUEST_BYTES", 12 * 1024 * 1024))
        self.COMPLAINT_ID_PREFIX = os.getenv("COMPLAINT_ID_PREFIX", "CIV")
        self.DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", 100))
        self.MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", 1000))
        self.REPORTING_TIMEZONE = os.getenv("REPORTING_TIMEZONE", "UTC")
        self.OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", 300))
        self.OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", 5))


class DevelopmentConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = True
        self.ENV = "development"
        self.SESSION_COOKIE_SECURE = False


class ProductionConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = False
        self.ENV = "production"
        self.SESSION_COOKIE_SECURE = True


class TestingConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.TESTING = True
        self.DEBUG = False
        self.ENV = "testing"
        self.STORAGE_BACKEND = "memory"
        self.GEMINI_API_KEY = ""
        self.SQLALCHEMY_DATABASE_URI = "sqlite://"
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.WTF_CSRF_ENABLED = False
