import os
import logging

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _mask_uri(uri):
    if uri and "@" in uri:
        scheme, rest = uri.split("://", 1) if "://" in uri else ("mongodb", uri)
        return f"{scheme}://***:***@{rest.split('@', 1)[1]}"
    return uri


class Settings:
    """Migration settings read from the environment (and .env)."""

    def __init__(self, **overrides):
        # Source (OpenCart MySQL)
        self.MYSQL_HOST = os.getenv("MYSQL_HOST", "127.0.0.1")
        self.MYSQL_PORT = int(os.getenv("MYSQL_PORT", "3306"))
        self.MYSQL_USER = os.getenv("MYSQL_USER", "root")
        self.MYSQL_PASSWORD = os.getenv("MYSQL_PASSWORD", "")
        self.MYSQL_DATABASE = os.getenv("MYSQL_DATABASE", "opencart")

        # Destination (MongoDB)
        self.MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://127.0.0.1:27017")
        self.MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "anneCreations")

        # Pipeline
        self.BATCH_SIZE = int(os.getenv("MIGRATION_BATCH_SIZE", "100"))
        self.LOG_DIR = os.getenv("MIGRATION_LOG_DIR", "migrationLogs")
        self.PHASE_PAUSE_SECONDS = float(os.getenv("MIGRATION_PHASE_PAUSE", "2"))
        self.WISHLIST_SUCCESS_THRESHOLD = float(os.getenv("WISHLIST_SUCCESS_THRESHOLD", "90"))
        self.DEFAULT_LANGUAGE_ID = int(os.getenv("DEFAULT_LANGUAGE_ID", "1"))
        self.FALLBACK_EMAIL_DOMAIN = os.getenv("FALLBACK_EMAIL_DOMAIN", "anne.com")

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

        if self.BATCH_SIZE < 1:
            raise ValueError("MIGRATION_BATCH_SIZE must be at least 1")

    @property
    def mysql_config(self):
        return {
            "host": self.MYSQL_HOST,
            "port": self.MYSQL_PORT,
            "user": self.MYSQL_USER,
            "password": self.MYSQL_PASSWORD,
            "database": self.MYSQL_DATABASE,
        }

    def log_summary(self):
        logger.info("Loading configuration")
        logger.info(f"  MySQL: {self.MYSQL_USER}@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DATABASE}")
        logger.info(f"  MongoDB URI: {_mask_uri(self.MONGODB_URI)}")
        logger.info(f"  MongoDB Database: {self.MONGO_DB_NAME}")
        logger.info(f"  Batch size: {self.BATCH_SIZE}")
        logger.info(f"  Log directory: {self.LOG_DIR or 'disabled'}")
        logger.info(f"  Wishlist success threshold: {self.WISHLIST_SUCCESS_THRESHOLD}%")
