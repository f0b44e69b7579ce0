import os
from dataclasses import dataclass


@dataclass
class Settings:
    database_url: str = os.getenv("DIGILIB_DB", "sqlite:///./digilib.db")
    log_level: str = os.getenv("DIGILIB_LOG", "INFO")
    secret_key: str = os.getenv("DIGILIB_SECRET", "change-me-in-production")
    session_cookie: str = os.getenv("DIGILIB_SESSION_COOKIE", "digilib_session")
    # Rupiah per day late
    fine_per_day: int = int(os.getenv("DIGILIB_FINE_PER_DAY", "5000"))
    low_stock_threshold: int = int(os.getenv("DIGILIB_LOW_STOCK", "5"))
    default_page_size: int = int(os.getenv("DIGILIB_DEFAULT_PAGE_SIZE", "20"))
    member_id_prefix: str = "A"
    legacy_member_id_prefix: str = "M"
    placeholder_cover: str = "/placeholder-book.jpg"


settings = Settings()
