"""Application configuration helpers.

Settings are read from the environment once at process start and handed to
each component explicitly; nothing below the entry points calls
``get_settings()`` on its own.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

YELP_MAX_PAGE_SIZE = 50


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing or invalid."""


@dataclass(frozen=True)
class Settings:
    yelp_api_key: str
    google_maps_api_key: str
    database_url: str
    location: str = "Fort Lauderdale, FL"
    search_term: str = "restaurants"
    search_radius: int = 8000
    page_size: int = YELP_MAX_PAGE_SIZE
    max_pages: Optional[int] = None
    request_delay: float = 1.0
    page_delay: float = 2.0
    max_retries: int = 2
    retry_delay: float = 1.0
    max_reviews_per_restaurant: int = 10
    restaurants_collection: str = "restaurants"
    reviews_collection: str = "reviews"
    dishes_collection: str = "dishes"
    dish_reviews_collection: str = "dish_reviews"
    worker_port: int = 9000

    @property
    def default_locality(self) -> str:
        """City part of the configured location, used to anchor place lookups."""
        return self.location.split(",")[0].strip()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    yelp_api_key = os.getenv("YELP_API_KEY", "")
    google_maps_api_key = os.getenv("GOOGLE_MAPS_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")

    page_size = _int_env("SYNC_PAGE_SIZE", YELP_MAX_PAGE_SIZE)
    if page_size <= 0:
        raise ConfigError("SYNC_PAGE_SIZE must be positive")
    if page_size > YELP_MAX_PAGE_SIZE:
        logger.warning("SYNC_PAGE_SIZE=%d exceeds the Yelp cap; using %d", page_size, YELP_MAX_PAGE_SIZE)
        page_size = YELP_MAX_PAGE_SIZE

    max_pages_raw = os.getenv("SYNC_MAX_PAGES")
    max_pages = _int_env("SYNC_MAX_PAGES", 0) if max_pages_raw else None

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not yelp_api_key:
        logger.warning("YELP_API_KEY is not configured; Yelp requests will fail.")
    if not google_maps_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY is not configured; Google Places requests will fail.")

    return Settings(
        yelp_api_key=yelp_api_key,
        google_maps_api_key=google_maps_api_key,
        database_url=database_url,
        location=os.getenv("SYNC_LOCATION") or "Fort Lauderdale, FL",
        search_term=os.getenv("SYNC_TERM") or "restaurants",
        search_radius=_int_env("SYNC_RADIUS_METERS", 8000),
        page_size=page_size,
        max_pages=max_pages,
        request_delay=_float_env("SYNC_REQUEST_DELAY", 1.0),
        page_delay=_float_env("SYNC_PAGE_DELAY", 2.0),
        max_retries=_int_env("SYNC_MAX_RETRIES", 2),
        retry_delay=_float_env("SYNC_RETRY_DELAY", 1.0),
        max_reviews_per_restaurant=_int_env("SYNC_MAX_REVIEWS", 10),
        restaurants_collection=os.getenv("RESTAURANTS_COLLECTION") or "restaurants",
        reviews_collection=os.getenv("REVIEWS_COLLECTION") or "reviews",
        dishes_collection=os.getenv("DISHES_COLLECTION") or "dishes",
        dish_reviews_collection=os.getenv("DISH_REVIEWS_COLLECTION") or "dish_reviews",
        worker_port=_int_env("WORKER_PORT", 9000),
    )
