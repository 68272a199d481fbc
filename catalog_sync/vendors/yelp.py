"""Client utilities for the Yelp Fusion business directory (primary source)."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from catalog_sync.core.config import YELP_MAX_PAGE_SIZE
from catalog_sync.core.rate_limit import RateLimiter
from catalog_sync.vendors.http import PermanentSourceError, RateLimitedClient

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.yelp.com/v3"
# Yelp rejects searches where offset + limit exceeds this.
YELP_MAX_RESULTS = 1000
USER_AGENT = "CatalogSyncBot/1.0"


class YelpClient(RateLimitedClient):
    """Paginated search plus detail lookups against Yelp Fusion."""

    source_name = "yelp"

    def __init__(
        self,
        api_key: str,
        limiter: RateLimiter,
        location: str,
        term: str = "restaurants",
        radius: int = 8000,
        sort_by: str = "best_match",
        session: Optional[requests.Session] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ) -> None:
        super().__init__(limiter, session=session, max_retries=max_retries, retry_delay=retry_delay)
        if not api_key:
            raise PermanentSourceError("YELP_API_KEY is required")
        self._headers = {"Authorization": f"Bearer {api_key}", "User-Agent": USER_AGENT}
        self.location = location
        self.term = term
        self.radius = radius
        self.sort_by = sort_by

    def search_businesses(
        self,
        location: str,
        term: str = "restaurants",
        radius: int = 8000,
        offset: int = 0,
        limit: int = 20,
        sort_by: str = "best_match",
    ) -> Dict[str, Any]:
        params = {
            "location": location,
            "term": term,
            "radius": radius,
            "offset": offset,
            "limit": limit,
            "sort_by": sort_by,
        }
        return self.get_json(f"{_BASE_URL}/businesses/search", params=params, headers=self._headers)

    def get_business(self, business_id: str) -> Dict[str, Any]:
        if not business_id:
            raise PermanentSourceError("business id is required")
        return self.get_json(f"{_BASE_URL}/businesses/{business_id}", headers=self._headers)

    def fetch_page(self, cursor: int, page_size: int) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """Return one page of business summaries and the next offset, or None when done."""
        limit = min(page_size, YELP_MAX_PAGE_SIZE, YELP_MAX_RESULTS - cursor)
        if limit <= 0:
            return [], None

        payload = self.search_businesses(
            self.location,
            term=self.term,
            radius=self.radius,
            offset=cursor,
            limit=limit,
            sort_by=self.sort_by,
        )
        items = [item for item in payload.get("businesses") or [] if isinstance(item, dict)]
        if not items:
            return [], None

        next_cursor = cursor + len(items)
        total = payload.get("total")
        ceiling = YELP_MAX_RESULTS if not isinstance(total, int) else min(total, YELP_MAX_RESULTS)
        if next_cursor >= ceiling:
            return items, None
        return items, next_cursor


class YelpWebClient(RateLimitedClient):
    """Fetches public Yelp pages (business, menu and dish review pages) as HTML."""

    source_name = "yelp_web"

    def fetch_html(self, url: str) -> str:
        if not url:
            raise PermanentSourceError("url is required")
        return self.get_text(url, headers={"User-Agent": USER_AGENT, "Accept": "text/html"})
