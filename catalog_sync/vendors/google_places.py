"""Client utilities for the Google Places API (secondary source)."""

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from catalog_sync.core.rate_limit import RateLimiter
from catalog_sync.etl.transform import parse_place_details
from catalog_sync.models import RawSecondaryEntity
from catalog_sync.vendors.http import PermanentSourceError, RateLimitedClient, TransientSourceError

logger = logging.getLogger(__name__)
_BASE_URL = "https://maps.googleapis.com/maps/api/place"

DETAIL_FIELDS = (
    "place_id",
    "name",
    "rating",
    "formatted_address",
    "formatted_phone_number",
    "opening_hours",
    "price_level",
    "website",
    "user_ratings_total",
)
_TRANSIENT_STATUSES = {"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"}


class GooglePlacesError(PermanentSourceError):
    """Raised when the Places API returns a non-retryable status."""


def _check_status(payload: Dict[str, Any], operation: str) -> None:
    status = payload.get("status")
    if status in {"OK", "ZERO_RESULTS"}:
        return
    logger.error("%s failed: status=%s, error_message=%s", operation, status, payload.get("error_message"))
    message = payload.get("error_message") or status
    if status in _TRANSIENT_STATUSES:
        raise TransientSourceError(f"google_places {operation}: {message}")
    raise GooglePlacesError(message)


class GooglePlacesClient(RateLimitedClient):
    source_name = "google_places"

    def __init__(
        self,
        api_key: str,
        limiter: RateLimiter,
        session: Optional[requests.Session] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ) -> None:
        super().__init__(limiter, session=session, max_retries=max_retries, retry_delay=retry_delay)
        if not api_key:
            raise GooglePlacesError("GOOGLE_MAPS_API_KEY is required")
        self.api_key = api_key

    def _get_checked(self, endpoint: str, params: Dict[str, Any], operation: str) -> Dict[str, Any]:
        def operation_call() -> Dict[str, Any]:
            response = self._send(f"{_BASE_URL}/{endpoint}", params=params)
            try:
                payload = response.json()
            except ValueError as exc:
                raise TransientSourceError(f"google_places {operation} returned invalid JSON") from exc
            _check_status(payload, operation)
            return payload

        return self._call(operation_call, operation)

    def find_place(self, query: str) -> Optional[str]:
        """Return the top-ranked place id for a free-text query, or None."""
        if not query or not query.strip():
            raise GooglePlacesError("query must be provided for place lookups")
        params = {
            "input": query.strip(),
            "inputtype": "textquery",
            "fields": "place_id",
            "key": self.api_key,
        }
        payload = self._get_checked("findplacefromtext/json", params, "find_place")
        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        return candidates[0].get("place_id") or None

    def place_details(self, place_id: str, fields: Iterable[str] = DETAIL_FIELDS) -> Dict[str, Any]:
        params = {"place_id": place_id, "key": self.api_key, "fields": ",".join(fields)}
        payload = self._get_checked("details/json", params, "place_details")
        return payload.get("result", {})

    def lookup(self, query: str) -> Optional[RawSecondaryEntity]:
        """Find the best candidate for ``query`` and fetch its details."""
        place_id = self.find_place(query)
        if not place_id:
            logger.debug("No Places candidate for query=%s", query)
            return None
        details = self.place_details(place_id)
        if not details:
            return None
        details.setdefault("place_id", place_id)
        return parse_place_details(details)

    def place_reviews(self, place_id: str) -> List[Dict[str, Any]]:
        details = self.place_details(place_id, fields=("reviews",))
        reviews = details.get("reviews") or []
        return [review for review in reviews if isinstance(review, dict)]
