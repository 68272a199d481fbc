"""Cross-reference a Yelp business against Google Places."""

import logging
from typing import Optional, Protocol

from catalog_sync.models import RawPrimaryEntity, RawSecondaryEntity

logger = logging.getLogger(__name__)


class PlaceLookup(Protocol):
    def lookup(self, query: str) -> Optional[RawSecondaryEntity]:
        ...


def build_match_query(primary: RawPrimaryEntity, default_locality: str = "") -> str:
    locality = primary.address.city or default_locality
    parts = [primary.name, primary.address.street, locality]
    return " ".join(part.strip() for part in parts if part and part.strip())


class IdentityMatcher:
    """Accept the secondary source's top-ranked candidate, or nothing.

    Candidates are not re-scored locally. "No match" is a normal outcome and
    returns None; lookup errors propagate to the caller.
    """

    def __init__(self, places: PlaceLookup, default_locality: str = "") -> None:
        self.places = places
        self.default_locality = default_locality

    def match(self, primary: RawPrimaryEntity) -> Optional[RawSecondaryEntity]:
        query = build_match_query(primary, self.default_locality)
        if not query:
            logger.info("No usable match query for %s", primary.external_id)
            return None

        candidate = self.places.lookup(query)
        if candidate is None:
            logger.info("No Places match for %s (query=%s)", primary.name, query)
            return None

        logger.debug("Matched %s -> %s", primary.external_id, candidate.place_id)
        return candidate
