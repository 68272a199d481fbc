"""Utilities for turning source payloads into catalog records."""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from catalog_sync.etl.identity import MalformedRecordError, restaurant_id, review_id
from catalog_sync.models import (
    Address,
    CanonicalRecord,
    Images,
    Rating,
    RawPrimaryEntity,
    RawSecondaryEntity,
    RecordStatus,
    ReviewRecord,
    ReviewSource,
    SourceIds,
    SourceRating,
)

logger = logging.getLogger(__name__)

MAX_RATING = 5.0


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None or isinstance(value, bool):
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        # Counts may arrive with thousands separators ("1,204").
        try:
            return int(float(value.replace(",", "").strip()))
        except (OverflowError, ValueError):
            return None
    return None


def _clamp_rating(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return max(0.0, min(MAX_RATING, value))


def _clamp_count(value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    return max(0, value)


def _unique_in_order(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def parse_yelp_business(payload: Dict[str, Any]) -> RawPrimaryEntity:
    """Build a RawPrimaryEntity from a Yelp business (search summary or detail payload)."""
    if not isinstance(payload, dict):
        raise MalformedRecordError("Yelp business payload must be an object")

    external_id = _strip_or_none(payload.get("id"))
    name = _strip_or_none(payload.get("name"))
    if not external_id:
        raise MalformedRecordError(f"Yelp business {name!r} is missing an id")
    if not name:
        raise MalformedRecordError(f"Yelp business {external_id} is missing a name")

    location = payload.get("location") or {}
    coordinates = payload.get("coordinates") or {}
    display_address = [line for line in location.get("display_address") or [] if line]
    address = Address(
        street=_strip_or_none(location.get("address1")),
        city=_strip_or_none(location.get("city")),
        state=_strip_or_none(location.get("state")),
        zip=_strip_or_none(location.get("zip_code")),
        country=_strip_or_none(location.get("country")),
        full=", ".join(display_address) or None,
        latitude=_safe_float(coordinates.get("latitude")),
        longitude=_safe_float(coordinates.get("longitude")),
    )

    categories = []
    for category in payload.get("categories") or []:
        title = category.get("title") if isinstance(category, dict) else category
        title = _strip_or_none(title)
        if title:
            categories.append(title)

    is_closed = payload.get("is_closed")

    return RawPrimaryEntity(
        external_id=external_id,
        name=name,
        address=address,
        category_tags=categories,
        rating=_safe_float(payload.get("rating")),
        rating_count=_safe_int(payload.get("review_count")),
        phone=_strip_or_none(payload.get("display_phone")) or _strip_or_none(payload.get("phone")),
        website=_strip_or_none(payload.get("url")),
        image_url=_strip_or_none(payload.get("image_url")),
        photos=[photo for photo in payload.get("photos") or [] if isinstance(photo, str) and photo],
        is_closed=is_closed if isinstance(is_closed, bool) else None,
        transactions=[str(t) for t in payload.get("transactions") or []],
        raw=payload,
    )


def parse_place_details(result: Dict[str, Any]) -> RawSecondaryEntity:
    place_id = _strip_or_none(result.get("place_id"))
    if not place_id:
        raise MalformedRecordError("Places result is missing a place_id")
    return RawSecondaryEntity(
        place_id=place_id,
        name=_strip_or_none(result.get("name")),
        formatted_address=_strip_or_none(result.get("formatted_address")),
        rating=_safe_float(result.get("rating")),
        rating_count=_safe_int(result.get("user_ratings_total")),
        phone=_strip_or_none(result.get("formatted_phone_number")),
        opening_hours=result.get("opening_hours"),
        price_level=_safe_int(result.get("price_level")),
        website=_strip_or_none(result.get("website")),
        raw=result,
    )


def _status_for(primary: RawPrimaryEntity) -> RecordStatus:
    if primary.is_closed is None:
        return RecordStatus.PENDING
    return RecordStatus.CLOSED if primary.is_closed else RecordStatus.ACTIVE


def _merge_address(primary: RawPrimaryEntity, secondary: Optional[RawSecondaryEntity]) -> Address:
    address = Address(
        street=primary.address.street,
        city=primary.address.city,
        state=primary.address.state,
        zip=primary.address.zip,
        country=primary.address.country,
        full=primary.address.full,
        latitude=primary.address.latitude,
        longitude=primary.address.longitude,
    )
    if address.is_empty() and secondary is not None and secondary.formatted_address:
        address.full = secondary.formatted_address
    return address


def merge(
    primary: RawPrimaryEntity,
    secondary: Optional[RawSecondaryEntity],
    synced_at: str,
) -> CanonicalRecord:
    """Reconcile one primary entity with its optional secondary match.

    Identity fields come from the primary source and are only filled from the
    secondary when empty. The secondary rating is informational; the overall
    rating is always the primary's.
    """
    record_id = restaurant_id(primary)

    def pick(primary_value: Optional[str], secondary_value: Optional[str]) -> Optional[str]:
        return primary_value or secondary_value or None

    secondary_rating = None
    if secondary is not None:
        secondary_rating = SourceRating(
            value=_clamp_rating(secondary.rating),
            count=_clamp_count(secondary.rating_count),
        )

    primary_value = _clamp_rating(primary.rating)
    rating = Rating(
        overall=primary_value if primary_value is not None else 0.0,
        primary=SourceRating(value=primary_value, count=_clamp_count(primary.rating_count)),
        secondary=secondary_rating,
    )

    price_level = 0
    if secondary is not None and secondary.price_level is not None:
        price_level = secondary.price_level

    return CanonicalRecord(
        id=record_id,
        name=pick(primary.name, secondary.name if secondary else None) or "",
        address=_merge_address(primary, secondary),
        phone=pick(primary.phone, secondary.phone if secondary else None),
        website=pick(primary.website, secondary.website if secondary else None),
        category_tags=_unique_in_order(primary.category_tags),
        rating=rating,
        price_level=price_level,
        images=Images(primary=primary.image_url, gallery=list(primary.photos)),
        source_ids=SourceIds(primary_id=record_id, secondary_id=secondary.place_id if secondary else None),
        raw_snapshot={"primary": primary.raw, "secondary": secondary.raw if secondary else None},
        status=_status_for(primary),
        synced_at=synced_at,
        transactions=list(primary.transactions),
    )


def _epoch_to_iso(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.isoformat()
    return None


def parse_review_rating(value: Any) -> int:
    number = _safe_float(value)
    rating = int(round(number)) if number is not None and math.isfinite(number) else None
    if rating is None or not 1 <= rating <= 5:
        raise MalformedRecordError(f"review rating {value!r} is outside 1-5")
    return rating


def parse_google_review(review: Dict[str, Any], parent_id: str, parent_name: Optional[str] = None) -> ReviewRecord:
    author_name = _strip_or_none(review.get("author_name"))
    if not author_name:
        raise MalformedRecordError("review is missing an author name")
    source_timestamp = review.get("time")
    timestamp = _epoch_to_iso(source_timestamp)
    if timestamp is None:
        raise MalformedRecordError(f"invalid review timestamp {source_timestamp!r}")

    return ReviewRecord(
        id=review_id(parent_id, source_timestamp, author_name),
        parent_id=parent_id,
        parent_name=parent_name,
        author_name=author_name,
        author_photo=_strip_or_none(review.get("profile_photo_url")),
        rating=parse_review_rating(review.get("rating")),
        comment=review.get("text") or "",
        timestamp=timestamp,
        source=ReviewSource.EXTERNAL,
        source_timestamp=str(source_timestamp),
        platform="google",
        relative_time=_strip_or_none(review.get("relative_time_description")),
    )
