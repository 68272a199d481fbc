"""Core data models shared by the catalog sync pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RecordStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    PENDING = "pending"


class ReviewSource(str, Enum):
    EXTERNAL = "external"
    INTERNAL = "internal"


class PassState(str, Enum):
    IDLE = "idle"
    CLEARING = "clearing"
    PAGINATING = "paginating"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class Address:
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    full: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def is_empty(self) -> bool:
        return not any((self.street, self.city, self.state, self.zip, self.full))


@dataclass(slots=True)
class RawPrimaryEntity:
    """A business as returned by the Yelp directory."""

    external_id: str
    name: str
    address: Address = field(default_factory=Address)
    category_tags: List[str] = field(default_factory=list)
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    image_url: Optional[str] = None
    photos: List[str] = field(default_factory=list)
    is_closed: Optional[bool] = None
    transactions: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(slots=True)
class RawSecondaryEntity:
    """A place as returned by Google Places details."""

    place_id: str
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    phone: Optional[str] = None
    opening_hours: Optional[Dict[str, Any]] = None
    price_level: Optional[int] = None
    website: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(slots=True)
class SourceRating:
    value: Optional[float]
    count: Optional[int]


@dataclass(slots=True)
class Rating:
    overall: float
    primary: SourceRating
    secondary: Optional[SourceRating] = None


@dataclass(slots=True)
class Images:
    primary: Optional[str] = None
    gallery: List[str] = field(default_factory=list)


@dataclass(slots=True)
class SourceIds:
    primary_id: str
    secondary_id: Optional[str] = None


@dataclass(slots=True)
class CanonicalRecord:
    """The merged restaurant document written to the catalog."""

    id: str
    name: str
    address: Address
    phone: Optional[str]
    website: Optional[str]
    category_tags: List[str]
    rating: Rating
    price_level: int
    images: Images
    source_ids: SourceIds
    raw_snapshot: Dict[str, Optional[Dict[str, Any]]]
    status: RecordStatus
    synced_at: str
    transactions: List[str] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        document = asdict(self)
        document["status"] = self.status.value
        return document


@dataclass(slots=True)
class ReviewRecord:
    id: str
    parent_id: str
    author_name: str
    rating: int
    comment: str
    timestamp: str
    source: ReviewSource = ReviewSource.EXTERNAL
    source_timestamp: Optional[str] = None
    parent_name: Optional[str] = None
    author_photo: Optional[str] = None
    platform: Optional[str] = None
    relative_time: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        document = asdict(self)
        document["source"] = self.source.value
        return document


@dataclass(slots=True)
class DishRating:
    average: float = 0.0
    total: int = 0


@dataclass(slots=True)
class Dish:
    id: str
    restaurant_id: str
    name: str
    synced_at: str
    description: Optional[str] = None
    price: Optional[float] = None
    section: Optional[str] = None
    image_url: Optional[str] = None
    rating: DishRating = field(default_factory=DishRating)
    source: str = "yelp"

    def to_document(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class PassResult:
    """Progress counters for one sync pass."""

    collection: str
    state: PassState = PassState.IDLE
    seen: int = 0
    persisted: int = 0
    skipped: int = 0
    last_persisted: Optional[str] = None
    skipped_items: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def record_persisted(self, record_id: str) -> None:
        self.persisted += 1
        self.last_persisted = record_id

    def record_skipped(self, label: str) -> None:
        self.skipped += 1
        self.skipped_items.append(label)

    def summary(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "state": self.state.value,
            "seen": self.seen,
            "persisted": self.persisted,
            "skipped": self.skipped,
            "last_persisted": self.last_persisted,
            "skipped_items": list(self.skipped_items),
            "error": self.error,
        }
