import json

import pytest

from catalog_sync.etl import transform
from catalog_sync.etl.identity import MalformedRecordError
from catalog_sync.models import Address, RawPrimaryEntity, RawSecondaryEntity, RecordStatus, ReviewSource

SYNCED_AT = "2024-05-01T12:00:00+00:00"


def yelp_payload(**overrides):
    payload = {
        "id": "joes-stone-crab-miami",
        "name": "Joe's Stone Crab",
        "location": {
            "address1": "11 Washington Ave",
            "city": "Miami Beach",
            "state": "FL",
            "zip_code": "33139",
            "country": "US",
            "display_address": ["11 Washington Ave", "Miami Beach, FL 33139"],
        },
        "coordinates": {"latitude": 25.7686, "longitude": -80.1350},
        "categories": [
            {"alias": "seafood", "title": "Seafood"},
            {"alias": "steak", "title": "Steakhouses"},
            {"alias": "seafood2", "title": "Seafood"},
        ],
        "rating": 4.5,
        "review_count": 3200,
        "phone": "+13056730365",
        "display_phone": "(305) 673-0365",
        "url": "https://www.yelp.com/biz/joes-stone-crab-miami",
        "image_url": "https://img.example/primary.jpg",
        "photos": ["https://img.example/1.jpg", "https://img.example/2.jpg"],
        "is_closed": False,
        "transactions": ["delivery"],
    }
    payload.update(overrides)
    return payload


def secondary(**overrides):
    values = dict(
        place_id="ChIJ-place",
        name="Joe's Stone Crab Restaurant",
        formatted_address="11 Washington Ave, Miami Beach, FL 33139, USA",
        rating=4.6,
        rating_count=9000,
        phone="(305) 999-0000",
        price_level=3,
        website="https://joesstonecrab.com",
        raw={"place_id": "ChIJ-place"},
    )
    values.update(overrides)
    return RawSecondaryEntity(**values)


def test_parse_yelp_business_maps_fields():
    primary = transform.parse_yelp_business(yelp_payload())

    assert primary.external_id == "joes-stone-crab-miami"
    assert primary.address.street == "11 Washington Ave"
    assert primary.address.full == "11 Washington Ave, Miami Beach, FL 33139"
    assert primary.address.latitude == 25.7686
    assert primary.phone == "(305) 673-0365"
    assert primary.category_tags == ["Seafood", "Steakhouses", "Seafood"]
    assert primary.is_closed is False
    assert primary.raw["id"] == "joes-stone-crab-miami"


def test_parse_yelp_business_requires_id_and_name():
    with pytest.raises(MalformedRecordError):
        transform.parse_yelp_business(yelp_payload(id=None))
    with pytest.raises(MalformedRecordError):
        transform.parse_yelp_business(yelp_payload(name="  "))


def test_merge_primary_wins_and_secondary_fills_empty_fields():
    primary = RawPrimaryEntity(external_id="p1", name="", phone="555")
    match = secondary(name="Joe's", phone="999")

    record = transform.merge(primary, match, SYNCED_AT)

    assert record.name == "Joe's"
    assert record.phone == "555"
    assert record.website == "https://joesstonecrab.com"
    assert record.address.full == "11 Washington Ave, Miami Beach, FL 33139, USA"


def test_merge_keeps_primary_address_when_present():
    primary = transform.parse_yelp_business(yelp_payload())
    record = transform.merge(primary, secondary(), SYNCED_AT)

    assert record.address.city == "Miami Beach"
    assert record.address.full == "11 Washington Ave, Miami Beach, FL 33139"
    assert record.website == "https://www.yelp.com/biz/joes-stone-crab-miami"


def test_merge_without_match():
    primary = transform.parse_yelp_business(yelp_payload())

    record = transform.merge(primary, None, SYNCED_AT)

    assert record.rating.secondary is None
    assert record.price_level == 0
    assert record.source_ids.secondary_id is None
    assert record.raw_snapshot["secondary"] is None


def test_merge_rating_is_primary_authoritative():
    primary = transform.parse_yelp_business(yelp_payload(rating=3.5))

    record = transform.merge(primary, secondary(rating=4.9), SYNCED_AT)

    assert record.rating.overall == 3.5
    assert record.rating.primary.value == 3.5
    assert record.rating.primary.count == 3200
    assert record.rating.secondary.value == 4.9
    assert record.price_level == 3


def test_merge_clamps_ratings_and_defaults_overall():
    primary = RawPrimaryEntity(external_id="p1", name="X", rating=None)
    record = transform.merge(primary, secondary(rating=7.0, rating_count=-3), SYNCED_AT)

    assert record.rating.overall == 0.0
    assert record.rating.primary.value is None
    assert record.rating.secondary.value == 5.0
    assert record.rating.secondary.count == 0


def test_merge_categories_images_status():
    primary = transform.parse_yelp_business(yelp_payload())
    record = transform.merge(primary, None, SYNCED_AT)

    assert record.category_tags == ["Seafood", "Steakhouses"]
    assert record.images.primary == "https://img.example/primary.jpg"
    assert record.images.gallery == ["https://img.example/1.jpg", "https://img.example/2.jpg"]
    assert record.status is RecordStatus.ACTIVE
    assert record.to_document()["status"] == "active"

    closed = transform.merge(transform.parse_yelp_business(yelp_payload(is_closed=True)), None, SYNCED_AT)
    unknown = transform.merge(RawPrimaryEntity(external_id="p2", name="Y"), None, SYNCED_AT)
    assert closed.status is RecordStatus.CLOSED
    assert unknown.status is RecordStatus.PENDING


def test_merge_is_deterministic():
    first = transform.merge(transform.parse_yelp_business(yelp_payload()), secondary(), SYNCED_AT)
    second = transform.merge(transform.parse_yelp_business(yelp_payload()), secondary(), SYNCED_AT)

    assert json.dumps(first.to_document(), sort_keys=True) == json.dumps(second.to_document(), sort_keys=True)
    assert first.id == "joes-stone-crab-miami"
    assert first.source_ids.primary_id == first.id


def test_parse_place_details():
    entity = transform.parse_place_details(
        {"place_id": "p1", "name": "Acme", "user_ratings_total": "1,204", "price_level": 2}
    )
    assert entity.rating_count == 1204
    assert entity.price_level == 2

    with pytest.raises(MalformedRecordError):
        transform.parse_place_details({"name": "No id"})


def test_parse_google_review():
    review = transform.parse_google_review(
        {
            "author_name": "Ana B.",
            "rating": 5,
            "text": "Great stone crab",
            "time": 1700000000,
            "relative_time_description": "a month ago",
        },
        parent_id="joes",
        parent_name="Joe's",
    )

    assert review.id == "joes_1700000000_Ana B_"
    assert review.source is ReviewSource.EXTERNAL
    assert review.timestamp.startswith("2023-11-14")
    assert review.to_document()["source"] == "external"


@pytest.mark.parametrize(
    "raw",
    [
        {"author_name": "A", "rating": 0, "time": 1700000000},
        {"author_name": "A", "rating": 6, "time": 1700000000},
        {"author_name": "A", "rating": 4, "time": "yesterday"},
        {"rating": 4, "time": 1700000000},
    ],
)
def test_parse_google_review_rejects_malformed(raw):
    with pytest.raises(MalformedRecordError):
        transform.parse_google_review(raw, parent_id="joes")


def test_address_is_empty():
    assert Address().is_empty()
    assert Address(latitude=1.0, longitude=2.0).is_empty()
    assert not Address(city="Miami").is_empty()


@pytest.mark.parametrize(
    "raw, expected",
    [("1,204", 1204), ("-3", -3), ("4.5", 4), ("12 reviews", None), (7, 7), (None, None)],
)
def test_safe_int_parses_numeric_strings(raw, expected):
    assert transform._safe_int(raw) == expected


@pytest.mark.parametrize("raw, expected", [("4", 4), ("4.0", 4), (5.0, 5), ("3.6", 4)])
def test_parse_review_rating_accepts_numeric_strings(raw, expected):
    assert transform.parse_review_rating(raw) == expected


@pytest.mark.parametrize("raw", ["-3", "nan", "stars", None, 0])
def test_parse_review_rating_rejects_out_of_range(raw):
    with pytest.raises(MalformedRecordError):
        transform.parse_review_rating(raw)


def test_merge_keeps_negative_counts_clamped():
    primary = RawPrimaryEntity(external_id="p1", name="X", rating=4.0)
    record = transform.merge(primary, secondary(rating_count=transform._safe_int("-3")), SYNCED_AT)
    assert record.rating.secondary.count == 0
