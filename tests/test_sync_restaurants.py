import pytest

from catalog_sync.core.config import Settings
from catalog_sync.core.store import InMemoryDocumentStore, StoreError
from catalog_sync.etl.transform import merge
from catalog_sync.jobs.sync_restaurants import RestaurantSync, SyncPassError
from catalog_sync.models import PassState, RawSecondaryEntity
from catalog_sync.vendors.http import TransientSourceError

SYNCED_AT = "2024-05-01T12:00:00+00:00"


def business(index, **extra):
    payload = {
        "id": f"biz-{index}",
        "name": f"Place {index}",
        "location": {"address1": f"{index} Main St", "city": "Fort Lauderdale"},
        "rating": 4.0,
        "review_count": 10,
        "is_closed": False,
    }
    payload.update(extra)
    return payload


class FakeYelp:
    """Serves pages keyed by offset; ``fail_at`` raises when that offset is requested."""

    def __init__(self, pages, fail_at=None):
        self.pages = pages
        self.fail_at = fail_at
        self.requested = []

    def fetch_page(self, cursor, page_size):
        self.requested.append((cursor, page_size))
        if cursor == self.fail_at:
            raise TransientSourceError("upstream 503")
        items, next_cursor = self.pages.get(cursor, ([], None))
        return list(items), next_cursor

    def get_business(self, business_id):
        return {"photos": [f"https://img.example/{business_id}.jpg"]}


class FakeMatcher:
    def __init__(self, matches=None):
        self.matches = matches or {}

    def match(self, primary):
        return self.matches.get(primary.external_id)


def make_settings(**overrides):
    values = dict(
        yelp_api_key="y",
        google_maps_api_key="g",
        database_url="",
        page_size=2,
        page_delay=0,
    )
    values.update(overrides)
    return Settings(**values)


def make_job(yelp, store=None, matcher=None, settings=None, **kwargs):
    store = store if store is not None else InMemoryDocumentStore()
    job = RestaurantSync(
        yelp,
        matcher or FakeMatcher(),
        store,
        settings or make_settings(),
        clock=lambda: SYNCED_AT,
        **kwargs,
    )
    return job, store


def test_pass_rebuilds_collection_from_every_page():
    store = InMemoryDocumentStore()
    store.set("restaurants", "stale", {"name": "Closed years ago"})
    yelp = FakeYelp({0: ([business(1), business(2)], 2), 2: ([business(3)], None)})
    matcher = FakeMatcher({"biz-2": RawSecondaryEntity(place_id="g-2", price_level=2, rating=4.4)})

    job, store = make_job(yelp, store=store, matcher=matcher)
    result = job.run()

    assert result.state is PassState.DONE
    assert (result.seen, result.persisted, result.skipped) == (3, 3, 0)
    assert sorted(doc_id for doc_id, _ in store.list_all("restaurants")) == ["biz-1", "biz-2", "biz-3"]
    matched = store.get("restaurants", "biz-2")
    assert matched["source_ids"] == {"primary_id": "biz-2", "secondary_id": "g-2"}
    assert matched["price_level"] == 2
    assert matched["images"]["gallery"] == ["https://img.example/biz-2.jpg"]
    unmatched = store.get("restaurants", "biz-1")
    assert unmatched["rating"]["secondary"] is None
    assert unmatched["price_level"] == 0
    assert yelp.requested == [(0, 2), (2, 2)]


def test_item_failure_is_isolated():
    def flaky_normalizer(primary, secondary, synced_at):
        if primary.external_id == "biz-2":
            raise ValueError("cannot normalize")
        return merge(primary, secondary, synced_at)

    yelp = FakeYelp({0: ([business(1), business(2), business(3)], None)})
    job, store = make_job(yelp, normalizer=flaky_normalizer)

    result = job.run()

    assert result.state is PassState.DONE
    assert (result.seen, result.persisted, result.skipped) == (3, 2, 1)
    assert result.skipped_items == ["Place 2 [biz-2]"]
    assert result.summary()["skipped_items"] == ["Place 2 [biz-2]"]
    assert result.last_persisted == "biz-3"
    assert sorted(doc_id for doc_id, _ in store.list_all("restaurants")) == ["biz-1", "biz-3"]


def test_malformed_item_is_skipped():
    yelp = FakeYelp({0: ([{"name": "No id"}, business(1)], None)})
    job, store = make_job(yelp)

    result = job.run()

    assert (result.seen, result.persisted, result.skipped) == (2, 1, 1)
    assert store.get("restaurants", "biz-1") is not None


def test_page_failure_fails_the_pass():
    yelp = FakeYelp({0: ([business(1), business(2)], 2)}, fail_at=2)
    job, store = make_job(yelp)

    with pytest.raises(SyncPassError) as exc_info:
        job.run()

    result = exc_info.value.result
    assert result.state is PassState.FAILED
    assert job.state is PassState.FAILED
    assert result.persisted == 2
    assert "offset 2" in result.error
    summary = result.summary()
    assert summary["last_persisted"] == "biz-2"
    assert summary["skipped_items"] == []
    assert summary["state"] == "failed"
    # Items written before the failure stay; the next full pass repairs the rest.
    assert len(store.list_all("restaurants")) == 2


def test_clear_failure_fails_before_fetching():
    class BrokenStore(InMemoryDocumentStore):
        def delete_many(self, collection, doc_ids):
            raise StoreError("delete rejected")

    store = BrokenStore()
    store.set("restaurants", "old", {})
    yelp = FakeYelp({0: ([business(1)], None)})
    job, _ = make_job(yelp, store=store)

    with pytest.raises(SyncPassError) as exc_info:
        job.run()

    assert exc_info.value.result.state is PassState.FAILED
    assert exc_info.value.result.error.startswith("clear")
    assert yelp.requested == []


def test_cancel_stops_before_next_item():
    yelp = FakeYelp({0: ([business(1), business(2), business(3)], None)})
    job, store = make_job(yelp)

    original = job.sync_item

    def cancel_after_first(summary):
        record_id = original(summary)
        job.cancel()
        return record_id

    job.sync_item = cancel_after_first
    result = job.run()

    assert result.state is PassState.CANCELLED
    assert (result.seen, result.persisted) == (1, 1)


def test_rerun_is_idempotent_apart_from_timestamps():
    pages = {0: ([business(1), business(2)], None)}
    store = InMemoryDocumentStore()
    # One clock read per item, two items per run.
    times = iter(["2024-05-01T00:00:00+00:00"] * 2 + ["2024-06-01T00:00:00+00:00"] * 2)
    job = RestaurantSync(FakeYelp(pages), FakeMatcher(), store, make_settings(), clock=lambda: next(times))

    job.run()
    first = dict(store.list_all("restaurants"))
    job.run()
    second = dict(store.list_all("restaurants"))

    assert first.keys() == second.keys()
    for doc_id in first:
        assert first[doc_id]["synced_at"] != second[doc_id]["synced_at"]
        first[doc_id].pop("synced_at")
        second[doc_id].pop("synced_at")
        assert first[doc_id] == second[doc_id]


def test_max_pages_and_page_delay():
    sleeps = []
    yelp = FakeYelp({0: ([business(1)], 1), 1: ([business(2)], 2), 2: ([business(3)], None)})
    job, store = make_job(yelp, settings=make_settings(max_pages=2, page_delay=1.5), sleep=sleeps.append)

    result = job.run()

    assert result.persisted == 2
    assert [cursor for cursor, _ in yelp.requested] == [0, 1]
    assert sleeps == [1.5, 1.5]
