"""Refresh the external Google reviews attached to every catalogued restaurant."""

import logging
from typing import Any, Dict, List

from catalog_sync.core.config import Settings
from catalog_sync.core.store import DocumentStore, Repository
from catalog_sync.etl.identity import MalformedRecordError
from catalog_sync.etl.replace import BulkReplaceCoordinator, WriteReport
from catalog_sync.etl.transform import parse_google_review
from catalog_sync.jobs.sync_restaurants import SyncPassError
from catalog_sync.models import PassResult, PassState, ReviewRecord, ReviewSource
from catalog_sync.vendors.google_places import GooglePlacesClient

logger = logging.getLogger(__name__)


def review_repository(store: DocumentStore, collection: str) -> Repository[ReviewRecord]:
    return Repository(store, collection, serialize=lambda record: record.to_document(), key=lambda record: record.id)


def top_reviews(reviews: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    """Highest rated first; ties keep the order Google returned them in."""

    def rating_of(review: Dict[str, Any]) -> float:
        try:
            return float(review.get("rating") or 0)
        except (TypeError, ValueError):
            return 0.0

    return sorted(reviews, key=rating_of, reverse=True)[:limit]


class ReviewSync:
    """Replace each restaurant's external reviews wholesale.

    In-app (internal) reviews are never touched. The restaurant document is
    read from the store first, so every review written has an existing parent.
    """

    def __init__(self, places: GooglePlacesClient, store: DocumentStore, settings: Settings) -> None:
        self.places = places
        self.store = store
        self.settings = settings
        self.collection = settings.reviews_collection
        self.repository = review_repository(store, self.collection)
        self.coordinator = BulkReplaceCoordinator(store)
        self.state = PassState.IDLE

    def _fail(self, result: PassResult, stage: str, exc: Exception) -> None:
        self.state = result.state = PassState.FAILED
        result.error = f"{stage}: {exc}"
        logger.error("Review pass failed: %s", result.error)
        raise SyncPassError(result.error, result) from exc

    def run(self) -> PassResult:
        result = PassResult(collection=self.collection)
        try:
            restaurants = self.store.list_all(self.settings.restaurants_collection)
        except Exception as exc:  # noqa: BLE001
            self._fail(result, "list restaurants", exc)

        logger.info("Found %d restaurants in the database", len(restaurants))
        # Restaurants dropped by the last restaurant pass leave external reviews behind.
        self.state = result.state = PassState.CLEARING
        try:
            self.coordinator.clear_orphans(
                self.collection,
                "parent_id",
                (restaurant_id for restaurant_id, _ in restaurants),
                source=ReviewSource.EXTERNAL.value,
            )
        except Exception as exc:  # noqa: BLE001
            self._fail(result, "clear orphaned reviews", exc)

        self.state = result.state = PassState.PAGINATING
        for restaurant_id, restaurant in restaurants:
            result.seen += 1
            name = restaurant.get("name") or restaurant_id
            place_id = (restaurant.get("source_ids") or {}).get("secondary_id")
            if not place_id:
                logger.warning("No Google Place ID for restaurant: %s", name)
                try:
                    self.clear_external(restaurant_id)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Error clearing reviews for %s: %s", name, exc)
                result.record_skipped(restaurant_id)
                continue
            try:
                report = self.sync_restaurant(restaurant_id, name, place_id)
            except Exception as exc:  # noqa: BLE001
                logger.error("Error processing reviews for %s: %s", name, exc)
                result.record_skipped(restaurant_id)
                continue
            if report.failed:
                result.record_skipped(restaurant_id)
                continue
            result.record_persisted(restaurant_id)

        self.state = result.state = PassState.DONE
        logger.info(
            "Completed review pass: restaurants seen=%d refreshed=%d skipped=%d",
            result.seen,
            result.persisted,
            result.skipped,
        )
        return result

    def clear_external(self, restaurant_id: str) -> List[str]:
        return self.coordinator.clear_children(
            self.collection, "parent_id", restaurant_id, source=ReviewSource.EXTERNAL.value
        )

    def sync_restaurant(self, restaurant_id: str, name: str, place_id: str) -> WriteReport:
        raw_reviews = self.places.place_reviews(place_id)
        records: List[ReviewRecord] = []
        for raw in top_reviews(raw_reviews, self.settings.max_reviews_per_restaurant):
            try:
                records.append(parse_google_review(raw, restaurant_id, name))
            except MalformedRecordError as exc:
                logger.warning("Skipping review for %s: %s", name, exc)

        self.clear_external(restaurant_id)
        report = self.coordinator.write_all(self.repository, records)
        logger.info("Processed top %d Google reviews for: %s", len(report.written), name)
        return report
