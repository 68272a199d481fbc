"""Restaurant catalog pass: clear the collection, then rebuild it from Yelp + Google Places."""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from catalog_sync.core.config import Settings
from catalog_sync.core.store import DocumentStore, Repository
from catalog_sync.etl.identity import MalformedRecordError
from catalog_sync.etl.matcher import IdentityMatcher
from catalog_sync.etl.replace import BulkReplaceCoordinator
from catalog_sync.etl.transform import merge, parse_yelp_business
from catalog_sync.models import CanonicalRecord, PassResult, PassState
from catalog_sync.vendors.yelp import YelpClient

logger = logging.getLogger(__name__)


class SyncPassError(RuntimeError):
    """Raised when a pass cannot continue; carries the counters gathered so far."""

    def __init__(self, message: str, result: PassResult) -> None:
        super().__init__(message)
        self.result = result


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def restaurant_repository(store: DocumentStore, collection: str) -> Repository[CanonicalRecord]:
    return Repository(store, collection, serialize=lambda record: record.to_document(), key=lambda record: record.id)


class RestaurantSync:
    """Drive one sequential pass over the primary source.

    Items are processed in the order Yelp returns them. A failure on one item
    is logged and counted; only the clear step or a page fetch can fail the
    pass.
    """

    def __init__(
        self,
        yelp: YelpClient,
        matcher: IdentityMatcher,
        store: DocumentStore,
        settings: Settings,
        normalizer: Callable[..., CanonicalRecord] = merge,
        clock: Callable[[], str] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.yelp = yelp
        self.matcher = matcher
        self.settings = settings
        self.normalizer = normalizer
        self.clock = clock
        self.sleep = sleep
        self.collection = settings.restaurants_collection
        self.repository = restaurant_repository(store, self.collection)
        self.coordinator = BulkReplaceCoordinator(store)
        self.state = PassState.IDLE
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Ask the pass to stop before the next item."""
        self._cancelled.set()

    def _fail(self, result: PassResult, stage: str, exc: Exception) -> None:
        self.state = result.state = PassState.FAILED
        result.error = f"{stage}: {exc}"
        logger.error(
            "Restaurant pass failed during %s: %s (seen=%d persisted=%d skipped=%d)",
            stage,
            exc,
            result.seen,
            result.persisted,
            result.skipped,
        )
        raise SyncPassError(result.error, result) from exc

    def run(self) -> PassResult:
        result = PassResult(collection=self.collection)
        self._cancelled.clear()
        logger.info(
            "Starting restaurant pass location=%s term=%s collection=%s",
            self.settings.location,
            self.settings.search_term,
            self.collection,
        )

        self.state = result.state = PassState.CLEARING
        try:
            self.coordinator.clear(self.collection)
        except Exception as exc:  # noqa: BLE001
            self._fail(result, "clear", exc)

        self.state = result.state = PassState.PAGINATING
        cursor: Optional[int] = 0
        pages = 0
        while cursor is not None:
            if self.settings.max_pages is not None and pages >= self.settings.max_pages:
                logger.info("Reached max_pages=%d", self.settings.max_pages)
                break
            try:
                items, next_cursor = self.yelp.fetch_page(cursor, self.settings.page_size)
            except Exception as exc:  # noqa: BLE001
                self._fail(result, f"pagination at offset {cursor}", exc)

            logger.info("Processing batch of %d restaurants (offset: %d)", len(items), cursor)
            if not items:
                break

            for summary in items:
                if self._cancelled.is_set():
                    self.state = result.state = PassState.CANCELLED
                    logger.warning(
                        "Restaurant pass cancelled: seen=%d persisted=%d skipped=%d",
                        result.seen,
                        result.persisted,
                        result.skipped,
                    )
                    return result
                result.seen += 1
                label = _label(summary)
                try:
                    record_id = self.sync_item(summary)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Error processing restaurant %s: %s", label, exc)
                    result.record_skipped(label)
                    continue
                result.record_persisted(record_id)
                logger.info("Saved restaurant %d: %s (%s)", result.persisted, label, record_id)

            pages += 1
            cursor = next_cursor
            logger.info("Total restaurants processed so far: %d", result.persisted)
            if cursor is not None and self.settings.page_delay > 0:
                self.sleep(self.settings.page_delay)

        self.state = result.state = PassState.DONE
        logger.info(
            "Completed restaurant pass: seen=%d persisted=%d skipped=%d",
            result.seen,
            result.persisted,
            result.skipped,
        )
        return result

    def sync_item(self, summary: Dict[str, Any]) -> str:
        """Match, normalize and persist a single search result; return its document id."""
        business_id = summary.get("id")
        if not business_id:
            raise MalformedRecordError(f"search result {summary.get('name')!r} has no id")

        details = self.yelp.get_business(business_id)
        primary = parse_yelp_business({**summary, **(details or {})})
        secondary = self.matcher.match(primary)
        record = self.normalizer(primary, secondary, self.clock())
        return self.repository.put(record)


def _label(summary: Dict[str, Any]) -> str:
    name = summary.get("name") or "<unnamed>"
    return f"{name} [{summary.get('id') or '?'}]"
