"""Dish pass: rebuild dishes and their reviews from Yelp menu pages."""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from catalog_sync.core.config import Settings
from catalog_sync.core.store import DocumentStore, Repository
from catalog_sync.etl.identity import MalformedRecordError, dish_id
from catalog_sync.etl.menu import MenuItem, find_menu_url, parse_dish_reviews, parse_menu, to_dish_review
from catalog_sync.etl.replace import BulkReplaceCoordinator
from catalog_sync.etl.stats import summarize_ratings
from catalog_sync.jobs.sync_restaurants import SyncPassError, utc_now
from catalog_sync.jobs.sync_reviews import review_repository
from catalog_sync.models import Dish, DishRating, PassResult, PassState, ReviewRecord
from catalog_sync.vendors.yelp import YelpWebClient

logger = logging.getLogger(__name__)


class DishSync:
    """Clear then rebuild dishes, either for every restaurant or for a single one.

    Each dish is written before its reviews, and its rating is aggregated
    from the reviews ingested in the same run.
    """

    def __init__(
        self,
        web: YelpWebClient,
        store: DocumentStore,
        settings: Settings,
        clock: Callable[[], str] = utc_now,
    ) -> None:
        self.web = web
        self.store = store
        self.settings = settings
        self.clock = clock
        self.coordinator = BulkReplaceCoordinator(store)
        self.dishes = Repository(
            store, settings.dishes_collection, serialize=lambda dish: dish.to_document(), key=lambda dish: dish.id
        )
        self.dish_reviews = review_repository(store, settings.dish_reviews_collection)
        self.state = PassState.IDLE

    def _fail(self, result: PassResult, stage: str, exc: Exception) -> None:
        self.state = result.state = PassState.FAILED
        result.error = f"{stage}: {exc}"
        logger.error("Dish pass failed during %s: %s", stage, exc)
        raise SyncPassError(result.error, result) from exc

    def clear_restaurant(self, restaurant_id: str) -> None:
        """Delete one restaurant's dishes and every review attached to them."""
        dish_ids = [doc_id for doc_id, _ in self.store.list_where(self.dishes.collection, "restaurant_id", restaurant_id)]
        for existing_id in dish_ids:
            self.coordinator.clear_children(self.dish_reviews.collection, "parent_id", existing_id)
        self.coordinator.clear_children(self.dishes.collection, "restaurant_id", restaurant_id)

    def _restaurants(self, restaurant_id: Optional[str]) -> List[Tuple[str, Dict[str, Any]]]:
        if restaurant_id is None:
            return self.store.list_all(self.settings.restaurants_collection)
        restaurant = self.store.get(self.settings.restaurants_collection, restaurant_id)
        if restaurant is None:
            raise LookupError(f"restaurant {restaurant_id} does not exist")
        return [(restaurant_id, restaurant)]

    def run(self, restaurant_id: Optional[str] = None) -> PassResult:
        result = PassResult(collection=self.dishes.collection)
        try:
            restaurants = self._restaurants(restaurant_id)
        except Exception as exc:  # noqa: BLE001
            self._fail(result, "list restaurants", exc)

        self.state = result.state = PassState.CLEARING
        logger.info("Deleting existing dishes and reviews (restaurant=%s)", restaurant_id or "all")
        try:
            if restaurant_id is None:
                self.coordinator.clear(self.dish_reviews.collection)
                self.coordinator.clear(self.dishes.collection)
            else:
                self.clear_restaurant(restaurant_id)
        except Exception as exc:  # noqa: BLE001
            self._fail(result, "clear", exc)

        self.state = result.state = PassState.PAGINATING
        for current_id, restaurant in restaurants:
            result.seen += 1
            name = restaurant.get("name") or current_id
            try:
                written = self.sync_restaurant(current_id, restaurant)
            except Exception as exc:  # noqa: BLE001
                logger.error("Error processing dishes for %s: %s", name, exc)
                result.record_skipped(current_id)
                continue
            if written is None:
                result.record_skipped(current_id)
                continue
            result.record_persisted(current_id)
            logger.info("Completed %s: %d dishes", name, written)

        self.state = result.state = PassState.DONE
        logger.info(
            "Completed dish pass: restaurants seen=%d processed=%d skipped=%d",
            result.seen,
            result.persisted,
            result.skipped,
        )
        return result

    def sync_restaurant(self, restaurant_id: str, restaurant: Dict[str, Any]) -> Optional[int]:
        """Scrape one restaurant's menu; return the number of dishes written, or None if it has no menu."""
        website = restaurant.get("website") or ""
        if "yelp.com" not in website:
            logger.info("Restaurant %s has no valid Yelp website", restaurant_id)
            return None

        menu_url = find_menu_url(self.web.fetch_html(website), website)
        if not menu_url:
            logger.info("No menu link found for restaurant %s", restaurant_id)
            return None

        items = parse_menu(self.web.fetch_html(menu_url), menu_url)
        written = 0
        for item in items:
            try:
                self.sync_dish(restaurant_id, item)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to store dish %s for %s: %s", item.name, restaurant_id, exc)
                continue
            written += 1
        return written

    def sync_dish(self, restaurant_id: str, item: MenuItem) -> str:
        current_id = dish_id(restaurant_id, item.section, item.name)

        reviews: Dict[str, ReviewRecord] = {}
        if item.reviews_url:
            for scraped in parse_dish_reviews(self.web.fetch_html(item.reviews_url)):
                try:
                    review = to_dish_review(scraped, current_id, item.name)
                except MalformedRecordError as exc:
                    logger.warning("Skipping review for dish %s: %s", item.name, exc)
                    continue
                reviews[review.id] = review

        summary = summarize_ratings(review.rating for review in reviews.values())
        dish = Dish(
            id=current_id,
            restaurant_id=restaurant_id,
            name=item.name,
            synced_at=self.clock(),
            description=item.description,
            price=item.price,
            section=item.section or None,
            image_url=item.image_url,
            rating=DishRating(average=summary.average, total=summary.total),
        )
        self.dishes.put(dish)
        logger.info("Added dish: %s", item.name)
        self.coordinator.write_all(self.dish_reviews, reviews.values())
        return current_id
