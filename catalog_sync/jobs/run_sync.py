"""CLI job that runs one catalog sync pass."""

import argparse
import dataclasses
import logging
import signal
import threading
from typing import Any, List, Optional

from catalog_sync.core.config import ConfigError, Settings, get_settings
from catalog_sync.core.db import PostgresDocumentStore
from catalog_sync.core.rate_limit import RateLimiter
from catalog_sync.core.store import DocumentStore, InMemoryDocumentStore
from catalog_sync.etl.matcher import IdentityMatcher
from catalog_sync.jobs.sync_dishes import DishSync
from catalog_sync.jobs.sync_restaurants import RestaurantSync, SyncPassError
from catalog_sync.jobs.sync_reviews import ReviewSync
from catalog_sync.models import PassResult
from catalog_sync.vendors.google_places import GooglePlacesClient
from catalog_sync.vendors.yelp import YelpClient, YelpWebClient

logger = logging.getLogger(__name__)

TARGETS = ("restaurants", "reviews", "dishes")
EXIT_OK = 0
EXIT_PASS_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_store(settings: Settings, dry_run: bool = False) -> DocumentStore:
    if dry_run:
        logger.info("Dry run: writing to an in-memory store")
        return InMemoryDocumentStore()
    if not settings.database_url:
        raise ConfigError("DATABASE_URL is required unless --dry-run is given")
    return PostgresDocumentStore.connect(settings.database_url)


def _places_client(settings: Settings) -> GooglePlacesClient:
    if not settings.google_maps_api_key:
        raise ConfigError("GOOGLE_MAPS_API_KEY is required")
    return GooglePlacesClient(
        settings.google_maps_api_key,
        RateLimiter(settings.request_delay),
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay,
    )


def build_job(target: str, settings: Settings, store: DocumentStore) -> Any:
    """Wire the clients for ``target``; each client gets its own rate limiter."""
    if target == "restaurants":
        if not settings.yelp_api_key:
            raise ConfigError("YELP_API_KEY is required")
        yelp = YelpClient(
            settings.yelp_api_key,
            RateLimiter(settings.request_delay),
            location=settings.location,
            term=settings.search_term,
            radius=settings.search_radius,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
        )
        matcher = IdentityMatcher(_places_client(settings), default_locality=settings.default_locality)
        return RestaurantSync(yelp, matcher, store, settings)
    if target == "reviews":
        return ReviewSync(_places_client(settings), store, settings)
    if target == "dishes":
        web = YelpWebClient(
            RateLimiter(settings.request_delay),
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
        )
        return DishSync(web, store, settings)
    raise ValueError(f"unknown sync target {target!r}")


def run_sync_job(
    target: str,
    settings: Settings,
    store: DocumentStore,
    restaurant_id: Optional[str] = None,
) -> PassResult:
    job = build_job(target, settings, store)
    if hasattr(job, "cancel") and threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, lambda signum, frame: job.cancel())
    if target == "dishes":
        return job.run(restaurant_id=restaurant_id)
    return job.run()


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "location": args.location,
        "search_term": args.term,
        "page_size": args.page_size,
        "max_pages": args.max_pages,
    }
    return dataclasses.replace(settings, **{key: value for key, value in overrides.items() if value is not None})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a restaurant catalog sync pass")
    parser.add_argument("target", choices=TARGETS, help="Which collection to rebuild")
    parser.add_argument("--location", dest="location", help="Location seeding the Yelp search")
    parser.add_argument("--term", dest="term", help="Yelp search term")
    parser.add_argument("--page-size", dest="page_size", type=int, help="Results per Yelp page (max 50)")
    parser.add_argument("--max-pages", dest="max_pages", type=int, help="Stop after this many pages")
    parser.add_argument("--restaurant-id", dest="restaurant_id", help="Only rebuild dishes for this restaurant")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Write to an in-memory store")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    store: Optional[DocumentStore] = None
    try:
        settings = apply_overrides(get_settings(), args)
        store = build_store(settings, dry_run=args.dry_run)
        result = run_sync_job(args.target, settings, store, restaurant_id=args.restaurant_id)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR
    except SyncPassError as exc:
        logger.error("Sync pass failed: %s summary=%s", exc, exc.result.summary())
        return EXIT_PASS_FAILED
    except Exception as exc:  # noqa: BLE001
        logger.exception("Sync job failed: %s", exc)
        return EXIT_PASS_FAILED
    finally:
        if store is not None:
            store.close()

    logger.info("Sync summary: %s", result.summary())
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
