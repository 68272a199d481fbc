"""Parse Yelp menu pages and dish review pages into dishes and reviews."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from catalog_sync.etl.identity import MalformedRecordError, review_id
from catalog_sync.etl.transform import parse_review_rating
from catalog_sync.models import ReviewRecord, ReviewSource

logger = logging.getLogger(__name__)

STARS_REGEX = re.compile(r"i-stars--regular-(\d)")
PRICE_REGEX = re.compile(r"\d+(?:\.\d+)?")
_DATE_FORMATS = ("%m/%d/%Y", "%b %d, %Y", "%B %d, %Y", "%Y-%m-%d")


@dataclass(slots=True)
class MenuItem:
    name: str
    section: str
    description: Optional[str] = None
    price: Optional[float] = None
    image_url: Optional[str] = None
    reviews_url: Optional[str] = None


@dataclass(slots=True)
class ScrapedReview:
    reviewer_name: str
    text: str
    rating: int = 0
    reviewer_location: Optional[str] = None
    review_date: Optional[str] = None


def _text(node) -> Optional[str]:
    if node is None:
        return None
    value = node.get_text(" ", strip=True)
    return value or None


def parse_price(raw: Optional[str]) -> Optional[float]:
    if not raw:
        return None
    match = PRICE_REGEX.search(raw.replace(",", ""))
    return float(match.group(0)) if match else None


def find_menu_url(html: str, base_url: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    link = soup.select_one('a[href*="/menu/"]')
    if link is None or not link.get("href"):
        return None
    return urljoin(base_url, link["href"])


def parse_menu(html: str, base_url: str) -> List[MenuItem]:
    """Each ``.section-header`` is followed by a sibling holding its ``.menu-item`` entries."""
    soup = BeautifulSoup(html, "html.parser")
    items: List[MenuItem] = []
    for header in soup.select(".section-header"):
        section = _text(header.find("h2")) or ""
        container = header.find_next_sibling()
        if container is None:
            continue
        for entry in container.select(".menu-item"):
            name = _text(entry.find("h4"))
            if not name:
                continue
            image = entry.select_one(".photo-box-img")
            link = entry.select_one("h4 a")
            items.append(
                MenuItem(
                    name=name,
                    section=section,
                    description=_text(entry.select_one(".menu-item-details-description")),
                    price=parse_price(_text(entry.select_one(".menu-item-price-amount"))),
                    image_url=image.get("src") if image is not None else None,
                    reviews_url=urljoin(base_url, link["href"]) if link is not None and link.get("href") else None,
                )
            )
    return items


def parse_dish_reviews(html: str) -> List[ScrapedReview]:
    soup = BeautifulSoup(html, "html.parser")
    reviews: List[ScrapedReview] = []
    for node in soup.select(".review"):
        name = _text(node.select_one(".user-display-name"))
        text = _text(node.select_one(".review-content p"))
        if not name or not text:
            continue
        stars = node.select_one(".i-stars")
        stars_class = " ".join(stars.get("class", [])) if stars is not None else ""
        match = STARS_REGEX.search(stars_class)
        reviews.append(
            ScrapedReview(
                reviewer_name=name,
                text=text,
                rating=int(match.group(1)) if match else 0,
                reviewer_location=_text(node.select_one(".user-location b")),
                review_date=_text(node.select_one(".rating-qualifier")),
            )
        )
    return reviews


def parse_review_date(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    candidate = raw.split("Updated review")[0].strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).replace(tzinfo=timezone.utc).isoformat()
        except ValueError:
            continue
    return None


def to_dish_review(scraped: ScrapedReview, dish_id: str, dish_name: str) -> ReviewRecord:
    timestamp = parse_review_date(scraped.review_date)
    if timestamp is None:
        raise MalformedRecordError(f"invalid review date {scraped.review_date!r}")
    return ReviewRecord(
        id=review_id(dish_id, scraped.review_date, scraped.reviewer_name),
        parent_id=dish_id,
        parent_name=dish_name,
        author_name=scraped.reviewer_name,
        rating=parse_review_rating(scraped.rating),
        comment=scraped.text,
        timestamp=timestamp,
        source=ReviewSource.EXTERNAL,
        source_timestamp=scraped.review_date,
        platform="yelp",
    )
