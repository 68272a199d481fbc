"""Deterministic document keys.

Every key here is a pure function of stable source fields so a re-sync
overwrites instead of duplicating. Two external reviews by the same author,
with the same source timestamp, on the same parent share a key; the later
write wins.
"""

import re
from typing import Any

from catalog_sync.models import RawPrimaryEntity

_ILLEGAL_KEY_CHARS = re.compile(r"[.#$\[\]/]")
_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


class MalformedRecordError(ValueError):
    """Raised when a source payload lacks a field the pipeline requires."""


def sanitize_key(value: str) -> str:
    return _ILLEGAL_KEY_CHARS.sub("_", value)


def slugify(value: str) -> str:
    return _SLUG_CHARS.sub("-", value.lower()).strip("-")


def restaurant_id(primary: RawPrimaryEntity) -> str:
    external_id = (primary.external_id or "").strip()
    if not external_id:
        raise MalformedRecordError(f"primary entity {primary.name!r} has no external id")
    return external_id


def review_id(parent_id: str, source_timestamp: Any, author_name: str) -> str:
    if not parent_id:
        raise MalformedRecordError("review parent id is required")
    return sanitize_key(f"{parent_id}_{source_timestamp}_{author_name}")


def dish_id(parent_id: str, section: str, name: str) -> str:
    if not parent_id or not name:
        raise MalformedRecordError("dish parent id and name are required")
    # Names with no ASCII letters slugify to nothing; keep them verbatim.
    name_part = slugify(name) or name.strip()
    return sanitize_key(f"{parent_id}_{slugify(section or '') or 'menu'}_{name_part}")
