"""Wipe-then-rebuild helpers for catalog collections.

None of this is atomic. A failure after the delete phase leaves the
collection partially rebuilt; since every write uses a deterministic key,
re-running the whole pass is the recovery.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Tuple

from catalog_sync.core.store import DocumentStore, Repository, chunked

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


@dataclass
class WriteReport:
    written: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class BulkReplaceCoordinator:
    def __init__(self, store: DocumentStore, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.batch_size = batch_size

    def _delete_ids(self, collection: str, doc_ids: List[str]) -> int:
        deleted = 0
        for batch in chunked(doc_ids, self.batch_size):
            deleted += self.store.delete_many(collection, batch)
        return deleted

    def clear(self, collection: str) -> int:
        """Delete every document in ``collection``; return how many were removed."""
        doc_ids = [doc_id for doc_id, _ in self.store.list_all(collection)]
        deleted = self._delete_ids(collection, doc_ids)
        logger.info("Deleted %d documents from %s", deleted, collection)
        return deleted

    def clear_children(self, collection: str, parent_field: str, parent_id: str, **match: Any) -> List[str]:
        """Delete the documents in ``collection`` whose ``parent_field`` equals ``parent_id``.

        Extra keyword arguments narrow the selection to documents whose fields
        equal the given values.
        """
        doc_ids = [
            doc_id
            for doc_id, doc in self.store.list_where(collection, parent_field, parent_id)
            if all(doc.get(key) == value for key, value in match.items())
        ]
        deleted = self._delete_ids(collection, doc_ids)
        logger.info("Deleted %d documents from %s for %s=%s", deleted, collection, parent_field, parent_id)
        return doc_ids

    def clear_orphans(self, collection: str, parent_field: str, parent_ids: Iterable[str], **match: Any) -> List[str]:
        """Delete documents whose ``parent_field`` points outside ``parent_ids``.

        Keyword arguments narrow the selection the same way as ``clear_children``.
        """
        live = set(parent_ids)
        doc_ids = [
            doc_id
            for doc_id, doc in self.store.list_all(collection)
            if doc.get(parent_field) not in live and all(doc.get(key) == value for key, value in match.items())
        ]
        deleted = self._delete_ids(collection, doc_ids)
        logger.info("Deleted %d orphaned documents from %s", deleted, collection)
        return doc_ids

    def write_all(self, repository: Repository, records: Iterable) -> WriteReport:
        report = WriteReport()
        for record in records:
            try:
                doc_id = repository.put(record)
            except Exception as exc:  # noqa: BLE001
                record_id = getattr(record, "id", "<unknown>")
                logger.error("Failed to write %s/%s: %s", repository.collection, record_id, exc)
                report.failed.append((record_id, str(exc)))
                continue
            report.written.append(doc_id)
        logger.info(
            "Wrote %d documents to %s (%d failed)", len(report.written), repository.collection, len(report.failed)
        )
        return report

    def replace_all(self, repository: Repository, records: Iterable) -> WriteReport:
        self.clear(repository.collection)
        return self.write_all(repository, records)
