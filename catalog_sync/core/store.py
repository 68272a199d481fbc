"""Document store interface and the generic repository the sync core depends on."""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
T = TypeVar("T")


class StoreError(RuntimeError):
    """Raised when the backing store rejects an operation."""


class DocumentStore(ABC):
    """Minimal keyed document store. No multi-document transactions are assumed."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, document: Document, merge: bool = False) -> None:
        ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def list_all(self, collection: str) -> List[Tuple[str, Document]]:
        ...

    @abstractmethod
    def delete_many(self, collection: str, doc_ids: Sequence[str]) -> int:
        """Delete one batch of refs and return how many were removed."""

    def list_where(self, collection: str, field: str, value: Any) -> List[Tuple[str, Document]]:
        return [(doc_id, doc) for doc_id, doc in self.list_all(collection) if doc.get(field) == value]

    def close(self) -> None:
        """Release any connections held by the store."""


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store used for dry runs and tests."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        document = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    def set(self, collection: str, doc_id: str, document: Document, merge: bool = False) -> None:
        if not doc_id:
            raise StoreError("document id is required")
        docs = self._collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(document))
        else:
            docs[doc_id] = copy.deepcopy(document)

    def delete(self, collection: str, doc_id: str) -> None:
        self._collections.get(collection, {}).pop(doc_id, None)

    def list_all(self, collection: str) -> List[Tuple[str, Document]]:
        return [(doc_id, copy.deepcopy(doc)) for doc_id, doc in self._collections.get(collection, {}).items()]

    def delete_many(self, collection: str, doc_ids: Sequence[str]) -> int:
        docs = self._collections.get(collection, {})
        removed = 0
        for doc_id in doc_ids:
            if docs.pop(doc_id, None) is not None:
                removed += 1
        return removed


class Repository(Generic[T]):
    """Typed writes into one collection under each record's deterministic key."""

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        serialize: Callable[[T], Document],
        key: Callable[[T], str],
    ) -> None:
        self.store = store
        self.collection = collection
        self._serialize = serialize
        self._key = key

    def put(self, record: T) -> str:
        doc_id = self._key(record)
        self.store.set(self.collection, doc_id, self._serialize(record), merge=False)
        return doc_id


def chunked(items: Iterable[str], size: int) -> Iterable[List[str]]:
    batch: List[str] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch
