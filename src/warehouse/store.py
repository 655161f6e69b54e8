"""Document store port and its protean-repository adapter.

Services never call ``current_domain.repository_for`` themselves: they read
and write documents (aggregates) through a ``DocumentStore`` handed to their
constructors, addressed by container name and document id.
"""

import threading
from abc import ABC, abstractmethod

import structlog

from warehouse.errors import ConcurrencyConflictError

logger = structlog.get_logger(__name__)

# Container names
PRODUCTS = "products"
LOCATIONS = "locations"
INVENTORY_RECORDS = "inventory_records"
LOTS = "lots"
STOCK_MOVEMENTS = "stock_movements"
ALLOCATIONS = "allocations"
ORDERS = "orders"
WAVES = "waves"
PICK_TASKS = "pick_tasks"
PICK_EXCEPTIONS = "pick_exceptions"
PACKING_SLIPS = "packing_slips"
PURCHASE_ORDERS = "purchase_orders"
ASNS = "asns"
RECEIPTS = "receipts"
PUTAWAY_TASKS = "putaway_tasks"
CARRIERS = "carriers"
SHIPMENTS = "shipments"
RETURN_AUTHORIZATIONS = "return_authorizations"

# Memory and SQL providers page query results; scans read one large page.
_SCAN_LIMIT = 10_000


class DocumentStore(ABC):
    """Key-addressed document store with named containers.

    Every write bumps the document's revision. Services serialise their
    read-modify-write sequences with keyed locks and write without
    ``expected_revision``; callers editing a document without holding those
    locks (product edits, for one) pass the revision they read, and a stale
    one raises ``ConcurrencyConflictError``.
    """

    @abstractmethod
    def create_container(self, name: str, document_cls, eager: tuple[str, ...] = ()) -> None:
        """Register a container holding documents of ``document_cls``.

        ``eager`` names child collections loaded while the store lock is held.
        """
        ...

    @abstractmethod
    def add(self, container: str, doc, expected_revision: int | None = None) -> str:
        """Insert or replace a document and return its id."""
        ...

    @abstractmethod
    def get(self, container: str, doc_id: str):
        """Return a document; raises ``ObjectNotFoundError`` if it is missing."""
        ...

    @abstractmethod
    def update(self, container: str, doc_id: str, patch: dict, expected_revision: int | None = None):
        """Apply attribute changes to a stored document and return it."""
        ...

    @abstractmethod
    def remove(self, container: str, doc_id: str) -> None: ...

    @abstractmethod
    def list(self, container: str, **filters) -> list:
        """Return every document matching the exact-value filters."""
        ...

    @abstractmethod
    def revision(self, container: str, doc_id: str) -> int:
        """Number of writes applied to a document by this store (0 if never written)."""
        ...


class RepositoryStore(DocumentStore):
    """DocumentStore backed by protean repositories of a domain.

    Every call runs under one re-entrant lock, so each write is applied whole
    and is visible to the next reader. Multi-document sequences are made
    consistent by the caller's keyed locks, not by the store.
    """

    def __init__(self, domain):
        self.domain = domain
        self._containers: dict[str, tuple] = {}
        self._revisions: dict[tuple[str, str], int] = {}
        self._lock = threading.RLock()

    def create_container(self, name, document_cls, eager=()):
        self._containers[name] = (document_cls, tuple(eager))

    def _repository(self, container):
        try:
            document_cls, _ = self._containers[container]
        except KeyError:
            raise KeyError(f"Unknown container: {container}") from None
        return self.domain.repository_for(document_cls)

    def _load(self, container, doc):
        _, eager = self._containers[container]
        for attr in eager:
            list(getattr(doc, attr) or [])
        return doc

    def _check_revision(self, container, doc_id, expected_revision):
        current = self._revisions.get((container, doc_id), 0)
        if expected_revision is not None and current != expected_revision:
            logger.warning(
                "Write rejected on stale revision",
                container=container,
                doc_id=doc_id,
                expected=expected_revision,
                current=current,
            )
            raise ConcurrencyConflictError(
                {"revision": [f"{container}/{doc_id} changed (expected {expected_revision}, found {current})"]}
            )

    def add(self, container, doc, expected_revision=None):
        doc_id = str(doc.id)
        with self._lock:
            self._check_revision(container, doc_id, expected_revision)
            self._repository(container).add(doc)
            self._revisions[(container, doc_id)] = self._revisions.get((container, doc_id), 0) + 1
        return doc_id

    def get(self, container, doc_id):
        with self._lock:
            return self._load(container, self._repository(container).get(doc_id))

    def update(self, container, doc_id, patch, expected_revision=None):
        with self._lock:
            doc = self.get(container, doc_id)
            for attr, value in patch.items():
                setattr(doc, attr, value)
            self.add(container, doc, expected_revision=expected_revision)
            return doc

    def remove(self, container, doc_id):
        with self._lock:
            repo = self._repository(container)
            repo._dao.delete(repo.get(doc_id))
            self._revisions.pop((container, str(doc_id)), None)

    def list(self, container, **filters):
        with self._lock:
            query = self._repository(container)._dao.query
            if filters:
                query = query.filter(**filters)
            items = query.limit(_SCAN_LIMIT).all().items
            return [self._load(container, doc) for doc in items]

    def revision(self, container, doc_id):
        with self._lock:
            return self._revisions.get((container, str(doc_id)), 0)
