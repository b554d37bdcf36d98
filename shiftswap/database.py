import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterator, MutableMapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from shiftswap import errors
from shiftswap.config import settings

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")
T = TypeVar("T")

# Logical collection names
ASSIGNMENTS = "schedule"
SWAP_REQUESTS = "swap_requests"
SHIFT_REQUESTS = "shift_requests"
NOTIFICATIONS = "notifications"
SYSTEM = "system"

Listener = Callable[[], Awaitable[None] | None]


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def all(self) -> list[V]:
        return list(self._store.values())

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __iter__(self) -> Iterator[V]:
        return iter(self._store.values())

    def __len__(self) -> int:
        return len(self._store)


class Collection(InMemoryKeyValueDatabase[str, V]):
    """
    A named collection of documents keyed by their ``id``.

    Every write bumps the document's version and the collection's revision.
    Transactions compare both at commit time to detect stale reads.
    """

    def __init__(
        self,
        name: str,
        unique_key: Callable[[V], Hashable] | None = None,
        unique_error: Callable[[Hashable], errors.ShiftSwapError] | None = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.revision = 0
        self._versions: dict[str, int] = {}
        self._unique_key = unique_key
        self._unique_error = unique_error

    def version(self, doc_id: str) -> int:
        return self._versions.get(doc_id, 0)

    def put(self, key: str, value: V) -> None:
        super().put(key, value)
        self._bump(key)

    def delete(self, key: str) -> None:
        if key in self:
            super().delete(key)
            self._bump(key)

    def clear(self) -> None:
        super().clear()
        self._versions.clear()
        self.revision += 1

    def _bump(self, key: str) -> None:
        self._versions[key] = self.version(key) + 1
        self.revision += 1

    def check_unique(self, pending: dict[str, V | None]) -> None:
        """
        Raise if applying ``pending`` (id -> document, None for delete) would
        leave two documents with the same unique key.
        """
        if self._unique_key is None:
            return

        taken: dict[Hashable, str] = {}
        for doc_id, doc in self._store.items():
            if doc_id not in pending:
                taken[self._unique_key(doc)] = doc_id

        for doc_id, doc in pending.items():
            if doc is None:
                continue
            key = self._unique_key(doc)
            owner = taken.get(key)
            if owner is not None and owner != doc_id:
                if self._unique_error is not None:
                    raise self._unique_error(key)
                raise errors.ConflictError(
                    f"Unique key {key} already exists in {self.name}"
                )
            taken[key] = doc_id


class Transaction:
    """
    Read-then-conditional-write unit of work.

    Reads see committed state and are recorded; writes are buffered and only
    applied by ``DocumentStore.run_transaction`` if nothing that was read has
    changed since. Writes are never visible in partial form.
    """

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._doc_reads: dict[tuple[str, str], int] = {}
        self._query_reads: dict[str, int] = {}
        self._writes: dict[str, dict[str, BaseModel | None]] = {}

    async def get(self, collection: str, doc_id: str) -> Any:
        # Yield to the loop like a real round-trip to the store would.
        await asyncio.sleep(0)
        coll = self._store.collection(collection)
        self._doc_reads.setdefault((collection, doc_id), coll.version(doc_id))
        doc = coll.get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    async def query(
        self, collection: str, predicate: Callable[[Any], bool]
    ) -> list[Any]:
        await asyncio.sleep(0)
        coll = self._store.collection(collection)
        self._query_reads.setdefault(collection, coll.revision)
        return [doc.model_copy(deep=True) for doc in coll if predicate(doc)]

    def set(self, collection: str, doc: BaseModel) -> None:
        self._writes.setdefault(collection, {})[doc.id] = doc.model_copy(deep=True)

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.setdefault(collection, {})[doc_id] = None

    def is_stale(self) -> bool:
        for (collection, doc_id), version in self._doc_reads.items():
            if self._store.collection(collection).version(doc_id) != version:
                return True
        for collection, revision in self._query_reads.items():
            if self._store.collection(collection).revision != revision:
                return True
        return False

    def commit(self) -> "set[str]":
        """Validate and apply all buffered writes. Caller holds the commit lock."""
        for collection, writes in self._writes.items():
            self._store.collection(collection).check_unique(writes)

        for collection, writes in self._writes.items():
            coll = self._store.collection(collection)
            for doc_id, doc in writes.items():
                if doc is None:
                    coll.delete(doc_id)
                else:
                    coll.put(doc_id, doc)
        return set(self._writes)


class DocumentStore:
    """
    In-memory document store with optimistic multi-document transactions,
    batched deletes and change listeners.
    """

    def __init__(self) -> None:
        self._collections: dict[str, Collection] = {
            ASSIGNMENTS: Collection(
                ASSIGNMENTS,
                unique_key=lambda doc: doc.unique_key,
                unique_error=errors.DuplicateAssignment,
            ),
            SWAP_REQUESTS: Collection(SWAP_REQUESTS),
            SHIFT_REQUESTS: Collection(SHIFT_REQUESTS),
            NOTIFICATIONS: Collection(NOTIFICATIONS),
            SYSTEM: Collection(SYSTEM),
        }
        self._commit_lock = asyncio.Lock()
        self._listeners: dict[str, list[Listener]] = {}

    def collection(self, name: str) -> Collection:
        try:
            return self._collections[name]
        except KeyError:
            raise KeyError(f"Unknown collection: {name}") from None

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: int | None = None,
    ) -> T:
        """
        Run ``fn`` inside a transaction, re-running it while its reads went
        stale before commit. Exceptions raised by ``fn`` abort the attempt
        with nothing applied.
        """
        attempts = max_attempts or settings.transaction_max_attempts
        for attempt in range(1, attempts + 1):
            tx = Transaction(self)
            result = await fn(tx)

            async with self._commit_lock:
                if tx.is_stale():
                    logger.info(
                        f"Transaction read stale data, retrying "
                        f"(attempt {attempt}/{attempts})"
                    )
                    continue
                changed = tx.commit()

            await self._notify(changed)
            return result

        raise errors.TransactionConflict(
            f"Transaction did not commit after {attempts} attempts"
        )

    async def get(self, collection: str, doc_id: str) -> Any:
        doc = self.collection(collection).get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    async def query(
        self,
        collection: str,
        predicate: Callable[[Any], bool] | None = None,
        sort_key: Callable[[Any], Any] | None = None,
        reverse: bool = False,
    ) -> list[Any]:
        docs = [
            doc.model_copy(deep=True)
            for doc in self.collection(collection)
            if predicate is None or predicate(doc)
        ]
        if sort_key is not None:
            docs.sort(key=sort_key, reverse=reverse)
        return docs

    async def put(self, collection: str, doc: BaseModel) -> None:
        """Single-document write, still subject to unique constraints."""

        async def _write(tx: Transaction) -> None:
            tx.set(collection, doc)

        await self.run_transaction(_write)

    async def delete_many(self, collection: str, doc_ids: list[str]) -> int:
        """Batched unconditional delete; ids already gone are skipped."""
        coll = self.collection(collection)
        deleted = 0
        async with self._commit_lock:
            for doc_id in doc_ids:
                if doc_id in coll:
                    coll.delete(doc_id)
                    deleted += 1
        if deleted:
            await self._notify({collection})
        return deleted

    def listen(self, collection: str, callback: Listener) -> Callable[[], None]:
        self.collection(collection)
        self._listeners.setdefault(collection, []).append(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(collection, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    async def _notify(self, collections: set[str]) -> None:
        for collection in collections:
            for callback in list(self._listeners.get(collection, [])):
                try:
                    result = callback()
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(
                        f"Change listener on {collection} failed: {e}",
                        exc_info=True,
                    )

    def clear(self) -> None:
        for coll in self._collections.values():
            coll.clear()
        self._listeners.clear()
        self._commit_lock = asyncio.Lock()


store = DocumentStore()
