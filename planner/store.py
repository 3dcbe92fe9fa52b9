"""Document store boundary.

Data lives in per-user sub-collections::

    users/{uid}                               profile document
    users/{uid}/todos/{id}                    tasks
    users/{uid}/notes/{id}                    notes
    users/{uid}/transactions/{id}             budget transactions
    users/{uid}/weeklyBudget/currentBudget    weekly budget setting

``DocumentStore`` is the interface the rest of the package talks to.
``InMemoryDocumentStore`` is a complete in-process implementation: ids are
assigned by the store, every commit is delivered to matching watchers as a
full ordered snapshot in commit order, and failures can be injected.
"""
import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict, List, NamedTuple, Optional, Tuple
from uuid import uuid4

from planner.errors import NotFound, PermissionDenied, StoreError

logger = logging.getLogger(__name__)

ASCENDING = "asc"
DESCENDING = "desc"

TODOS = "todos"
NOTES = "notes"
TRANSACTIONS = "transactions"
WEEKLY_BUDGET = "weeklyBudget"
CURRENT_BUDGET = "currentBudget"


def user_path(uid: str) -> str:
    return f"users/{uid}"


def collection_path(uid: str, collection: str) -> str:
    return f"{user_path(uid)}/{collection}"


def budget_path(uid: str) -> str:
    return f"{collection_path(uid, WEEKLY_BUDGET)}/{CURRENT_BUDGET}"


def split_document_path(doc_path: str) -> Tuple[str, str]:
    """'users/u1/weeklyBudget/currentBudget' -> ('users/u1/weeklyBudget', 'currentBudget')"""
    parent, sep, doc_id = doc_path.rstrip("/").rpartition("/")
    if not sep or not parent or not doc_id:
        raise ValueError(f"not a document path: {doc_path!r}")
    return parent, doc_id


class DocumentSnapshot(NamedTuple):
    id: str
    data: dict


SnapshotCallback = Callable[[Tuple[DocumentSnapshot, ...]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """Handle returned by ``DocumentStore.watch``; ``unsubscribe`` is idempotent."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel: Optional[Callable[[], None]] = cancel

    @property
    def active(self) -> bool:
        return self._cancel is not None

    def unsubscribe(self) -> None:
        cancel, self._cancel = self._cancel, None
        if cancel is not None:
            cancel()


class DocumentStore(ABC):

    @abstractmethod
    async def add(self, path: str, data: dict) -> str:
        """Create a document with a store-assigned id and return the id."""

    @abstractmethod
    async def update(self, path: str, doc_id: str, fields: dict) -> None:
        """Overwrite the given fields of an existing document."""

    @abstractmethod
    async def delete(self, path: str, doc_id: str) -> None:
        pass

    @abstractmethod
    async def get(self, doc_path: str) -> Optional[dict]:
        pass

    @abstractmethod
    async def set(self, doc_path: str, data: dict, merge: bool = False) -> None:
        pass

    @abstractmethod
    def watch(
        self,
        path: str,
        order_by: str,
        direction: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """Deliver the ordered contents of ``path`` now and after every change.

        ``on_error`` is terminal: once it fires, no further snapshots arrive.
        """


class _Watch:

    def __init__(self, path, order_by, direction, on_snapshot, on_error):
        self.path = path
        self.order_by = order_by
        self.direction = direction
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True


def _under(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def _sort_key(order_by: str):
    def key(item: Tuple[str, dict]):
        return (item[1][order_by], item[0])
    return key


class InMemoryDocumentStore(DocumentStore):

    def __init__(self):
        self._collections: Dict[str, Dict[str, dict]] = {}
        self._watches: List[_Watch] = []
        self._write_failures: Deque[Exception] = deque()
        self._revoked: List[str] = []
        self.write_attempts = 0

    # failure injection

    def fail_next_write(self, error: Exception) -> None:
        self._write_failures.append(error)

    def revoke(self, path_prefix: str, error: Optional[Exception] = None) -> None:
        """Deny access under ``path_prefix`` and terminate its live watches."""
        error = error or PermissionDenied(f"permission denied for {path_prefix}")
        self._revoked.append(path_prefix)
        for watch in list(self._watches):
            if watch.active and _under(watch.path, path_prefix):
                self._terminate(watch, error)

    def restore_access(self) -> None:
        self._revoked.clear()

    # reads

    def documents(self, path: str, order_by: Optional[str] = None,
                  direction: str = ASCENDING) -> Tuple[DocumentSnapshot, ...]:
        docs = self._collections.get(path, {})
        items = list(docs.items())
        if order_by is not None:
            items = [(i, d) for i, d in items if d.get(order_by) is not None]
            items.sort(key=_sort_key(order_by), reverse=direction == DESCENDING)
        return tuple(DocumentSnapshot(i, copy.deepcopy(d)) for i, d in items)

    @property
    def active_watch_count(self) -> int:
        return sum(1 for w in self._watches if w.active)

    async def get(self, doc_path: str) -> Optional[dict]:
        parent, doc_id = split_document_path(doc_path)
        self._check_access(doc_path)
        await asyncio.sleep(0)
        data = self._collections.get(parent, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    # writes

    async def add(self, path: str, data: dict) -> str:
        await self._begin_write(path)
        doc_id = uuid4().hex[:20]
        self._collections.setdefault(path, {})[doc_id] = copy.deepcopy(data)
        self._commit(path)
        return doc_id

    async def update(self, path: str, doc_id: str, fields: dict) -> None:
        await self._begin_write(path)
        docs = self._collections.get(path, {})
        if doc_id not in docs:
            raise NotFound(f"no document {path}/{doc_id}")
        docs[doc_id].update(copy.deepcopy(fields))
        self._commit(path)

    async def delete(self, path: str, doc_id: str) -> None:
        await self._begin_write(path)
        if self._collections.get(path, {}).pop(doc_id, None) is not None:
            self._commit(path)

    async def set(self, doc_path: str, data: dict, merge: bool = False) -> None:
        parent, doc_id = split_document_path(doc_path)
        await self._begin_write(doc_path)
        docs = self._collections.setdefault(parent, {})
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)
        self._commit(parent)

    # subscriptions

    def watch(self, path, order_by, direction, on_snapshot, on_error) -> Subscription:
        watch = _Watch(path, order_by, direction, on_snapshot, on_error)
        self._watches.append(watch)
        logger.debug("watch opened on %s ordered by %s %s", path, order_by, direction)
        subscription = Subscription(lambda: self._close(watch))
        try:
            self._check_access(path)
        except StoreError as e:
            self._terminate(watch, e)
            return subscription
        self._deliver(watch)
        return subscription

    def _close(self, watch: _Watch) -> None:
        watch.active = False
        if watch in self._watches:
            self._watches.remove(watch)
            logger.debug("watch closed on %s", watch.path)

    def _terminate(self, watch: _Watch, error: Exception) -> None:
        self._close(watch)
        try:
            watch.on_error(error)
        except Exception:
            logger.exception("error listener on %s failed", watch.path)

    def _deliver(self, watch: _Watch) -> None:
        if not watch.active:
            return
        # one failing listener must not starve the others or fail the write
        try:
            watch.on_snapshot(self.documents(watch.path, watch.order_by, watch.direction))
        except Exception:
            logger.exception("snapshot listener on %s failed", watch.path)

    def _check_access(self, path: str) -> None:
        for prefix in self._revoked:
            if _under(path, prefix):
                raise PermissionDenied(f"permission denied for {path}")

    async def _begin_write(self, path: str) -> None:
        self.write_attempts += 1
        await asyncio.sleep(0)
        if self._write_failures:
            raise self._write_failures.popleft()
        self._check_access(path)

    def _commit(self, path: str) -> None:
        for watch in list(self._watches):
            if watch.path == path:
                self._deliver(watch)
