"""Real-time mirror of one per-user sub-collection.

A ``SyncController`` owns one ordered, read-only list (a tuple) that is always
the decoded form of the most recent snapshot the store delivered. Mutations
go to the store and come back only through the next snapshot; the controller
never patches its list by hand.

States::

    IDLE -> SUBSCRIBING -> SYNCED -> (SYNCED | ERROR) -> STOPPED

``ERROR`` can be left by calling ``start`` again; ``STOPPED`` is final.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, Tuple, TypeVar

from planner import validators
from planner.domain import Note, Task, Transaction
from planner.errors import DecodeError, NotFound, StoreError
from planner.events import LIST_CHANGED, SYNC_FAILED, EventBus, Handler, make_event
from planner.functional import Either, Maybe, Right, failure, find_by_id
from planner.store import (
    ASCENDING, DESCENDING, NOTES, TODOS, TRANSACTIONS,
    DocumentSnapshot, DocumentStore, Subscription, collection_path,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

WRITE_FAILED_MESSAGE = "Could not save your changes. Please try again."
SYNC_FAILED_MESSAGE = "Could not load your data."


class SyncState(Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    SYNCED = "synced"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass(frozen=True)
class EntityKind(Generic[T]):
    """Everything the controller needs to know about one kind of record."""

    name: str
    collection: str
    decode: Callable[[str, dict], T]
    validate: Callable[[dict], Either]
    # None marks the kind as immutable once created
    validate_update: Optional[Callable[[dict, Optional[T]], Either]]
    order_by: str
    direction: str = ASCENDING


TASKS_KIND = EntityKind(
    name="task",
    collection=TODOS,
    decode=Task.from_doc,
    validate=validators.validate_task,
    validate_update=validators.validate_task_update,
    order_by="start",
)

NOTES_KIND = EntityKind(
    name="note",
    collection=NOTES,
    decode=Note.from_doc,
    validate=validators.validate_note,
    validate_update=validators.validate_note_update,
    order_by="edit",
    direction=DESCENDING,
)

TRANSACTIONS_KIND = EntityKind(
    name="transaction",
    collection=TRANSACTIONS,
    decode=Transaction.from_doc,
    validate=validators.validate_transaction,
    validate_update=None,
    order_by="date",
    direction=DESCENDING,
)


class SyncController(Generic[T]):

    def __init__(self, store: DocumentStore, kind: EntityKind[T]):
        self.kind = kind
        self._store = store
        self._bus = EventBus()
        self._items: Tuple[T, ...] = ()
        self._state = SyncState.IDLE
        self._error: Optional[Exception] = None
        self._user_id: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        # bumped on every start/stop so callbacks from an older watch are dropped
        self._generation = 0

    @property
    def items(self) -> Tuple[T, ...]:
        return self._items

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def loading(self) -> bool:
        return self._state is SyncState.SUBSCRIBING

    @property
    def active(self) -> bool:
        return self._state in (SyncState.SUBSCRIBING, SyncState.SYNCED)

    def get(self, record_id: str) -> Maybe[T]:
        return find_by_id(self._items, record_id)

    # subscription lifecycle

    def start(self, user_id: str, order_by: Optional[str] = None,
              direction: Optional[str] = None) -> None:
        if self._state is SyncState.STOPPED:
            raise RuntimeError(f"{self.kind.name} controller was stopped and cannot be restarted")
        if self.active:
            raise RuntimeError(f"{self.kind.name} controller is already started")
        if not user_id:
            raise ValueError("a user id is required to start syncing")

        self._generation += 1
        generation = self._generation
        self._user_id = user_id
        self._items = ()
        self._error = None
        self._state = SyncState.SUBSCRIBING

        path = collection_path(user_id, self.kind.collection)
        logger.debug("subscribing to %s", path)
        subscription = self._store.watch(
            path,
            order_by or self.kind.order_by,
            direction or self.kind.direction,
            on_snapshot=lambda docs: self._on_snapshot(generation, docs),
            on_error=lambda exc: self._on_error(generation, exc),
        )
        if generation == self._generation and self.active:
            self._subscription = subscription
        else:
            # failed or stopped while the watch was being opened
            subscription.unsubscribe()

    def stop(self) -> None:
        if self._state is SyncState.STOPPED:
            return
        self._generation += 1
        self._release()
        self._state = SyncState.STOPPED
        self._items = ()
        self._bus.clear()
        logger.debug("%s sync stopped for user %s", self.kind.name, self._user_id)

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for list changes and sync failures.

        If a list or a failure is already available it is delivered at once.
        Returns a callable that removes the handler.
        """
        unsubscribers = [self._bus.subscribe(name, handler) for name in (LIST_CHANGED, SYNC_FAILED)]
        if self._state is SyncState.SYNCED:
            payload = self._payload()
            handler(make_event(LIST_CHANGED, payload), payload)
        elif self._state is SyncState.ERROR:
            payload = self._payload()
            handler(make_event(SYNC_FAILED, payload), payload)

        def unsubscribe() -> None:
            for unsub in unsubscribers:
                unsub()

        return unsubscribe

    def _on_snapshot(self, generation: int, docs: Tuple[DocumentSnapshot, ...]) -> None:
        if generation != self._generation or not self.active:
            logger.debug("dropping late %s snapshot", self.kind.name)
            return
        try:
            items = tuple(self.kind.decode(doc.id, doc.data) for doc in docs)
        except DecodeError as e:
            logger.error("rejecting %s snapshot: %s", self.kind.name, e)
            self._fail(e)
            return
        self._items = items
        self._state = SyncState.SYNCED
        self._publish(LIST_CHANGED)

    def _on_error(self, generation: int, exc: Exception) -> None:
        if generation != self._generation or not self.active:
            logger.debug("dropping late %s error: %s", self.kind.name, exc)
            return
        logger.warning("%s subscription failed: %s", self.kind.name, exc)
        self._fail(exc)

    def _fail(self, exc: Exception) -> None:
        self._release()
        self._items = ()
        self._error = exc
        self._state = SyncState.ERROR
        self._publish(SYNC_FAILED)

    def _publish(self, name: str) -> None:
        # runs on the store's delivery path; a broken view must not leak into it
        try:
            self._bus.publish(name, self._payload())
        except Exception:
            logger.exception("%s listener failed on %s", self.kind.name, name)

    def _release(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()

    def _payload(self) -> dict:
        payload = {"kind": self.kind.name, "state": self._state, "items": self._items, "error": None}
        if self._error is not None:
            payload["error"] = {"error": "sync_failed", "message": SYNC_FAILED_MESSAGE, "detail": str(self._error)}
        return payload

    # mutations

    def _path(self) -> Optional[str]:
        if not self.active or self._user_id is None:
            return None
        return collection_path(self._user_id, self.kind.collection)

    async def create(self, data: dict) -> Either[dict, str]:
        checked = self.kind.validate(data)
        if checked.is_left():
            logger.info("rejected new %s: %s", self.kind.name, checked.get_error()["message"])
            return checked
        path = self._path()
        if path is None:
            return failure("not_subscribed", "You need to be signed in to make changes.")
        try:
            doc_id = await self._store.add(path, checked.get_or_else(None))
        except StoreError as e:
            logger.warning("creating %s failed: %s", self.kind.name, e)
            return failure("write_failed", WRITE_FAILED_MESSAGE, detail=str(e))
        return Right(doc_id)

    async def update(self, record_id: str, fields: dict) -> Either[dict, str]:
        if self.kind.validate_update is None:
            return failure("immutable", f"A {self.kind.name} cannot be edited once created.")
        current = self.get(record_id).get_or_else(None)
        checked = self.kind.validate_update(fields, current)
        if checked.is_left():
            logger.info("rejected %s update %s: %s", self.kind.name, record_id, checked.get_error()["message"])
            return checked
        path = self._path()
        if path is None:
            return failure("not_subscribed", "You need to be signed in to make changes.")
        try:
            await self._store.update(path, record_id, checked.get_or_else(None))
        except NotFound as e:
            logger.warning("%s %s no longer exists: %s", self.kind.name, record_id, e)
            return failure("not_found", f"This {self.kind.name} no longer exists.", detail=str(e))
        except StoreError as e:
            logger.warning("updating %s %s failed: %s", self.kind.name, record_id, e)
            return failure("write_failed", WRITE_FAILED_MESSAGE, detail=str(e))
        return Right(record_id)

    async def delete(self, record_id: str) -> Either[dict, str]:
        path = self._path()
        if path is None:
            return failure("not_subscribed", "You need to be signed in to make changes.")
        try:
            await self._store.delete(path, record_id)
        except StoreError as e:
            logger.warning("deleting %s %s failed: %s", self.kind.name, record_id, e)
            return failure("write_failed", WRITE_FAILED_MESSAGE, detail=str(e))
        return Right(record_id)
