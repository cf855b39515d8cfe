"""
In-process change notifications and the readers that consume them.

ChangeHub collects row changes during SQLAlchemy flushes and publishes them once
the transaction commits (rolled-back work is never announced). Readers subscribe
by table and event type:

    hub.subscribe("activity_logs", callback, event="INSERT")

ActivityFeed and MetricsFeed are the two readers used by the admin console.
Both re-read the store on every notification instead of trusting the payload.
Notifications are delivered to subscribers in the committing process only; there
is no cross-process fanout and no reconnect logic.
"""
from __future__ import annotations

import json
import logging
import queue
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import event as sa_event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
EVENT_ANY = "*"

_PENDING_KEY = "civic_pending_changes"


@dataclass(frozen=True)
class Notification:
    table: str
    event: str
    row: dict[str, Any] = field(default_factory=dict)


class Subscription:
    def __init__(self, hub: "ChangeHub", table: str, event: str, callback: Callable[[Notification], None]) -> None:
        self._hub = hub
        self.table = table
        self.event = event
        self.callback = callback
        self.active = True

    def matches(self, n: Notification) -> bool:
        return self.table == n.table and self.event in (EVENT_ANY, n.event)

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._hub._remove(self)


class ChangeHub:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self, table: str, callback: Callable[[Notification], None], *, event: str = EVENT_ANY) -> Subscription:
        if event not in (EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE, EVENT_ANY):
            raise ValueError(f"Unknown change event: {event}")
        sub = Subscription(self, table, event, callback)
        with self._lock:
            self._subscriptions.append(sub)
        logger.debug("Subscribed to %s/%s (%d active)", table, event, self.subscriber_count)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, n: Notification) -> None:
        with self._lock:
            targets = [sub for sub in self._subscriptions if sub.matches(n)]
        for sub in targets:
            try:
                sub.callback(n)
            except Exception:
                # One broken reader must not affect the others or the committing request.
                logger.exception("Change subscriber failed (table=%s event=%s)", n.table, n.event)

    # ---------- SQLAlchemy wiring ----------
    def install(self, target: Any) -> None:
        """Attach flush/commit/rollback listeners to a sessionmaker or Session class."""
        sa_event.listen(target, "after_flush", self._after_flush)
        sa_event.listen(target, "after_commit", self._after_commit)
        sa_event.listen(target, "after_rollback", self._after_rollback)

    def _after_flush(self, session: Session, flush_context: Any) -> None:
        pending: list[Notification] = session.info.setdefault(_PENDING_KEY, [])
        for obj in session.new:
            pending.append(_notification_for(obj, EVENT_INSERT))
        for obj in session.dirty:
            if session.is_modified(obj, include_collections=False):
                pending.append(_notification_for(obj, EVENT_UPDATE))
        for obj in session.deleted:
            pending.append(_notification_for(obj, EVENT_DELETE))

    def _after_commit(self, session: Session) -> None:
        pending = session.info.pop(_PENDING_KEY, None) or []
        for n in pending:
            self.publish(n)

    def _after_rollback(self, session: Session) -> None:
        session.info.pop(_PENDING_KEY, None)


def _notification_for(obj: Any, event: str) -> Notification:
    state = sa_inspect(obj)
    mapper = state.mapper
    row = {attr.key: state.dict.get(attr.key) for attr in mapper.column_attrs}
    return Notification(table=mapper.local_table.name, event=event, row=row)


class RecentList:
    """Fixed-capacity sequence, newest first. Pushing past capacity evicts the oldest item."""

    def __init__(self, capacity: int, items: Iterable[Any] = ()) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._items: deque[Any] = deque(list(items)[:capacity], maxlen=capacity)

    def push_front(self, item: Any) -> None:
        with self._lock:
            self._items.appendleft(item)

    def snapshot(self) -> list[Any]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.snapshot())


SessionFactory = Callable[[], Session]


class ActivityFeed:
    """
    Live list of the most recent activity log entries.

    On each activity_logs INSERT the row is re-fetched joined with its actor's
    display fields and pushed to the front of the list.
    """

    def __init__(
        self,
        hub: ChangeHub,
        session_factory: SessionFactory,
        *,
        initial: Iterable[dict[str, Any]] = (),
        capacity: int = 15,
        listener: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.entries = RecentList(capacity, initial)
        self._session_factory = session_factory
        self._listener = listener
        self._subscription = hub.subscribe("activity_logs", self._on_insert, event=EVENT_INSERT)

    def _on_insert(self, n: Notification) -> None:
        from app.civic.views import fetch_activity_entry

        log_id = n.row.get("id")
        if log_id is None:
            return
        with self._session_factory() as s:
            entry = fetch_activity_entry(s, int(log_id))
        if entry is None:
            return
        self.entries.push_front(entry)
        if self._listener is not None:
            self._listener(entry)

    def close(self) -> None:
        self._subscription.unsubscribe()

    def __enter__(self) -> "ActivityFeed":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class MetricsFeed:
    """
    Live admin counters (total profiles, admins).
    Any profiles change triggers a fresh count query; the payload is ignored.
    """

    def __init__(
        self,
        hub: ChangeHub,
        session_factory: SessionFactory,
        *,
        initial: dict[str, Any] | None = None,
        listener: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.stats: dict[str, Any] = dict(initial or {})
        self._session_factory = session_factory
        self._listener = listener
        self._lock = threading.Lock()
        self._subscription = hub.subscribe("profiles", self._on_change, event=EVENT_ANY)

    def _on_change(self, n: Notification) -> None:
        from app.civic.views import profile_counts

        with self._session_factory() as s:
            counts = profile_counts(s)
        with self._lock:
            self.stats.update(counts)
            current = dict(self.stats)
        if self._listener is not None:
            self._listener(current)

    def close(self) -> None:
        self._subscription.unsubscribe()

    def __enter__(self) -> "MetricsFeed":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def sse_message(event_name: str, data: Any) -> str:
    return f"event: {event_name}\ndata: {json.dumps(data, default=str, sort_keys=True)}\n\n"


def stream_events(
    open_reader: Callable[[Callable[[Any], None]], Any],
    event_name: str,
    *,
    keepalive_seconds: int = 15,
    max_seconds: float | None = None,
    max_queue: int = 100,
) -> Iterator[str]:
    """
    Server-Sent Events generator.

    `open_reader(listener)` must return an object with close(); the listener is
    fed from the committing thread and drained here. The reader is closed when
    the client disconnects (generator closed) or after `max_seconds`, at which
    point the browser's EventSource reconnects on its own.
    """
    q: queue.Queue[Any] = queue.Queue(maxsize=max_queue)

    def _listener(item: Any) -> None:
        try:
            q.put_nowait(item)
        except queue.Full:
            logger.warning("SSE client too slow; dropping %s event", event_name)

    deadline = time.monotonic() + max_seconds if max_seconds else None
    reader = open_reader(_listener)
    try:
        yield ": connected\n\n"
        while True:
            wait = keepalive_seconds
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return
                wait = min(wait, remaining)
            try:
                item = q.get(timeout=wait)
            except queue.Empty:
                yield ": keepalive\n\n"
                continue
            yield sse_message(event_name, item)
    finally:
        reader.close()
