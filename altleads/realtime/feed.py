"""In-process change feed.

Publishes row-level INSERT / UPDATE / DELETE events for committed
database writes to subscribed channels. The surface mirrors a hosted
realtime client (``channel()``, ``on_postgres_changes()``,
``subscribe()``, ``remove_channel()``) so RealtimeSync can run against
either.

Events are collected per session in ``after_flush`` and published only
from ``after_commit``; a rollback discards them. Subscribers therefore
never see uncommitted rows.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import current_app, has_app_context
from sqlalchemy import event as sa_event
from sqlalchemy import inspect

logger = logging.getLogger(__name__)

SUBSCRIBED = "SUBSCRIBED"
CHANNEL_ERROR = "CHANNEL_ERROR"
TIMED_OUT = "TIMED_OUT"
CLOSED = "CLOSED"

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")

_PENDING_KEY = "altleads_pending_changes"


@dataclass
class ChangeEvent:
    event_type: str  # INSERT | UPDATE | DELETE
    table: str
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)
    commit_timestamp: str = ""


def parse_filter(expr):
    """Parse ``column=op.value`` into (column, op, value).

    Supported ops: eq, neq, in (``in.(a,b,c)``). Returns None for a blank
    expression; raises ValueError for anything else it can't read.
    """
    if not expr:
        return None
    column, sep, rest = expr.partition("=")
    op, dot, value = rest.partition(".")
    if not sep or not dot or not column or op not in ("eq", "neq", "in"):
        raise ValueError(f"Unsupported realtime filter: {expr!r}")
    if op == "in":
        value = [v.strip() for v in value.strip("()").split(",") if v.strip()]
    return column.strip(), op, value


def _filter_matches(parsed, row):
    if parsed is None:
        return True
    column, op, value = parsed
    actual = row.get(column)
    actual = "" if actual is None else str(actual)
    if op == "eq":
        return actual == value
    if op == "neq":
        return actual != value
    return actual in value


class Channel:
    """One named subscription on a ChangeFeed."""

    def __init__(self, feed, name):
        self.feed = feed
        self.name = name
        self._bindings = []
        self._status_callback = None
        self.state = "closed"

    def on_postgres_changes(self, event, table, callback, filter=None):
        if event != "*" and event not in EVENT_TYPES:
            raise ValueError(f"Unknown event type {event!r}")
        self._bindings.append((event, table, parse_filter(filter), callback))
        return self

    def subscribe(self, status_callback=None):
        self._status_callback = status_callback
        self.feed._join(self)
        return self

    def unsubscribe(self):
        self.feed.remove_channel(self)

    def _emit_status(self, status, error=None):
        if status == SUBSCRIBED:
            self.state = "joined"
        elif status == CLOSED:
            self.state = "closed"
        else:
            self.state = "errored"
        if self._status_callback is not None:
            self._status_callback(status, error)

    def _deliver(self, change):
        for event, table, parsed, callback in list(self._bindings):
            if table != change.table:
                continue
            if event != "*" and event != change.event_type:
                continue
            row = change.old if change.event_type == "DELETE" else change.new
            if not _filter_matches(parsed, row):
                continue
            callback(change)

    def __repr__(self):
        return f"<Channel {self.name} ({self.state})>"


class ChangeFeed:
    """Process-wide publish/subscribe hub for row changes."""

    def __init__(self):
        self._lock = threading.Lock()
        self._channels = []

    def channel(self, name):
        return Channel(self, name)

    @property
    def channels(self):
        with self._lock:
            return list(self._channels)

    def _join(self, channel):
        with self._lock:
            if channel not in self._channels:
                self._channels.append(channel)
        logger.debug(f"Channel {channel.name} joined")
        channel._emit_status(SUBSCRIBED)

    def remove_channel(self, channel):
        with self._lock:
            if channel not in self._channels:
                return
            self._channels.remove(channel)
        channel._emit_status(CLOSED)

    def publish(self, change):
        for channel in self.channels:
            try:
                channel._deliver(change)
            except Exception:
                # One broken subscriber must not starve the rest.
                logger.exception(
                    f"Subscriber on {channel.name} failed handling "
                    f"{change.event_type} on {change.table}"
                )

    def interrupt(self, reason="connection lost", status=CHANNEL_ERROR):
        """Drop every live channel with an error status (transport failure)."""
        with self._lock:
            dropped = list(self._channels)
            self._channels.clear()
        logger.warning(f"Change feed interrupted ({reason}); {len(dropped)} channel(s) dropped")
        for channel in dropped:
            channel._emit_status(status, reason)

    def close(self):
        """Gracefully close every live channel."""
        with self._lock:
            closed = list(self._channels)
            self._channels.clear()
        for channel in closed:
            channel._emit_status(CLOSED)


# ─── SQLAlchemy session hooks ────────────────────────────────────

def _row_payload(obj):
    """Loaded column values only: never triggers a refresh mid-flush."""
    from altleads.models import SECRET_COLUMNS

    state = inspect(obj)
    payload = {}
    for attr in state.mapper.column_attrs:
        name = attr.columns[0].name
        if name in SECRET_COLUMNS or attr.key in state.unloaded:
            continue
        value = state.dict.get(attr.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        payload[name] = value
    return payload


def _primary_key(obj):
    state = inspect(obj)
    return {
        col.name: state.dict.get(state.mapper.get_property_by_column(col).key)
        for col in state.mapper.primary_key
    }


def _before_flush(session, flush_context, instances):
    # Expired rows are reloaded now so their events carry full payloads.
    for obj in list(session.dirty) + list(session.deleted):
        state = inspect(obj)
        for attr in state.mapper.column_attrs:
            if attr.key in state.unloaded:
                getattr(obj, attr.key)


def _after_flush(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, [])
    for obj in session.new:
        pending.append(("INSERT", obj.__tablename__, _row_payload(obj), {}))
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            pending.append(
                ("UPDATE", obj.__tablename__, _row_payload(obj), _primary_key(obj))
            )
    for obj in session.deleted:
        pending.append(("DELETE", obj.__tablename__, {}, _row_payload(obj)))


def _after_commit(session):
    pending = session.info.pop(_PENDING_KEY, [])
    if not pending or not has_app_context():
        return
    feed = current_app.extensions.get("change_feed")
    if feed is None:
        return
    stamp = datetime.now(timezone.utc).isoformat()
    for event_type, table, new, old in pending:
        feed.publish(ChangeEvent(event_type, table, new, old, stamp))


def _after_rollback(session):
    session.info.pop(_PENDING_KEY, None)


_hooks_lock = threading.Lock()
_hooked = set()


def install_session_hooks(session):
    """Attach publish hooks to a (scoped) session once."""
    with _hooks_lock:
        if id(session) in _hooked:
            return
        sa_event.listen(session, "before_flush", _before_flush)
        sa_event.listen(session, "after_flush", _after_flush)
        sa_event.listen(session, "after_commit", _after_commit)
        sa_event.listen(session, "after_rollback", _after_rollback)
        _hooked.add(id(session))
