"""Realtime table mirror.

RealtimeSync keeps a local list of rows for one table current by
subscribing to its change events, and heals transport failures on its
own with a fixed-delay reconnect.

State machine::

    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> (ERROR | CLOSED)
    ERROR --(reconnect_delay)--> CONNECTING -> ...

Only one reconnect timer is ever pending; it belongs to the instance and
is cancelled on stop(). Errors are exposed through ``error`` and
``is_connected``, never raised.

Usage::

    with RealtimeSync(feed, "dispositions", filter="prospect_id=eq.42",
                      on_insert=handle_new) as sync:
        ...
        rows = sync.data
"""

import logging
import threading
from enum import Enum

from altleads.realtime.feed import CHANNEL_ERROR, CLOSED, SUBSCRIBED, TIMED_OUT

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 3.0


class SyncState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    CLOSED = "closed"


class RealtimeSync:

    def __init__(
        self,
        client,
        table,
        *,
        filter=None,
        event="*",
        on_insert=None,
        on_update=None,
        on_delete=None,
        enabled=True,
        identity="id",
        reconnect_delay=DEFAULT_RECONNECT_DELAY,
        timer_factory=threading.Timer,
    ):
        self._client = client
        self.table = table
        self.filter = filter
        self.event = event
        self._callbacks = {
            "INSERT": on_insert,
            "UPDATE": on_update,
            "DELETE": on_delete,
        }
        self._identity = identity
        self._reconnect_delay = reconnect_delay
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._rows = []
        self._channel = None
        self._timer = None
        self._timer_generation = 0
        self._state = SyncState.DISCONNECTED
        self._error = None
        self._enabled = enabled
        self._disposed = False

        if enabled:
            self.start()

    # ─── Observable state ────────────────────────────────────────

    @property
    def channel_name(self):
        name = f"realtime:{self.table}"
        if self.filter:
            name += f":{self.filter}"
        return name

    @property
    def data(self):
        """Snapshot copy of the mirror, in arrival order."""
        with self._lock:
            return [dict(row) for row in self._rows]

    @property
    def state(self):
        return self._state

    @property
    def is_connected(self):
        return self._state == SyncState.SUBSCRIBED

    @property
    def error(self):
        return self._error

    @property
    def reconnect_pending(self):
        return self._timer is not None

    # ─── Lifecycle ───────────────────────────────────────────────

    def start(self):
        with self._lock:
            if self._disposed or not self._enabled:
                return
            if self._channel is not None:
                return
            self._connect()

    def stop(self):
        """Cancel any pending reconnect and release the subscription for good."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._cancel_timer()
            self._release_channel()
            self._state = SyncState.DISCONNECTED
        logger.info(f"[Realtime] {self.channel_name} stopped")

    def reconnect(self):
        """Tear down the current subscription (if any) and subscribe again."""
        with self._lock:
            if self._disposed or not self._enabled:
                return
            logger.info(f"[Realtime] Manual reconnect of {self.channel_name}")
            self._cancel_timer()
            self._connect()

    def set_enabled(self, enabled):
        with self._lock:
            if self._disposed or enabled == self._enabled:
                return
            self._enabled = enabled
            if enabled:
                self._connect()
            else:
                self._cancel_timer()
                self._release_channel()
                self._state = SyncState.DISCONNECTED

    def load(self, rows):
        """Replace the mirror with a freshly fetched snapshot."""
        with self._lock:
            self._rows = [dict(row) for row in rows]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    # ─── Subscription ────────────────────────────────────────────

    def _connect(self):
        self._release_channel()
        self._state = SyncState.CONNECTING
        try:
            channel = self._client.channel(self.channel_name)
            channel.on_postgres_changes(
                event=self.event,
                table=self.table,
                filter=self.filter,
                callback=lambda change: self._handle_change(channel, change),
            )
            # Set before subscribe(): the status callback may fire synchronously.
            self._channel = channel
            channel.subscribe(
                lambda status, err=None: self._handle_status(channel, status, err)
            )
        except Exception as e:
            # Setup failures heal through the same path as transport errors.
            logger.error(f"[Realtime] Setup error on {self.channel_name}: {e}")
            self._release_channel()
            self._fail(f"Setup error: {e}")

    def _release_channel(self):
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            self._client.remove_channel(channel)
        except Exception as e:
            logger.warning(f"[Realtime] Removing {self.channel_name} failed: {e}")

    def _handle_status(self, channel, status, err=None):
        with self._lock:
            if self._disposed or channel is not self._channel:
                return
            logger.info(f"[Realtime] Channel {self.channel_name} status: {status}")
            if status == SUBSCRIBED:
                self._state = SyncState.SUBSCRIBED
                self._error = None
            elif status in (CHANNEL_ERROR, TIMED_OUT):
                self._fail(f"Connection {status}")
            elif status == CLOSED:
                self._state = SyncState.CLOSED

    def _fail(self, message):
        self._state = SyncState.ERROR
        self._error = message
        self._schedule_reconnect()

    # ─── Reconnect timer ─────────────────────────────────────────

    def _schedule_reconnect(self):
        self._cancel_timer()
        self._timer_generation += 1
        timer = self._timer_factory(
            self._reconnect_delay,
            self._fire_reconnect,
            args=(self._timer_generation,),
        )
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self):
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _fire_reconnect(self, generation):
        with self._lock:
            # A timer cancelled after it started running still lands here.
            if (
                self._disposed
                or not self._enabled
                or generation != self._timer_generation
                or self._timer is None
            ):
                return
            self._timer = None
            logger.info(f"[Realtime] Attempting to reconnect to {self.channel_name}...")
            self._connect()

    # ─── Mirror updates ──────────────────────────────────────────

    def _index_of(self, key):
        for i, row in enumerate(self._rows):
            if row.get(self._identity) == key:
                return i
        return None

    def _handle_change(self, channel, change):
        with self._lock:
            if self._disposed or channel is not self._channel:
                return
            event_type = change.event_type
            if event_type == "INSERT":
                payload = dict(change.new)
                self._rows.append(payload)
            elif event_type == "UPDATE":
                payload = dict(change.new)
                idx = self._index_of(payload.get(self._identity))
                if idx is not None:
                    self._rows[idx] = payload
            elif event_type == "DELETE":
                payload = dict(change.old)
                idx = self._index_of(payload.get(self._identity))
                if idx is not None:
                    del self._rows[idx]
            else:
                return

            callback = self._callbacks.get(event_type)
            if callback is not None:
                callback(payload)

    def __repr__(self):
        return f"<RealtimeSync {self.channel_name} ({self._state.value})>"
