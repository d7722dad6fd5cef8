"""Realtime change feed and table mirrors."""

from altleads.realtime.feed import ChangeEvent, ChangeFeed, install_session_hooks  # noqa: F401
from altleads.realtime.sync import RealtimeSync, SyncState  # noqa: F401


def init_realtime(app, db):
    """Create the app's change feed and hook it to the db session."""
    feed = ChangeFeed()
    app.extensions["change_feed"] = feed
    install_session_hooks(db.session)
    return feed


def get_feed(app):
    return app.extensions["change_feed"]
