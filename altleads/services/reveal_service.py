"""Reveal tracking — phone numbers shown to an agent that still need a disposition.

State lives in a caller-supplied mutable mapping (the Flask session in
the web app), never in the database. While any revealed phone is still
waiting for a disposition the agent may not start another search, except
for the prospect they owe the disposition on. Admins are never tracked.
"""

from datetime import datetime, timezone

STORE_KEY = "revealed_phones"


class RevealTracker:

    def __init__(self, store, user_id, is_admin=False):
        self._store = store
        self.user_id = user_id
        self.is_admin = is_admin
        self._key = f"{STORE_KEY}:{user_id}"

    def _entries(self):
        return list(self._store.get(self._key) or [])

    def _save(self, entries):
        # Reassign rather than mutate so session-backed stores notice the change.
        self._store[self._key] = entries

    @property
    def pending(self):
        return [e for e in self._entries() if e.get("disposition_required")]

    @property
    def has_pending_disposition(self):
        return bool(self.pending)

    def add_revealed_phone(self, prospect_id, phone_number):
        """Record a reveal. Returns False when nothing was tracked."""
        if self.is_admin or not phone_number:
            return False
        entries = self._entries()
        for entry in entries:
            if entry["prospect_id"] == prospect_id and entry["phone_number"] == phone_number:
                return False
        entries.append({
            "prospect_id": prospect_id,
            "phone_number": phone_number,
            "revealed_at": datetime.now(timezone.utc).isoformat(),
            "disposition_required": True,
        })
        self._save(entries)
        return True

    def mark_disposition_complete(self, prospect_id):
        """Clear every reveal for ``prospect_id``. Returns how many were cleared."""
        entries = self._entries()
        remaining = [e for e in entries if e["prospect_id"] != prospect_id]
        self._save(remaining)
        return len(entries) - len(remaining)

    def clear_all(self):
        self._save([])

    def can_perform_search(self):
        return self.is_admin or not self.has_pending_disposition

    def can_search_specific_prospect(self, prospect_id):
        if self.can_perform_search():
            return True
        return any(e["prospect_id"] == prospect_id for e in self.pending)

    def pending_message(self):
        count = len(self.pending)
        if count == 0:
            return None
        if count == 1:
            return (
                "Please fill disposition first - You have 1 revealed phone "
                "number that requires disposition."
            )
        return (
            f"Please fill disposition first - You have {count} revealed phone "
            "numbers that require disposition."
        )

    def to_dict(self):
        return {
            "pending": self.pending,
            "has_pending_disposition": self.has_pending_disposition,
            "can_perform_search": self.can_perform_search(),
            "message": self.pending_message(),
        }


def for_current_user():
    """Tracker for the signed-in user, backed by their Flask session."""
    from flask import session
    from flask_login import current_user

    return RevealTracker(session, current_user.id, is_admin=current_user.is_admin)
