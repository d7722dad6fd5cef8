"""In-app notification shown to a project owner."""

import uuid

from altleads.extensions import db


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(36), nullable=False, index=True)
    type = db.Column(db.String(100), nullable=False)  # e.g. "rtne_new_prospect"
    payload = db.Column(db.JSON, default=dict)
    read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<Notification {self.type} -> {self.user_id}>"
