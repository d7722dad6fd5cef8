"""Identity and profile models.

- AuthUser: the authentication identity (email + password hash + metadata).
  Flask-Login integration via UserMixin.
- User: the application profile (name, role, project). Shares its id with
  the AuthUser it belongs to and is created lazily by profile sync.
"""

import uuid

from flask_login import UserMixin

from altleads.extensions import db


class AuthUser(UserMixin, db.Model):
    __tablename__ = "auth_users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    # full_name, project_name, role as supplied at sign-up
    user_metadata = db.Column(db.JSON, default=dict)
    last_sign_in_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    profile = db.relationship(
        "User", back_populates="identity", uselist=False
    )

    @property
    def metadata_dict(self):
        return dict(self.user_metadata or {})

    @property
    def role(self):
        if self.profile is not None and self.profile.role:
            return self.profile.role
        meta = self.metadata_dict
        if meta.get("role"):
            return meta["role"]
        # Accounts created by the admin console carry project "ADMIN".
        return "admin" if meta.get("project_name") == "ADMIN" else "caller"

    @property
    def is_admin(self):
        return self.role == "admin"

    def __repr__(self):
        return f"<AuthUser {self.email}>"


class User(db.Model):
    __tablename__ = "users"

    ROLES = ["admin", "caller"]
    STATUSES = ["active", "inactive"]

    id = db.Column(
        db.String(36), db.ForeignKey("auth_users.id"), primary_key=True
    )
    name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), default="caller", nullable=False)
    project_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), default="active", nullable=False)
    last_active = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    identity = db.relationship("AuthUser", back_populates="profile")

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
