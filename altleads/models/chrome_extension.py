"""Chrome extension models.

The extension keeps its own small account table and saves prospects
scraped from LinkedIn profile pages, scoped per extension user.
"""

import uuid

from altleads.extensions import db


class ChromeExtensionUser(db.Model):
    __tablename__ = "chrome_extension_users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    prospects = db.relationship(
        "ChromeProspect", back_populates="user", lazy="dynamic"
    )

    def __repr__(self):
        return f"<ChromeExtensionUser {self.email}>"


class ChromeProspect(db.Model):
    __tablename__ = "chrome_prospects"
    __table_args__ = (
        db.UniqueConstraint("user_id", "linkedin_url", name="uq_chrome_user_linkedin"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey("chrome_extension_users.id"), nullable=False
    )
    name = db.Column(db.String(255), nullable=False)
    linkedin_url = db.Column(db.String(500), nullable=False)
    job_title = db.Column(db.String(255), nullable=True)
    company = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    user = db.relationship("ChromeExtensionUser", back_populates="prospects")

    def __repr__(self):
        return f"<ChromeProspect {self.name}>"
