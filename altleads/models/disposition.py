"""Disposition model.

Append-only outcome record an agent leaves against a prospect. The
creating user's display name and project are copied onto the row at
write time so history stays readable after profile changes.

Invariant: custom_reason is set if and only if disposition_type is "others"
(enforced in disposition_service before the insert).
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from altleads.errors import ValidationError
from altleads.extensions import db


class DispositionType(str, Enum):
    NOT_INTERESTED = "not_interested"
    WRONG_NUMBER = "wrong_number"
    DNC = "dnc"
    CALL_BACK_LATER = "call_back_later"
    NOT_RELEVANT = "not_relevant"
    OTHERS = "others"
    # Older clients still submit this; rows carrying it remain readable.
    NOT_CONNECTED = "not_connected"

    @classmethod
    def current(cls):
        return [t for t in cls if t not in LEGACY_TYPES]

    @property
    def is_legacy(self):
        return self in LEGACY_TYPES

    @property
    def label(self):
        return LABELS[self]

    @classmethod
    def parse(cls, value, allow_legacy=True):
        """Turn a raw tag into a DispositionType.

        Raises ValidationError for unknown tags, and for legacy tags when
        allow_legacy is False.
        """
        if isinstance(value, cls):
            member = value
        else:
            tag = (value or "").strip().lower() if isinstance(value, str) else ""
            if not tag:
                raise ValidationError("Please select a disposition type")
            try:
                member = cls(tag)
            except ValueError:
                raise ValidationError(
                    f"Invalid disposition type '{value}'. Must be one of: "
                    f"{', '.join(t.value for t in cls.current())}"
                ) from None
        if member.is_legacy and not allow_legacy:
            raise ValidationError(
                f"Disposition type '{member.value}' is no longer accepted"
            )
        return member


LEGACY_TYPES = frozenset({DispositionType.NOT_CONNECTED})

LABELS = {
    DispositionType.NOT_INTERESTED: "Not Interested",
    DispositionType.WRONG_NUMBER: "Wrong Number",
    DispositionType.DNC: "DNC (Do Not Call)",
    DispositionType.CALL_BACK_LATER: "Call Back Later",
    DispositionType.NOT_RELEVANT: "Not Relevant",
    DispositionType.OTHERS: "Others",
    DispositionType.NOT_CONNECTED: "Not Connected",
}


class Disposition(db.Model):
    __tablename__ = "dispositions"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    prospect_id = db.Column(
        db.Integer, db.ForeignKey("prospects.id"), nullable=False, index=True
    )
    # No FK: the row must survive profile deletion, the snapshot below
    # is what history renders.
    user_id = db.Column(db.String(36), nullable=False, index=True)
    disposition_type = db.Column(db.String(50), nullable=False)
    custom_reason = db.Column(db.Text, nullable=True)
    user_name = db.Column(db.String(255), nullable=True)
    project_name = db.Column(db.String(255), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def type(self):
        return DispositionType.parse(self.disposition_type)

    def __repr__(self):
        return f"<Disposition {self.disposition_type} prospect={self.prospect_id}>"
