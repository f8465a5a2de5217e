import uuid

from credentials.clock import utcnow
from models.db import db

PURPOSE_ATTENDANCE = "attendance"
PURPOSE_LOGIN = "login"


def _new_id() -> str:
    return str(uuid.uuid4())


class Credential(db.Model):
    __tablename__ = "credentials"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    subject_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    purpose = db.Column(db.String(32), nullable=False)

    # keyed digest of the secret, never the raw value.
    # NULL once a dead credential's digest has been released for reuse.
    secret_hash = db.Column(db.String(128), unique=True, nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    # login only; attendance tracks redemptions per (redeemer, day) instead
    consumed = db.Column(db.Boolean, default=False, nullable=False)
    consumed_at = db.Column(db.DateTime, nullable=True)

    # login only; wrong guesses against the subject's live codes
    attempts = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (
        db.CheckConstraint("expires_at > created_at", name="ck_credential_expiry_after_creation"),
    )

    def is_expired(self, now) -> bool:
        return now > self.expires_at
