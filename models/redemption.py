import uuid

from credentials.clock import utcnow
from models.db import db


def _new_id() -> str:
    return str(uuid.uuid4())


class Redemption(db.Model):
    __tablename__ = "redemptions"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)

    credential_id = db.Column(db.String(36), db.ForeignKey("credentials.id"), nullable=False, index=True)
    purpose = db.Column(db.String(32), nullable=False)
    redeemer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # calendar day the redemption counts for (attendance only)
    effective_date = db.Column(db.Date, nullable=True)
    redeemed_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    outcome = db.Column(db.String(20), nullable=False)  # present, authenticated

    credential = db.relationship("Credential")

    __table_args__ = (
        # One attendance mark per student per day, whichever code was scanned.
        # NULL effective_date (login) never collides.
        db.UniqueConstraint("redeemer_id", "effective_date", name="uq_redemption_redeemer_day"),
        # A login code is consumed at most once
        db.Index(
            "uq_redemption_login_once",
            "credential_id",
            unique=True,
            sqlite_where=db.text("purpose = 'login'"),
            postgresql_where=db.text("purpose = 'login'"),
        ),
    )
