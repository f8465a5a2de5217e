from credentials.clock import utcnow
from models.db import db

class RateLimitWindow(db.Model):
    __tablename__ = "rate_limit_windows"

    id = db.Column(db.Integer, primary_key=True)
    # "ip:<addr>" or "email:<address>"
    key = db.Column(db.String(255), unique=True, nullable=False, index=True)

    window_start = db.Column(db.DateTime, nullable=False)
    count = db.Column(db.Integer, default=0, nullable=False)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
