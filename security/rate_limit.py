from datetime import timedelta
from flask import request, current_app

from credentials.clock import get_clock
from models import db
from models.rate_limit_window import RateLimitWindow

def _hit(key: str, now, window_seconds: int, max_requests: int) -> tuple[bool, int]:
    row = RateLimitWindow.query.filter_by(key=key).first()
    if not row:
        row = RateLimitWindow(key=key, window_start=now, count=0)
        db.session.add(row)

    window_end = row.window_start + timedelta(seconds=window_seconds)

    # Reset window if expired
    if now >= window_end:
        row.window_start = now
        row.count = 0
        window_end = row.window_start + timedelta(seconds=window_seconds)

    row.count += 1

    if row.count > max_requests:
        retry_after = int((window_end - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0

def check_and_increment_otp_rate(email: str) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Fixed windows per client IP and per target email, applied to code
    requests so nobody can flood a mailbox or stockpile live codes.
    """
    now = get_clock().now()
    window_seconds = current_app.config.get("OTP_RATE_WINDOW_SECONDS", 60)

    ip_ok, ip_retry = _hit(
        f"ip:{request.remote_addr or 'unknown'}", now, window_seconds,
        current_app.config.get("OTP_RATE_MAX_REQUESTS", 5),
    )
    email_ok, email_retry = _hit(
        f"email:{email}", now, window_seconds,
        current_app.config.get("OTP_RATE_MAX_PER_EMAIL", 3),
    )
    db.session.commit()

    return ip_ok and email_ok, max(ip_retry, email_retry)
