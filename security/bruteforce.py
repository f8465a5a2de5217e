from datetime import timedelta
from flask import request, current_app

from credentials.clock import get_clock
from models import db
from models.login_attempt import LoginAttempt

# ip value of the row counting failures for an email from every client
ACCOUNT_WIDE = "*"

def _client_ip() -> str:
    return request.remote_addr or "unknown"

def _rows(email: str, create: bool = False) -> list:
    rows = []
    for ip in (_client_ip(), ACCOUNT_WIDE):
        row = LoginAttempt.query.filter_by(email=email, ip=ip).first()
        if not row and create:
            row = LoginAttempt(email=email, ip=ip, fail_count=0)
            db.session.add(row)
        if row:
            rows.append(row)
    return rows

def _limit_for(row) -> int:
    if row.ip == ACCOUNT_WIDE:
        return current_app.config.get("MAX_OTP_ACCOUNT_ATTEMPTS", 10)
    return current_app.config.get("MAX_OTP_ATTEMPTS", 5)

def is_locked(email: str) -> tuple[bool, int]:
    """
    Returns (locked, seconds_remaining)
    """
    now = get_clock().now()
    locks = [r.locked_until for r in _rows(email) if r.locked_until and r.locked_until > now]
    if not locks:
        return False, 0

    seconds = int((max(locks) - now).total_seconds())
    return True, max(seconds, 1)

def register_failure(email: str) -> tuple[int, bool]:
    """
    Increments the failed code counters for this client and for the account.
    Returns (fail_count, locked_now); fail_count is the account-wide count.
    """
    now = get_clock().now()
    lock_minutes = current_app.config.get("LOCKOUT_MINUTES", 10)

    locked_now = False
    fail_count = 0
    for row in _rows(email, create=True):
        row.fail_count += 1
        row.last_fail_at = now
        if row.ip == ACCOUNT_WIDE:
            fail_count = row.fail_count

        if row.fail_count >= _limit_for(row):
            row.locked_until = now + timedelta(minutes=lock_minutes)
            row.fail_count = 0
            locked_now = True

    db.session.commit()
    return fail_count, locked_now

def reset_attempts(email: str):
    """
    Clears failure counters after a successful code verification.
    """
    rows = _rows(email)
    if not rows:
        return
    for row in rows:
        row.fail_count = 0
        row.last_fail_at = None
        row.locked_until = None
    db.session.commit()
