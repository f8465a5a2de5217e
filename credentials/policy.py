"""Per-purpose rules for issuing and redeeming credentials.

Attendance and login codes deliberately differ in strength. An attendance
code is shown on a screen to a whole room, so its random part alone must
resist guessing for the code's lifetime. A login code is six digits: it is
only ever sent to the account's own mailbox and lives ten minutes at most.
Every wrong guess for an account counts against each of its live codes, and
a code stops working after ``MAX_OTP_ATTEMPTS`` of them, whichever client
the guesses come from. ``security.bruteforce`` also locks the account out
across all clients.
"""
from typing import NamedTuple, Optional

from models.credential import PURPOSE_ATTENDANCE, PURPOSE_LOGIN

ROLE_ADMIN = "ADMIN"
ROLE_TEACHER = "TEACHER"
ROLE_STUDENT = "STUDENT"

SCOPE_DAY = "day"
SCOPE_CREDENTIAL = "credential"


class PurposePolicy(NamedTuple):
    purpose: str
    min_ttl_minutes: int
    max_ttl_minutes: int
    issuer_role: Optional[str]      # None: any existing subject
    redeemer_role: Optional[str]    # None: redeemer must be the subject itself
    duplicate_scope: str
    requires_dispatch: bool
    reveal_secret: bool             # returned to the issuing caller
    counts_guesses: bool            # wrong guesses burn the subject's live codes
    outcome: str


POLICIES = {
    PURPOSE_ATTENDANCE: PurposePolicy(
        purpose=PURPOSE_ATTENDANCE,
        min_ttl_minutes=1,
        max_ttl_minutes=60,
        issuer_role=ROLE_TEACHER,
        redeemer_role=ROLE_STUDENT,
        duplicate_scope=SCOPE_DAY,
        requires_dispatch=False,
        reveal_secret=True,
        counts_guesses=False,
        outcome="present",
    ),
    PURPOSE_LOGIN: PurposePolicy(
        purpose=PURPOSE_LOGIN,
        min_ttl_minutes=1,
        max_ttl_minutes=10,
        issuer_role=None,
        redeemer_role=None,
        duplicate_scope=SCOPE_CREDENTIAL,
        requires_dispatch=True,
        reveal_secret=False,
        counts_guesses=True,
        outcome="authenticated",
    ),
}


def policy_for(purpose: str) -> PurposePolicy:
    try:
        return POLICIES[purpose]
    except KeyError:
        raise ValueError(f"Unknown credential purpose: {purpose}")
