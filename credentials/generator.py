import hashlib
import hmac
import secrets
from datetime import timezone

from credentials.errors import GenerationError
from models.credential import PURPOSE_ATTENDANCE, PURPOSE_LOGIN

ATTENDANCE_PREFIX = "ATTENDANCE_"
# 16 bytes -> 128 bits from the random part alone
ATTENDANCE_RANDOM_BYTES = 16
LOGIN_CODE_DIGITS = 6


def hash_secret(secret: str, key: str) -> str:
    # keyed so a leaked table does not expose 6-digit codes to a dictionary pass
    return hmac.new(key.encode("utf-8"), secret.encode("utf-8"), hashlib.sha256).hexdigest()


class SecretGenerator:
    """Produces the opaque value a redeemer presents.

    Attendance: ``ATTENDANCE_<subject>_<issued ms>_<random>``. Only the random
    part is a security boundary; the rest makes codes readable in logs.
    Login: a zero-padded 6 digit code.
    """

    def __init__(self, clock):
        self.clock = clock

    def generate(self, purpose: str, subject_id) -> str:
        try:
            if purpose == PURPOSE_ATTENDANCE:
                issued_ms = int(self.clock.now().replace(tzinfo=timezone.utc).timestamp() * 1000)
                random_part = secrets.token_urlsafe(ATTENDANCE_RANDOM_BYTES)
                return f"{ATTENDANCE_PREFIX}{subject_id}_{issued_ms}_{random_part}"
            if purpose == PURPOSE_LOGIN:
                return f"{secrets.randbelow(10 ** LOGIN_CODE_DIGITS):0{LOGIN_CODE_DIGITS}d}"
        except (OSError, NotImplementedError) as exc:
            raise GenerationError(f"Entropy source unavailable: {exc}") from exc
        raise ValueError(f"Unknown credential purpose: {purpose}")
