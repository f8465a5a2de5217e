"""Failure kinds raised by credential issuance and redemption.

Every error carries a stable ``kind`` string and the HTTP status the web
layer reports it with. None of them are retried by the caller automatically.
"""


class CredentialError(Exception):
    """Base exception for all credential failures."""

    kind = "CredentialError"
    status = 400
    default_message = "Credential request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class InvalidCredential(CredentialError):
    """Unknown secret, or a secret presented for the wrong purpose.

    Both cases share one message so callers cannot enumerate secrets.
    """

    kind = "InvalidCredential"
    status = 400
    default_message = "Invalid code"


class Expired(CredentialError):
    kind = "Expired"
    status = 410
    default_message = "Code has expired"


class Forbidden(CredentialError):
    kind = "Forbidden"
    status = 403
    default_message = "Not allowed for this account"


class AlreadyRedeemedToday(CredentialError):
    kind = "AlreadyRedeemedToday"
    status = 409
    default_message = "Attendance already marked for today"


class AlreadyConsumed(CredentialError):
    kind = "AlreadyConsumed"
    status = 409
    default_message = "Code has already been used"


class InvalidTTL(CredentialError):
    kind = "InvalidTTL"
    status = 400
    default_message = "Invalid validity period"

    def __init__(self, minimum: int, maximum: int):
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(f"Validity must be between {minimum} and {maximum} minutes")


class UnknownSubject(CredentialError):
    kind = "UnknownSubject"
    status = 404
    default_message = "User not found. Please contact admin."


class IssuanceConflict(CredentialError):
    """Secret collisions persisted through every issuance retry."""

    kind = "IssuanceConflict"
    status = 503
    default_message = "Could not issue a code, please try again"


class DispatchFailure(CredentialError):
    """The out-of-band message could not be delivered; nothing was kept."""

    kind = "DispatchFailure"
    status = 502
    default_message = "Could not deliver the code"


class GenerationError(CredentialError):
    """The entropy source failed. Treated as fatal."""

    kind = "GenerationError"
    status = 500
    default_message = "Secret generation failed"
