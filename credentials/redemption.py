from flask import current_app

from credentials.errors import (
    AlreadyConsumed,
    AlreadyRedeemedToday,
    Expired,
    Forbidden,
    InvalidCredential,
)
from credentials.generator import hash_secret
from credentials.policy import SCOPE_CREDENTIAL, SCOPE_DAY, policy_for
from models.redemption import Redemption


class RedemptionValidator:
    """Validates a presented secret and records its redemption exactly once.

    Checks run in a fixed order: lookup, purpose, expiry, capability, then the
    duplicate check fused with the commit. Login codes are bound to their
    subject, so for them the subject check (and the guess budget) comes
    before expiry: a code belonging to another account is just invalid.
    Expiry is computed from the clock at call time, nothing sweeps expired
    rows.
    """

    def __init__(self, store, directory, clock, secret_key: str = None, max_attempts: int = 5):
        self.store = store
        self.directory = directory
        self.clock = clock
        self.secret_key = secret_key
        self.max_attempts = max(1, int(max_attempts))

    def redeem(self, secret: str, redeemer_id, purpose: str) -> Redemption:
        policy = policy_for(purpose)
        now = self.clock.now()

        if not isinstance(secret, str) or not secret.strip():
            raise self._invalid(policy, redeemer_id, now)
        credential = self.store.find_by_secret_hash(hash_secret(secret.strip(), self.secret_key))
        if credential is None or credential.purpose != purpose:
            raise self._invalid(policy, redeemer_id, now)

        if policy.redeemer_role is None:
            # a login code only opens the account it was sent to
            if credential.subject_id != redeemer_id:
                raise self._invalid(policy, redeemer_id, now)
            if policy.counts_guesses and credential.attempts >= self.max_attempts:
                raise InvalidCredential()
            if credential.is_expired(now):
                raise Expired()
        else:
            if credential.is_expired(now):
                raise Expired()
            if not self.directory.has_role(redeemer_id, policy.redeemer_role):
                raise Forbidden(f"Only {policy.redeemer_role.lower()}s can redeem {purpose} codes")

        redemption = Redemption(
            credential_id=credential.id,
            purpose=purpose,
            redeemer_id=redeemer_id,
            effective_date=now.date() if policy.duplicate_scope == SCOPE_DAY else None,
            redeemed_at=now,
            outcome=policy.outcome,
        )
        credential_id = credential.id
        committed = self.store.commit_redemption(
            redemption,
            consume_credential=policy.duplicate_scope == SCOPE_CREDENTIAL,
            max_attempts=self.max_attempts if policy.counts_guesses else None,
        )
        if not committed:
            current_app.logger.info(
                "Duplicate %s redemption of credential %s by user %s", purpose, credential_id, redeemer_id
            )
            if policy.duplicate_scope == SCOPE_DAY:
                raise AlreadyRedeemedToday()
            raise AlreadyConsumed()

        return redemption

    def _invalid(self, policy, redeemer_id, now) -> InvalidCredential:
        if policy.counts_guesses and redeemer_id is not None:
            burned = self.store.register_wrong_guess(redeemer_id, policy.purpose, now, self.max_attempts)
            current_app.logger.info(
                "Wrong %s code for user %s (%d live codes charged)", policy.purpose, redeemer_id, burned
            )
        return InvalidCredential()
