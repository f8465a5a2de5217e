from datetime import timedelta
from typing import NamedTuple

from flask import current_app

from credentials.errors import (
    DispatchFailure,
    Forbidden,
    InvalidTTL,
    IssuanceConflict,
    UnknownSubject,
)
from credentials.generator import hash_secret
from credentials.policy import policy_for
from models.credential import Credential


class IssuedCredential(NamedTuple):
    credential: Credential
    # raw secret; only handed back to callers when the policy reveals it
    secret: str


class CredentialIssuer:
    """Creates credentials for a subject and persists them all-or-nothing.

    A login credential only survives if its code was handed to the
    dispatcher successfully; otherwise the row is removed before the error
    reaches the caller.
    """

    def __init__(self, store, directory, clock, generator, dispatcher=None,
                 secret_key: str = None, max_attempts: int = 5):
        self.store = store
        self.directory = directory
        self.clock = clock
        self.generator = generator
        self.dispatcher = dispatcher
        self.secret_key = secret_key
        self.max_attempts = max(1, int(max_attempts))

    def issue(self, subject_id, purpose: str, ttl_minutes) -> IssuedCredential:
        policy = policy_for(purpose)
        self._check_ttl(policy, ttl_minutes)

        subject = self.directory.get(subject_id)
        if subject is None:
            raise UnknownSubject()
        if policy.issuer_role and not self.directory.has_role(subject.id, policy.issuer_role):
            raise Forbidden(f"Only {policy.issuer_role.lower()}s can issue {purpose} codes")

        issued = self._persist(subject.id, purpose, ttl_minutes)

        if policy.requires_dispatch:
            self._dispatch(issued, subject.email, ttl_minutes)

        return issued

    def _check_ttl(self, policy, ttl_minutes) -> None:
        if isinstance(ttl_minutes, bool) or not isinstance(ttl_minutes, int):
            raise InvalidTTL(policy.min_ttl_minutes, policy.max_ttl_minutes)
        if not (policy.min_ttl_minutes <= ttl_minutes <= policy.max_ttl_minutes):
            raise InvalidTTL(policy.min_ttl_minutes, policy.max_ttl_minutes)

    def _persist(self, subject_id, purpose: str, ttl_minutes: int) -> IssuedCredential:
        for attempt in range(1, self.max_attempts + 1):
            now = self.clock.now()
            secret = self.generator.generate(purpose, subject_id)
            secret_hash = hash_secret(secret, self.secret_key)

            credential = Credential(
                subject_id=subject_id,
                purpose=purpose,
                secret_hash=secret_hash,
                created_at=now,
                expires_at=now + timedelta(minutes=ttl_minutes),
                consumed=False,
            )
            if self.store.insert_if_absent(credential):
                return IssuedCredential(credential=credential, secret=secret)

            # Colliding with a dead credential frees its digest for the next try
            released = self.store.release_dead_secret(secret_hash, now)
            current_app.logger.warning(
                "Secret collision issuing %s credential (attempt %d/%d, released=%s)",
                purpose, attempt, self.max_attempts, released,
            )

        current_app.logger.error("Gave up issuing %s credential after %d attempts", purpose, self.max_attempts)
        raise IssuanceConflict()

    def _dispatch(self, issued: IssuedCredential, recipient: str, ttl_minutes: int) -> None:
        credential_id = issued.credential.id
        try:
            ok, error = self.dispatcher.send(recipient, issued.secret, ttl_minutes)
        except Exception as exc:
            ok, error = False, str(exc)

        if not ok:
            if not self.store.discard(credential_id):
                # already referenced; leave the row but make it unredeemable
                self.store.retire(credential_id, self.clock.now())
            current_app.logger.warning("Dispatch failed for credential %s: %s", credential_id, error)
            raise DispatchFailure()
