"""Durable storage for credentials and their redemptions.

Correctness under concurrent redemption comes from the database, not from
locks in this process: a login code is consumed with one conditional UPDATE
(``WHERE consumed = false``) and every redemption row is guarded by unique
constraints (``uq_redemption_redeemer_day``, ``uq_redemption_login_once``).
Whichever request commits first wins; the others see zero updated rows or an
IntegrityError and report a duplicate.
"""
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.credential import Credential
from models.redemption import Redemption


class CredentialStore:
    def __init__(self, session=None):
        self.session = session or db.session

    # ---------- credentials ----------
    def insert_if_absent(self, credential: Credential) -> bool:
        """Insert keyed by the unique secret digest. False on collision."""
        self.session.add(credential)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def release_dead_secret(self, secret_hash: str, now) -> bool:
        """Free a digest held by an expired or consumed credential.

        Live credentials are never touched, so a released digest can only
        ever have pointed at something unredeemable.
        """
        released = (
            self.session.query(Credential)
            .filter(Credential.secret_hash == secret_hash)
            .filter(or_(Credential.expires_at < now, Credential.consumed.is_(True)))
            .update({Credential.secret_hash: None}, synchronize_session=False)
        )
        self.session.commit()
        return released > 0

    def find_by_secret_hash(self, secret_hash: str):
        if not secret_hash:
            return None
        return self.session.query(Credential).filter_by(secret_hash=secret_hash).first()

    def get(self, credential_id: str):
        return self.session.get(Credential, credential_id)

    def discard(self, credential_id: str) -> bool:
        """Delete a credential nobody was told about. False if it is referenced."""
        try:
            self.session.query(Credential).filter_by(id=credential_id).delete(synchronize_session=False)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def retire(self, credential_id: str, now) -> None:
        """Make a credential unredeemable when it cannot be deleted."""
        self.session.query(Credential).filter_by(id=credential_id).update(
            {Credential.secret_hash: None, Credential.consumed: True, Credential.consumed_at: now},
            synchronize_session=False,
        )
        self.session.commit()

    def register_wrong_guess(self, subject_id: int, purpose: str, now, max_attempts: int) -> int:
        """Count one failed guess against every live code of the subject.

        A single conditional UPDATE, so concurrent guesses never lose an
        increment. Codes already at ``max_attempts`` are left alone.
        """
        updated = (
            self.session.query(Credential)
            .filter(
                Credential.subject_id == subject_id,
                Credential.purpose == purpose,
                Credential.consumed.is_(False),
                Credential.expires_at >= now,
                Credential.attempts < max_attempts,
            )
            .update({Credential.attempts: Credential.attempts + 1}, synchronize_session=False)
        )
        self.session.commit()
        return updated

    # ---------- redemptions ----------
    def _consume_if_unconsumed(self, credential_id: str, now, max_attempts: int = None) -> bool:
        q = self.session.query(Credential).filter(
            Credential.id == credential_id, Credential.consumed.is_(False)
        )
        if max_attempts is not None:
            q = q.filter(Credential.attempts < max_attempts)
        updated = q.update(
            {Credential.consumed: True, Credential.consumed_at: now},
            synchronize_session=False,
        )
        return updated == 1

    def commit_redemption(self, redemption: Redemption, consume_credential: bool = False,
                          max_attempts: int = None) -> bool:
        """Persist one redemption as a single transaction.

        With ``consume_credential`` the credential flip and the row insert
        commit together, and a credential that ran out of guesses in the
        meantime is not consumed. Returns False, with nothing persisted,
        when another request already holds the redemption.
        """
        try:
            if consume_credential and not self._consume_if_unconsumed(
                redemption.credential_id, redemption.redeemed_at, max_attempts
            ):
                self.session.rollback()
                return False
            self.session.add(redemption)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def redemptions_for_redeemer(self, redeemer_id: int, purpose: str = None, limit: int = 100):
        q = self.session.query(Redemption).filter_by(redeemer_id=redeemer_id)
        if purpose:
            q = q.filter_by(purpose=purpose)
        return q.order_by(Redemption.redeemed_at.desc()).limit(limit).all()

    def redemptions_for_credential(self, credential_id: str):
        return (
            self.session.query(Redemption)
            .filter_by(credential_id=credential_id)
            .order_by(Redemption.redeemed_at.asc())
            .all()
        )
