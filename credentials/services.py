"""Wires the credential components from the current app's config."""
from flask import current_app

from credentials.clock import get_clock
from credentials.directory import IdentityDirectory
from credentials.dispatch import get_dispatcher
from credentials.generator import SecretGenerator
from credentials.issuer import CredentialIssuer
from credentials.redemption import RedemptionValidator
from credentials.store import CredentialStore


def get_issuer() -> CredentialIssuer:
    clock = get_clock()
    return CredentialIssuer(
        store=CredentialStore(),
        directory=IdentityDirectory(),
        clock=clock,
        generator=SecretGenerator(clock),
        dispatcher=get_dispatcher(),
        secret_key=current_app.config["SECRET_KEY"],
        max_attempts=current_app.config.get("CREDENTIAL_ISSUE_MAX_ATTEMPTS", 5),
    )


def get_validator() -> RedemptionValidator:
    return RedemptionValidator(
        store=CredentialStore(),
        directory=IdentityDirectory(),
        clock=get_clock(),
        secret_key=current_app.config["SECRET_KEY"],
        max_attempts=current_app.config.get("MAX_OTP_ATTEMPTS", 5),
    )
