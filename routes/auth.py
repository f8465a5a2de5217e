from flask import Blueprint, request, jsonify, current_app, g

from credentials.directory import IdentityDirectory, normalize_email
from credentials.errors import CredentialError, InvalidCredential, UnknownSubject
from credentials.services import get_issuer, get_validator
from models.credential import PURPOSE_LOGIN
from security.bruteforce import is_locked, register_failure, reset_attempts
from security.csrf import issue_csrf_token
from security.rate_limit import check_and_increment_otp_rate
from security.session import create_session, revoke_session, revoke_all_sessions
from utils.audit import log_event
from utils.auth_context import login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


@auth_bp.post("/otp/request")
def request_otp():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))

    if not _is_valid_email(email):
        return jsonify(error="Email is required", kind="InvalidRequest"), 400

    allowed, retry_after = check_and_increment_otp_rate(email)
    if not allowed:
        log_event("OTP_RATE_LIMIT", metadata={"email": email, "retry_after": retry_after})
        return jsonify(error="Too many code requests. Slow down.", retry_after_seconds=retry_after), 429

    user = IdentityDirectory().find_by_email(email)
    if not user:
        log_event("OTP_REQUEST_UNKNOWN_EMAIL", metadata={"email": email})
        raise UnknownSubject()

    ttl_minutes = current_app.config.get("OTP_TTL_MINUTES", 10)
    try:
        issued = get_issuer().issue(user.id, PURPOSE_LOGIN, ttl_minutes)
    except CredentialError as exc:
        log_event("OTP_REQUEST_FAIL", user_id=user.id, metadata={"kind": exc.kind})
        raise

    credential = issued.credential
    log_event("OTP_ISSUED", user_id=user.id, entity="credential", entity_id=credential.id)

    # The code itself only travels by email
    return jsonify(
        message="Code sent",
        credential_id=credential.id,
        expires_at=credential.expires_at.isoformat(),
    ), 202


@auth_bp.post("/otp/verify")
def verify_otp():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    code = data.get("code")

    if not _is_valid_email(email) or not isinstance(code, str) or not code.strip():
        return jsonify(error="Email and code are required", kind="InvalidRequest"), 400

    locked, seconds_left = is_locked(email)
    if locked:
        log_event("OTP_VERIFY_LOCKED", metadata={"email": email, "seconds_left": seconds_left})
        return jsonify(error="Too many failed attempts. Try again later.", retry_after_seconds=seconds_left), 429

    user = IdentityDirectory().find_by_email(email)
    try:
        if not user:
            raise InvalidCredential()
        redemption = get_validator().redeem(code, user.id, PURPOSE_LOGIN)
    except CredentialError as exc:
        # counters are only kept for real accounts
        fail_count, locked_now = register_failure(email) if user else (0, False)
        log_event(
            "OTP_VERIFY_FAIL",
            user_id=user.id if user else None,
            metadata={"email": email, "kind": exc.kind, "fail_count": fail_count, "locked_now": locked_now},
        )
        if locked_now:
            return jsonify(
                error="Too many failed attempts. Account locked.",
                lockout_minutes=current_app.config.get("LOCKOUT_MINUTES", 10),
            ), 429
        raise

    reset_attempts(email)

    # Rotate: revoke any existing sessions for this user
    revoked_count = revoke_all_sessions(user.id)
    raw_token = create_session(user.id)

    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "oncepass_session")
    max_age = current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60)

    resp = jsonify(
        message="Login OK",
        redemption_id=redemption.id,
        consumed_at=redemption.redeemed_at.isoformat(),
        outcome=redemption.outcome,
    )
    resp.set_cookie(
        cookie_name,
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=max_age,
        path="/",
    )
    resp = issue_csrf_token(resp)

    log_event(
        "LOGIN_SUCCESS",
        user_id=user.id,
        entity="redemption",
        entity_id=redemption.id,
        metadata={"revoked_sessions": revoked_count},
    )
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        email=g.user.email,
        full_name=g.user.full_name,
        roles=sorted(g.user.role_names()),
    ), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "oncepass_session")
    raw_token = request.cookies.get(cookie_name)

    revoke_session(raw_token)
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200


@auth_bp.post("/logout_all")
@login_required
def logout_all():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "oncepass_session")

    count = revoke_all_sessions(g.user.id)
    log_event("LOGOUT_ALL", user_id=g.user.id, metadata={"revoked_sessions": count})

    resp = jsonify(message="Logged out everywhere", revoked_sessions=count)
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200
