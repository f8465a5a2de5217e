from flask import Blueprint, request, jsonify, current_app, g

from credentials.errors import CredentialError
from credentials.policy import policy_for
from credentials.services import get_issuer, get_validator
from credentials.store import CredentialStore
from models.credential import PURPOSE_ATTENDANCE
from utils.audit import log_event
from utils.auth_context import login_required

attendance_bp = Blueprint("attendance", __name__, url_prefix="/attendance")


def _redemption_json(r):
    return {
        "redemption_id": r.id,
        "credential_id": r.credential_id,
        "redeemer_id": r.redeemer_id,
        "effective_date": r.effective_date.isoformat() if r.effective_date else None,
        "redeemed_at": r.redeemed_at.isoformat(),
        "outcome": r.outcome,
    }


# ---------- TEACHERS: display a code for the room ----------
@attendance_bp.post("/codes")
@login_required
def issue_code():
    data = request.get_json(silent=True) or {}
    ttl_minutes = data.get("ttl_minutes", current_app.config.get("ATTENDANCE_DEFAULT_TTL_MINUTES", 10))

    try:
        issued = get_issuer().issue(g.user.id, PURPOSE_ATTENDANCE, ttl_minutes)
    except CredentialError as exc:
        log_event("ATTENDANCE_CODE_FAIL", user_id=g.user.id, metadata={"kind": exc.kind, "ttl_minutes": ttl_minutes})
        raise

    credential = issued.credential
    log_event(
        "ATTENDANCE_CODE_ISSUED",
        user_id=g.user.id,
        entity="credential",
        entity_id=credential.id,
        metadata={"ttl_minutes": ttl_minutes},
    )

    body = {"credential_id": credential.id, "expires_at": credential.expires_at.isoformat()}
    if policy_for(PURPOSE_ATTENDANCE).reveal_secret:
        body["secret"] = issued.secret
    return jsonify(body), 201


# ---------- STUDENTS: scan a displayed code ----------
@attendance_bp.post("/scan")
@login_required
def scan_code():
    data = request.get_json(silent=True) or {}
    secret = data.get("secret")
    if not isinstance(secret, str) or not secret.strip():
        return jsonify(error="secret is required", kind="InvalidRequest"), 400

    try:
        redemption = get_validator().redeem(secret, g.user.id, PURPOSE_ATTENDANCE)
    except CredentialError as exc:
        log_event("ATTENDANCE_MARK_FAIL", user_id=g.user.id, metadata={"kind": exc.kind})
        raise

    log_event(
        "ATTENDANCE_MARK",
        user_id=g.user.id,
        entity="redemption",
        entity_id=redemption.id,
        metadata={"credential_id": redemption.credential_id},
    )
    return jsonify(
        message="Attendance marked successfully!",
        redemption_id=redemption.id,
        effective_date=redemption.effective_date.isoformat(),
        outcome=redemption.outcome,
    ), 201


# ---------- STUDENTS: my attendance ----------
@attendance_bp.get("/me")
@login_required
def my_attendance():
    limit = request.args.get("limit", type=int) or 100
    limit = max(1, min(limit, 500))

    rows = CredentialStore().redemptions_for_redeemer(g.user.id, purpose=PURPOSE_ATTENDANCE, limit=limit)
    return jsonify([_redemption_json(r) for r in rows]), 200


# ---------- TEACHERS: who scanned my code ----------
@attendance_bp.get("/codes/<credential_id>/redemptions")
@login_required
def code_redemptions(credential_id: str):
    store = CredentialStore()
    credential = store.get(credential_id)
    # Other teachers' codes look the same as missing ones
    if not credential or credential.purpose != PURPOSE_ATTENDANCE or credential.subject_id != g.user.id:
        return jsonify(error="Code not found"), 404

    rows = store.redemptions_for_credential(credential.id)
    return jsonify(
        credential_id=credential.id,
        expires_at=credential.expires_at.isoformat(),
        redemptions=[_redemption_json(r) for r in rows],
    ), 200
