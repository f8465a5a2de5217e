import json

from models.audit_log import AuditLog
from models.login_attempt import LoginAttempt
from models.credential import Credential
from models.user import User

from conftest import csrf_from


def test_health(app):
    res = app.test_client().get("/health")
    assert res.status_code == 200
    assert res.json == {"status": "ok"}
    assert res.headers["X-Frame-Options"] == "DENY"
    assert res.headers["Cache-Control"] == "no-store"


# ---------- email code login ----------

def test_otp_request_for_unknown_email_is_404(app):
    res = app.test_client().post("/auth/otp/request", json={"email": "ghost@example.com"})
    assert res.status_code == 404
    assert res.json["kind"] == "UnknownSubject"
    assert Credential.query.count() == 0


def test_otp_request_requires_an_email(app):
    res = app.test_client().post("/auth/otp/request", json={})
    assert res.status_code == 400


def test_otp_request_never_returns_the_code(app, dispatcher, student):
    res = app.test_client().post("/auth/otp/request", json={"email": " Student@Example.com "})

    assert res.status_code == 202
    code = dispatcher.last_code_for("student@example.com")
    assert code is not None
    assert code not in res.get_data(as_text=True)
    assert "secret" not in res.json
    assert res.json["credential_id"]


def test_otp_verify_opens_a_session(app, dispatcher, student):
    client = app.test_client()
    client.post("/auth/otp/request", json={"email": student.email})
    code = dispatcher.last_code_for(student.email)

    res = client.post("/auth/otp/verify", json={"email": student.email, "code": code})
    assert res.status_code == 200
    assert res.json["outcome"] == "authenticated"
    assert res.json["redemption_id"]
    assert res.json["consumed_at"]
    assert csrf_from(res)

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json["email"] == "student@example.com"
    assert me.json["roles"] == ["STUDENT"]


def test_otp_code_cannot_be_replayed(app, dispatcher, student):
    client = app.test_client()
    client.post("/auth/otp/request", json={"email": student.email})
    code = dispatcher.last_code_for(student.email)
    assert client.post("/auth/otp/verify", json={"email": student.email, "code": code}).status_code == 200

    res = app.test_client().post("/auth/otp/verify", json={"email": student.email, "code": code})
    assert res.status_code == 409
    assert res.json["kind"] == "AlreadyConsumed"


def test_expired_otp_is_410(app, clock, dispatcher, student):
    client = app.test_client()
    client.post("/auth/otp/request", json={"email": student.email})
    code = dispatcher.last_code_for(student.email)

    clock.advance(minutes=10, seconds=1)
    res = client.post("/auth/otp/verify", json={"email": student.email, "code": code})
    assert res.status_code == 410
    assert res.json["kind"] == "Expired"


def test_wrong_codes_lock_the_account(app, student):
    app.config["MAX_OTP_ATTEMPTS"] = 3
    client = app.test_client()
    body = {"email": student.email, "code": "abcdef"}

    for _ in range(2):
        res = client.post("/auth/otp/verify", json=body)
        assert res.status_code == 400
        assert res.json["kind"] == "InvalidCredential"

    assert client.post("/auth/otp/verify", json=body).status_code == 429
    assert client.post("/auth/otp/verify", json=body).status_code == 429


def test_unknown_email_verify_looks_like_a_bad_code(app):
    res = app.test_client().post("/auth/otp/verify", json={"email": "ghost@example.com", "code": "123456"})
    assert res.status_code == 400
    assert res.json["kind"] == "InvalidCredential"
    assert LoginAttempt.query.count() == 0


def test_dispatch_failure_is_502_and_persists_nothing(app, dispatcher, student):
    dispatcher.fail_with = "Email not configured"

    res = app.test_client().post("/auth/otp/request", json={"email": student.email})

    assert res.status_code == 502
    assert res.json["kind"] == "DispatchFailure"
    assert Credential.query.count() == 0


def test_code_requests_are_rate_limited(app, student):
    app.config["OTP_RATE_MAX_REQUESTS"] = 2
    client = app.test_client()

    for _ in range(2):
        assert client.post("/auth/otp/request", json={"email": student.email}).status_code == 202
    res = client.post("/auth/otp/request", json={"email": student.email})
    assert res.status_code == 429
    assert res.json["retry_after_seconds"] >= 1


def test_logout_ends_the_session(login, student):
    client, headers = login(student.email)

    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_new_login_revokes_older_sessions(login, student):
    first, _ = login(student.email)
    second, _ = login(student.email)

    assert first.get("/auth/me").status_code == 401
    assert second.get("/auth/me").status_code == 200


def test_changing_client_address_does_not_dodge_the_lockout(app, clock, dispatcher, student):
    app.config.update(MAX_OTP_ATTEMPTS=3, MAX_OTP_ACCOUNT_ATTEMPTS=5, LOCKOUT_MINUTES=1)
    client = app.test_client()
    client.post("/auth/otp/request", json={"email": student.email})
    code = dispatcher.last_code_for(student.email)

    def verify(guess, n):
        return client.post(
            "/auth/otp/verify",
            json={"email": student.email, "code": guess},
            headers={"X-Forwarded-For": f"203.0.113.{n}"},
            environ_base={"REMOTE_ADDR": f"10.0.0.{n}"},
        )

    statuses = [verify("abcdef", n).status_code for n in range(5)]
    assert statuses == [400, 400, 400, 400, 429]
    assert verify(code, 99).status_code == 429

    # lockout over, but the code took too many wrong guesses to be trusted
    clock.advance(minutes=1, seconds=1)
    res = verify(code, 100)
    assert res.status_code == 400
    assert res.json["kind"] == "InvalidCredential"


def test_forwarded_for_is_ignored_without_trusted_proxies(app, student):
    app.config["MAX_OTP_ATTEMPTS"] = 2
    client = app.test_client()
    body = {"email": student.email, "code": "abcdef"}

    assert client.post("/auth/otp/verify", json=body, headers={"X-Forwarded-For": "198.51.100.1"}).status_code == 400
    assert client.post("/auth/otp/verify", json=body, headers={"X-Forwarded-For": "198.51.100.2"}).status_code == 429


def test_code_requests_are_rate_limited_per_email(app, student):
    app.config["OTP_RATE_MAX_PER_EMAIL"] = 2
    client = app.test_client()

    for n in range(2):
        res = client.post("/auth/otp/request", json={"email": student.email}, environ_base={"REMOTE_ADDR": f"10.0.1.{n}"})
        assert res.status_code == 202
    res = client.post("/auth/otp/request", json={"email": student.email}, environ_base={"REMOTE_ADDR": "10.0.1.9"})
    assert res.status_code == 429


# ---------- attendance ----------

def test_attendance_flow_over_http(login, teacher, student):
    t_client, t_headers = login(teacher.email)
    s_client, s_headers = login(student.email)

    res = t_client.post("/attendance/codes", json={"ttl_minutes": 15}, headers=t_headers)
    assert res.status_code == 201
    secret = res.json["secret"]
    credential_id = res.json["credential_id"]
    assert secret.startswith("ATTENDANCE_")

    res = s_client.post("/attendance/scan", json={"secret": secret}, headers=s_headers)
    assert res.status_code == 201
    assert res.json["outcome"] == "present"
    assert res.json["effective_date"] == "2026-10-18"

    res = s_client.post("/attendance/scan", json={"secret": secret}, headers=s_headers)
    assert res.status_code == 409
    assert res.json["kind"] == "AlreadyRedeemedToday"

    mine = s_client.get("/attendance/me")
    assert mine.status_code == 200
    assert [r["credential_id"] for r in mine.json] == [credential_id]

    scans = t_client.get(f"/attendance/codes/{credential_id}/redemptions")
    assert scans.status_code == 200
    assert [r["redeemer_id"] for r in scans.json["redemptions"]] == [student.id]


def test_attendance_code_defaults_to_ten_minutes(login, teacher):
    client, headers = login(teacher.email)
    res = client.post("/attendance/codes", json={}, headers=headers)
    assert res.status_code == 201
    assert res.json["expires_at"] == "2026-10-18T09:10:00"


def test_attendance_ttl_out_of_range_is_400(login, teacher):
    client, headers = login(teacher.email)
    for ttl in (0, 61):
        res = client.post("/attendance/codes", json={"ttl_minutes": ttl}, headers=headers)
        assert res.status_code == 400
        assert res.json["kind"] == "InvalidTTL"
    assert Credential.query.count() == 1  # the login code only


def test_students_cannot_issue_and_teachers_cannot_scan(login, teacher, student):
    s_client, s_headers = login(student.email)
    t_client, t_headers = login(teacher.email)

    res = s_client.post("/attendance/codes", json={"ttl_minutes": 10}, headers=s_headers)
    assert res.status_code == 403
    assert res.json["kind"] == "Forbidden"

    secret = t_client.post("/attendance/codes", json={}, headers=t_headers).json["secret"]
    res = t_client.post("/attendance/scan", json={"secret": secret}, headers=t_headers)
    assert res.status_code == 403


def test_scan_requires_csrf_and_session(app, login, teacher, student):
    t_client, t_headers = login(teacher.email)
    secret = t_client.post("/attendance/codes", json={}, headers=t_headers).json["secret"]

    anon = app.test_client().post("/attendance/scan", json={"secret": secret})
    assert anon.status_code == 401

    s_client, _ = login(student.email)
    res = s_client.post("/attendance/scan", json={"secret": secret})
    assert res.status_code == 403
    assert res.json["error"] == "CSRF validation failed"


def test_login_code_is_not_an_attendance_code(app, login, dispatcher, student):
    s_client, s_headers = login(student.email)
    app.test_client().post("/auth/otp/request", json={"email": student.email})
    code = dispatcher.last_code_for(student.email)

    res = s_client.post("/attendance/scan", json={"secret": code}, headers=s_headers)
    assert res.status_code == 400
    assert res.json["kind"] == "InvalidCredential"


def test_other_teachers_cannot_see_redemptions(login, make_user, teacher):
    other = make_user("other.teacher@example.com", "TEACHER")
    t_client, t_headers = login(teacher.email)
    credential_id = t_client.post("/attendance/codes", json={}, headers=t_headers).json["credential_id"]

    o_client, _ = login(other.email)
    assert o_client.get(f"/attendance/codes/{credential_id}/redemptions").status_code == 404


# ---------- audit ----------

def test_redemptions_are_audited(login, make_user, teacher, student):
    admin = make_user("admin@example.com", "ADMIN")
    t_client, t_headers = login(teacher.email)
    s_client, s_headers = login(student.email)
    secret = t_client.post("/attendance/codes", json={}, headers=t_headers).json["secret"]
    s_client.post("/attendance/scan", json={"secret": secret}, headers=s_headers)
    s_client.post("/attendance/scan", json={"secret": secret}, headers=s_headers)

    fail = AuditLog.query.filter_by(action="ATTENDANCE_MARK_FAIL").one()
    assert json.loads(fail.metadata_json)["kind"] == "AlreadyRedeemedToday"

    a_client, _ = login(admin.email)
    res = a_client.get("/admin/audit-logs?action=ATTENDANCE_MARK")
    assert res.status_code == 200
    assert [r["user_id"] for r in res.json] == [student.id]

    assert s_client.get("/admin/audit-logs").status_code == 403


# ---------- CLI ----------

def test_cli_creates_users_and_grants_roles(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-user", "New.Teacher@Example.com", "--role", "teacher", "--name", "New"])
    assert "new.teacher@example.com created as TEACHER" in result.output

    result = runner.invoke(args=["create-user", "new.teacher@example.com"])
    assert "User already exists" in result.output

    result = runner.invoke(args=["grant-role", "new.teacher@example.com", "ADMIN"])
    assert "granted ADMIN" in result.output

    user = User.query.filter_by(email="new.teacher@example.com").one()
    assert user.role_names() == {"TEACHER", "ADMIN"}

    result = runner.invoke(args=["grant-role", "nobody@example.com", "ADMIN"])
    assert "User not found" in result.output
