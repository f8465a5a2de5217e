from datetime import datetime

import pytest

from app import create_app
from credentials.clock import FrozenClock
from models import db
from models.user import User, Role

T0 = datetime(2026, 10, 18, 9, 0, 0)


class RecordingDispatcher:
    """Stands in for SMTP. Keeps every code it was asked to deliver."""

    def __init__(self):
        self.sent = []
        self.attempted = []
        self.fail_with = None
        self.raise_with = None

    def send(self, recipient, code, expires_in_minutes):
        self.attempted.append((recipient, code))
        if self.raise_with is not None:
            raise self.raise_with
        if self.fail_with:
            return False, self.fail_with
        self.sent.append((recipient, code, expires_in_minutes))
        return True, None

    def last_code_for(self, email):
        for recipient, code, _ in reversed(self.sent):
            if recipient == email:
                return code
        return None


@pytest.fixture()
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'oncepass_test.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30, "check_same_thread": False}},
        "AUTO_CREATE_TABLES": True,
        "OTP_RATE_MAX_REQUESTS": 100,
        "OTP_RATE_MAX_PER_EMAIL": 100,
    })
    app.extensions["clock"] = FrozenClock(T0)
    app.extensions["dispatcher"] = RecordingDispatcher()

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def clock(app):
    return app.extensions["clock"]


@pytest.fixture()
def dispatcher(app):
    return app.extensions["dispatcher"]


@pytest.fixture()
def make_user(app):
    def _make(email, *role_names, full_name=None):
        user = User(email=email, full_name=full_name)
        for name in role_names:
            user.roles.append(Role.query.filter_by(name=name).one())
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture()
def teacher(make_user):
    return make_user("teacher@example.com", "TEACHER", full_name="Test Teacher")


@pytest.fixture()
def student(make_user):
    return make_user("student@example.com", "STUDENT", full_name="Test Student")


def csrf_from(resp):
    for header in resp.headers.getlist("Set-Cookie"):
        name, _, rest = header.partition("=")
        if name == "oncepass_csrf":
            return rest.split(";", 1)[0]
    return None


@pytest.fixture()
def login(app, dispatcher):
    """Signs a fresh test client in through the email code flow.

    Returns ``(client, headers)`` where headers carry the CSRF token.
    """
    def _login(email):
        client = app.test_client()
        res = client.post("/auth/otp/request", json={"email": email})
        assert res.status_code == 202, res.get_json()
        code = dispatcher.last_code_for(email)

        res = client.post("/auth/otp/verify", json={"email": email, "code": code})
        assert res.status_code == 200, res.get_json()
        return client, {"X-CSRF-Token": csrf_from(res)}
    return _login
