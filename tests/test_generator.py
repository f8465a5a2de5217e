import re

import pytest

import credentials.generator as generator_module
from credentials.clock import FrozenClock
from credentials.errors import GenerationError
from credentials.generator import SecretGenerator, hash_secret
from models.credential import PURPOSE_ATTENDANCE, PURPOSE_LOGIN

from conftest import T0


@pytest.fixture()
def generator():
    return SecretGenerator(FrozenClock(T0))


def test_attendance_secret_is_structured(generator):
    secret = generator.generate(PURPOSE_ATTENDANCE, 42)

    match = re.fullmatch(r"ATTENDANCE_42_(\d+)_([A-Za-z0-9_-]+)", secret)
    assert match
    assert int(match.group(1)) == 1792314000000  # T0 in epoch ms
    # 16 random bytes, urlsafe base64 without padding
    assert len(match.group(2)) >= 22


def test_attendance_secrets_do_not_repeat(generator):
    secrets = {generator.generate(PURPOSE_ATTENDANCE, 1) for _ in range(200)}
    assert len(secrets) == 200


def test_login_code_is_six_digits(generator):
    for _ in range(50):
        code = generator.generate(PURPOSE_LOGIN, 1)
        assert len(code) == 6
        assert code.isdigit()


def test_unknown_purpose_is_rejected(generator):
    with pytest.raises(ValueError):
        generator.generate("coupon", 1)


def test_entropy_failure_raises_generation_error(generator, monkeypatch):
    def boom(*args, **kwargs):
        raise OSError("no entropy")

    monkeypatch.setattr(generator_module.secrets, "token_urlsafe", boom)
    monkeypatch.setattr(generator_module.secrets, "randbelow", boom)

    with pytest.raises(GenerationError):
        generator.generate(PURPOSE_ATTENDANCE, 1)
    with pytest.raises(GenerationError):
        generator.generate(PURPOSE_LOGIN, 1)


def test_hash_secret_is_keyed_and_stable():
    assert hash_secret("123456", "k1") == hash_secret("123456", "k1")
    assert hash_secret("123456", "k1") != hash_secret("123456", "k2")
    assert hash_secret("123456", "k1") != "123456"
