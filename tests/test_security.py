from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from forum.config import DEV_JWT_SECRET, Settings, settings
from forum.exceptions import TokenExpired, TokenInvalid
from forum.security import create_token, decode_token, hash_password, verify_password


def test_password_hash_round_trip():
    hashed = hash_password("wonderland")
    assert hashed != "wonderland"
    assert verify_password("wonderland", hashed)
    assert not verify_password("looking-glass", hashed)


def test_token_claims():
    issued = datetime(2030, 1, 1, tzinfo=timezone.utc)
    token = create_token(7, "alice", now=issued)
    claims = jwt.get_unverified_claims(token)
    assert claims["id"] == 7
    assert claims["username"] == "alice"
    assert claims["exp"] == int((issued + timedelta(days=60)).timestamp())


def test_decode_round_trip():
    claims = decode_token(create_token(7, "alice"))
    assert claims["id"] == 7


def test_decode_expired():
    issued = datetime.now(timezone.utc) - timedelta(days=61)
    with pytest.raises(TokenExpired):
        decode_token(create_token(7, "alice", now=issued))


def test_decode_wrong_signature():
    forged = jwt.encode({"id": 7, "username": "alice"}, "not-the-secret", algorithm="HS256")
    with pytest.raises(TokenInvalid):
        decode_token(forged)


def test_decode_garbage():
    with pytest.raises(TokenInvalid):
        decode_token("garbage")


def test_default_secret_refused_outside_development():
    Settings(APP_ENV="development").check_secret()
    with pytest.raises(RuntimeError):
        Settings(APP_ENV="production", JWT_SECRET=DEV_JWT_SECRET).check_secret()
    Settings(APP_ENV="production", JWT_SECRET="a-real-secret").check_secret()
    assert settings.JWT_ALGORITHM == "HS256"
