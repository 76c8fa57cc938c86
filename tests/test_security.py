from datetime import timedelta
from types import SimpleNamespace

import jwt
import pytest

from minicrm_app.config import AppConfig
from minicrm_app.errors import AuthError
from minicrm_app.security import ACCESS_ISSUER, TokenService, hash_password, verify_password


@pytest.fixture
def tokens():
    return TokenService(AppConfig(jwt_secret_key="unit-secret", database_url="sqlite://"))


@pytest.fixture
def user():
    return SimpleNamespace(id=7, email="ada@example.com", role="user")


def test_hash_and_verify_password():
    hashed = hash_password("correct horse", rounds=4)
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_verify_password_rejects_non_bcrypt_hash():
    assert not verify_password("secret", "not-a-bcrypt-hash")
    assert not verify_password("", hash_password("secret1", rounds=4))


def test_password_longer_than_72_bytes_is_truncated():
    long_password = "x" * 80
    hashed = hash_password(long_password, rounds=4)
    assert verify_password("x" * 72, hashed)


def test_access_token_round_trip(tokens, user):
    claims = tokens.decode_access_token(tokens.create_access_token(user))
    assert claims.user_id == 7
    assert claims.email == "ada@example.com"
    assert claims.role == "user"


def test_access_token_carries_issuer_and_subject(tokens, user):
    token = tokens.create_access_token(user)
    payload = jwt.decode(token, options={"verify_signature": False})
    assert payload["iss"] == ACCESS_ISSUER
    assert payload["sub"] == "7"
    assert payload["jti"]


def test_token_expired_one_second_ago_is_rejected(tokens, user):
    token = tokens.create_access_token(user, expires_delta=timedelta(seconds=-1))
    with pytest.raises(AuthError, match="expired"):
        tokens.decode_access_token(token)


def test_refresh_token_is_not_an_access_token(tokens, user):
    refresh = tokens.create_refresh_token(user)
    assert tokens.decode_refresh_token(refresh).user_id == 7
    with pytest.raises(AuthError):
        tokens.decode_access_token(refresh)
    with pytest.raises(AuthError):
        tokens.decode_refresh_token(tokens.create_access_token(user))


def test_tampered_and_malformed_tokens_are_rejected(tokens, user):
    other = TokenService(AppConfig(jwt_secret_key="someone-else", database_url="sqlite://"))
    with pytest.raises(AuthError):
        tokens.decode_access_token(other.create_access_token(user))
    with pytest.raises(AuthError):
        tokens.decode_access_token("not.a.token")


def test_missing_secret_generates_one_and_derives_refresh_key():
    config = AppConfig(database_url="sqlite://")
    assert config.jwt_secret_key
    assert config.jwt_refresh_secret_key == "refresh-" + config.jwt_secret_key


def test_bcrypt_rounds_come_from_config(monkeypatch):
    monkeypatch.setenv("BCRYPT_ROUNDS", "5")
    assert AppConfig.from_env().bcrypt_rounds == 5
    monkeypatch.setenv("BCRYPT_ROUNDS", "lots")
    assert AppConfig.from_env().bcrypt_rounds == 12
    assert AppConfig(jwt_secret_key="k", bcrypt_rounds=50).bcrypt_rounds == 31
    assert AppConfig(jwt_secret_key="k", bcrypt_rounds=2).bcrypt_rounds == 4
    assert hash_password("secret1", rounds=5).startswith("$2b$05$")
