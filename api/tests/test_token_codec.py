from datetime import datetime, timedelta, timezone

import jwt
import pytest

from free2free.auth.security import TokenCodec, create_refresh_token, hash_refresh_token
from free2free.errors import AuthFailure, AuthFailureReason, ConfigurationError

SECRET = "x" * 32


def test_encode_decode_carries_claims():
    codec = TokenCodec(SECRET, ttl_minutes=15)
    token = codec.encode(user_id=7, user_name="Ann", is_admin=True)
    claims = codec.decode(token)

    assert claims.user_id == 7
    assert claims.user_name == "Ann"
    assert claims.is_admin is True
    assert claims.expires_at - claims.issued_at == 15 * 60


@pytest.mark.parametrize("secret", ["", "short", "y" * 31])
def test_short_secret_is_a_configuration_error(secret):
    codec = TokenCodec(secret)
    with pytest.raises(ConfigurationError):
        codec.ensure_secret()
    with pytest.raises(ConfigurationError):
        codec.encode(user_id=1, user_name="a", is_admin=False)
    with pytest.raises(ConfigurationError):
        codec.decode("anything")


def test_expired_token_is_invalid():
    codec = TokenCodec(SECRET, ttl_minutes=15)
    token = codec.encode(user_id=1, user_name="a", is_admin=False, now=datetime.now(timezone.utc) - timedelta(hours=1))
    with pytest.raises(AuthFailure) as exc:
        codec.decode(token)
    assert exc.value.failure is AuthFailureReason.INVALID_TOKEN
    assert exc.value.message == "token expired"


def test_wrong_signature_is_invalid():
    token = TokenCodec("z" * 40).encode(user_id=1, user_name="a", is_admin=False)
    with pytest.raises(AuthFailure) as exc:
        TokenCodec(SECRET).decode(token)
    assert exc.value.failure is AuthFailureReason.INVALID_TOKEN


def test_missing_exp_claim_is_invalid():
    now = int(datetime.now(timezone.utc).timestamp())
    token = jwt.encode({"user_id": 1, "iat": now}, SECRET, algorithm="HS256")
    with pytest.raises(AuthFailure):
        TokenCodec(SECRET).decode(token)


@pytest.mark.parametrize("user_id", [0, -3, "5", True, None])
def test_non_positive_or_non_integer_subject_is_invalid(user_id):
    now = datetime.now(timezone.utc)
    payload = {"user_id": user_id, "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=5)).timestamp())}
    token = jwt.encode(payload, SECRET, algorithm="HS256")
    with pytest.raises(AuthFailure) as exc:
        TokenCodec(SECRET).decode(token)
    assert exc.value.failure is AuthFailureReason.INVALID_TOKEN


def test_refresh_token_hash_is_stable_and_secret_bound():
    token = create_refresh_token()
    assert hash_refresh_token(token, SECRET) == hash_refresh_token(token, SECRET)
    assert hash_refresh_token(token, SECRET) != hash_refresh_token(token, "w" * 32)
    assert len(hash_refresh_token(token, SECRET)) == 64
    with pytest.raises(ConfigurationError):
        hash_refresh_token(token, "")
