"""Tests for password hashing and token pairs."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from schoolschedule import config
from schoolschedule.errors import AuthenticationError
from schoolschedule.security import decode_token, hash_password, issue_token_pair, verify_password


class TestPasswords:
    def test_hash_verifies(self):
        h = hash_password("s3cret")
        assert h != "s3cret"
        assert verify_password("s3cret", h)
        assert not verify_password("wrong", h)

    def test_malformed_hash_is_false(self):
        assert verify_password("s3cret", "not-a-bcrypt-hash") is False


class TestTokens:
    def test_pair_types(self):
        pair = issue_token_pair("u1", "a@school.ru", "teacher")
        access = decode_token(pair.access_token, "access")
        refresh = decode_token(pair.refresh_token, "refresh")
        assert access["sub"] == refresh["sub"] == "u1"
        assert access["role"] == "teacher"
        assert access["exp"] - access["iat"] == config.ACCESS_TOKEN_TTL
        assert refresh["exp"] - refresh["iat"] == config.REFRESH_TOKEN_TTL

    def test_refresh_token_is_not_access(self):
        pair = issue_token_pair("u1", "a@school.ru", "teacher")
        with pytest.raises(AuthenticationError) as exc:
            decode_token(pair.refresh_token, "access")
        assert "expected access" in exc.value.message

    def test_expired(self):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "u1", "type": "access", "iat": past, "exp": past + timedelta(minutes=1)},
            config.JWT_SECRET,
            algorithm=config.JWT_ALGORITHM,
        )
        with pytest.raises(AuthenticationError) as exc:
            decode_token(token, "access")
        assert exc.value.message == "token has expired"

    def test_bad_signature(self):
        token = jwt.encode({"sub": "u1", "type": "access"}, "another-secret-with-enough-bytes-for-hs256", algorithm="HS256")
        with pytest.raises(AuthenticationError):
            decode_token(token, "access")

    def test_garbage(self):
        with pytest.raises(AuthenticationError):
            decode_token("abc.def.ghi", "refresh")

    def test_to_dict_keys(self):
        assert set(issue_token_pair("u1", "e", "r").to_dict()) == {"accessToken", "refreshToken"}
